"""配置管理"""
import os
from pathlib import Path
from dotenv import load_dotenv

# 显式加载 backend/.env 文件（确保无论从哪个目录启动都能找到）
env_path = Path(__file__).parent.parent / ".env"
load_dotenv(dotenv_path=env_path)


def _env_bool(name: str, default: str) -> bool:
    return os.getenv(name, default).strip().lower() in ("1", "true", "yes", "on")


class Config:
    """应用配置"""

    # 运行环境（production 下错误响应不带堆栈）
    APP_ENV = os.getenv("APP_ENV", "development")
    VERSION = "1.0.0"

    # 服务监听
    HOST = os.getenv("HOST", "0.0.0.0")
    PORT = int(os.getenv("PORT", "3000"))

    # Google Gemini
    GEMINI_API_KEY = os.getenv("GEMINI_API_KEY")
    GEMINI_MODEL = os.getenv("GEMINI_MODEL", "gemini-2.5-flash")

    # 上传与请求体限制
    MAX_UPLOAD_SIZE_MB = int(os.getenv("MAX_UPLOAD_SIZE_MB", "10"))
    MAX_JSON_BODY_MB = int(os.getenv("MAX_JSON_BODY_MB", "2"))
    MAX_IMAGES = int(os.getenv("MAX_IMAGES", "6"))

    # CORS（逗号分隔）
    CORS_ORIGINS = [o.strip() for o in os.getenv("CORS_ORIGINS", "*").split(",") if o.strip()]

    # 日志
    LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
    LOG_DIR = os.getenv("LOG_DIR", "logs")
    LOG_JSON = _env_bool("LOG_JSON", "true")
    LOG_TO_FILE = _env_bool("LOG_TO_FILE", "true")

    @classmethod
    def is_production(cls) -> bool:
        return cls.APP_ENV.lower() == "production"

    @classmethod
    def summary(cls) -> dict:
        """关键配置（不含密钥），启动时写入日志用于调试"""
        return {
            "env_file": str(env_path.absolute()),
            "env_file_exists": env_path.exists(),
            "app_env": cls.APP_ENV,
            "gemini_model": cls.GEMINI_MODEL,
            "gemini_key_set": bool(cls.GEMINI_API_KEY),
            "max_upload_size_mb": cls.MAX_UPLOAD_SIZE_MB,
            "max_json_body_mb": cls.MAX_JSON_BODY_MB,
            "max_images": cls.MAX_IMAGES,
        }


config = Config()

"""网关日志 - structlog 输出到 stdlib logging（控制台 + 按日期滚动的文件）"""
import contextvars
import logging
import sys
from datetime import datetime
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import List, Optional

import structlog

# 请求链路上的追踪信息，由中间件和分发层写入
request_id_var = contextvars.ContextVar("request_id", default=None)
session_id_var = contextvars.ContextVar("session_id", default=None)

# 只保留 WARNING 及以上的第三方日志
NOISY_LOGGERS = (
    "httpx",
    "httpcore",
    "urllib3",
    "asyncio",
    "grpc",
    "google",
    "multipart",
    "uvicorn.access",
)


def add_context_info(logger, method_name, event_dict):
    """把当前请求的 request_id / session_id 写进日志事件"""
    for key, var in (("request_id", request_id_var), ("session_id", session_id_var)):
        value = var.get()
        if value:
            event_dict[key] = value
    return event_dict


def _rotating_handler(path: Path, level: int) -> RotatingFileHandler:
    handler = RotatingFileHandler(
        path,
        maxBytes=10 * 1024 * 1024,  # 10MB
        backupCount=5,
        encoding="utf-8",
    )
    handler.setLevel(level)
    return handler


def _build_processors(enable_json: bool) -> List:
    processors = [
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        add_context_info,
        structlog.processors.CallsiteParameterAdder(
            {
                structlog.processors.CallsiteParameter.FILENAME,
                structlog.processors.CallsiteParameter.LINENO,
                structlog.processors.CallsiteParameter.FUNC_NAME,
            }
        ),
        structlog.processors.format_exc_info,
    ]
    if enable_json:
        processors.append(structlog.processors.JSONRenderer(ensure_ascii=False))
    else:
        processors.append(structlog.dev.ConsoleRenderer(colors=True))
    return processors


def setup_structured_logging(
    log_level: str = "INFO",
    log_dir: str = "logs",
    enable_json: bool = True,
    enable_console: bool = True,
    enable_file: bool = True,
):
    """初始化日志（应用启动时调用一次，重复调用会替换已有 handler）

    Args:
        log_level: DEBUG/INFO/WARNING/ERROR
        log_dir: 日志文件目录，不存在时自动创建
        enable_json: True 输出 JSON 行，False 输出彩色控制台格式
        enable_console: 是否输出到 stdout
        enable_file: 是否写 gateway_<日期>.log 与 gateway_error_<日期>.log
    """
    level = getattr(logging, log_level.upper(), logging.INFO)

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.setLevel(level)
    formatter = logging.Formatter("%(message)s")

    handlers = []
    if enable_console:
        stdout_handler = logging.StreamHandler(sys.stdout)
        stdout_handler.setLevel(level)
        handlers.append(stdout_handler)

    log_file = error_log_file = None
    if enable_file:
        log_path = Path(log_dir)
        log_path.mkdir(parents=True, exist_ok=True)
        date_str = datetime.now().strftime("%Y%m%d")
        log_file = log_path / f"gateway_{date_str}.log"
        error_log_file = log_path / f"gateway_error_{date_str}.log"
        handlers.append(_rotating_handler(log_file, logging.DEBUG))
        handlers.append(_rotating_handler(error_log_file, logging.ERROR))

    for handler in handlers:
        handler.setFormatter(formatter)
        root_logger.addHandler(handler)

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    structlog.configure(
        processors=_build_processors(enable_json),
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    get_logger(__name__).info(
        "日志已初始化",
        log_level=log_level,
        log_file=str(log_file) if log_file else None,
        error_log_file=str(error_log_file) if error_log_file else None,
        output="JSON" if enable_json else "console",
    )


def get_logger(name: str = None) -> structlog.BoundLogger:
    """按模块名获取 structlog 日志器"""
    return structlog.get_logger(name)


class LogContext:
    """在 with 块内设置 request_id / session_id，退出时恢复原值"""

    def __init__(self, request_id: Optional[str] = None, session_id: Optional[str] = None):
        self.request_id = request_id
        self.session_id = session_id
        self._tokens = []

    def __enter__(self):
        if self.request_id:
            self._tokens.append((request_id_var, request_id_var.set(self.request_id)))
        if self.session_id:
            self._tokens.append((session_id_var, session_id_var.set(self.session_id)))
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        # 逆序恢复
        while self._tokens:
            var, token = self._tokens.pop()
            var.reset(token)

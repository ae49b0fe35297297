"""Gemini 模型客户端"""
import base64
from typing import Any, Dict, List, Optional

from google import genai
from google.genai import types

from .config import config
from .errors import ConfigurationError, UpstreamError
from .utils.structured_logger import get_logger

logger = get_logger(__name__)

MISSING_KEY_MESSAGE = "Server misconfiguration: missing GEMINI_API_KEY"


def text_part(text: str) -> Dict[str, Any]:
    """文本 part（Gemini REST 结构）"""
    return {"text": text}


def inline_part(mime_type: str, data: bytes) -> Dict[str, Any]:
    """内联二进制 part，数据按 base64 编码"""
    return {
        "inline_data": {
            "mime_type": mime_type,
            "data": base64.b64encode(data).decode("ascii"),
        }
    }


def _to_sdk_part(part: Dict[str, Any]) -> types.Part:
    # SDK 的 Blob 需要原始字节
    inline = part.get("inline_data")
    if inline is None:
        return types.Part.from_text(text=part.get("text", ""))
    return types.Part.from_bytes(data=base64.b64decode(inline["data"]), mime_type=inline["mime_type"])


class GeminiClient:
    """google-genai 的薄封装

    只负责：凭证检查、单轮请求的组装与发送、上游异常的转换。
    """

    def __init__(self, api_key: Optional[str] = None, model_name: Optional[str] = None):
        self.api_key = api_key if api_key is not None else config.GEMINI_API_KEY
        self.model_name = model_name or config.GEMINI_MODEL
        self._client = None

    @property
    def configured(self) -> bool:
        return bool(self.api_key)

    def ensure_configured(self):
        if not self.configured:
            raise ConfigurationError(MISSING_KEY_MESSAGE)

    def _get_client(self) -> genai.Client:
        """创建并缓存 SDK 客户端"""
        if self._client is None:
            self.ensure_configured()
            self._client = genai.Client(api_key=self.api_key)
            logger.info("Gemini 客户端已初始化", model=self.model_name)
        return self._client

    @staticmethod
    def build_contents(parts: List[Dict[str, Any]]) -> List[types.Content]:
        """把 part 列表组装成单轮 user 请求"""
        return [types.Content(role="user", parts=[_to_sdk_part(p) for p in parts])]

    async def generate(self, parts: List[Dict[str, Any]]) -> Any:
        """发送单轮请求，返回 SDK 原始响应

        Raises:
            ConfigurationError: 未配置 GEMINI_API_KEY
            UpstreamError: 模型调用失败（不重试）
        """
        client = self._get_client()
        inline_count = sum(1 for p in parts if "inline_data" in p)
        logger.info("调用 Gemini", model=self.model_name, parts=len(parts), inline_parts=inline_count)
        try:
            return await client.aio.models.generate_content(
                model=self.model_name,
                contents=self.build_contents(parts),
            )
        except Exception as e:
            logger.error("Gemini 调用失败", model=self.model_name, error=str(e), exc_info=e)
            raise UpstreamError(str(e) or "Failed to generate response") from e

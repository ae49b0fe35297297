"""请求分发 - 各模态的校验、模型调用与历史写入

每个模态一个协程，共同约定：
1. 先检查凭证，再校验输入（校验失败时不会调用模型，也不会写历史）
2. 组装单轮请求：一个文本 part + 若干 base64 内联数据 part
3. 调用模型并提取文本
4. 仅当调用方传了 session_id 时写入 user/bot 两条消息
"""
from dataclasses import dataclass
from typing import Any, Optional, Sequence

from .attachment import Attachment
from .config import config
from .errors import ValidationError
from .history import MessageIn, SessionStore
from .llm import inline_part, text_part
from .utils.response_text import extract_text
from .utils.structured_logger import LogContext, get_logger

logger = get_logger(__name__)

DEFAULT_IMAGE_PROMPT = "Describe this image in detail"
DEFAULT_IMAGES_PROMPT = "Describe these images"
DEFAULT_AUDIO_PROMPT = "Transcribe this audio"
DEFAULT_DOCUMENT_PROMPT = "Summarize this document"


@dataclass
class ChatResult:
    """分发结果"""

    result: str
    session_id: Optional[str] = None
    session_title: Optional[str] = None


def find_last_user_prompt(messages: Any) -> str:
    """取最近一条用户消息作为提示词（其余消息不参与模型调用）"""
    if not isinstance(messages, list) or not messages:
        raise ValidationError("Invalid payload: messages array is required")

    for message in reversed(messages):
        if isinstance(message, dict) and message.get("role") == "user" and isinstance(message.get("content"), str):
            if not message["content"].strip():
                break
            return message["content"]
    raise ValidationError("Invalid payload: missing user message")


def _require_mime_prefix(attachment: Attachment, prefix: str, error: str):
    if not (attachment.mime_type or "").startswith(prefix):
        raise ValidationError(error)


class ChatDispatcher:
    """按模态处理聊天请求"""

    def __init__(self, store: SessionStore, llm, max_images: int = None):
        """
        Args:
            store: 会话存储
            llm: 模型客户端，需提供 ensure_configured() 与 async generate(parts)
            max_images: 多图接口的图片数量上限
        """
        self.store = store
        self.llm = llm
        self.max_images = max_images or config.MAX_IMAGES

    async def _call_model(self, prompt: str, attachments: Sequence[Attachment] = ()) -> str:
        parts = [text_part(prompt)] + [inline_part(a.mime_type, a.data) for a in attachments]
        response = await self.llm.generate(parts)
        return extract_text(response)

    def _persist(
        self,
        session_id: Optional[str],
        user_content: str,
        bot_content: str,
        has_image: bool = False,
        has_audio: bool = False,
    ) -> ChatResult:
        if not session_id:
            return ChatResult(result=bot_content)

        self.store.append_message(
            session_id,
            MessageIn(
                role="user",
                content=user_content,
                has_image=True if has_image else None,
                has_audio=True if has_audio else None,
            ),
        )
        session = self.store.append_message(session_id, MessageIn(role="bot", content=bot_content))
        logger.info("已写入会话历史", session_id=session_id, message_count=len(session.messages))
        return ChatResult(result=bot_content, session_id=session_id, session_title=session.title)

    async def chat(self, messages: Any, session_id: Optional[str] = None) -> ChatResult:
        """纯文本对话"""
        self.llm.ensure_configured()
        prompt = find_last_user_prompt(messages)

        with LogContext(session_id=session_id):
            logger.info("处理文本对话", prompt_length=len(prompt))
            result = (await self._call_model(prompt)).strip()
            return self._persist(session_id, prompt, result)

    async def from_image(
        self, image: Optional[Attachment], prompt: Optional[str] = None, session_id: Optional[str] = None
    ) -> ChatResult:
        """单图理解"""
        self.llm.ensure_configured()
        if image is None:
            raise ValidationError("Image file is required")
        _require_mime_prefix(image, "image/", "Invalid file type. Please upload an image.")

        with LogContext(session_id=session_id):
            logger.info("处理图片请求", mime_type=image.mime_type, size=image.size)
            result = await self._call_model(prompt or DEFAULT_IMAGE_PROMPT, [image])
            return self._persist(session_id, prompt or "Image uploaded", result, has_image=True)

    async def from_images(
        self, images: Sequence[Attachment], prompt: Optional[str] = None, session_id: Optional[str] = None
    ) -> ChatResult:
        """多图理解"""
        self.llm.ensure_configured()
        if not images:
            raise ValidationError("At least one image file is required")
        if len(images) > self.max_images:
            raise ValidationError(f"Too many images. Maximum is {self.max_images}.")
        for image in images:
            _require_mime_prefix(image, "image/", "Invalid file type. Please upload only images.")

        with LogContext(session_id=session_id):
            logger.info("处理多图请求", count=len(images), total_size=sum(i.size for i in images))
            result = await self._call_model(prompt or DEFAULT_IMAGES_PROMPT, images)
            return self._persist(session_id, prompt or "Images uploaded", result, has_image=True)

    async def from_audio(
        self, audio: Optional[Attachment], prompt: Optional[str] = None, session_id: Optional[str] = None
    ) -> ChatResult:
        """音频转写/分析"""
        self.llm.ensure_configured()
        if audio is None:
            raise ValidationError("Audio file is required")
        _require_mime_prefix(audio, "audio/", "Invalid file type. Please upload an audio file.")

        with LogContext(session_id=session_id):
            logger.info("处理音频请求", mime_type=audio.mime_type, size=audio.size)
            result = await self._call_model(prompt or DEFAULT_AUDIO_PROMPT, [audio])
            return self._persist(session_id, prompt or "Audio uploaded", result, has_audio=True)

    async def from_document(
        self, document: Optional[Attachment], prompt: Optional[str] = None, session_id: Optional[str] = None
    ) -> ChatResult:
        """文档分析（不限制 MIME 类型）"""
        self.llm.ensure_configured()
        if document is None:
            raise ValidationError("Document file is required")

        with LogContext(session_id=session_id):
            logger.info("处理文档请求", mime_type=document.mime_type, size=document.size)
            result = await self._call_model(prompt or DEFAULT_DOCUMENT_PROMPT, [document])
            return self._persist(session_id, prompt or "Document uploaded", result)

    async def generate_text(self, prompt: Any) -> str:
        """无会话的单次文本生成"""
        self.llm.ensure_configured()
        if not isinstance(prompt, str) or not prompt.strip():
            raise ValidationError("Prompt is required")
        return (await self._call_model(prompt)).strip()

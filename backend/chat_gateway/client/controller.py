"""客户端会话控制器

对应浏览器端的状态机：当前会话ID（持久化在本地状态文件）、已加载的消息、
侧边栏会话列表、待发送附件，以及可重发的请求快照。
"""
import asyncio
import json
import random
import string
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

import httpx

from ..attachment import Attachment
from ..history.dedup import dedupe_consecutive
from ..utils.structured_logger import get_logger

logger = get_logger(__name__)

SESSION_KEY = "chatSessionId"
MAX_IMAGES = 6

DEFAULT_PROMPTS = {
    "image": "Describe this image in detail",
    "images": "Describe these images",
    "audio": "Transcribe this audio",
    "document": "Summarize this document",
}

ENDPOINTS = {
    "text": "/api/chat/chat",
    "image": "/api/chat/generate-from-image",
    "images": "/api/chat/generate-from-images",
    "audio": "/api/chat/generate-from-audio",
    "document": "/api/chat/generate-from-document",
}

TOO_MANY_REQUESTS_MESSAGE = "Too many requests. Please wait a moment and resend."
SERVER_ERROR_MESSAGE = "Sorry, something went wrong while contacting the server."
NETWORK_ERROR_MESSAGE = "Could not reach the server. Check your connection and resend."
NO_RESPONSE_MESSAGE = "Sorry, no response was received."
ATTACHMENT_ONLY_LABEL = "Sending attachments"

_BASE36 = string.digits + string.ascii_lowercase


def generate_session_id() -> str:
    """session_<毫秒时间戳>_<7位随机base36>"""
    suffix = "".join(random.choice(_BASE36) for _ in range(7))
    return f"session_{int(time.time() * 1000)}_{suffix}"


class LocalState:
    """本地键值状态（浏览器 localStorage 的替代），path 为 None 时只存内存"""

    def __init__(self, path: Optional[Path] = None):
        self.path = Path(path) if path else None
        self._data: Dict[str, Any] = {}
        if self.path and self.path.exists():
            try:
                self._data = json.loads(self.path.read_text(encoding="utf-8"))
            except (OSError, ValueError) as e:
                logger.warning("本地状态文件损坏，已忽略", path=str(self.path), error=str(e))

    def get(self, key: str) -> Any:
        return self._data.get(key)

    def set(self, key: str, value: Any):
        self._data[key] = value
        self._flush()

    def remove(self, key: str):
        if self._data.pop(key, None) is not None:
            self._flush()

    def _flush(self):
        if self.path:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            self.path.write_text(json.dumps(self._data, ensure_ascii=False, indent=2), encoding="utf-8")


@dataclass
class PendingAttachments:
    """待发送附件：最多 6 张图片、一段音频、一个文档"""

    images: List[Attachment] = field(default_factory=list)
    audio: Optional[Attachment] = None
    document: Optional[Attachment] = None

    def add_image(self, image: Attachment) -> bool:
        if len(self.images) >= MAX_IMAGES:
            return False
        self.images.append(image)
        return True

    def has_any(self) -> bool:
        return bool(self.images) or self.audio is not None or self.document is not None

    def clear(self):
        self.images = []
        self.audio = None
        self.document = None


@dataclass(frozen=True)
class RequestSnapshot:
    """一次发送所需的全部输入，发送失败后可原样重发"""

    kind: str
    prompt: str
    session_id: str
    files: Tuple[Attachment, ...] = ()

    @classmethod
    def capture(cls, message: str, session_id: str, attachments: PendingAttachments) -> "RequestSnapshot":
        """按 音频 → 文档 → 多图 → 单图 → 文本 的优先级生成快照"""
        if attachments.audio is not None:
            kind, files = "audio", (attachments.audio,)
        elif attachments.document is not None:
            kind, files = "document", (attachments.document,)
        elif len(attachments.images) > 1:
            kind, files = "images", tuple(attachments.images)
        elif attachments.images:
            kind, files = "image", (attachments.images[0],)
        else:
            return cls(kind="text", prompt=message, session_id=session_id)
        return cls(kind=kind, prompt=message or DEFAULT_PROMPTS[kind], session_id=session_id, files=files)

    @property
    def endpoint(self) -> str:
        return ENDPOINTS[self.kind]

    def request_kwargs(self) -> Dict[str, Any]:
        """转换为 httpx 请求参数（文本走 JSON，其余走 multipart）"""
        if self.kind == "text":
            return {
                "json": {
                    "messages": [{"role": "user", "content": self.prompt}],
                    "sessionId": self.session_id,
                }
            }
        return {
            "data": {"prompt": self.prompt, "sessionId": self.session_id},
            "files": [(self.kind, (f.filename, f.data, f.mime_type)) for f in self.files],
        }


@dataclass
class SendOutcome:
    """一次发送的结果；失败时可用 snapshot 重发"""

    ok: bool
    text: str
    snapshot: RequestSnapshot
    placeholder: Dict[str, Any]
    status_code: Optional[int] = None
    session_title: Optional[str] = None


class SessionController:
    """客户端会话控制器"""

    def __init__(self, http: httpx.AsyncClient, state: Optional[LocalState] = None):
        """
        Args:
            http: 指向网关的 httpx.AsyncClient（需设置 base_url）
            state: 本地状态（保存当前会话ID）
        """
        self.http = http
        self.state = state or LocalState()
        self.current_session_id: str = self.state.get(SESSION_KEY) or self._new_session_id()
        self.title: Optional[str] = None
        self.messages: List[Dict[str, Any]] = []
        self.sessions: List[Dict[str, Any]] = []
        self.attachments = PendingAttachments()
        # 发送期间禁止再次提交（相当于禁用提交按钮）
        self._sending = asyncio.Lock()

    def _new_session_id(self) -> str:
        session_id = generate_session_id()
        self.state.set(SESSION_KEY, session_id)
        return session_id

    @property
    def busy(self) -> bool:
        return self._sending.locked()

    async def load_sessions(self) -> bool:
        """刷新会话列表（服务端已按 updatedAt 倒序）"""
        try:
            response = await self.http.get("/api/chat-history")
        except httpx.HTTPError as e:
            logger.warning("加载会话列表失败", error=str(e))
            return False
        if response.is_error:
            logger.warning("加载会话列表失败", status_code=response.status_code)
            return False
        self.sessions = response.json().get("sessions") or []
        return True

    async def load_history(self) -> bool:
        """加载当前会话的历史，替换（不合并）已显示的消息"""
        self.messages = []
        self.title = None
        try:
            response = await self.http.get(f"/api/chat-history/{self.current_session_id}")
        except httpx.HTTPError as e:
            logger.warning("加载历史失败", session_id=self.current_session_id, error=str(e))
            return False

        if response.status_code == 404:
            # 新会话在服务端还不存在
            return True
        if response.is_error:
            logger.warning("加载历史失败", session_id=self.current_session_id, status_code=response.status_code)
            return False

        data = response.json()
        messages = data.get("messages")
        if isinstance(messages, list):
            # 服务端已去重，这里再做一次以防重复保存
            self.messages = [
                {**m, "role": "user" if m.get("role") == "user" else "bot", "content": m.get("content") or ""}
                for m in dedupe_consecutive(messages)
            ]
        self.title = data.get("title")
        return True

    async def select_session(self, session_id: str) -> bool:
        """切换会话；切到当前会话时什么也不做"""
        if session_id == self.current_session_id:
            return False
        self.current_session_id = session_id
        self.state.set(SESSION_KEY, session_id)
        await self.load_history()
        return True

    async def new_session(self) -> str:
        """开始新会话（首条消息发送前不会在服务端创建）"""
        self.current_session_id = self._new_session_id()
        self.messages = []
        self.title = None
        await self.load_sessions()
        return self.current_session_id

    async def clear_session(self) -> bool:
        """删除服务端会话并清空本地消息"""
        try:
            response = await self.http.delete(f"/api/chat-history/{self.current_session_id}")
        except httpx.HTTPError as e:
            logger.warning("删除会话失败", session_id=self.current_session_id, error=str(e))
            return False
        self.messages = []
        self.title = None
        await self.load_sessions()
        return bool(not response.is_error and response.json().get("success"))

    async def send(self, message: str = "") -> Optional[SendOutcome]:
        """发送一条消息（可带附件）

        没有内容或上一次发送尚未结束时返回 None。
        快照在清空附件之前生成，失败后可直接 resend。
        """
        message = (message or "").strip()
        if not message and not self.attachments.has_any():
            return None
        if self.busy:
            return None

        async with self._sending:
            attachments = self.attachments
            self.messages.append(
                {
                    "role": "user",
                    "content": message or ATTACHMENT_ONLY_LABEL,
                    "hasImage": bool(attachments.images) or None,
                    "hasAudio": attachments.audio is not None or None,
                }
            )
            placeholder = {"role": "bot", "content": "", "pending": True}
            self.messages.append(placeholder)

            snapshot = RequestSnapshot.capture(message, self.current_session_id, attachments)
            self.attachments = PendingAttachments()
            return await self.perform_send(snapshot, placeholder)

    async def resend(self, outcome: SendOutcome) -> Optional[SendOutcome]:
        """用原快照重发，结果写回同一个占位消息"""
        if self.busy:
            return None
        async with self._sending:
            outcome.placeholder.update(content="", pending=True, error=False)
            return await self.perform_send(outcome.snapshot, outcome.placeholder)

    def _fail(self, snapshot, placeholder, text: str, status_code: Optional[int] = None) -> SendOutcome:
        placeholder.update(content=text, pending=False, error=True)
        return SendOutcome(ok=False, text=text, snapshot=snapshot, placeholder=placeholder, status_code=status_code)

    async def perform_send(self, snapshot: RequestSnapshot, placeholder: Dict[str, Any]) -> SendOutcome:
        """发送快照，并原地替换占位消息"""
        try:
            response = await self.http.post(snapshot.endpoint, **snapshot.request_kwargs())
        except httpx.HTTPError as e:
            logger.warning("请求发送失败", endpoint=snapshot.endpoint, error=str(e))
            return self._fail(snapshot, placeholder, NETWORK_ERROR_MESSAGE)

        if response.is_error:
            logger.warning("服务端返回错误", endpoint=snapshot.endpoint, status_code=response.status_code)
            text = TOO_MANY_REQUESTS_MESSAGE if response.status_code == 429 else SERVER_ERROR_MESSAGE
            return self._fail(snapshot, placeholder, text, response.status_code)

        try:
            data = response.json()
        except ValueError:
            data = None
        if not isinstance(data, dict) or not (isinstance(data.get("result"), str) or isinstance(data.get("text"), str)):
            return self._fail(snapshot, placeholder, NO_RESPONSE_MESSAGE, response.status_code)

        text = data.get("result") or data.get("text") or ""
        placeholder.update(content=text, pending=False, error=False)
        session_title = data.get("sessionTitle")
        if session_title:
            self.title = session_title
            await self.load_sessions()
        return SendOutcome(
            ok=True,
            text=text,
            snapshot=snapshot,
            placeholder=placeholder,
            status_code=response.status_code,
            session_title=session_title,
        )

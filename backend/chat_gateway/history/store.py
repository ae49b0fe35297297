"""会话存储 - 进程内存中的对话历史"""
import threading
from datetime import datetime
from typing import Callable, Dict, List, Optional

from .models import DEFAULT_TITLE, Message, MessageIn, Session, SessionSummary, utc_now
from ..utils.structured_logger import get_logger

logger = get_logger(__name__)

# 自动标题最大长度（超出部分以 "..." 截断）
TITLE_MAX_LENGTH = 30


def derive_title(content: str) -> str:
    """根据首条用户消息生成标题"""
    title = content.strip()
    if len(title) > TITLE_MAX_LENGTH:
        return f"{title[:TITLE_MAX_LENGTH]}..."
    return title


class SessionStore:
    """内存会话存储

    每个读-改-写序列都在同一把锁内完成，避免并发请求写同一会话时丢失更新。
    对外返回的 Session 都是副本，调用方无法借此修改内部状态。
    """

    def __init__(self, clock: Callable[[], datetime] = utc_now):
        """初始化会话存储

        Args:
            clock: 时间来源（测试时可注入）
        """
        self._sessions: Dict[str, Session] = {}
        self._lock = threading.RLock()
        self._clock = clock

    def __len__(self) -> int:
        with self._lock:
            return len(self._sessions)

    def __contains__(self, session_id: str) -> bool:
        with self._lock:
            return session_id in self._sessions

    @staticmethod
    def _snapshot(session: Session) -> Session:
        return session.model_copy(update={"messages": list(session.messages)})

    def _ensure(self, session_id: str, title: Optional[str] = None) -> Session:
        session = self._sessions.get(session_id)
        if session is None:
            now = self._clock()
            session = Session(id=session_id, title=title or DEFAULT_TITLE, created_at=now, updated_at=now)
            self._sessions[session_id] = session
            logger.info("创建会话", session_id=session_id, title=session.title)
        return session

    def ensure_session(self, session_id: str, title: Optional[str] = None) -> Session:
        """获取会话，不存在则创建（幂等）"""
        with self._lock:
            return self._snapshot(self._ensure(session_id, title))

    def append_message(self, session_id: str, message: MessageIn) -> Session:
        """追加一条消息

        会话不存在时自动创建；时间戳由存储层分配。
        如果标题仍是默认值且这是一条非空用户消息，则据此生成标题（仅一次）。

        Returns:
            追加后的会话副本
        """
        with self._lock:
            session = self._ensure(session_id)
            now = self._clock()
            session.messages.append(Message(**message.model_dump(), timestamp=now))
            session.updated_at = now

            if session.title == DEFAULT_TITLE and message.role == "user" and (message.content or "").strip():
                session.title = derive_title(message.content)
                logger.debug("自动生成标题", session_id=session_id, title=session.title)

            return self._snapshot(session)

    def get_session(self, session_id: str) -> Optional[Session]:
        """精确查找会话，不存在返回 None"""
        with self._lock:
            session = self._sessions.get(session_id)
            return self._snapshot(session) if session else None

    def list_sessions(self) -> List[SessionSummary]:
        """列出所有会话（顺序由调用方决定）"""
        with self._lock:
            return [
                SessionSummary(
                    id=session_id,
                    title=session.title,
                    created_at=session.created_at,
                    updated_at=session.updated_at,
                    message_count=len(session.messages),
                )
                for session_id, session in self._sessions.items()
            ]

    def rename_session(self, session_id: str, title: str) -> bool:
        """修改会话标题；会话不存在或标题为空时返回 False"""
        with self._lock:
            session = self._sessions.get(session_id)
            if session is None or not title:
                return False
            session.title = title
            session.updated_at = self._clock()
            return True

    def delete_session(self, session_id: str) -> bool:
        """删除整个会话"""
        with self._lock:
            removed = self._sessions.pop(session_id, None) is not None
        if removed:
            logger.info("删除会话", session_id=session_id)
        return removed

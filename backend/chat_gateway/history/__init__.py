"""会话历史模块 - 内存会话存储与去重视图"""
from .dedup import dedupe_consecutive
from .models import DEFAULT_TITLE, Message, MessageIn, Session, SessionSummary
from .store import SessionStore

__all__ = [
    "DEFAULT_TITLE",
    "Message",
    "MessageIn",
    "Session",
    "SessionStore",
    "SessionSummary",
    "dedupe_consecutive",
]

"""Chat gateway 客户端 - 会话控制器与终端前端"""
from .controller import (
    LocalState,
    PendingAttachments,
    RequestSnapshot,
    SendOutcome,
    SessionController,
    generate_session_id,
)

__all__ = [
    "LocalState",
    "PendingAttachments",
    "RequestSnapshot",
    "SendOutcome",
    "SessionController",
    "generate_session_id",
]

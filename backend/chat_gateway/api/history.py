"""会话历史管理 API"""
from datetime import datetime
from typing import Any, Optional

from fastapi import APIRouter, Body, Request
from pydantic import BaseModel, ConfigDict, Field
from pydantic import ValidationError as PydanticValidationError

from ..errors import NotFoundError, ValidationError
from ..history import MessageIn, SessionStore, dedupe_consecutive
from ..utils.structured_logger import get_logger

logger = get_logger(__name__)

router = APIRouter()


class AddMessageRequest(BaseModel):
    message: Any = None


class UpdateTitleRequest(BaseModel):
    title: Any = None


class SessionRef(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: str
    title: str
    updated_at: datetime = Field(..., alias="updatedAt")


def get_store(request: Request) -> SessionStore:
    return request.app.state.store


def _dump(model: BaseModel) -> dict:
    return model.model_dump(mode="json", by_alias=True, exclude_none=True)


def _parse_message(raw: Any) -> MessageIn:
    """校验前端提交的消息：role 必须是 user/bot，content 不能为空"""
    if not isinstance(raw, dict) or not raw.get("role") or not raw.get("content"):
        raise ValidationError("Invalid message format")
    try:
        return MessageIn.model_validate(raw)
    except PydanticValidationError:
        raise ValidationError("Invalid message format")


@router.get("")
async def api_list_sessions(request: Request):
    """获取所有会话（按最近更新时间倒序）"""
    sessions = sorted(get_store(request).list_sessions(), key=lambda s: s.updated_at, reverse=True)
    return {"sessions": [_dump(s) for s in sessions]}


@router.get("/{session_id}")
async def api_get_session(session_id: str, request: Request):
    """获取单个会话的历史消息（去重视图，不修改存储）"""
    session = get_store(request).get_session(session_id)
    if session is None:
        raise NotFoundError("Session not found")

    messages = dedupe_consecutive(session.messages)
    if len(messages) != len(session.messages):
        logger.debug("历史消息去重", session_id=session_id, original=len(session.messages), kept=len(messages))

    dumped = _dump(session)
    return {
        "title": session.title,
        "createdAt": dumped["createdAt"],
        "updatedAt": dumped["updatedAt"],
        "messages": [_dump(m) for m in messages],
    }


@router.post("/{session_id}")
async def api_add_message(session_id: str, request: Request, payload: Optional[AddMessageRequest] = Body(default=None)):
    """向会话追加一条消息（会话不存在时自动创建）"""
    message = _parse_message(payload.message if payload else None)
    session = get_store(request).append_message(session_id, message)
    return {
        "success": True,
        "session": _dump(SessionRef(id=session_id, title=session.title, updated_at=session.updated_at)),
    }


@router.put("/{session_id}")
async def api_update_title(session_id: str, request: Request, payload: Optional[UpdateTitleRequest] = Body(default=None)):
    """修改会话标题"""
    title = payload.title if payload else None
    if not title or not isinstance(title, str):
        raise ValidationError("Valid title is required")

    if not get_store(request).rename_session(session_id, title):
        raise NotFoundError("Session not found")
    return {"success": True}


@router.delete("/{session_id}")
async def api_delete_session(session_id: str, request: Request):
    """删除会话（不存在时 success 为 false）"""
    return {"success": get_store(request).delete_session(session_id)}

"""数据模型定义"""
from datetime import datetime, timezone
from typing import List, Literal, Optional
from pydantic import BaseModel, ConfigDict, Field

DEFAULT_TITLE = "New Chat"


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class MessageIn(BaseModel):
    """待写入的消息（时间戳由存储层分配）"""

    model_config = ConfigDict(populate_by_name=True)

    role: Literal["user", "bot"] = Field(..., description="消息角色")
    content: str = Field(default="", description="消息文本")
    has_image: Optional[bool] = Field(default=None, alias="hasImage", description="用户消息是否附带图片")
    has_audio: Optional[bool] = Field(default=None, alias="hasAudio", description="用户消息是否附带音频")


class Message(MessageIn):
    """已持久化的消息"""

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    timestamp: datetime = Field(default_factory=utc_now, description="写入时间")


class Session(BaseModel):
    """会话模型"""

    model_config = ConfigDict(populate_by_name=True)

    id: str = Field(..., description="会话ID")
    title: str = Field(default=DEFAULT_TITLE, description="会话标题")
    messages: List[Message] = Field(default_factory=list, description="按对话顺序排列的消息")
    created_at: datetime = Field(default_factory=utc_now, alias="createdAt", description="创建时间")
    updated_at: datetime = Field(default_factory=utc_now, alias="updatedAt", description="更新时间")


class SessionSummary(BaseModel):
    """会话列表项"""

    model_config = ConfigDict(populate_by_name=True)

    id: str
    title: str
    created_at: datetime = Field(..., alias="createdAt")
    updated_at: datetime = Field(..., alias="updatedAt")
    message_count: int = Field(default=0, alias="messageCount", description="消息数量")

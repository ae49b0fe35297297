"""Chat API 接口"""
from typing import Any, List, Optional

from fastapi import APIRouter, Body, File, Form, Query, Request, UploadFile
from pydantic import BaseModel, ConfigDict, Field
from starlette.datastructures import UploadFile as StarletteUploadFile

from ..attachment import Attachment
from ..config import config
from ..dispatcher import ChatDispatcher, ChatResult
from ..errors import PayloadTooLargeError

router = APIRouter()


class ChatRequest(BaseModel):
    """文本聊天请求（messages 的合法性由分发层校验）"""

    model_config = ConfigDict(populate_by_name=True)

    messages: Any = Field(default=None, description="消息列表，只使用最后一条用户消息")
    session_id: Optional[str] = Field(default=None, alias="sessionId", description="会话ID（可选）")


class ChatResponse(BaseModel):
    """聊天响应"""

    model_config = ConfigDict(populate_by_name=True)

    result: str
    session_id: Optional[str] = Field(default=None, alias="sessionId")
    session_title: Optional[str] = Field(default=None, alias="sessionTitle")


class GenerateTextRequest(BaseModel):
    prompt: Any = None


class GenerateTextResponse(BaseModel):
    text: str


def get_dispatcher(request: Request) -> ChatDispatcher:
    return request.app.state.dispatcher


def _respond(result: ChatResult) -> dict:
    return ChatResponse(
        result=result.result or "",
        session_id=result.session_id,
        session_title=result.session_title,
    ).model_dump(by_alias=True, exclude_none=True)


async def read_upload(upload: Optional[UploadFile]) -> Optional[Attachment]:
    """读取上传文件到内存，超过大小限制时报 413"""
    if upload is None:
        return None
    limit = config.MAX_UPLOAD_SIZE_MB * 1024 * 1024
    data = await upload.read(limit + 1)
    if len(data) > limit:
        raise PayloadTooLargeError(f"File too large. Maximum size is {config.MAX_UPLOAD_SIZE_MB}MB.")
    return Attachment(
        filename=upload.filename or "",
        mime_type=upload.content_type or "",
        data=data,
    )


@router.post("/chat")
async def chat(request: Request, payload: Optional[ChatRequest] = Body(default=None)):
    """文本聊天（只使用最后一条用户消息，不携带多轮上下文）"""
    payload = payload or ChatRequest()
    result = await get_dispatcher(request).chat(payload.messages, payload.session_id)
    return _respond(result)


@router.post("/generate-from-image")
@router.post("/generate_from_image", include_in_schema=False)
async def generate_from_image(
    request: Request,
    image: Optional[UploadFile] = File(default=None),
    prompt: Optional[str] = Form(default=None),
    sessionId: Optional[str] = Form(default=None),
):
    """单图理解"""
    result = await get_dispatcher(request).from_image(await read_upload(image), prompt, sessionId)
    return _respond(result)


@router.post("/generate-from-images")
@router.post("/generate_from_images", include_in_schema=False)
async def generate_from_images(request: Request):
    """多图理解（字段名 images 或 images[]，最多 MAX_IMAGES 张）"""
    # 手动解析的表单需要自己关闭（大文件会落到临时文件）
    async with request.form() as form:
        uploads: List[StarletteUploadFile] = [
            item
            for key in ("images", "images[]")
            for item in form.getlist(key)
            if isinstance(item, StarletteUploadFile)
        ]
        prompt = form.get("prompt")
        session_id = form.get("sessionId")
        attachments = [await read_upload(u) for u in uploads]

    result = await get_dispatcher(request).from_images(
        attachments,
        prompt if isinstance(prompt, str) else None,
        session_id if isinstance(session_id, str) else None,
    )
    return _respond(result)


@router.post("/generate-from-audio")
@router.post("/generate_from_audio", include_in_schema=False)
async def generate_from_audio(
    request: Request,
    audio: Optional[UploadFile] = File(default=None),
    prompt: Optional[str] = Form(default=None),
    sessionId: Optional[str] = Form(default=None),
):
    """音频转写/分析"""
    result = await get_dispatcher(request).from_audio(await read_upload(audio), prompt, sessionId)
    return _respond(result)


@router.post("/generate-from-document")
@router.post("/generate_from_document", include_in_schema=False)
async def generate_from_document(
    request: Request,
    document: Optional[UploadFile] = File(default=None),
    prompt: Optional[str] = Form(default=None),
    sessionId: Optional[str] = Form(default=None),
):
    """文档分析"""
    result = await get_dispatcher(request).from_document(await read_upload(document), prompt, sessionId)
    return _respond(result)


@router.post("/generate-text", response_model=GenerateTextResponse)
@router.post("/generate_text", response_model=GenerateTextResponse, include_in_schema=False)
async def generate_text(request: Request, payload: Optional[GenerateTextRequest] = Body(default=None)):
    """简单文本生成（POST body）"""
    prompt = payload.prompt if payload else None
    text = await get_dispatcher(request).generate_text(prompt)
    return GenerateTextResponse(text=text or "")


@router.get("/generate-text", response_model=GenerateTextResponse)
@router.get("/generate_text", response_model=GenerateTextResponse, include_in_schema=False)
async def generate_text_get(request: Request, prompt: Optional[str] = Query(default=None)):
    """简单文本生成（GET ?prompt=，方便浏览器直接测试）"""
    text = await get_dispatcher(request).generate_text(prompt or "")
    return GenerateTextResponse(text=text or "")

"""ASGI 中间件：请求体大小限制、未捕获异常转换

两者都注册在 CORSMiddleware 内侧，返回的错误响应同样带 CORS 头。
"""
from typing import Tuple

from starlette.datastructures import Headers
from starlette.requests import Request
from starlette.types import ASGIApp, Message, Receive, Scope, Send

from .config import config
from .errors import error_response, handle_unexpected
from .utils.structured_logger import get_logger

logger = get_logger(__name__)

# multipart 由上传接口逐个文件检查
LIMITED_BODY_TYPES: Tuple[str, ...] = ("application/json", "application/x-www-form-urlencoded")

BODY_TOO_LARGE_MESSAGE = "Request body too large"


class BodySizeLimitMiddleware:
    """JSON/表单请求体大小限制

    按实际收到的字节数计算（chunked 请求没有 Content-Length），
    读完后把完整请求体重放给下游。
    """

    def __init__(self, app: ASGIApp, content_types: Tuple[str, ...] = LIMITED_BODY_TYPES):
        self.app = app
        self.content_types = content_types

    async def __call__(self, scope: Scope, receive: Receive, send: Send):
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        headers = Headers(scope=scope)
        if not headers.get("content-type", "").startswith(self.content_types):
            await self.app(scope, receive, send)
            return

        limit = config.MAX_JSON_BODY_MB * 1024 * 1024
        content_length = headers.get("content-length", "")
        if content_length.isdigit() and int(content_length) > limit:
            await self._reject(scope, receive, send, int(content_length))
            return

        chunks = []
        received = 0
        more_body = True
        while more_body:
            message = await receive()
            if message["type"] != "http.request":
                # 客户端已断开
                return
            chunk = message.get("body", b"")
            received += len(chunk)
            if received > limit:
                await self._reject(scope, receive, send, received)
                return
            chunks.append(chunk)
            more_body = message.get("more_body", False)

        body = b"".join(chunks)
        replayed = False

        async def replay() -> Message:
            nonlocal replayed
            if replayed:
                return await receive()
            replayed = True
            return {"type": "http.request", "body": body, "more_body": False}

        await self.app(scope, replay, send)

    async def _reject(self, scope: Scope, receive: Receive, send: Send, size: int):
        logger.warning("请求体过大", path=scope.get("path"), received_bytes=size)
        response = error_response(413, BODY_TOO_LARGE_MESSAGE)
        await response(scope, receive, send)


class UnexpectedErrorMiddleware:
    """把路由中未处理的异常转换为 500 错误信封

    响应已经开始发送时无法再改写，只能继续向外抛出。
    """

    def __init__(self, app: ASGIApp):
        self.app = app

    async def __call__(self, scope: Scope, receive: Receive, send: Send):
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        response_started = False

        async def send_wrapper(message: Message):
            nonlocal response_started
            if message["type"] == "http.response.start":
                response_started = True
            await send(message)

        try:
            await self.app(scope, receive, send_wrapper)
        except Exception as exc:
            if response_started:
                raise
            response = await handle_unexpected(Request(scope), exc)
            await response(scope, receive, send)

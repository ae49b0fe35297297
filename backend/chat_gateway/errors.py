"""错误类型与全局异常处理

所有错误统一转换为 ``{"error": message}`` 的 JSON 信封。
"""
import traceback

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from .config import config
from .utils.structured_logger import get_logger

logger = get_logger(__name__)

NOT_FOUND_MESSAGE = "Not Found - The requested resource does not exist"


class ChatGatewayError(Exception):
    """网关错误基类"""

    status_code = 500

    def __init__(self, message: str, status_code: int = None):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code


class ValidationError(ChatGatewayError):
    """输入缺失或格式错误"""

    status_code = 400


class ConfigurationError(ChatGatewayError):
    """上游凭证未配置"""

    status_code = 500


class NotFoundError(ChatGatewayError):
    """会话不存在"""

    status_code = 404


class UpstreamError(ChatGatewayError):
    """模型调用失败"""

    status_code = 500


class PayloadTooLargeError(ChatGatewayError):
    """上传文件或请求体超过限制"""

    status_code = 413


def error_response(status_code: int, message: str, headers: dict = None, **extra) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": message, **extra}, headers=headers)


async def handle_gateway_error(request: Request, exc: ChatGatewayError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error("请求处理失败", path=request.url.path, status=exc.status_code, error=exc.message)
    else:
        logger.warning("请求被拒绝", path=request.url.path, status=exc.status_code, error=exc.message)
    return error_response(exc.status_code, exc.message)


async def handle_request_validation(request: Request, exc: RequestValidationError) -> JSONResponse:
    # 框架层参数校验失败统一按 400 处理
    details = "; ".join(
        f"{'.'.join(str(p) for p in err.get('loc', ()))}: {err.get('msg', '')}" for err in exc.errors()
    )
    logger.warning("请求参数校验失败", path=request.url.path, details=details)
    return error_response(400, f"Invalid request: {details}" if details else "Invalid request")


async def handle_http_exception(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    if exc.status_code == 404:
        return error_response(404, NOT_FOUND_MESSAGE)
    return error_response(exc.status_code, str(exc.detail), headers=getattr(exc, "headers", None))


async def handle_unexpected(request: Request, exc: Exception) -> JSONResponse:
    logger.error("未捕获的异常", path=request.url.path, error=str(exc), exc_info=exc)
    extra = {}
    if not config.is_production():
        extra["stack"] = "".join(traceback.format_exception(type(exc), exc, exc.__traceback__))
    return error_response(500, str(exc) or "An unexpected error occurred", **extra)


def register_exception_handlers(app: FastAPI):
    """注册全局异常处理器"""
    app.add_exception_handler(ChatGatewayError, handle_gateway_error)
    app.add_exception_handler(RequestValidationError, handle_request_validation)
    app.add_exception_handler(StarletteHTTPException, handle_http_exception)
    app.add_exception_handler(Exception, handle_unexpected)

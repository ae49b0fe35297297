"""FastAPI 主应用"""
import time
import uuid
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware

from .api import chat, health, history
from .config import config
from .dispatcher import ChatDispatcher
from .errors import register_exception_handlers
from .history import SessionStore
from .llm import GeminiClient
from .middleware import BodySizeLimitMiddleware, UnexpectedErrorMiddleware
from .utils.structured_logger import LogContext, get_logger, setup_structured_logging

logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """管理应用生命周期：启动时配置日志并打印关键配置"""
    setup_structured_logging(
        log_level=config.LOG_LEVEL,
        log_dir=config.LOG_DIR,
        enable_json=config.LOG_JSON,
        enable_file=config.LOG_TO_FILE,
    )
    logger.info("网关启动", version=config.VERSION, **config.summary())
    if not app.state.llm.configured:
        logger.warning("未配置 GEMINI_API_KEY，所有模型接口将返回 500")

    yield  # 应用运行期间

    logger.info("网关关闭", sessions=len(app.state.store))


def create_app(store: Optional[SessionStore] = None, llm=None) -> FastAPI:
    """创建应用

    Args:
        store: 会话存储（默认新建，进程内共享）
        llm: 模型客户端（默认 GeminiClient，测试时可注入假实现）
    """
    app = FastAPI(
        title="Gemini Chat Gateway",
        description="多模态聊天网关：文本/图片/音频/文档 → Gemini，会话历史保存在内存中",
        version=config.VERSION,
        lifespan=lifespan,
    )

    app.state.store = store if store is not None else SessionStore()
    app.state.llm = llm if llm is not None else GeminiClient()
    app.state.dispatcher = ChatDispatcher(app.state.store, app.state.llm)

    # 先注册的在内层：异常转换与请求体限制都位于 CORS 之内
    app.add_middleware(UnexpectedErrorMiddleware)
    app.add_middleware(BodySizeLimitMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.CORS_ORIGINS,
        allow_credentials=False,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.middleware("http")
    async def request_context(request: Request, call_next):
        """为每个请求分配 request_id 并记录耗时"""
        request_id = request.headers.get("X-Request-ID") or uuid.uuid4().hex[:12]
        start = time.perf_counter()
        with LogContext(request_id=request_id):
            response = await call_next(request)
            logger.info(
                "请求完成",
                method=request.method,
                path=request.url.path,
                status_code=response.status_code,
                duration_ms=round((time.perf_counter() - start) * 1000, 1),
            )
        response.headers["X-Request-ID"] = request_id
        return response

    register_exception_handlers(app)

    # 注册路由
    app.include_router(health.router, tags=["健康检查"])
    app.include_router(chat.router, prefix="/api/chat", tags=["聊天"])
    app.include_router(history.router, prefix="/api/chat-history", tags=["会话历史"])

    @app.get("/")
    async def root():
        """根路径"""
        return {
            "message": "Gemini Chat Gateway",
            "docs": "/docs",
            "health": "/health",
        }

    return app


app = create_app()


def run():
    import uvicorn

    uvicorn.run(app, host=config.HOST, port=config.PORT)


if __name__ == "__main__":
    run()

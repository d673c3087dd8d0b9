from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI

# 导入配置、路由等
from core.config import settings
from core.logger import get_logger, setup_logging
from routers import health as health_router  # Health 路由
from routers import tools as tools_router  # Tool / command 路由

from dependencies.providers import init_plugin_host, reset_plugin_host

# 全局异常处理
from core.exceptions import BaseAPIException, unified_api_exception_handler, generic_exception_handler

logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """
    FastAPI 应用的生命周期事件管理器。
    yield 之前的代码在应用启动时执行。
    yield 之后的代码在应用关闭时执行。
    """

    # --- 0. 首先配置日志系统 ---
    setup_logging(level=settings.LOG_LEVEL, include_timestamp=True)

    # --- A. 应用启动 (Startup) 逻辑 ---

    # 注册记忆插件工具（可重复调用）
    init_plugin_host()
    logger.info("Application startup complete", app=settings.APP_NAME)

    yield

    # --- B. 应用关闭 (Shutdown) 逻辑 ---
    reset_plugin_host()
    logger.info("Application shutdown complete", app=settings.APP_NAME)


# 创建 FastAPI 应用实例
app = FastAPI(
    title=settings.APP_NAME,
    version=settings.APP_VERSION,
    description="""
Host for the Datagran memory plugin.

- Tools: GET /tools, POST /tools/{name}
- Commands: GET /commands/{name}
- Health: /health
""",
    lifespan=lifespan,
)

# 注册 BaseAPIException。任何抛出其子类的异常都会被此处理器捕获。
app.exception_handler(BaseAPIException)(unified_api_exception_handler)
# 注册通用 500 处理器，捕获所有未被处理的 Python 异常
app.exception_handler(Exception)(generic_exception_handler)

# 聚合路由
app.include_router(tools_router.router)
app.include_router(health_router.router)


@app.get("/")
def read_root():
    return {"message": f"Welcome to {settings.APP_NAME} API. Check /docs for endpoints."}


# 启动服务器
if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "main:app",
        host="0.0.0.0",
        port=8000,
        reload=True  # 开发模式下启用热重载
    )

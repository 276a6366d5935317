"""
possumpaint.main
~~~~~~~~~~~~~~~~

FastAPI 应用入口：注册路由、挂载中间件、定义生命周期。
"""
from __future__ import annotations

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from possumpaint.api import events
from possumpaint.api.static import mount_static
from possumpaint.core.config import settings
from possumpaint.core.logging import get_logger, setup_logging
from possumpaint.core.routing import SuffixRouteMiddleware
from possumpaint.schemas.responses import ErrorResponse, HealthResponse
from possumpaint.services.room_system import RoomSystem

# 初始化日志系统（必须在其他模块之前）
setup_logging()
logger = get_logger(__name__)

# 代理子路径下也能命中的端点
API_ROUTES: tuple[str, ...] = ("/healthz", "/events", "/send")


# ── 生命周期 ──────────────────────────────────────────────────────────

@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """应用生命周期钩子：启动时加载世界状态，关闭（SIGINT/SIGTERM）时同步落盘。"""
    # ── 启动 ──
    system = RoomSystem(settings)
    app.state.room_system = system
    system.start()
    logger.info(
        "🚀 应用已启动 | env=%s | host=%s | port=%s | static=%s",
        settings.ENVIRONMENT,
        settings.HOST,
        settings.PORT,
        settings.STATIC_ROOT,
    )
    yield
    # ── 关闭 ──
    await system.shutdown()
    logger.info("👋 应用已关闭")


# ── 创建 FastAPI 实例 ─────────────────────────────────────────────────

app: FastAPI = FastAPI(
    title=settings.PROJECT_NAME,
    description="PossumPaint 多人房间实时同步服务",
    version=settings.VERSION,
    debug=settings.debug,
    lifespan=lifespan,
)

# ── 中间件 ────────────────────────────────────────────────────────────
# 前端可能部署在其它域名下，推送与提交端点需要放开跨域
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ALLOW_ORIGINS,
    allow_methods=["GET", "POST", "OPTIONS"],
    allow_headers=["Content-Type"],
)
app.add_middleware(SuffixRouteMiddleware, suffixes=API_ROUTES)

# ── 路由挂载 ──────────────────────────────────────────────────────────
app.include_router(events.router, tags=["Rooms"])


# ── 全局异常处理器 ────────────────────────────────────────────────────

@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """捕获所有未处理异常，返回 ``{"error": ...}``，与提交失败的应答体一致。"""
    logger.error("未捕获异常: %s %s -> %s", request.method, request.url, exc, exc_info=True)
    # 非 prod 环境返回详细错误信息，prod 环境隐藏内部细节
    detail = str(exc) if not settings.is_prod else "Internal Server Error"
    return JSONResponse(
        status_code=500,
        content=ErrorResponse(error=detail).model_dump(),
    )


@app.get("/healthz", tags=["System"])
async def health_check() -> HealthResponse:
    """存活检查。"""
    return HealthResponse(ok=True)


# 根路径挂载必须放在所有路由之后
mount_static(app, settings.STATIC_ROOT, settings.DEFAULT_PAGE)


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "possumpaint.main:app",
        host=settings.HOST,
        port=settings.PORT,
        reload=settings.reload,  # 仅 dev 环境开启热重载
        log_level=settings.effective_log_level.lower(),
        # SSE 长连接不会自行结束，不设上限会让优雅关闭一直等下去
        timeout_graceful_shutdown=settings.SHUTDOWN_GRACE_SECONDS,
    )

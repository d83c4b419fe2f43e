"""
FastAPI 应用配置

配置 CORS、异常映射、路由注册。
"""

import logging

from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .. import __version__
from ..config import get_config
from ..errors import InvalidRangeError, SampleValidationError, StoreUnavailable
from .routers import maintenance, overview, samples, sources

logger = logging.getLogger(__name__)


def create_app() -> FastAPI:
    """
    创建 FastAPI 应用实例

    配置：
    - CORS 中间件
    - 核心异常到 HTTP 状态码的映射
    - API 路由
    """
    config = get_config()

    app = FastAPI(
        title="Telemetry Aggregator",
        description="主机资源遥测聚合和 API 服务",
        version=__version__,
        docs_url="/api/docs",
        redoc_url="/api/redoc",
        openapi_url="/api/openapi.json"
    )

    # CORS 中间件
    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.api.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(StoreUnavailable)
    async def store_unavailable_handler(request: Request, exc: StoreUnavailable):
        logger.error(f"Store unavailable on {request.url.path}: {exc}")
        return JSONResponse(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            content={"detail": "Storage temporarily unavailable, retry later"},
        )

    @app.exception_handler(SampleValidationError)
    async def validation_handler(request: Request, exc: SampleValidationError):
        return JSONResponse(
            status_code=422,
            content={"detail": exc.message, "field": exc.field},
        )

    @app.exception_handler(InvalidRangeError)
    async def invalid_range_handler(request: Request, exc: InvalidRangeError):
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content={"detail": str(exc)},
        )

    @app.get("/api/health", tags=["health"])
    async def health():
        return {"status": "ok", "version": __version__}

    # 注册路由
    app.include_router(samples.router)
    app.include_router(sources.router)
    app.include_router(overview.router)
    app.include_router(maintenance.router)

    return app


# 默认应用实例
app = create_app()

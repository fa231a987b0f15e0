from __future__ import annotations

import logging
import os
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from common.logger import setup_logger
from common.middleware.request_trace import RequestTraceMiddleware
from common.mongo.client import close_client

from .api.cron import router as cron_router
from .api.health import router as health_router
from .api.v1 import api_router
from .exceptions import ConfigValidationError, InvalidSignatureError
from .gateways.whop import close_whop_client


logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):  # pragma: no cover - framework hook
    """종료 시 프로세스 전역 Mongo/Whop 클라이언트를 정리한다."""

    try:
        yield
    finally:
        close_whop_client()
        close_client()


async def handle_invalid_signature(
    request: Request, exc: InvalidSignatureError
) -> JSONResponse:
    logger.warning("rejected trigger %s: %s", request.url.path, exc)
    return JSONResponse(status_code=401, content={"error": "Invalid signature"})


async def handle_config_validation(
    request: Request, exc: ConfigValidationError
) -> JSONResponse:
    return JSONResponse(status_code=422, content={"error": str(exc)})


async def handle_unexpected(request: Request, exc: Exception) -> JSONResponse:
    logger.error("unhandled error on %s: %s", request.url.path, exc, exc_info=exc)
    return JSONResponse(status_code=500, content={"error": "Internal server error"})


def create_app() -> FastAPI:
    setup_logger(name="streak-service")
    app = FastAPI(
        title="QuestChat Streak Service",
        version="0.1.0",
        lifespan=lifespan,
    )

    # 공통 Request/Span ID 로그 미들웨어
    app.add_middleware(RequestTraceMiddleware)

    app.add_exception_handler(InvalidSignatureError, handle_invalid_signature)
    app.add_exception_handler(ConfigValidationError, handle_config_validation)
    app.add_exception_handler(Exception, handle_unexpected)

    app.include_router(health_router, tags=["health"])
    app.include_router(cron_router, prefix="/api/cron", tags=["cron"])
    app.include_router(api_router, prefix="/api/v1")

    return app


app = create_app()


def main() -> None:
    import uvicorn

    port = int(os.getenv("STREAK_SERVICE_PORT", "8003"))
    uvicorn.run(
        "streak_service.app.main:app",
        host="0.0.0.0",
        port=port,
        reload=False,
        access_log=False,
    )


if __name__ == "__main__":  # pragma: no cover - CLI entrypoint
    main()

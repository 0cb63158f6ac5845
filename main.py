# main.py
import os
import time

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from core import config as cfg
from core.logging import logger
from core.request_context import get_request_id, reset_request_id, set_request_id
from db import Base, engine
from services.analytics_cache import AnalyticsCache

from api.routers.health import router as health_router
from api.routers.auth import router as auth_router
from api.routers.assistants import router as assistants_router
from api.routers.analytics import router as analytics_router
from api.routers.call_history import router as call_history_router
from api.routers.cron import router as cron_router


def _cors_origins() -> list[str]:
    raw = (os.getenv("CORS_ALLOW_ORIGINS") or "*").strip()
    return [o.strip() for o in raw.split(",") if o.strip()] or ["*"]


def create_app() -> FastAPI:
    app = FastAPI(title="Assistant Dashboard API")

    # One cache per process; routes read it through api.deps.services
    app.state.analytics_cache = AnalyticsCache(ttl_s=cfg.ANALYTICS_CACHE_TTL_S)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=_cors_origins(),
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.middleware("http")
    async def _request_id_middleware(request: Request, call_next):
        token = set_request_id(request.headers.get("X-Request-ID"))
        t0 = time.perf_counter()
        status = 500
        try:
            response = await call_next(request)
            status = response.status_code
            response.headers["X-Request-ID"] = get_request_id()
            return response
        finally:
            dt_ms = (time.perf_counter() - t0) * 1000.0
            logger.info(
                "HTTP_REQUEST method=%s path=%s status=%s dt_ms=%.1f",
                request.method,
                request.url.path,
                status,
                dt_ms,
            )
            reset_request_id(token)

    @app.exception_handler(Exception)
    async def _unhandled(request: Request, exc: Exception):
        logger.exception("UNHANDLED_ERROR path=%s err=%s", request.url.path, exc)
        return JSONResponse(status_code=500, content={"detail": "Internal server error"})

    app.include_router(health_router)
    app.include_router(auth_router)
    app.include_router(assistants_router)
    app.include_router(analytics_router)
    app.include_router(call_history_router)
    app.include_router(cron_router)

    @app.on_event("startup")
    def _startup() -> None:
        Base.metadata.create_all(bind=engine)
        logger.info("Database tables ensured.")

    return app


app = create_app()

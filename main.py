"""FastAPI application entry point."""

from __future__ import annotations

import logging
import time
from contextlib import asynccontextmanager
from datetime import datetime, timezone

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from config import get_settings
from routers.analyze import get_context
from routers.analyze import router as analyze_router
from services.context import AppContext
from utils.errors import AppError, UpstreamRateLimitedError

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)-8s %(name)s — %(message)s",
)

logger = logging.getLogger(__name__)


def _validation_message(exc: RequestValidationError) -> str:
    parts = []
    for err in exc.errors():
        loc = ".".join(str(p) for p in err.get("loc", ()) if p != "body")
        parts.append(f"{loc}: {err.get('msg')}" if loc else str(err.get("msg")))
    return "; ".join(parts) or "Invalid request"


def create_app(context: AppContext | None = None) -> FastAPI:
    """Build the application; *context* replaces the one built from settings at startup."""

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        ctx = context
        if ctx is None:
            settings = get_settings()
            settings.validate()
            logging.getLogger().setLevel(settings.log_level)
            ctx = AppContext.build(settings)
        await ctx.startup()
        app.state.context = ctx
        try:
            yield
        finally:
            await ctx.aclose()

    app = FastAPI(
        title="ToolScope",
        description="Analyze and compare developer tools from live GitHub, docs and community data.",
        version="1.0.0",
        lifespan=lifespan,
    )

    @app.middleware("http")
    async def request_timing(request: Request, call_next):
        t0 = time.monotonic()
        response = await call_next(request)
        elapsed = time.monotonic() - t0
        response.headers["X-Process-Time"] = f"{elapsed:.3f}"
        logging.getLogger("timing").info(
            "%s %s — %.3fs (%d)",
            request.method,
            request.url.path,
            elapsed,
            response.status_code,
        )
        return response

    @app.exception_handler(AppError)
    async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
        if exc.status_code >= 500:
            logger.error("%s %s failed: %s", request.method, request.url.path, exc)
        else:
            logger.warning("%s %s rejected: %s", request.method, request.url.path, exc)
        headers = None
        if isinstance(exc, UpstreamRateLimitedError) and exc.retry_after is not None:
            headers = {"Retry-After": str(exc.retry_after)}
        return JSONResponse(status_code=exc.status_code, content=exc.to_dict(), headers=headers)

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
        return JSONResponse(
            status_code=400,
            content={"error": _validation_message(exc), "code": "VALIDATION_ERROR"},
        )

    @app.exception_handler(Exception)
    async def unexpected_error_handler(request: Request, exc: Exception) -> JSONResponse:
        logger.exception("Unexpected error handling %s %s", request.method, request.url.path)
        return JSONResponse(
            status_code=500,
            content={"error": "Internal server error", "code": "INTERNAL_ERROR"},
        )

    app.include_router(analyze_router)

    @app.get("/health")
    async def health(request: Request):
        ctx = get_context(request)
        settings = ctx.settings
        return {
            "status": "ok",
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "cache": ctx.cache.stats(),
            "github": ctx.github.rate_limit_status(),
            "services": {
                "github_token": bool(settings.github_token),
                "stackoverflow_key": bool(settings.stackoverflow_key),
                "llm": bool(settings.llm_api_key.strip()),
            },
        }

    return app


app = create_app()

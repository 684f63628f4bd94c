"""FastAPI application entrypoint.

``create_app`` is the composition root: it takes one ``Settings`` object and
builds the database, metrics and routers from it. Nothing here reads the
environment except ``main()``.
"""

from __future__ import annotations

import logging
import sys
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from pathlib import Path

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from catchall import __version__
from catchall.api import admin, capture, health
from catchall.config import Settings, load_settings
from catchall.db.core import Database
from catchall.errors import ConfigError
from catchall.logging_config import configure_logging
from catchall.metrics import CaptureMetrics

logger = logging.getLogger(__name__)


async def handle_http_error(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    # Structured payloads (see AdminHTTPError) are returned as-is
    detail = exc.detail
    body = detail if isinstance(detail, dict) else {"error": detail}
    return JSONResponse(body, status_code=exc.status_code, headers=getattr(exc, "headers", None))


def _make_unhandled_error_handler(settings: Settings):
    async def handle_unhandled_error(request: Request, exc: Exception) -> JSONResponse:
        logger.error(
            "unhandled_error",
            exc_info=exc,
            extra={"meta": {"path": request.url.path, "method": request.method}},
        )
        body = {"status": "error", "error": "Internal server error"}
        if settings.is_development:
            body["message"] = str(exc)
        return JSONResponse(body, status_code=500)

    return handle_unhandled_error


def create_app(settings: Settings, *, db: Database | None = None) -> FastAPI:
    """Composition root for the FastAPI application."""
    database = db or Database(settings.database_url)
    metrics = CaptureMetrics()

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        Path(settings.upload_dir).mkdir(parents=True, exist_ok=True)
        await database.create_all()
        logger.info("Starting server", extra={"meta": settings.public_summary()})
        try:
            yield
        finally:
            logger.info("Shutting down")
            await database.dispose()

    app = FastAPI(title="catchall", version=__version__, lifespan=lifespan)
    app.state.settings = settings
    app.state.db = database
    app.state.metrics = metrics

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_exception_handler(StarletteHTTPException, handle_http_error)
    app.add_exception_handler(Exception, _make_unhandled_error_handler(settings))

    # Specific routers before the catch-all
    app.include_router(health.router)
    app.include_router(admin.router)
    capture.install(app)
    return app


def main() -> None:
    try:
        settings = load_settings()
    except ConfigError as e:
        logging.basicConfig(level=logging.ERROR)
        logger.error("%s", e)
        sys.exit(1)

    configure_logging(settings)

    import uvicorn

    uvicorn.run(
        create_app(settings),
        host=settings.host,
        port=settings.port,
        log_config=None,
    )


if __name__ == "__main__":
    main()


__all__ = ["create_app", "main"]

from __future__ import annotations

import logging
from importlib.metadata import PackageNotFoundError, version

from fastapi import APIRouter, Depends, Response
from fastapi.responses import JSONResponse

from catchall.db.core import Database
from catchall.deps import get_database, get_metrics
from catchall.metrics import CaptureMetrics

router = APIRouter(tags=["Health"])  # unauthenticated probes
logger = logging.getLogger(__name__)


def service_version() -> str:
    try:
        return version("catchall-capture")
    except PackageNotFoundError:
        return "0.0.0"


def _no_store(resp: Response) -> Response:
    resp.headers["Cache-Control"] = "no-store"
    return resp


@router.get("/healthz")
async def healthz(db: Database = Depends(get_database)) -> JSONResponse:
    """Liveness with a database connectivity check: 200 when SELECT 1 succeeds, else 503."""
    ver = service_version()
    if await db.health_check():
        return _no_store(JSONResponse({"ok": True, "db": "up", "version": ver}))
    return _no_store(
        JSONResponse(
            {"ok": False, "db": "down", "version": ver, "error": "Database connection failed"},
            status_code=503,
        )
    )


@router.get("/readyz")
async def readyz(db: Database = Depends(get_database)) -> JSONResponse:
    """Readiness: the store must accept a write (rolled back immediately)."""
    try:
        await db.write_probe()
    except Exception as e:
        logger.error("db.write_probe_failed", extra={"meta": {"error": str(e)}})
        return _no_store(
            JSONResponse(
                {"ok": False, "message": "Service is not ready", "error": str(e)},
                status_code=503,
            )
        )
    return _no_store(JSONResponse({"ok": True, "message": "Service is ready"}))


@router.get("/metrics", include_in_schema=False)
async def metrics(m: CaptureMetrics = Depends(get_metrics)) -> Response:
    return Response(content=m.render(), media_type=m.content_type)

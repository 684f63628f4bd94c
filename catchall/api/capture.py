"""Catch-all capture endpoint.

Every method on every path not claimed by another route lands here. The
endpoint is a plain Starlette route with no method list, so extension
methods (TRACE, PROPFIND, SEARCH...) are captured like any other. The
request id is generated before anything else so it can be returned even
when the capture fails.
"""

from __future__ import annotations

import logging
import time

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from catchall.db.models import utcnow
from catchall.deps import get_database, get_metrics, get_settings
from catchall.ids import new_ulid
from catchall.ingest.record import (
    RequestMeta,
    build_record,
    ingest_body,
    parse_content_length,
    persist_capture,
    to_mapping,
)
from catchall.logging_config import req_id_var
from catchall.redact import redact_headers

logger = logging.getLogger(__name__)

CAPTURE_PATH = "/{full_path:path}"
RESERVED_PREFIXES = ("/admin", "/healthz", "/readyz", "/metrics")


def _elapsed_ms(start: float) -> float:
    return round((time.perf_counter() - start) * 1000, 2)


async def capture(request: Request) -> JSONResponse:
    settings = get_settings(request)
    db = get_database(request)
    metrics = get_metrics(request)
    start = time.perf_counter()
    request_id = new_ulid()
    received_at = utcnow()
    path = request.url.path

    if path.startswith(RESERVED_PREFIXES):
        return JSONResponse({"error": "Not found"}, status_code=404)

    token = req_id_var.set(request_id)
    method = request.method.upper()
    try:
        content_type = request.headers.get("content-type")
        content_length = parse_content_length(request.headers.get("content-length"))
        if content_length is not None and content_length > settings.max_body_bytes:
            logger.warning(
                "capture.body_over_limit",
                extra={
                    "meta": {
                        "id": request_id,
                        "content_length": content_length,
                        "max_bytes": settings.max_body_bytes,
                    }
                },
            )

        meta = RequestMeta(
            request_id=request_id,
            received_at=received_at,
            ip=request.client.host if request.client else None,
            method=method,
            path=path,
            query=to_mapping(request.query_params.multi_items()),
            headers=redact_headers(
                to_mapping(request.headers.items()), settings.redacted_field_list
            ),
            content_type=content_type,
            content_length=content_length,
        )
        ingested = await ingest_body(
            request,
            request_id=request_id,
            content_type=content_type,
            max_bytes=settings.max_body_bytes,
            upload_dir=settings.upload_dir,
        )
        await persist_capture(db, build_record(meta, ingested))
    except Exception as e:
        ms = _elapsed_ms(start)
        metrics.record(method, 500)
        logger.exception(
            "capture.failed",
            extra={"meta": {"id": request_id, "error": str(e), "error_type": type(e).__name__, "ms": ms}},
        )
        return JSONResponse(
            {"status": "error", "request_id": request_id, "error": "Internal server error"},
            status_code=500,
        )
    else:
        bytes_in = ingested.body.size
        metrics.record(method, 200, bytes_in=bytes_in, files=len(ingested.files))
        logger.info(
            "capture.ok",
            extra={
                "meta": {
                    "id": request_id,
                    "method": method,
                    "path": path,
                    "status": 200,
                    "bytesIn": bytes_in,
                    "files": len(ingested.files),
                    "ms": _elapsed_ms(start),
                }
            },
        )
        return JSONResponse({"status": "ok", "request_id": request_id})
    finally:
        req_id_var.reset(token)


def install(app: FastAPI) -> None:
    """Register the catch-all last; ``methods=None`` accepts any method."""
    app.add_route(CAPTURE_PATH, capture, methods=None, include_in_schema=False)


__all__ = ["RESERVED_PREFIXES", "capture", "install"]

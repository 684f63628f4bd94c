"""FastAPI dependencies resolving the per-application components."""

from __future__ import annotations

import hmac

from fastapi import Depends, Request

from catchall.config import Settings
from catchall.db.core import Database
from catchall.errors import forbidden
from catchall.metrics import CaptureMetrics


def get_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_database(request: Request) -> Database:
    return request.app.state.db


def get_metrics(request: Request) -> CaptureMetrics:
    return request.app.state.metrics


async def require_admin_token(
    request: Request, settings: Settings = Depends(get_settings)
) -> None:
    """Bearer-token check for every /admin route."""
    auth_header = request.headers.get("authorization", "")
    if not auth_header.startswith("Bearer "):
        raise forbidden("Missing or invalid Authorization header", "Bearer token required")
    token = auth_header[len("Bearer "):]
    if not hmac.compare_digest(token.encode(), settings.admin_token.encode()):
        raise forbidden("Invalid admin token", "Authentication failed")


__all__ = ["get_settings", "get_database", "get_metrics", "require_admin_token"]

from __future__ import annotations

from typing import Any

from fastapi import HTTPException


class CatchallError(Exception):
    """Base class for service errors."""


class ConfigError(CatchallError):
    """Startup configuration is missing or invalid."""


class PartTooLargeError(CatchallError):
    """A multipart part grew past its ceiling; reading stops at that point."""

    kind = "part"

    def __init__(self, field_name: str, limit: int):
        super().__init__(f"{self.kind} part '{field_name}' exceeds {limit} bytes")
        self.field_name = field_name
        self.limit = limit


class FileTooLargeError(PartTooLargeError):
    kind = "file"


class FieldTooLargeError(PartTooLargeError):
    kind = "field"


class AdminHTTPError(HTTPException):
    """HTTP error whose payload is returned as the top-level JSON body."""

    def __init__(self, status_code: int, error: str, message: str | None = None):
        payload: dict[str, Any] = {"error": error}
        if message is not None:
            payload["message"] = message
        super().__init__(status_code=status_code, detail=payload)


def not_found(error: str) -> AdminHTTPError:
    return AdminHTTPError(404, error)


def forbidden(error: str, message: str) -> AdminHTTPError:
    return AdminHTTPError(403, error, message)

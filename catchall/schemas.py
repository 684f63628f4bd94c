from __future__ import annotations

import base64
import datetime as dt
import json
from typing import Any

from pydantic import BaseModel, ConfigDict, field_serializer
from pydantic.alias_generators import to_camel

from catchall.db.models import CapturedRequest, UploadedFile


def _load_json(raw: str | None) -> dict[str, Any]:
    if not raw:
        return {}
    try:
        value = json.loads(raw)
    except ValueError:
        return {}
    return value if isinstance(value, dict) else {}


def _iso_utc(value: dt.datetime | None) -> str | None:
    if value is None:
        return None
    if value.tzinfo is None:
        # SQLite hands back naive values; they were written as UTC
        value = value.replace(tzinfo=dt.UTC)
    return value.astimezone(dt.UTC).isoformat().replace("+00:00", "Z")


class CamelModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )


class EncodedBody(CamelModel):
    base64: str
    encoding: str


def display_body(data: bytes | None, encoding: str | None) -> str | EncodedBody | None:
    """UTF-8 bodies come back as text; anything else as a base64 pair."""
    if not data:
        return None
    if encoding == "utf8":
        return data.decode("utf-8", errors="replace")
    return EncodedBody(
        base64=base64.b64encode(data).decode("ascii"),
        encoding=encoding or "unknown",
    )


class FileOut(CamelModel):
    id: str
    request_id: str
    field_name: str
    original_name: str
    mime_type: str | None = None
    size: int
    disk_path: str


class RequestSummary(CamelModel):
    id: str
    ts: dt.datetime
    ip: str | None = None
    method: str
    path: str
    query: dict[str, Any]
    headers: dict[str, Any]
    content_type: str | None = None
    content_length: int | None = None
    truncated: bool
    has_files: bool

    @field_serializer("ts")
    def _ser_ts(self, value: dt.datetime) -> str | None:
        return _iso_utc(value)

    @classmethod
    def row_fields(cls, row: CapturedRequest) -> dict[str, Any]:
        return {
            "id": row.id,
            "ts": row.ts,
            "ip": row.ip,
            "method": row.method,
            "path": row.path,
            "query": _load_json(row.query),
            "headers": _load_json(row.headers),
            "content_type": row.content_type,
            "content_length": row.content_length,
            "truncated": row.truncated,
            "has_files": row.has_files,
        }

    @classmethod
    def from_row(cls, row: CapturedRequest) -> RequestSummary:
        return cls(**cls.row_fields(row))


class RequestDetail(RequestSummary):
    raw_body_encoding: str | None = None
    deleted_at: dt.datetime | None = None
    body: str | EncodedBody | None = None
    files: list[FileOut] = []

    @field_serializer("deleted_at")
    def _ser_deleted_at(self, value: dt.datetime | None) -> str | None:
        return _iso_utc(value)

    @classmethod
    def from_row(cls, row: CapturedRequest) -> RequestDetail:
        return cls(
            **cls.row_fields(row),
            raw_body_encoding=row.raw_body_encoding,
            deleted_at=row.deleted_at,
            body=display_body(row.raw_body_bytes, row.raw_body_encoding),
            files=[FileOut.model_validate(f) for f in row.files],
        )


class Pagination(CamelModel):
    limit: int
    offset: int
    total: int
    has_more: bool


class RequestList(CamelModel):
    requests: list[RequestSummary]
    pagination: Pagination


class FileList(CamelModel):
    request_id: str
    files: list[FileOut]

    @classmethod
    def from_rows(cls, request_id: str, rows: list[UploadedFile]) -> FileList:
        return cls(request_id=request_id, files=[FileOut.model_validate(f) for f in rows])


class DeleteResult(CamelModel):
    message: str
    id: str


class BulkDeleteResult(CamelModel):
    message: str
    deleted: int


__all__ = [
    "BulkDeleteResult",
    "DeleteResult",
    "EncodedBody",
    "FileList",
    "FileOut",
    "Pagination",
    "RequestDetail",
    "RequestList",
    "RequestSummary",
    "display_body",
]

"""Assemble and persist one captured request."""

from __future__ import annotations

import datetime as dt
import json
import logging
from collections.abc import Iterable
from dataclasses import dataclass, field

from starlette.requests import Request

from catchall.db.core import Database
from catchall.db.models import CapturedRequest, UploadedFile
from catchall.ingest.body import (
    BodyKind,
    NormalizedBody,
    classify,
    collect_body,
    normalize_body,
    summarize_multipart,
)
from catchall.ingest.multipart import FileDescriptor, materialize

logger = logging.getLogger(__name__)

JSONValue = str | list[str]


def to_mapping(items: Iterable[tuple[str, str]]) -> dict[str, JSONValue]:
    """Collapse multi-valued pairs: one value stays a string, repeats become a list."""
    out: dict[str, JSONValue] = {}
    for key, value in items:
        if key not in out:
            out[key] = value
            continue
        prev = out[key]
        out[key] = [*prev, value] if isinstance(prev, list) else [prev, value]
    return out


def parse_content_length(raw: str | None) -> int | None:
    if raw is None:
        return None
    try:
        value = int(raw.strip())
    except ValueError:
        return None
    return value if value >= 0 else None


@dataclass(frozen=True)
class RequestMeta:
    request_id: str
    received_at: dt.datetime
    ip: str | None
    method: str
    path: str
    query: dict[str, JSONValue]
    headers: dict[str, JSONValue]
    content_type: str | None
    content_length: int | None


@dataclass
class IngestedBody:
    body: NormalizedBody
    files: list[FileDescriptor] = field(default_factory=list)


async def ingest_body(
    request: Request,
    *,
    request_id: str,
    content_type: str | None,
    max_bytes: int,
    upload_dir: str,
) -> IngestedBody:
    """Read the request body once and turn it into its storage form."""
    if classify(content_type) is BodyKind.MULTIPART:
        result = await materialize(
            request.stream(), content_type, request_id, upload_dir, max_file_bytes=max_bytes
        )
        return IngestedBody(body=summarize_multipart(result), files=result.files)

    prefix, total = await collect_body(request.stream(), max_bytes)
    return IngestedBody(
        body=normalize_body(content_type, prefix, max_bytes, original_size=total)
    )


def build_record(meta: RequestMeta, ingested: IngestedBody) -> CapturedRequest:
    body = ingested.body
    record = CapturedRequest(
        id=meta.request_id,
        ts=meta.received_at,
        ip=meta.ip,
        method=meta.method,
        path=meta.path,
        query=json.dumps(meta.query, ensure_ascii=False),
        headers=json.dumps(meta.headers, ensure_ascii=False),
        content_type=meta.content_type,
        content_length=meta.content_length,
        raw_body_bytes=body.data or None,
        raw_body_encoding=body.encoding.value if body.data else None,
        truncated=body.truncated,
        has_files=bool(ingested.files),
    )
    record.files = [
        UploadedFile(
            id=f.id,
            request_id=meta.request_id,
            field_name=f.field_name,
            original_name=f.original_name,
            mime_type=f.mime_type,
            size=f.size,
            disk_path=f.disk_path,
        )
        for f in ingested.files
    ]
    return record


async def persist_capture(db: Database, record: CapturedRequest) -> str:
    """Insert the request row and its file rows in one transaction."""
    async with db.session_scope() as session:
        session.add(record)
    return record.id


__all__ = [
    "IngestedBody",
    "RequestMeta",
    "build_record",
    "ingest_body",
    "parse_content_length",
    "persist_capture",
    "to_mapping",
]

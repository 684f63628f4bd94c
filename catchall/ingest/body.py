"""Request body classification and normalization.

Every captured body ends up as one of a few storage shapes:

=============  ===========  ==========================================
content type   encoding     stored bytes
=============  ===========  ==========================================
multipart      ``utf8``     JSON summary ``{hasFiles, fileCount, fields}``
(empty body)   ``None``     ``None``
JSON / text    ``utf8``     body prefix, at most ``max_bytes``
anything else  ``base64``   body prefix, at most ``max_bytes``
=============  ===========  ==========================================

Truncation keeps the prefix, so a truncated JSON or text body may end in
the middle of a document or of a multi-byte UTF-8 sequence. That is
expected; ``truncated`` is set so readers know.
"""

from __future__ import annotations

import json
from collections.abc import AsyncIterable
from dataclasses import dataclass
from enum import Enum, StrEnum
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from catchall.ingest.multipart import MultipartResult


class BodyEncoding(StrEnum):
    UTF8 = "utf8"
    BASE64 = "base64"


class BodyKind(Enum):
    MULTIPART = "multipart"
    JSON = "json"
    TEXT = "text"
    BINARY = "binary"


_TEXTUAL_MARKERS = ("application/xml", "application/x-www-form-urlencoded")


@dataclass(frozen=True)
class NormalizedBody:
    data: bytes | None
    encoding: BodyEncoding | None
    truncated: bool = False

    @property
    def size(self) -> int:
        return len(self.data) if self.data else 0


EMPTY_BODY = NormalizedBody(data=None, encoding=None, truncated=False)


def classify(content_type: str | None) -> BodyKind:
    ct = (content_type or "").strip().lower()
    if "multipart/form-data" in ct:
        return BodyKind.MULTIPART
    if "application/json" in ct:
        return BodyKind.JSON
    if ct.startswith("text/") or any(m in ct for m in _TEXTUAL_MARKERS):
        return BodyKind.TEXT
    return BodyKind.BINARY


async def collect_body(chunks: AsyncIterable[bytes], max_bytes: int) -> tuple[bytes, int]:
    """Drain ``chunks`` keeping at most ``max_bytes`` of prefix.

    Returns ``(prefix, total_size)``; bytes past the cap are counted and
    dropped so an oversized body never sits in memory whole.
    """
    kept = bytearray()
    total = 0
    async for chunk in chunks:
        if not chunk:
            continue
        total += len(chunk)
        room = max_bytes - len(kept)
        if room > 0:
            kept += chunk[:room]
    return bytes(kept), total


def normalize_body(
    content_type: str | None,
    body: bytes | None,
    max_bytes: int,
    *,
    original_size: int | None = None,
) -> NormalizedBody:
    """Normalize a non-multipart body.

    ``original_size`` is the full length when ``body`` is an already-capped
    prefix (see ``collect_body``); it defaults to ``len(body)``.
    """
    kind = classify(content_type)
    if kind is BodyKind.MULTIPART:
        raise ValueError("multipart bodies are summarized with summarize_multipart()")
    if not body:
        return EMPTY_BODY

    size = len(body) if original_size is None else original_size
    truncated = size > max_bytes
    data = body[:max_bytes] if truncated else body
    if kind is BodyKind.BINARY:
        return NormalizedBody(data=data, encoding=BodyEncoding.BASE64, truncated=truncated)
    return NormalizedBody(data=data, encoding=BodyEncoding.UTF8, truncated=truncated)


def summarize_multipart(result: MultipartResult) -> NormalizedBody:
    """Encode the multipart summary document; never truncated."""
    summary = {
        "hasFiles": bool(result.files),
        "fileCount": len(result.files),
        "fields": result.fields,
    }
    data = json.dumps(summary, ensure_ascii=False, separators=(",", ":")).encode("utf-8")
    return NormalizedBody(data=data, encoding=BodyEncoding.UTF8, truncated=False)


__all__ = [
    "BodyEncoding",
    "BodyKind",
    "EMPTY_BODY",
    "NormalizedBody",
    "classify",
    "collect_body",
    "normalize_body",
    "summarize_multipart",
]

"""Streaming multipart materializer.

The request stream is pushed through python-multipart's parser and every
file part is written straight to its final path as its bytes arrive. There
is no intermediate spool file, and a part that crosses its ceiling stops
the read right there.
"""

from __future__ import annotations

import logging
from collections.abc import AsyncIterable
from dataclasses import dataclass, field
from pathlib import Path, PurePosixPath
from typing import Any

import aiofiles
import aiofiles.os
from python_multipart.multipart import MultipartParser, parse_options_header

from catchall.errors import FieldTooLargeError, FileTooLargeError
from catchall.ids import new_ulid

logger = logging.getLogger(__name__)

# Same per-field ceiling Starlette applies to plain form fields
MAX_FIELD_BYTES = 1024 * 1024


@dataclass(frozen=True)
class FileDescriptor:
    id: str
    request_id: str
    field_name: str
    original_name: str
    mime_type: str | None
    size: int
    disk_path: str


@dataclass
class MultipartResult:
    files: list[FileDescriptor] = field(default_factory=list)
    fields: dict[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class PartHeader:
    field_name: str
    filename: str | None
    content_type: str | None

    @property
    def is_file(self) -> bool:
        return self.filename is not None


def safe_basename(filename: str | None) -> str:
    """Last path component of a client-declared filename, or '' if unusable."""
    if not filename:
        return ""
    name = PurePosixPath(filename.replace("\\", "/")).name
    return "" if name in {".", ".."} else name


def disk_name(file_id: str, filename: str | None) -> str:
    base = safe_basename(filename)
    return f"{file_id}_{base}" if base else f"file-{file_id}"


def _decode(value: bytes, charset: str) -> str:
    try:
        return value.decode(charset)
    except (UnicodeDecodeError, LookupError):
        return value.decode("latin-1")


class _PartEvents:
    """python-multipart callbacks.

    They fire synchronously inside ``parser.write``; part boundaries and data
    are queued here and handled asynchronously after each chunk.
    """

    def __init__(self, charset: str) -> None:
        self.charset = charset
        self._events: list[tuple[str, Any]] = []
        self._headers: dict[bytes, bytes] = {}
        self._header_name = b""
        self._header_value = b""

    def callbacks(self) -> dict[str, Any]:
        return {
            "on_part_begin": self.on_part_begin,
            "on_header_field": self.on_header_field,
            "on_header_value": self.on_header_value,
            "on_header_end": self.on_header_end,
            "on_headers_finished": self.on_headers_finished,
            "on_part_data": self.on_part_data,
            "on_part_end": self.on_part_end,
        }

    def on_part_begin(self) -> None:
        self._headers = {}

    def on_header_field(self, data: bytes, start: int, end: int) -> None:
        self._header_name += data[start:end]

    def on_header_value(self, data: bytes, start: int, end: int) -> None:
        self._header_value += data[start:end]

    def on_header_end(self) -> None:
        self._headers[self._header_name.lower()] = self._header_value
        self._header_name = b""
        self._header_value = b""

    def on_headers_finished(self) -> None:
        _, options = parse_options_header(self._headers.get(b"content-disposition", b""))
        if b"name" not in options:
            raise ValueError("multipart part without a field name")
        filename = options.get(b"filename")
        content_type = self._headers.get(b"content-type")
        header = PartHeader(
            field_name=_decode(options[b"name"], self.charset),
            filename=None if filename is None else _decode(filename, self.charset),
            content_type=content_type.decode("latin-1") if content_type else None,
        )
        self._events.append(("begin", header))

    def on_part_data(self, data: bytes, start: int, end: int) -> None:
        self._events.append(("data", data[start:end]))

    def on_part_end(self) -> None:
        self._events.append(("end", None))

    def drain(self) -> list[tuple[str, Any]]:
        events, self._events = self._events, []
        return events


class _PartWriter:
    """Applies parser events in order: files go to disk, fields to memory."""

    def __init__(
        self, request_id: str, request_dir: Path, charset: str, max_file_bytes: int | None
    ) -> None:
        self.request_id = request_id
        self.request_dir = request_dir
        self.charset = charset
        self.max_file_bytes = max_file_bytes
        self.result = MultipartResult()
        self._part: PartHeader | None = None
        self._fh: Any = None
        self._file_id = ""
        self._dest: Path | None = None
        self._size = 0
        self._buf = bytearray()

    async def handle(self, kind: str, payload: Any) -> None:
        if kind == "begin":
            await self._begin(payload)
        elif kind == "data":
            await self._data(payload)
        else:
            await self._end()

    async def _begin(self, part: PartHeader) -> None:
        self._part = part
        self._size = 0
        self._buf.clear()
        if part.is_file:
            self._file_id = new_ulid()
            self._dest = self.request_dir / disk_name(self._file_id, part.filename)
            self._fh = await aiofiles.open(self._dest, "wb")

    async def _data(self, data: bytes) -> None:
        part = self._part
        self._size += len(data)
        if part.is_file:
            if self.max_file_bytes is not None and self._size > self.max_file_bytes:
                raise FileTooLargeError(part.field_name, self.max_file_bytes)
            await self._fh.write(data)
        else:
            if self._size > MAX_FIELD_BYTES:
                raise FieldTooLargeError(part.field_name, MAX_FIELD_BYTES)
            self._buf += data

    async def _end(self) -> None:
        part = self._part
        if part.is_file:
            await self.close()
            self.result.files.append(
                FileDescriptor(
                    id=self._file_id,
                    request_id=self.request_id,
                    field_name=part.field_name,
                    original_name=part.filename or f"file-{self._file_id}",
                    mime_type=part.content_type or None,
                    size=self._size,
                    disk_path=str(self._dest),
                )
            )
            logger.debug(
                "multipart.file_stored",
                extra={
                    "meta": {"file_id": self._file_id, "field": part.field_name, "size": self._size}
                },
            )
        else:
            self.result.fields[part.field_name] = _decode(bytes(self._buf), self.charset)
        self._part = None

    async def close(self) -> None:
        if self._fh is not None:
            fh, self._fh = self._fh, None
            await fh.close()


async def materialize(
    stream: AsyncIterable[bytes],
    content_type: str,
    request_id: str,
    upload_root: str | Path,
    *,
    max_file_bytes: int | None = None,
) -> MultipartResult:
    """Write file parts under ``upload_root/request_id`` and collect plain fields.

    Parts are consumed strictly in arrival order, in a single pass over the
    stream. Repeated field names keep the last value. Any failure aborts the
    whole call and leaves files already written in place.
    """
    _, params = parse_options_header(content_type)
    boundary = params.get(b"boundary")
    if not boundary:
        raise ValueError("multipart content type without a boundary")
    charset = _decode(params.get(b"charset", b"utf-8"), "latin-1")

    request_dir = Path(upload_root) / request_id
    await aiofiles.os.makedirs(request_dir, exist_ok=True)

    events = _PartEvents(charset)
    parser = MultipartParser(boundary, events.callbacks())
    writer = _PartWriter(request_id, request_dir, charset, max_file_bytes)
    try:
        async for chunk in stream:
            parser.write(chunk)
            for kind, payload in events.drain():
                await writer.handle(kind, payload)
        parser.finalize()
        for kind, payload in events.drain():
            await writer.handle(kind, payload)
    finally:
        await writer.close()
    return writer.result


__all__ = [
    "FileDescriptor",
    "MultipartResult",
    "PartHeader",
    "disk_name",
    "materialize",
    "safe_basename",
]

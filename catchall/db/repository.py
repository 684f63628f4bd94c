"""Admin-side queries. Soft-deleted requests are invisible to every read."""

from __future__ import annotations

import datetime as dt
from dataclasses import dataclass

from sqlalchemy import ColumnElement, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from catchall.db.models import CapturedRequest, UploadedFile, utcnow


def as_utc(value: dt.datetime) -> dt.datetime:
    """Naive datetimes are taken to be UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=dt.UTC)
    return value.astimezone(dt.UTC)


def _active() -> ColumnElement[bool]:
    return CapturedRequest.deleted_at.is_(None)


@dataclass(frozen=True)
class RequestFilters:
    method: str | None = None
    path_prefix: str | None = None
    since: dt.datetime | None = None
    until: dt.datetime | None = None
    has_files: bool | None = None

    def clauses(self) -> list[ColumnElement[bool]]:
        where = [_active()]
        if self.method:
            where.append(CapturedRequest.method == self.method.upper())
        if self.path_prefix:
            where.append(CapturedRequest.path.startswith(self.path_prefix, autoescape=True))
        if self.since is not None:
            where.append(CapturedRequest.ts >= as_utc(self.since))
        if self.until is not None:
            where.append(CapturedRequest.ts <= as_utc(self.until))
        if self.has_files is not None:
            where.append(CapturedRequest.has_files.is_(self.has_files))
        return where


async def list_requests(
    session: AsyncSession, filters: RequestFilters, *, limit: int = 50, offset: int = 0
) -> tuple[list[CapturedRequest], int]:
    where = filters.clauses()
    rows = await session.scalars(
        select(CapturedRequest)
        .where(*where)
        .order_by(CapturedRequest.ts.desc(), CapturedRequest.id.desc())
        .limit(limit)
        .offset(offset)
    )
    total = await session.scalar(
        select(func.count()).select_from(CapturedRequest).where(*where)
    )
    return list(rows), int(total or 0)


async def get_request(
    session: AsyncSession, request_id: str, *, with_files: bool = False
) -> CapturedRequest | None:
    stmt = select(CapturedRequest).where(CapturedRequest.id == request_id, _active())
    if with_files:
        stmt = stmt.options(selectinload(CapturedRequest.files))
    return await session.scalar(stmt)


async def list_files(session: AsyncSession, request_id: str) -> list[UploadedFile]:
    rows = await session.scalars(
        select(UploadedFile)
        .where(UploadedFile.request_id == request_id)
        .order_by(UploadedFile.id)
    )
    return list(rows)


async def get_file(session: AsyncSession, file_id: str) -> UploadedFile | None:
    """File row whose owning request is not soft-deleted."""
    return await session.scalar(
        select(UploadedFile)
        .join(CapturedRequest, UploadedFile.request_id == CapturedRequest.id)
        .where(UploadedFile.id == file_id, _active())
    )


async def soft_delete(
    session: AsyncSession, request_id: str, *, now: dt.datetime | None = None
) -> bool:
    result = await session.execute(
        update(CapturedRequest)
        .where(CapturedRequest.id == request_id, _active())
        .values(deleted_at=now or utcnow())
        .execution_options(synchronize_session=False)
    )
    return result.rowcount > 0


async def soft_delete_older_than(
    session: AsyncSession, cutoff: dt.datetime, *, now: dt.datetime | None = None
) -> int:
    """Soft-delete every live request with ``ts`` strictly before ``cutoff``."""
    result = await session.execute(
        update(CapturedRequest)
        .where(CapturedRequest.ts < as_utc(cutoff), _active())
        .values(deleted_at=now or utcnow())
        .execution_options(synchronize_session=False)
    )
    return int(result.rowcount or 0)


__all__ = [
    "RequestFilters",
    "as_utc",
    "get_file",
    "get_request",
    "list_files",
    "list_requests",
    "soft_delete",
    "soft_delete_older_than",
]

from __future__ import annotations

import datetime as dt
import logging
from pathlib import Path

from fastapi import APIRouter, Depends, Query
from fastapi.responses import FileResponse

from catchall.db import repository as repo
from catchall.db.core import Database
from catchall.db.models import utcnow
from catchall.deps import get_database, require_admin_token
from catchall.errors import not_found
from catchall.schemas import (
    BulkDeleteResult,
    DeleteResult,
    FileList,
    Pagination,
    RequestDetail,
    RequestList,
    RequestSummary,
)

router = APIRouter(
    tags=["Admin"],
    prefix="/admin",
    dependencies=[Depends(require_admin_token)],
    responses={
        403: {"description": "Missing or invalid admin token"},
        404: {"description": "Not found or soft-deleted"},
    },
)
logger = logging.getLogger(__name__)


@router.get("/requests", response_model=RequestList)
async def list_requests(
    limit: int = Query(50, ge=0, le=1000),
    offset: int = Query(0, ge=0),
    method: str | None = None,
    path_prefix: str | None = Query(None, alias="pathPrefix"),
    since: dt.datetime | None = None,
    until: dt.datetime | None = None,
    has_files: str | None = Query(None, alias="hasFiles"),
    db: Database = Depends(get_database),
) -> RequestList:
    filters = repo.RequestFilters(
        method=method,
        path_prefix=path_prefix,
        since=since,
        until=until,
        has_files=None if has_files is None else has_files.lower() == "true",
    )
    async with db.read_session() as session:
        rows, total = await repo.list_requests(session, filters, limit=limit, offset=offset)
        requests = [RequestSummary.from_row(r) for r in rows]
    return RequestList(
        requests=requests,
        pagination=Pagination(
            limit=limit, offset=offset, total=total, has_more=offset + limit < total
        ),
    )


@router.get("/requests/{request_id}", response_model=RequestDetail)
async def get_request(request_id: str, db: Database = Depends(get_database)) -> RequestDetail:
    async with db.read_session() as session:
        row = await repo.get_request(session, request_id, with_files=True)
        if row is None:
            raise not_found("Request not found")
        return RequestDetail.from_row(row)


@router.get("/requests/{request_id}/files", response_model=FileList)
async def list_request_files(request_id: str, db: Database = Depends(get_database)) -> FileList:
    async with db.read_session() as session:
        if await repo.get_request(session, request_id) is None:
            raise not_found("Request not found")
        rows = await repo.list_files(session, request_id)
        return FileList.from_rows(request_id, rows)


@router.get("/files/{file_id}")
async def download_file(file_id: str, db: Database = Depends(get_database)) -> FileResponse:
    async with db.read_session() as session:
        row = await repo.get_file(session, file_id)
        if row is None:
            raise not_found("File not found")
        disk_path, name, mime = row.disk_path, row.original_name, row.mime_type

    if not Path(disk_path).is_file():
        logger.warning(
            "admin.file_missing_on_disk",
            extra={"meta": {"file_id": file_id, "disk_path": disk_path}},
        )
        raise not_found("File not found on disk")
    return FileResponse(
        disk_path,
        media_type=mime or "application/octet-stream",
        filename=name,
        content_disposition_type="attachment",
    )


@router.delete("/requests/{request_id}", response_model=DeleteResult)
async def delete_request(request_id: str, db: Database = Depends(get_database)) -> DeleteResult:
    async with db.session_scope() as session:
        deleted = await repo.soft_delete(session, request_id)
    if not deleted:
        raise not_found("Request not found")
    logger.info("admin.soft_delete", extra={"meta": {"id": request_id}})
    return DeleteResult(message="Request deleted", id=request_id)


@router.delete("/older-than", response_model=BulkDeleteResult)
async def delete_older_than(
    days: int = Query(30, ge=0), db: Database = Depends(get_database)
) -> BulkDeleteResult:
    now = utcnow()
    cutoff = now - dt.timedelta(days=days)
    async with db.session_scope() as session:
        count = await repo.soft_delete_older_than(session, cutoff, now=now)
    logger.info(
        "admin.soft_delete_older_than",
        extra={"meta": {"days": days, "cutoff": cutoff.isoformat(), "deleted": count}},
    )
    return BulkDeleteResult(
        message=f"Deleted {count} requests older than {days} days", deleted=count
    )

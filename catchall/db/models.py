# catchall/db/models.py
from __future__ import annotations

import datetime as dt

import sqlalchemy as sa
from sqlalchemy import (
    Boolean,
    DateTime,
    ForeignKey,
    Integer,
    LargeBinary,
    String,
    Text,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship

# ---------- Base with naming convention ----------
NAMING_CONVENTION = {
    "ix": "ix_%(column_0_label)s",
    "uq": "uq_%(table_name)s_%(column_0_name)s",
    "ck": "ck_%(table_name)s_%(constraint_name)s",
    "fk": "fk_%(table_name)s_%(column_0_name)s_%(referred_table_name)s",
    "pk": "pk_%(table_name)s",
}


class Base(DeclarativeBase):
    __abstract__ = True
    metadata = sa.MetaData(naming_convention=NAMING_CONVENTION)


def utcnow() -> dt.datetime:
    return dt.datetime.now(dt.UTC)


class CapturedRequest(Base):
    __tablename__ = "captured_requests"
    __table_args__ = (
        sa.Index("captured_requests_ts_path_idx", "ts", "path"),
        sa.Index(
            "captured_requests_path_method_ts_idx",
            "path",
            "method",
            sa.text("ts DESC"),
        ),
    )

    # ULID, assigned at receipt time
    id: Mapped[str] = mapped_column(String(26), primary_key=True)
    ts: Mapped[dt.datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=utcnow,
        server_default=sa.func.current_timestamp(),
    )
    ip: Mapped[str | None] = mapped_column(String(64))
    method: Mapped[str] = mapped_column(String(16), nullable=False)
    path: Mapped[str] = mapped_column(Text, nullable=False)
    # JSON-serialized mappings
    query: Mapped[str] = mapped_column(Text, nullable=False, server_default="{}")
    headers: Mapped[str] = mapped_column(Text, nullable=False, server_default="{}")
    content_type: Mapped[str | None] = mapped_column(Text)
    content_length: Mapped[int | None] = mapped_column(Integer)
    raw_body_bytes: Mapped[bytes | None] = mapped_column(LargeBinary)
    raw_body_encoding: Mapped[str | None] = mapped_column(String(16))
    truncated: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False, server_default=sa.false()
    )
    has_files: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False, server_default=sa.false()
    )
    deleted_at: Mapped[dt.datetime | None] = mapped_column(DateTime(timezone=True))

    files: Mapped[list[UploadedFile]] = relationship(
        back_populates="request",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="UploadedFile.id",
    )


class UploadedFile(Base):
    __tablename__ = "uploaded_files"
    __table_args__ = (sa.Index("uploaded_files_request_id_idx", "request_id"),)

    id: Mapped[str] = mapped_column(String(26), primary_key=True)
    request_id: Mapped[str] = mapped_column(
        String(26),
        ForeignKey("captured_requests.id", ondelete="CASCADE", onupdate="CASCADE"),
        nullable=False,
    )
    field_name: Mapped[str] = mapped_column(Text, nullable=False)
    original_name: Mapped[str] = mapped_column(Text, nullable=False)
    mime_type: Mapped[str | None] = mapped_column(Text)
    size: Mapped[int] = mapped_column(sa.BigInteger, nullable=False)
    disk_path: Mapped[str] = mapped_column(Text, nullable=False)

    request: Mapped[CapturedRequest] = relationship(back_populates="files")


__all__ = ["Base", "CapturedRequest", "UploadedFile", "utcnow"]

"""
Database engine and session management.

A ``Database`` is built once from the configured URL and owned by the
application (``app.state.db``). All access goes through it:

- session_scope(): commit on success, rollback on error, always close
- health_check(): connectivity probe (SELECT 1)
- write_probe(): throwaway insert + delete inside a rolled-back transaction
- create_all() / dispose(): startup and shutdown hooks
"""

from __future__ import annotations

import logging
import time
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from pathlib import Path

from sqlalchemy import event, text
from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from catchall.db.models import Base, CapturedRequest
from catchall.ids import new_ulid

logger = logging.getLogger(__name__)


def normalize_url(url: str) -> str:
    """Map plain driver URLs onto their asyncio drivers."""
    scheme, sep, rest = url.partition(":")
    scheme = scheme.lower()
    if scheme in {"sqlite", "file"}:
        if scheme == "file":
            # prisma-style file:./path
            return f"sqlite+aiosqlite:///{rest}"
        return f"sqlite+aiosqlite:{rest}"
    if scheme in {"postgres", "postgresql"}:
        return f"postgresql+asyncpg:{rest}"
    return url


def _enable_sqlite_foreign_keys(dbapi_connection, _record) -> None:
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


class Database:
    def __init__(self, url: str, *, echo: bool = False):
        self.url = normalize_url(url)
        parsed = make_url(self.url)
        self.is_sqlite = parsed.get_backend_name() == "sqlite"

        if self.is_sqlite:
            if parsed.database and parsed.database != ":memory:":
                Path(parsed.database).parent.mkdir(parents=True, exist_ok=True)
            self.engine: AsyncEngine = create_async_engine(self.url, echo=echo)
            event.listen(self.engine.sync_engine, "connect", _enable_sqlite_foreign_keys)
        else:
            self.engine = create_async_engine(
                self.url,
                pool_size=10,
                max_overflow=20,
                pool_pre_ping=True,
                pool_recycle=1800,
                pool_timeout=30,
                echo=echo,
            )
        logger.info(
            "db.engine_init",
            extra={"meta": {"backend": parsed.get_backend_name(), "driver": parsed.get_driver_name()}},
        )
        self.sessionmaker = async_sessionmaker(bind=self.engine, expire_on_commit=False)

    @asynccontextmanager
    async def session_scope(self) -> AsyncIterator[AsyncSession]:
        """Yield a session that is committed on success and rolled back on error."""
        session = self.sessionmaker()
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()

    @asynccontextmanager
    async def read_session(self) -> AsyncIterator[AsyncSession]:
        async with self.sessionmaker() as session:
            yield session

    async def create_all(self) -> None:
        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    async def health_check(self) -> bool:
        """Connectivity check"""
        try:
            async with self.engine.connect() as conn:
                await conn.execute(text("SELECT 1"))
            return True
        except Exception as e:
            logger.error("Database health check failed: %s", e)
            return False

    async def write_probe(self) -> None:
        """Insert and delete a throwaway row, then roll the transaction back.

        Raises whatever the store raises when it is not writable.
        """
        start = time.monotonic()
        async with self.sessionmaker() as session:
            try:
                probe = CapturedRequest(
                    id=new_ulid(), method="TEST", path="/readyz", query="{}", headers="{}"
                )
                session.add(probe)
                await session.flush()
                await session.delete(probe)
                await session.flush()
            finally:
                await session.rollback()
        logger.debug(
            "db.write_probe_ok",
            extra={"meta": {"duration_ms": round((time.monotonic() - start) * 1000, 2)}},
        )

    async def dispose(self) -> None:
        await self.engine.dispose()


__all__ = ["Database", "normalize_url"]

"""Upload ledger: durable record of which content reached which server.

Backed by a SQLite file in WAL mode through SQLAlchemy's async engine (aiosqlite).
Each upsert is a single INSERT ... ON CONFLICT statement, so concurrent writers
to the same key serialize in SQLite and the original created_at is never lost.
"""

import logging
import time
from contextlib import asynccontextmanager
from pathlib import Path
from typing import AsyncGenerator, Iterable, List, Optional

from sqlalchemy import event, func, or_, select
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from vinewatcher.errors import LedgerError
from vinewatcher.ledger.models import Base, UploadRecord, UploadRecordView, UploadStatus

log = logging.getLogger(__name__)

# Seconds a writer waits on a locked database before failing
BUSY_TIMEOUT = 30.0


def _set_sqlite_pragmas(dbapi_connection, connection_record) -> None:
    """WAL journal for crash consistency and readers that don't block the writer."""
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA journal_mode=WAL")
    cursor.execute("PRAGMA synchronous=NORMAL")
    cursor.close()


class UploadLedger:
    """Async access to the uploads table. Call init() before use and close() at shutdown."""

    def __init__(self, db_path: Path) -> None:
        self._db_path = Path(db_path)
        # SQLAlchemy async needs sqlite+aiosqlite and path as URL
        self._engine = create_async_engine(
            f"sqlite+aiosqlite:///{self._db_path}",
            echo=False,
            connect_args={"timeout": BUSY_TIMEOUT},
        )
        event.listen(self._engine.sync_engine, "connect", _set_sqlite_pragmas)
        self._session = async_sessionmaker(
            self._engine, class_=AsyncSession, expire_on_commit=False, autoflush=False
        )

    @property
    def db_path(self) -> Path:
        return self._db_path

    async def init(self) -> None:
        """Create the uploads table if it does not exist."""
        try:
            self._db_path.parent.mkdir(parents=True, exist_ok=True)
            async with self._engine.begin() as conn:
                await conn.run_sync(Base.metadata.create_all)
        except (SQLAlchemyError, OSError) as e:
            raise LedgerError(f"Cannot open ledger {self._db_path}: {e}") from e
        log.debug("Ledger ready at %s", self._db_path)

    async def close(self) -> None:
        await self._engine.dispose()

    @asynccontextmanager
    async def _session_scope(self) -> AsyncGenerator[AsyncSession, None]:
        """Yield a session; commit on success, roll back and wrap DB errors as LedgerError."""
        async with self._session() as session:
            try:
                yield session
                await session.commit()
            except SQLAlchemyError as e:
                await session.rollback()
                raise LedgerError(f"Ledger error: {e}") from e

    async def is_done(self, sha256: str, server_url: str) -> bool:
        """True iff (sha256, server_url) has status done."""
        async with self._session_scope() as session:
            result = await session.execute(
                select(UploadRecord.status).where(
                    UploadRecord.content_sha256 == sha256,
                    UploadRecord.server_url == server_url,
                )
            )
            status = result.scalar_one_or_none()
        return status == UploadStatus.DONE.value

    async def is_done_for_all(self, sha256: str, server_urls: Iterable[str]) -> bool:
        """True iff every server in server_urls individually has status done for sha256."""
        wanted = set(server_urls)
        if not wanted:
            return True
        async with self._session_scope() as session:
            result = await session.execute(
                select(func.count()).select_from(UploadRecord).where(
                    UploadRecord.content_sha256 == sha256,
                    UploadRecord.server_url.in_(sorted(wanted)),
                    UploadRecord.status == UploadStatus.DONE.value,
                )
            )
            done = result.scalar_one()
        return done == len(wanted)

    async def upsert(
        self,
        sha256: str,
        size: int,
        rel_path: str,
        is_private: bool,
        server_url: str,
        status: UploadStatus,
    ) -> None:
        """
        Insert a record or overwrite size/path/privacy/status of an existing one.
        created_at is set only on insert. A done record is only replaced by
        another done record, so done stays done.
        """
        status = UploadStatus(status)
        stmt = sqlite_insert(UploadRecord).values(
            content_sha256=sha256,
            server_url=server_url,
            size_bytes=size,
            rel_path=rel_path,
            is_private=is_private,
            status=status.value,
            created_at=int(time.time()),
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=[UploadRecord.content_sha256, UploadRecord.server_url],
            set_={
                "size_bytes": stmt.excluded.size_bytes,
                "rel_path": stmt.excluded.rel_path,
                "is_private": stmt.excluded.is_private,
                "status": stmt.excluded.status,
            },
            where=or_(
                UploadRecord.status != UploadStatus.DONE.value,
                stmt.excluded.status == UploadStatus.DONE.value,
            ),
        )
        async with self._session_scope() as session:
            await session.execute(stmt)
        log.debug("Ledger %s %s -> %s (%s)", sha256[:12], server_url, status.value, rel_path)

    async def get(self, sha256: str, server_url: str) -> Optional[UploadRecordView]:
        """Return the record for (sha256, server_url), or None."""
        async with self._session_scope() as session:
            row = await session.get(UploadRecord, (sha256, server_url))
            return UploadRecordView.from_row(row) if row else None

    async def records_for(self, sha256: str) -> List[UploadRecordView]:
        """All records for a content hash, ordered by server URL."""
        async with self._session_scope() as session:
            result = await session.execute(
                select(UploadRecord)
                .where(UploadRecord.content_sha256 == sha256)
                .order_by(UploadRecord.server_url)
            )
            return [UploadRecordView.from_row(r) for r in result.scalars().all()]

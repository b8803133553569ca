"""SQLAlchemy model for upload records, one per (content hash, server)."""

from dataclasses import dataclass
from enum import Enum

from sqlalchemy import Boolean, Integer, String, Text
from sqlalchemy.orm import Mapped, declarative_base, mapped_column

Base = declarative_base()


class UploadStatus(str, Enum):
    PENDING = "pending"
    DONE = "done"
    FAILED = "failed"


class UploadRecord(Base):
    """Outcome of uploading one content hash to one server. Never deleted."""

    __tablename__ = "uploads"

    content_sha256: Mapped[str] = mapped_column(String(64), primary_key=True)  # SHA-256 hex
    server_url: Mapped[str] = mapped_column(Text, primary_key=True)
    size_bytes: Mapped[int] = mapped_column(Integer, nullable=False)
    rel_path: Mapped[str] = mapped_column(Text, nullable=False)  # last path seen with this content
    is_private: Mapped[bool] = mapped_column(Boolean, nullable=False)
    status: Mapped[str] = mapped_column(String(16), nullable=False)
    # First-seen time (epoch seconds); kept when the row is overwritten
    created_at: Mapped[int] = mapped_column(Integer, nullable=False)


@dataclass(frozen=True)
class UploadRecordView:
    """Detached copy of an UploadRecord row."""

    content_sha256: str
    server_url: str
    size_bytes: int
    rel_path: str
    is_private: bool
    status: UploadStatus
    created_at: int

    @classmethod
    def from_row(cls, row: UploadRecord) -> "UploadRecordView":
        return cls(
            content_sha256=row.content_sha256,
            server_url=row.server_url,
            size_bytes=row.size_bytes,
            rel_path=row.rel_path,
            is_private=bool(row.is_private),
            status=UploadStatus(row.status),
            created_at=row.created_at,
        )

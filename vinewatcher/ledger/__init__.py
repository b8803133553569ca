"""Durable upload ledger keyed by (content hash, server URL)."""

from vinewatcher.ledger.models import UploadRecordView, UploadStatus
from vinewatcher.ledger.store import UploadLedger

__all__ = ["UploadLedger", "UploadRecordView", "UploadStatus"]

"""Error taxonomy for the upload pipeline.

Startup errors (ConfigError, WatchSetupError) abort the process. The others are
per-unit and are caught by the coordinator: they end one file's processing or
mark one destination attempt as failed, never the whole pipeline.
"""

from typing import Optional


class VineWatcherError(Exception):
    """Base class for all pipeline errors."""


class ConfigError(VineWatcherError):
    """Home/config directory unusable or destinations document malformed."""


class WatchSetupError(VineWatcherError):
    """A filesystem watch could not be established on a watch root."""


class TransientFileError(VineWatcherError):
    """File vanished or became unreadable between notification and read."""


class EncryptionError(VineWatcherError):
    """Cipher failure or no secret key available for a private file."""


class TransportError(VineWatcherError):
    """Upload failed: connection error or non-2xx response."""

    def __init__(self, message: str, status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class LedgerError(VineWatcherError):
    """Ledger storage unavailable or corrupt."""

"""Content fingerprint: SHA-256 over the file's bytes, streamed in 1 MiB chunks."""

import hashlib
from dataclasses import dataclass
from pathlib import Path

from vinewatcher.errors import TransientFileError

CHUNK_SIZE = 1024 * 1024


@dataclass(frozen=True)
class Fingerprint:
    sha256: str  # hex digest
    size: int  # bytes actually hashed


def fingerprint_file(path: Path, chunk_size: int = CHUNK_SIZE) -> Fingerprint:
    """Hash path without loading it whole. Raises TransientFileError if it vanishes or can't be read."""
    hasher = hashlib.sha256()
    size = 0
    try:
        with open(path, "rb") as f:
            while True:
                chunk = f.read(chunk_size)
                if not chunk:
                    break
                hasher.update(chunk)
                size += len(chunk)
    except OSError as e:
        raise TransientFileError(f"Cannot read {path}: {e}") from e
    return Fingerprint(sha256=hasher.hexdigest(), size=size)

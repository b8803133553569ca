"""Secret key file: 32 raw bytes, generated once, loaded verbatim afterwards."""

import logging
import os
import secrets
from pathlib import Path
from typing import Optional

log = logging.getLogger(__name__)

KEY_SIZE = 32


def _write_key(path: Path, key: bytes) -> None:
    """Write key bytes with owner-only permissions where the platform supports it."""
    path.parent.mkdir(parents=True, exist_ok=True)
    fd = os.open(path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
    with os.fdopen(fd, "wb") as f:
        f.write(key)


def load_key(path: Path) -> Optional[bytes]:
    """Return the key if the file holds exactly 32 bytes, else None."""
    if not path.exists():
        return None
    data = path.read_bytes()
    if len(data) != KEY_SIZE:
        log.warning(
            "Key file %s has %d bytes (expected %d); private uploads disabled. "
            "Run with --regenerate-key to replace it.",
            path, len(data), KEY_SIZE,
        )
        return None
    return data


def load_or_create_key(path: Path) -> Optional[bytes]:
    """
    Load the key at path, or generate and persist one if the file is absent.
    A file of the wrong length counts as no key; it is never overwritten here.
    """
    if path.exists():
        return load_key(path)
    key = secrets.token_bytes(KEY_SIZE)
    _write_key(path, key)
    log.info("Generated new secret key at %s", path)
    return key


def regenerate_key(path: Path) -> bytes:
    """Overwrite the key file with a fresh key. Blobs made with the old key need the old key."""
    key = secrets.token_bytes(KEY_SIZE)
    _write_key(path, key)
    log.warning("Secret key at %s replaced", path)
    return key

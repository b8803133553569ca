"""Tests for content fingerprinting."""

import hashlib
from pathlib import Path

import pytest

from vinewatcher.errors import TransientFileError
from vinewatcher.fingerprint import Fingerprint, fingerprint_file


def test_same_bytes_same_fingerprint(tmp_path: Path) -> None:
    """Two files with identical bytes share a fingerprint regardless of name."""
    a = tmp_path / "a.txt"
    b = tmp_path / "other-name.bin"
    a.write_bytes(b"hello world")
    b.write_bytes(b"hello world")
    assert fingerprint_file(a) == fingerprint_file(b)
    assert fingerprint_file(a).sha256 == hashlib.sha256(b"hello world").hexdigest()
    assert fingerprint_file(a).size == 11


def test_one_byte_change_changes_fingerprint(tmp_path: Path) -> None:
    """Flipping one byte changes the digest."""
    f = tmp_path / "f.bin"
    data = bytearray(b"x" * 4096)
    f.write_bytes(bytes(data))
    before = fingerprint_file(f)
    data[2000] ^= 0x01
    f.write_bytes(bytes(data))
    after = fingerprint_file(f)
    assert before.sha256 != after.sha256
    assert before.size == after.size


def test_empty_file(tmp_path: Path) -> None:
    """A 0-byte file hashes to SHA-256 of empty input."""
    f = tmp_path / "empty"
    f.write_bytes(b"")
    fp = fingerprint_file(f)
    assert fp.size == 0
    assert fp.sha256 == hashlib.sha256(b"").hexdigest()


def test_streams_in_chunks(tmp_path: Path) -> None:
    """Small chunk size gives the same digest as hashing the whole body."""
    body = bytes(range(256)) * 50
    f = tmp_path / "chunked.bin"
    f.write_bytes(body)
    assert fingerprint_file(f, chunk_size=7) == Fingerprint(hashlib.sha256(body).hexdigest(), len(body))


def test_missing_file_raises_transient(tmp_path: Path) -> None:
    """A vanished file is a TransientFileError, not a crash."""
    with pytest.raises(TransientFileError):
        fingerprint_file(tmp_path / "gone.txt")

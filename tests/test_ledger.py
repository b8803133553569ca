"""Tests for the upload ledger on a real SQLite file."""

import asyncio
from pathlib import Path

import pytest

from vinewatcher.ledger import UploadLedger, UploadStatus

SHA = "ab" * 32
A = "https://a.example"
B = "https://b.example"


async def _open(tmp_path: Path) -> UploadLedger:
    ledger = UploadLedger(tmp_path / "state.sqlite")
    await ledger.init()
    return ledger


@pytest.mark.asyncio
async def test_empty_ledger_is_not_done(tmp_path: Path) -> None:
    """No record means not done, for one server or all."""
    ledger = await _open(tmp_path)
    try:
        assert await ledger.is_done(SHA, A) is False
        assert await ledger.is_done_for_all(SHA, [A, B]) is False
        assert await ledger.get(SHA, A) is None
    finally:
        await ledger.close()


@pytest.mark.asyncio
async def test_done_is_per_key(tmp_path: Path) -> None:
    """Done for (sha, A) says nothing about (sha, B) or another sha."""
    ledger = await _open(tmp_path)
    try:
        await ledger.upsert(SHA, 10, "Public/a.txt", False, A, UploadStatus.DONE)
        assert await ledger.is_done(SHA, A) is True
        assert await ledger.is_done(SHA, B) is False
        assert await ledger.is_done("cd" * 32, A) is False
    finally:
        await ledger.close()


@pytest.mark.asyncio
async def test_pending_and_failed_are_not_done(tmp_path: Path) -> None:
    ledger = await _open(tmp_path)
    try:
        await ledger.upsert(SHA, 10, "Public/a.txt", False, A, UploadStatus.PENDING)
        assert await ledger.is_done(SHA, A) is False
        await ledger.upsert(SHA, 10, "Public/a.txt", False, A, UploadStatus.FAILED)
        assert await ledger.is_done(SHA, A) is False
        assert (await ledger.get(SHA, A)).status is UploadStatus.FAILED
    finally:
        await ledger.close()


@pytest.mark.asyncio
async def test_is_done_for_all_needs_every_server(tmp_path: Path) -> None:
    """Adding a server makes a previously done-for-all hash not done-for-all."""
    ledger = await _open(tmp_path)
    try:
        await ledger.upsert(SHA, 10, "Public/a.txt", False, A, UploadStatus.DONE)
        assert await ledger.is_done_for_all(SHA, [A]) is True
        assert await ledger.is_done_for_all(SHA, [A, B]) is False
        await ledger.upsert(SHA, 10, "Public/a.txt", False, B, UploadStatus.FAILED)
        assert await ledger.is_done_for_all(SHA, [A, B]) is False
        await ledger.upsert(SHA, 10, "Public/a.txt", False, B, UploadStatus.DONE)
        assert await ledger.is_done_for_all(SHA, [A, B]) is True
    finally:
        await ledger.close()


@pytest.mark.asyncio
async def test_upsert_overwrites_fields_and_keeps_created_at(tmp_path: Path, monkeypatch) -> None:
    """Overwrite updates size/path/privacy/status; created_at stays the first-seen time."""
    from vinewatcher.ledger import store

    ledger = await _open(tmp_path)
    try:
        monkeypatch.setattr(store.time, "time", lambda: 1000.0)
        await ledger.upsert(SHA, 10, "Public/a.txt", False, A, UploadStatus.FAILED)
        monkeypatch.setattr(store.time, "time", lambda: 2000.0)
        await ledger.upsert(SHA, 11, "Private/b.txt", True, A, UploadStatus.DONE)
        rec = await ledger.get(SHA, A)
        assert rec.created_at == 1000
        assert rec.size_bytes == 11
        assert rec.rel_path == "Private/b.txt"
        assert rec.is_private is True
        assert rec.status is UploadStatus.DONE
        assert len(await ledger.records_for(SHA)) == 1
    finally:
        await ledger.close()


@pytest.mark.asyncio
async def test_done_is_never_downgraded(tmp_path: Path) -> None:
    """A racing unit recording pending/failed after done leaves the record done."""
    ledger = await _open(tmp_path)
    try:
        await ledger.upsert(SHA, 10, "Public/a.txt", False, A, UploadStatus.DONE)
        await ledger.upsert(SHA, 10, "Public/copy.txt", False, A, UploadStatus.PENDING)
        await ledger.upsert(SHA, 10, "Public/copy.txt", False, A, UploadStatus.FAILED)
        rec = await ledger.get(SHA, A)
        assert rec.status is UploadStatus.DONE
        assert rec.rel_path == "Public/a.txt"
    finally:
        await ledger.close()


@pytest.mark.asyncio
async def test_concurrent_upserts(tmp_path: Path) -> None:
    """Concurrent upserts to different and identical keys all land; one row per key."""
    ledger = await _open(tmp_path)
    try:
        shas = [f"{i:064x}" for i in range(10)]
        await asyncio.gather(
            *(ledger.upsert(s, 1, f"Public/{s[-2:]}", False, A, UploadStatus.DONE) for s in shas),
            *(ledger.upsert(SHA, 1, f"Public/same{i}", False, B, UploadStatus.DONE) for i in range(5)),
        )
        for s in shas:
            assert await ledger.is_done(s, A)
        assert [r.server_url for r in await ledger.records_for(SHA)] == [B]
    finally:
        await ledger.close()


@pytest.mark.asyncio
async def test_state_survives_reopen(tmp_path: Path) -> None:
    """Records persist across ledger instances (process restart)."""
    ledger = await _open(tmp_path)
    await ledger.upsert(SHA, 10, "Public/a.txt", False, A, UploadStatus.DONE)
    await ledger.close()

    reopened = await _open(tmp_path)
    try:
        assert await reopened.is_done(SHA, A) is True
    finally:
        await reopened.close()


@pytest.mark.asyncio
async def test_uses_wal_journal(tmp_path: Path) -> None:
    """The database file runs in WAL mode."""
    import sqlite3

    ledger = await _open(tmp_path)
    await ledger.upsert(SHA, 10, "Public/a.txt", False, A, UploadStatus.DONE)
    await ledger.close()
    conn = sqlite3.connect(tmp_path / "state.sqlite")
    try:
        assert conn.execute("PRAGMA journal_mode").fetchone()[0].lower() == "wal"
    finally:
        conn.close()

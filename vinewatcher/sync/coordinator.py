"""Ingestion coordinator: turns path notifications into uploads.

One intake queue is fed by the initial folder scan and by the file watcher. A
single consumer takes paths off the queue and starts one task per path. Each
task runs the same steps in order:

    wait for the debounce window -> classify (Public / Private / ignore)
    -> fingerprint -> skip if done on every server
    -> per server: skip if done, else [encrypt if private] -> upload -> record

The ledger is consulted before every network call, so content that already
reached a server is never sent there again, whatever path it appears under.
One server failing never stops attempts to the others; a failed attempt stays
'failed' in the ledger until the path is observed again.

The debounce is a flat sleep per unit, not a timer reset by later events: a
file still being written after the window may be read early, and its next
modify event will start a fresh unit.
"""

import asyncio
import logging
import os
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Dict, Optional, Set, Union

from vinewatcher.api.client import UploadClient
from vinewatcher.classify import WatchRole, is_ignored, relative_path, role_for
from vinewatcher.config import AppConfig
from vinewatcher.crypto import encrypt_blob
from vinewatcher.errors import EncryptionError, TransientFileError, TransportError
from vinewatcher.fingerprint import Fingerprint, fingerprint_file
from vinewatcher.ledger import UploadLedger, UploadStatus

log = logging.getLogger(__name__)

PathLike = Union[str, "os.PathLike[str]"]


class UnitState(str, Enum):
    DROPPED = "dropped"  # outside both roots, ignored name, or not a regular file
    VANISHED = "vanished"  # gone or unreadable before it could be fingerprinted
    SKIPPED = "skipped"  # already done on every server
    PROCESSED = "processed"


@dataclass
class UnitOutcome:
    """Where one observed path ended up, with the status recorded per server."""

    path: Path
    state: UnitState
    fingerprint: Optional[Fingerprint] = None
    results: Dict[str, UploadStatus] = field(default_factory=dict)


def _normalize(path: PathLike) -> Path:
    """Absolute path with the parent resolved, so it compares equal to the resolved roots."""
    p = Path(os.path.abspath(os.fspath(path)))
    try:
        return p.parent.resolve() / p.name
    except OSError:
        return p


def _encrypt_file(path: Path, key: bytes) -> bytes:
    try:
        plaintext = path.read_bytes()
    except OSError as e:
        raise TransientFileError(f"Cannot read {path}: {e}") from e
    return encrypt_blob(plaintext, key)


class IngestionCoordinator:
    """Consumes the intake queue and runs one concurrent unit of work per path."""

    def __init__(
        self,
        config: AppConfig,
        ledger: UploadLedger,
        client: UploadClient,
        queue: "Optional[asyncio.Queue[Path]]" = None,
    ) -> None:
        self._config = config
        self._ledger = ledger
        self._client = client
        self.queue: "asyncio.Queue[Path]" = queue or asyncio.Queue(maxsize=config.queue_size)
        # Strong references so running units are not garbage-collected
        self._tasks: Set["asyncio.Task[Optional[UnitOutcome]]"] = set()

    @property
    def in_flight(self) -> int:
        return len(self._tasks)

    async def enqueue(self, path: PathLike) -> None:
        """Put a path on the intake queue (waits while the queue is full)."""
        await self.queue.put(Path(path))

    async def prime_existing(self) -> int:
        """Queue every regular file directly under Public and Private. Returns how many."""
        count = 0
        for root in (self._config.public_dir, self._config.private_dir):
            try:
                entries = sorted(root.iterdir())
            except OSError as e:
                log.warning("Initial scan of %s failed: %s", root, e)
                continue
            for entry in entries:
                try:
                    if not entry.is_file():
                        continue
                except OSError:
                    continue
                await self.enqueue(entry)
                count += 1
        log.info("Initial scan queued %d files", count)
        return count

    async def run(self) -> None:
        """Consume the intake queue forever, one task per path."""
        log.info("Coordinator started (%d servers)", len(self._config.servers))
        while True:
            path = await self.queue.get()
            try:
                self._spawn(path)
            finally:
                self.queue.task_done()

    def _spawn(self, path: Path) -> "asyncio.Task[Optional[UnitOutcome]]":
        task = asyncio.create_task(self._run_unit(path), name=f"unit:{path.name}")
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def drain(self) -> None:
        """Wait until every unit started so far (and any they lead to) has finished."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def _run_unit(self, path: Path) -> Optional[UnitOutcome]:
        """Unit boundary: nothing raised while processing one path escapes past here."""
        try:
            return await self.process_path(path)
        except Exception:
            log.exception("Processing %s failed", path)
            return None

    async def process_path(self, path: PathLike) -> UnitOutcome:
        """Run one observed path through the whole pipeline."""
        cfg = self._config
        path = _normalize(path)

        if cfg.debounce_seconds > 0:
            await asyncio.sleep(cfg.debounce_seconds)

        role = role_for(path, cfg.public_dir, cfg.private_dir)
        if role is None:
            if is_ignored(path.name) and path.parent in (cfg.public_dir, cfg.private_dir):
                log.info("Not uploading %s: temporary or metadata file name", path)
            else:
                log.debug("Ignoring %s (not a watched file)", path)
            return UnitOutcome(path, UnitState.DROPPED)
        if not path.exists():
            log.warning("Skipping %s: file no longer present", path)
            return UnitOutcome(path, UnitState.VANISHED)
        if not path.is_file():
            log.debug("Ignoring %s (not a regular file)", path)
            return UnitOutcome(path, UnitState.DROPPED)

        try:
            fp = await asyncio.to_thread(fingerprint_file, path)
        except TransientFileError as e:
            log.warning("Skipping %s: %s", path, e)
            return UnitOutcome(path, UnitState.VANISHED)

        rel = relative_path(path, cfg.root)
        if await self._ledger.is_done_for_all(fp.sha256, cfg.servers):
            log.info("Already uploaded everywhere: %s (%s)", rel, fp.sha256[:12])
            return UnitOutcome(
                path, UnitState.SKIPPED, fp, {s: UploadStatus.DONE for s in cfg.servers}
            )

        outcome = UnitOutcome(path, UnitState.PROCESSED, fp)
        for server in cfg.servers:
            outcome.results[server] = await self._upload_to(server, path, fp, rel, role)
        return outcome

    async def _upload_to(
        self, server: str, path: Path, fp: Fingerprint, rel: str, role: WatchRole
    ) -> UploadStatus:
        """One server: skip if done, else (encrypt and) upload and record the result."""
        if await self._ledger.is_done(fp.sha256, server):
            log.debug("%s already on %s", rel, server)
            return UploadStatus.DONE

        is_private = role.encrypts
        await self._ledger.upsert(fp.sha256, fp.size, rel, is_private, server, UploadStatus.PENDING)
        try:
            if is_private:
                key = self._config.key
                if key is None:
                    raise EncryptionError("no secret key; refusing to upload private file")
                blob = await asyncio.to_thread(_encrypt_file, path, key)
                await self._client.upload_blob(server, blob)
            else:
                await self._client.upload_public(server, path, fp.size)
        except (EncryptionError, TransportError, TransientFileError) as e:
            log.warning("Upload %s to %s failed: %s", rel, server, e)
            status = UploadStatus.FAILED
        except Exception:
            # Unexpected client error: record it against this server and move on to the next
            log.exception("Upload %s to %s failed unexpectedly", rel, server)
            status = UploadStatus.FAILED
        else:
            log.info("Uploaded %s to %s (%d bytes%s)", rel, server, fp.size, ", encrypted" if is_private else "")
            status = UploadStatus.DONE
        await self._ledger.upsert(fp.sha256, fp.size, rel, is_private, server, status)
        return status

"""Watch the Public and Private folders (non-recursive) and feed changed paths to the intake queue.

Uses the watchdog library. Its observer thread pushes paths into the coordinator's
asyncio queue and blocks while the queue is full, so a burst of events back-pressures
the observer instead of growing memory. Bursts on one file are not collapsed here;
the coordinator's debounce window handles them.
"""

import asyncio
import concurrent.futures
import logging
import os
import threading
from pathlib import Path
from typing import Callable, Iterable, List

from watchdog.events import FileSystemEvent, FileSystemEventHandler
from watchdog.observers import Observer

from vinewatcher.errors import WatchSetupError

log = logging.getLogger(__name__)


class IntakeEventHandler(FileSystemEventHandler):
    """Translates watchdog events into path notifications (created, modified, moved-in)."""

    def __init__(self, publish: Callable[[Path], None], roots: Iterable[Path]) -> None:
        super().__init__()
        self._publish = publish
        self._roots = {Path(r) for r in roots}

    def _emit(self, raw_path) -> None:
        path = Path(os.fsdecode(raw_path))
        self._publish(path)

    def on_created(self, event: FileSystemEvent) -> None:
        if event.is_directory:
            return
        log.debug("Created: %s", event.src_path)
        self._emit(event.src_path)

    def on_modified(self, event: FileSystemEvent) -> None:
        # Directory modifications are just child churn
        if event.is_directory:
            return
        log.debug("Modified: %s", event.src_path)
        self._emit(event.src_path)

    def on_moved(self, event: FileSystemEvent) -> None:
        """A rename into a watched folder counts as a new file; renames away are ignored."""
        if event.is_directory:
            return
        dest = Path(os.fsdecode(event.dest_path))
        if dest.parent in self._roots:
            log.debug("Moved in: %s -> %s", event.src_path, dest)
            self._publish(dest)


class DirectoryWatcher:
    """Owns the watchdog observer for the two watch roots."""

    def __init__(
        self,
        roots: Iterable[Path],
        queue: "asyncio.Queue[Path]",
        loop: asyncio.AbstractEventLoop,
    ) -> None:
        self._roots: List[Path] = [Path(r) for r in roots]
        self._queue = queue
        self._loop = loop
        self._handler = IntakeEventHandler(self._publish, self._roots)
        self._observer = Observer()
        self._stopping = threading.Event()

    def _publish(self, path: Path) -> None:
        """Called on the observer thread: hand the path to the event loop and wait for queue space."""
        if self._loop.is_closed():
            return
        try:
            fut = asyncio.run_coroutine_threadsafe(self._queue.put(path), self._loop)
            while not self._stopping.is_set():
                try:
                    fut.result(timeout=1.0)
                    return
                except concurrent.futures.TimeoutError:
                    continue
            fut.cancel()
        except (RuntimeError, concurrent.futures.CancelledError) as e:
            # Loop shut down while events were still arriving
            log.debug("Dropping %s: event loop unavailable (%s)", path, e)

    def start(self) -> None:
        """Schedule both roots and start the observer. Raises WatchSetupError on any failure."""
        for root in self._roots:
            if not root.is_dir():
                raise WatchSetupError(f"Cannot watch {root}: not a directory")
            try:
                self._observer.schedule(self._handler, str(root), recursive=False)
            except OSError as e:
                raise WatchSetupError(f"Cannot watch {root}: {e}") from e
        try:
            self._observer.start()
        except OSError as e:
            raise WatchSetupError(f"Cannot start file watcher: {e}") from e
        for root in self._roots:
            log.info("Watching %s", root)

    def stop(self) -> None:
        """Stop and join the observer. Blocks; call from a worker thread when the loop is running."""
        self._stopping.set()
        if self._observer.is_alive():
            self._observer.stop()
            self._observer.join()
            log.info("File watcher stopped")

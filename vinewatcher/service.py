"""Start operation: wire config, ledger, upload client, coordinator and watcher, then run."""

import asyncio
import logging
from typing import Optional

from vinewatcher.api.client import UploadClient
from vinewatcher.config import AppConfig, Settings, load_app_config
from vinewatcher.ledger import UploadLedger
from vinewatcher.sync.coordinator import IngestionCoordinator
from vinewatcher.watcher import DirectoryWatcher

log = logging.getLogger(__name__)


async def start_pipeline(
    settings: Optional[Settings] = None,
    config: Optional[AppConfig] = None,
    client: Optional[UploadClient] = None,
) -> None:
    """
    Boot the pipeline and run until cancelled. Startup failures (ConfigError,
    WatchSetupError, LedgerError from opening the database) propagate to the caller.
    The watcher starts before the initial scan so nothing written during the
    scan is missed; duplicates are harmless since the ledger is checked per unit.
    """
    cfg = config or load_app_config(settings)
    ledger = UploadLedger(cfg.db_path)
    await ledger.init()
    client = client or UploadClient(timeout=cfg.upload_timeout_seconds)
    coordinator = IngestionCoordinator(cfg, ledger, client)
    watcher = DirectoryWatcher(
        (cfg.public_dir, cfg.private_dir), coordinator.queue, asyncio.get_running_loop()
    )
    consumer: Optional[asyncio.Task] = None
    try:
        watcher.start()
        consumer = asyncio.create_task(coordinator.run(), name="intake-consumer")
        await coordinator.prime_existing()
        log.info("VineWatcher running")
        await consumer
    finally:
        if consumer is not None:
            consumer.cancel()
        # Observer thread may be waiting on the loop for queue space; join it off-loop
        await asyncio.to_thread(watcher.stop)
        await ledger.close()

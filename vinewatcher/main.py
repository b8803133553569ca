"""Entry point: logging, optional key regeneration, run the upload pipeline."""

import asyncio
import logging
import sys
from pathlib import Path

from vinewatcher.config import KEY_FILE_NAME, LOG_FILE_NAME, Settings, get_config_dir, get_settings
from vinewatcher.errors import ConfigError, LedgerError, WatchSetupError
from vinewatcher.keys import regenerate_key
from vinewatcher.service import start_pipeline


def _setup_logging(settings: Settings, config_dir: Path) -> None:
    """Configure logging to a file in the config dir and to stderr (level from settings)."""
    level = getattr(logging, settings.log_level.upper(), logging.INFO)
    log_file = Path(settings.log_file) if settings.log_file.strip() else config_dir / LOG_FILE_NAME
    fmt = logging.Formatter(
        "%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )
    root = logging.getLogger("vinewatcher")
    root.setLevel(logging.DEBUG)
    root.handlers.clear()
    ch = logging.StreamHandler(sys.stderr)
    ch.setLevel(level)
    ch.setFormatter(fmt)
    root.addHandler(ch)
    try:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        fh = logging.FileHandler(log_file, encoding="utf-8")
        fh.setLevel(logging.DEBUG)
        fh.setFormatter(fmt)
        root.addHandler(fh)
        root.info("Logging to %s", log_file)
    except OSError as e:
        root.warning("Could not open log file %s: %s", log_file, e)


def main() -> None:
    """Run VineWatcher until interrupted. Exits 1 on startup failure."""
    log = logging.getLogger("vinewatcher.main")
    try:
        settings = get_settings()
        config_dir = get_config_dir(settings)
    except ConfigError as e:
        logging.basicConfig(level=logging.INFO)
        log.error("Startup failed: %s", e)
        sys.exit(1)
    _setup_logging(settings, config_dir)

    # Overwriting a key is explicit only: old private blobs need the old key to decrypt
    if "--regenerate-key" in sys.argv:
        key_path = config_dir / KEY_FILE_NAME
        try:
            regenerate_key(key_path)
        except OSError as e:
            log.error("Could not write %s: %s", key_path, e)
            sys.exit(1)
        log.info("New secret key written to %s", key_path)
        sys.exit(0)

    log.info("VineWatcher starting")
    try:
        asyncio.run(start_pipeline(settings))
    except (ConfigError, WatchSetupError, LedgerError) as e:
        log.error("Startup failed: %s", e)
        sys.exit(1)
    except KeyboardInterrupt:
        log.info("Stopped by user")


if __name__ == "__main__":
    main()

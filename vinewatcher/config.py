"""Configuration: config directory, environment settings, destinations, watch roots."""

import json
import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional, Tuple

import httpx
from pydantic import BaseModel, ValidationError, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from vinewatcher.errors import ConfigError
from vinewatcher.keys import load_or_create_key

log = logging.getLogger(__name__)

DEFAULT_SERVER_URL = "https://blossom.example"
PUBLIC_DIR_NAME = "Public"
PRIVATE_DIR_NAME = "Private"

SERVERS_FILE_NAME = "servers.json"
KEY_FILE_NAME = "private.key"
DB_FILE_NAME = "state.sqlite"
LOG_FILE_NAME = "vinewatcher.log"


def _default_config_dir() -> Path:
    """Platform-specific config directory (no admin)."""
    if os.name == "nt":
        base = os.environ.get("APPDATA", os.path.expanduser("~"))
        return Path(base) / "VineWatcher"
    if os.environ.get("XDG_CONFIG_HOME"):
        return Path(os.environ["XDG_CONFIG_HOME"]) / "vinewatcher"
    return Path.home() / ".config" / "vinewatcher"


def _default_root() -> Path:
    """Default watched root: ~/Bloom."""
    return Path.home() / "Bloom"


class Settings(BaseSettings):
    """Runtime settings from env (VINEWATCHER_ROOT, VINEWATCHER_CONFIG_DIR, ...)."""

    model_config = SettingsConfigDict(env_prefix="VINEWATCHER_", extra="ignore")

    root: Optional[Path] = None
    config_dir: Optional[Path] = None

    # Quiescence window before a changed file is read
    debounce_seconds: float = 2.0
    queue_size: int = 1024
    upload_timeout_seconds: float = 600.0

    # Logging (empty log_file = vinewatcher.log in config dir)
    log_level: str = "INFO"
    log_file: str = ""

    @field_validator("debounce_seconds", "upload_timeout_seconds")
    @classmethod
    def _non_negative(cls, v: float) -> float:
        if v < 0:
            raise ValueError("must be >= 0")
        return v

    @field_validator("queue_size")
    @classmethod
    def _positive(cls, v: int) -> int:
        if v < 1:
            raise ValueError("must be >= 1")
        return v


def get_settings() -> Settings:
    """Return settings from the environment. Invalid values raise ConfigError."""
    try:
        return Settings()
    except ValidationError as e:
        raise ConfigError(f"Invalid VINEWATCHER_* setting: {e}") from e


def get_config_dir(settings: Optional[Settings] = None) -> Path:
    """Config dir (settings override or platform default). Raises ConfigError without a home dir."""
    settings = settings or get_settings()
    if settings.config_dir:
        return Path(settings.config_dir).expanduser()
    try:
        return _default_config_dir()
    except RuntimeError as e:
        # Path.home() raises RuntimeError when the home directory cannot be determined
        raise ConfigError(f"No home directory: {e}") from e


def get_root(settings: Optional[Settings] = None) -> Path:
    """Watched root containing Public/ and Private/."""
    settings = settings or get_settings()
    if settings.root:
        return Path(settings.root).expanduser()
    try:
        return _default_root()
    except RuntimeError as e:
        raise ConfigError(f"No home directory: {e}") from e


class ServersConfig(BaseModel):
    """Shape of servers.json: {"servers": ["https://...", ...]}."""

    servers: List[str]

    @field_validator("servers")
    @classmethod
    def _normalize(cls, servers: List[str]) -> List[str]:
        out: List[str] = []
        for raw in servers:
            url = raw.strip().rstrip("/")
            if not url.startswith(("http://", "https://")):
                raise ValueError(f"not an http(s) URL: {raw!r}")
            try:
                parsed = httpx.URL(url)
            except httpx.InvalidURL as e:
                raise ValueError(f"invalid URL {raw!r}: {e}") from e
            if not parsed.host:
                raise ValueError(f"URL has no host: {raw!r}")
            if url not in out:
                out.append(url)
        if not out:
            raise ValueError("at least one server is required")
        return out


def load_servers(path: Path) -> List[str]:
    """
    Load destination URLs from servers.json. If the file is absent, write the
    default single-server document and return it. Malformed documents raise ConfigError.
    """
    if not path.exists():
        default = ServersConfig(servers=[DEFAULT_SERVER_URL])
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text(json.dumps(default.model_dump(), indent=2), encoding="utf-8")
        except OSError as e:
            raise ConfigError(f"Cannot write {path}: {e}") from e
        log.info("Wrote default destinations to %s", path)
        return default.servers
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
        return ServersConfig.model_validate(data).servers
    except (json.JSONDecodeError, ValidationError, OSError) as e:
        raise ConfigError(f"Malformed destinations document {path}: {e}") from e


def ensure_watch_dirs(root: Path) -> Tuple[Path, Path]:
    """Create root/Public and root/Private if missing. Returns (public, private)."""
    public = root / PUBLIC_DIR_NAME
    private = root / PRIVATE_DIR_NAME
    try:
        public.mkdir(parents=True, exist_ok=True)
        private.mkdir(parents=True, exist_ok=True)
    except OSError as e:
        raise ConfigError(f"Cannot create watch folders under {root}: {e}") from e
    return public.resolve(), private.resolve()


@dataclass(frozen=True)
class AppConfig:
    """Loaded once at startup and shared read-only with every unit of work."""

    root: Path
    public_dir: Path
    private_dir: Path
    servers: Tuple[str, ...]
    key: Optional[bytes]
    db_path: Path
    debounce_seconds: float = 2.0
    queue_size: int = 1024
    upload_timeout_seconds: float = 600.0

    @property
    def has_key(self) -> bool:
        return self.key is not None


def load_app_config(settings: Optional[Settings] = None) -> AppConfig:
    """
    Build the AppConfig: create config dir and watch folders, load destinations,
    load or create the secret key. Any failure here is fatal (ConfigError).
    """
    settings = settings or get_settings()
    cfg_dir = get_config_dir(settings)
    try:
        cfg_dir.mkdir(parents=True, exist_ok=True)
    except OSError as e:
        raise ConfigError(f"Cannot create config dir {cfg_dir}: {e}") from e

    root = get_root(settings)
    public, private = ensure_watch_dirs(root)
    servers = load_servers(cfg_dir / SERVERS_FILE_NAME)
    try:
        key = load_or_create_key(cfg_dir / KEY_FILE_NAME)
    except OSError as e:
        raise ConfigError(f"Cannot read or create secret key: {e}") from e

    cfg = AppConfig(
        root=root.resolve(),
        public_dir=public,
        private_dir=private,
        servers=tuple(servers),
        key=key,
        db_path=cfg_dir / DB_FILE_NAME,
        debounce_seconds=settings.debounce_seconds,
        queue_size=settings.queue_size,
        upload_timeout_seconds=settings.upload_timeout_seconds,
    )
    log.info(
        "Config loaded (root=%s, servers=%d, private key %s)",
        cfg.root, len(cfg.servers), "loaded" if cfg.has_key else "MISSING",
    )
    return cfg

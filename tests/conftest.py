"""Pytest configuration: point config dir and watched root at a temp dir before package imports."""

import os
import tempfile
from pathlib import Path

import pytest

# Set before vinewatcher.config is used so tests never touch the real home
_tmp = tempfile.mkdtemp(prefix="vinewatcher_test_")
os.environ.setdefault("VINEWATCHER_CONFIG_DIR", os.path.join(_tmp, "config"))
os.environ.setdefault("VINEWATCHER_ROOT", os.path.join(_tmp, "Bloom"))


@pytest.fixture
def app_config(tmp_path: Path):
    """AppConfig with real Public/Private folders under tmp_path, two servers, a key and no debounce."""
    from vinewatcher.config import AppConfig

    root = tmp_path / "Bloom"
    public = root / "Public"
    private = root / "Private"
    public.mkdir(parents=True)
    private.mkdir(parents=True)
    return AppConfig(
        root=root.resolve(),
        public_dir=public.resolve(),
        private_dir=private.resolve(),
        servers=("https://a.example", "https://b.example"),
        key=bytes(range(32)),
        db_path=tmp_path / "state.sqlite",
        debounce_seconds=0.0,
        queue_size=16,
    )

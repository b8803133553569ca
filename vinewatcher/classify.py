"""Map a path to its watch root (Public, Private or neither)."""

import fnmatch
from enum import Enum
from pathlib import Path
from typing import Optional

# File-manager metadata and partial/temp files: never uploaded.
IGNORE_BASENAMES: frozenset[str] = frozenset({
    ".directory",   # KDE Dolphin view settings
    "Thumbs.db",    # Windows thumbnail cache
    "Desktop.ini",  # Windows folder customisation
    ".DS_Store",    # macOS Finder metadata
})
IGNORE_PATTERNS = ("*.tmp", "*.part", "*.crdownload", "*.swp", "~$*")


class WatchRole(str, Enum):
    PUBLIC = "public"
    PRIVATE = "private"
    NEITHER = "neither"

    @property
    def encrypts(self) -> bool:
        return self is WatchRole.PRIVATE


def classify_path(path: Path, public_dir: Path, private_dir: Path) -> WatchRole:
    """
    Classify by direct containment: only immediate children of a root count,
    since roots are watched non-recursively.
    """
    parent = Path(path).parent
    if parent == private_dir:
        return WatchRole.PRIVATE
    if parent == public_dir:
        return WatchRole.PUBLIC
    return WatchRole.NEITHER


def relative_path(path: Path, root: Path) -> str:
    """POSIX path relative to the watched root (e.g. 'Public/photo.jpg'); absolute path if outside."""
    try:
        return Path(path).relative_to(root).as_posix()
    except ValueError:
        return Path(path).as_posix()


def is_ignored(name: str) -> bool:
    """True for metadata/temp basenames that should never be uploaded."""
    if name in IGNORE_BASENAMES:
        return True
    return any(fnmatch.fnmatch(name, pat) for pat in IGNORE_PATTERNS)


def role_for(path: Path, public_dir: Path, private_dir: Path) -> Optional[WatchRole]:
    """classify_path, with ignored files and paths outside both roots mapped to None."""
    if is_ignored(Path(path).name):
        return None
    role = classify_path(path, public_dir, private_dir)
    return None if role is WatchRole.NEITHER else role

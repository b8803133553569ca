"""VineWatcher: upload new files from the Public and Private folders to storage servers."""

__version__ = "0.1.0"

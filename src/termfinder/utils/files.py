"""Utility helpers for working with files."""

from __future__ import annotations

from pathlib import Path
from typing import Container


def has_extension(path: Path, extensions: Container[str]) -> bool:
    """Return True when the lowercase suffix of ``path`` is in ``extensions``."""
    return path.suffix.lower() in extensions


def last_modified(path: Path) -> int:
    """Modification time of ``path`` in nanoseconds.

    Raises ``OSError`` when the metadata cannot be read.
    """
    return path.stat().st_mtime_ns

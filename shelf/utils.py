"""Utility functions for mangashelf."""

from __future__ import annotations

import re
from urllib.parse import quote

_EXTENSION = re.compile(r"\.[^/.]+$")
_UNSAFE = re.compile(r"[^a-z0-9 _.-]+", re.IGNORECASE)
_WHITESPACE = re.compile(r"\s+")

MAX_FILENAME_LENGTH = 120


def make_safe_filename(name: str, ext: str = "cbz") -> str:
    """Reduce a display name to a portable download filename.

    Example: "One Piece: Vol/1.cbz" -> "One Piece Vol1.cbz"
    """
    base = _EXTENSION.sub("", str(name or "manga"))
    base = _UNSAFE.sub("", base)
    base = _WHITESPACE.sub(" ", base).strip()[:MAX_FILENAME_LENGTH]
    base = base.rstrip(".") or "manga"
    return f"{base}.{ext}"


def build_read_url(manga_id: str) -> str:
    return f"/api/manga/{quote(manga_id, safe='')}/read"


def build_download_url(manga_id: str, name: str) -> str:
    filename = quote(make_safe_filename(name), safe="")
    return f"/api/manga/{quote(manga_id, safe='')}/download?filename={filename}"

"""Archive handling for mangashelf.

Decodes a CBZ (zip of images) byte stream into an ordered list of pages.
Page order: natural sort on the entry path (page2 before page10).
"""

from __future__ import annotations

import dataclasses
import io
import re
import uuid
import zipfile
import zlib
from datetime import datetime
from pathlib import PurePosixPath
from typing import Callable, List, Optional

from .errors import CorruptArchiveError, EmptyArchiveError
from .logging_config import get_logger
from .models import MangaRecord, Page, PageResource, utcnow

logger = get_logger(__name__)

IMAGE_EXTENSIONS = {".jpg", ".jpeg", ".png", ".gif", ".webp"}
ARCHIVE_EXTENSIONS = {".cbz"}

_CONTENT_TYPES = {
    ".jpg": "image/jpeg",
    ".jpeg": "image/jpeg",
    ".png": "image/png",
    ".gif": "image/gif",
    ".webp": "image/webp",
}

_DIGITS = re.compile(r"([0-9]+)")

# Errors zipfile raises while opening a damaged container or reading a member.
_OPEN_ERRORS = (zipfile.BadZipFile, zipfile.LargeZipFile, ValueError, EOFError)
_READ_ERRORS = (zipfile.BadZipFile, zlib.error, EOFError, NotImplementedError, RuntimeError)
_ARCHIVE_ERRORS = _OPEN_ERRORS + _READ_ERRORS


def _suffix(filename: str) -> str:
    return PurePosixPath(filename.replace("\\", "/")).suffix.lower()


def is_image(filename: str) -> bool:
    return _suffix(filename) in IMAGE_EXTENSIONS


def is_archive_name(filename: str) -> bool:
    return _suffix(filename) in ARCHIVE_EXTENSIONS


def content_type_for(filename: str) -> str:
    return _CONTENT_TYPES.get(_suffix(filename), "application/octet-stream")


def archive_display_name(filename: str) -> str:
    """Base name of the archive with its extension stripped."""
    name = PurePosixPath(filename.replace("\\", "/")).name
    stem = PurePosixPath(name).stem
    return stem or name or "Untitled"


def natural_sort_key(name: str):
    """Sort key so that 1, 2, 10 order correctly (not 1, 10, 2).

    Digit runs compare as integers, everything else as literal text. The raw
    name breaks ties (page01 vs page1) so the order is total.
    """
    parts = _DIGITS.split(name)
    return tuple(int(part) if i % 2 else part for i, part in enumerate(parts)), name


@dataclasses.dataclass
class ExtractionResult:
    pages: List[Page]
    manga: MangaRecord

    def release(self) -> None:
        for page in self.pages:
            page.resource.release()


class ArchiveExtractor:
    """Turns CBZ bytes into pages and a fresh MangaRecord."""

    def __init__(
        self,
        id_factory: Optional[Callable[[], str]] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.id_factory = id_factory or (lambda: str(uuid.uuid4()))
        self.clock = clock or utcnow

    def read_pages(self, data: bytes) -> List[Page]:
        """Return the archive's image entries as naturally ordered pages.

        Allocates one resource per page; releasing them is the caller's job.
        """
        try:
            zf = zipfile.ZipFile(io.BytesIO(data), mode="r")
        except _OPEN_ERRORS as exc:
            raise CorruptArchiveError(f"Not a valid zip archive: {exc}") from exc

        with zf:
            entries = [
                info for info in zf.infolist()
                if not info.is_dir() and is_image(info.filename)
            ]
            if not entries:
                raise EmptyArchiveError("Archive contains no page images")

            entries.sort(key=lambda info: natural_sort_key(info.filename))

            pages: List[Page] = []
            try:
                for index, info in enumerate(entries):
                    resource = PageResource(zf.read(info), content_type_for(info.filename))
                    pages.append(Page(index=index, name=info.filename, resource=resource))
            except _READ_ERRORS as exc:
                for page in pages:
                    page.resource.release()
                raise CorruptArchiveError(f"Unreadable entry in archive: {exc}") from exc

        logger.debug(f"Read {len(pages)} pages from archive")
        return pages

    def read_page(self, data: bytes, page_index: int) -> Optional[tuple[bytes, str]]:
        """Return (image_bytes, content_type) for one page at 0-based index.

        Reads the single requested entry instead of materializing every page.
        """
        if page_index < 0:
            return None
        try:
            with zipfile.ZipFile(io.BytesIO(data), mode="r") as zf:
                names = [
                    info.filename for info in zf.infolist()
                    if not info.is_dir() and is_image(info.filename)
                ]
                names.sort(key=natural_sort_key)
                if page_index >= len(names):
                    return None
                name = names[page_index]
                return zf.read(name), content_type_for(name)
        except _ARCHIVE_ERRORS as exc:
            raise CorruptArchiveError(f"Unreadable archive: {exc}") from exc

    def extract(self, data: bytes, filename: str) -> ExtractionResult:
        """Read pages and build the MangaRecord for a freshly imported archive."""
        pages = self.read_pages(data)
        manga = MangaRecord(
            id=self.id_factory(),
            name=archive_display_name(filename),
            page_count=len(pages),
            added_at=self.clock(),
        )
        return ExtractionResult(pages=pages, manga=manga)

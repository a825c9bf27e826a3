"""Cover thumbnail generation for mangashelf.

Generates a JPEG thumbnail from the first page of an imported archive,
stored under `thumbnails/{manga_id}.jpg`.
"""

from __future__ import annotations

from io import BytesIO
from pathlib import Path

from PIL import Image, UnidentifiedImageError

from .config import ThumbnailConfig
from .errors import ResourceReleasedError
from .logging_config import get_logger
from .models import Page

logger = get_logger(__name__)


def _save_thumbnail(
    img_bytes: bytes,
    thumb_path: Path,
    width: int,
    height: int,
    quality: int,
) -> None:
    thumb_path.parent.mkdir(parents=True, exist_ok=True)
    with Image.open(BytesIO(img_bytes)) as im:
        im = im.convert("RGB")
        im.thumbnail((width, height))
        im.save(thumb_path, format="JPEG", quality=quality, optimize=True)


class ThumbnailWriter:
    def __init__(self, directory: Path, config: ThumbnailConfig | None = None):
        self.directory = directory
        self.config = config or ThumbnailConfig()

    def path_for(self, manga_id: str) -> Path:
        return self.directory / f"{manga_id}.jpg"

    def write_cover(self, manga_id: str, page: Page) -> bool:
        """Render the cover thumbnail. Returns True if successful, False otherwise."""
        try:
            _save_thumbnail(
                page.resource.read(),
                self.path_for(manga_id),
                self.config.width,
                self.config.height,
                self.config.quality,
            )
        except (
            UnidentifiedImageError,
            Image.DecompressionBombError,
            OSError,
            ValueError,
            ResourceReleasedError,
        ) as exc:
            logger.error(f"Failed to save thumbnail for {manga_id} ({page.name}): {exc}")
            return False
        return True

    def remove(self, manga_id: str) -> bool:
        thumb_path = self.path_for(manga_id)
        if not thumb_path.exists():
            return False
        try:
            thumb_path.unlink()
        except OSError as exc:
            logger.error(f"Failed to delete thumbnail {thumb_path}: {exc}")
            return False
        return True

    def cleanup_orphans(self, valid_ids: set[str]) -> int:
        """Remove thumbnail files that don't have corresponding manga in the library.

        Returns count of deleted orphaned thumbnails.
        """
        if not self.directory.exists():
            return 0

        deleted = 0
        for thumb_file in self.directory.glob("*.jpg"):
            if thumb_file.stem not in valid_ids and self.remove(thumb_file.stem):
                deleted += 1
        return deleted

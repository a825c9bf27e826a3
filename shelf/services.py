"""Library services: import, resume and removal of manga.

Ties the extractor, the library store, the archive cache and cover
thumbnails together. Keeps that orchestration out of the reader session,
the CLI and the API routes.
"""

from __future__ import annotations

from pathlib import Path
from typing import List, Optional

from sqlalchemy.exc import SQLAlchemyError

from .archive import ArchiveExtractor, ExtractionResult, is_archive_name
from .cache import ArchiveCache
from .config import ShelfConfig
from .database import create_db_engine, init_db
from .errors import ArchiveUnavailableError, StorageError, UnsupportedArchiveError
from .library import LibraryStore
from .logging_config import get_logger
from .models import MangaRecord, Page
from .storage import MemoryGateway, PersistenceGateway, SqlGateway
from .thumbnails import ThumbnailWriter

logger = get_logger(__name__)


class LibraryService:
    def __init__(
        self,
        library: LibraryStore,
        extractor: Optional[ArchiveExtractor] = None,
        cache: Optional[ArchiveCache] = None,
        thumbnails: Optional[ThumbnailWriter] = None,
    ):
        self.library = library
        self.extractor = extractor or ArchiveExtractor()
        self.cache = cache
        self.thumbnails = thumbnails

    def extract(self, data: bytes, filename: str) -> ExtractionResult:
        """Decode an archive without touching library state. Safe off the event loop."""
        if not is_archive_name(filename):
            raise UnsupportedArchiveError(f"Not a .cbz archive: {filename}")
        return self.extractor.extract(data, filename)

    def register(self, result: ExtractionResult, data: bytes) -> MangaRecord:
        """Record a successful extraction in the library, cache and thumbnails."""
        manga = result.manga
        self.library.add_manga(manga)

        if self.cache is not None:
            try:
                self.cache.put(manga.id, data)
            except StorageError as exc:
                logger.warning(f"'{manga.name}' will not be resumable after restart: {exc}")

        if self.thumbnails is not None and result.pages:
            self.thumbnails.write_cover(manga.id, result.pages[0])

        return manga

    def import_bytes(self, data: bytes, filename: str) -> ExtractionResult:
        result = self.extract(data, filename)
        try:
            self.register(result, data)
        except Exception:
            result.release()
            raise
        return result

    def import_file(self, path: Path) -> MangaRecord:
        """Import an archive from disk without keeping its pages open."""
        if not is_archive_name(path.name):
            raise UnsupportedArchiveError(f"Not a .cbz archive: {path.name}")
        data = path.read_bytes()
        result = self.import_bytes(data, path.name)
        result.release()
        return result.manga

    def _archive_bytes(self, manga_id: str) -> bytes:
        if self.cache is None:
            raise ArchiveUnavailableError(manga_id)
        try:
            data = self.cache.get(manga_id)
        except StorageError as exc:
            raise ArchiveUnavailableError(manga_id, str(exc)) from exc
        if data is None:
            raise ArchiveUnavailableError(manga_id)
        return data

    def load_pages(self, manga_id: str) -> List[Page]:
        """Re-read the pages of a known manga from its cached archive."""
        return self.extractor.read_pages(self._archive_bytes(manga_id))

    def page_image(self, manga_id: str, page_index: int) -> Optional[tuple[bytes, str]]:
        if self.library.get_manga(manga_id) is None:
            return None
        return self.extractor.read_page(self._archive_bytes(manga_id), page_index)

    def remove(self, manga_id: str) -> bool:
        """Remove a manga with its progress, cached archive and thumbnail."""
        removed = self.library.remove_manga(manga_id)
        if self.cache is not None:
            self.cache.remove(manga_id)
        if self.thumbnails is not None:
            self.thumbnails.remove(manga_id)
        return removed

    def cleanup(self) -> int:
        """Delete cached archives and thumbnails of manga no longer in the library."""
        valid_ids = {m.id for m in self.library.list_manga()}
        deleted = 0
        if self.cache is not None:
            deleted += self.cache.cleanup_orphans(valid_ids)
        if self.thumbnails is not None:
            deleted += self.thumbnails.cleanup_orphans(valid_ids)
        return deleted


def build_gateway(config: ShelfConfig) -> PersistenceGateway:
    """Create the configured gateway, falling back to memory when SQLite is unusable."""
    namespace = config.storage.namespace
    if config.storage.backend == "memory":
        return MemoryGateway(namespace)
    try:
        engine = create_db_engine(config.database_path)
        init_db(engine)
    except (SQLAlchemyError, OSError) as exc:
        logger.warning(f"Database unavailable ({exc}); library will not be saved this session")
        return MemoryGateway(namespace)
    return SqlGateway(engine, namespace)


def build_services(config: ShelfConfig) -> LibraryService:
    library = LibraryStore(build_gateway(config))
    return LibraryService(
        library,
        cache=ArchiveCache(config.archives_dir),
        thumbnails=ThumbnailWriter(config.thumbnails_dir, config.thumbnails),
    )

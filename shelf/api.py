"""FastAPI listing server for mangashelf.

Exposes:
- GET /api/manga                          (collection listing)
- GET /api/manga/{manga_id}/read          (archive, inline)
- GET /api/manga/{manga_id}/download      (archive, attachment)
- GET /api/manga/{manga_id}/pages/{index} (single page image)
- GET /api/manga/{manga_id}/thumbnail
- GET /api/manga/{manga_id}/progress
"""

from __future__ import annotations

import asyncio
import logging
import os
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Optional

from fastapi import Depends, FastAPI, HTTPException, Query, Response
from fastapi.responses import FileResponse
from pydantic import BaseModel, ConfigDict, Field

from .config import ShelfConfig, get_config
from .errors import ArchiveUnavailableError, CorruptArchiveError
from .logging_config import get_logger
from .models import ProgressRecord
from .services import LibraryService, build_services
from .utils import build_download_url, build_read_url, make_safe_filename

logger = get_logger(__name__)

CBZ_MEDIA_TYPE = "application/vnd.comicbook+zip"


class MangaItem(BaseModel):
    """Listing entry, serialized with camelCase keys."""

    model_config = ConfigDict(populate_by_name=True)

    id: str
    name: str
    size: Optional[int] = None
    created_time: Optional[datetime] = Field(default=None, alias="createdTime")
    modified_time: Optional[datetime] = Field(default=None, alias="modifiedTime")
    page_count: int = Field(alias="pageCount")
    progress_percent: int = Field(default=0, alias="progressPercent")
    read_url: str = Field(alias="readUrl")
    download_url: str = Field(alias="downloadUrl")


_services: Optional[LibraryService] = None


def get_services() -> LibraryService:
    """Return the process-wide LibraryService, built from config on first use.

    The library is re-read on every request so archives imported by other
    processes (`mangashelf add`, `mangashelf watch`) show up without a restart.
    """
    global _services
    if _services is None:
        try:
            config = get_config()
        except FileNotFoundError:
            raise HTTPException(status_code=500, detail="Server not configured")
        _services = build_services(config)
    else:
        _services.library.reload()
    return _services


def reset_services() -> None:
    global _services
    _services = None


@asynccontextmanager
async def _lifespan(app: FastAPI):
    async def _print_startup_messages():
        await asyncio.sleep(0.1)
        logger.info("Started server process [" + str(os.getpid()) + "]")
        api_url = getattr(app.state, "api_url", None)
        if api_url:
            logger.info("Listing available at: " + api_url)

    asyncio.create_task(_print_startup_messages())
    yield


app = FastAPI(title="mangashelf", lifespan=_lifespan)


@app.get("/favicon.ico", include_in_schema=False)
def favicon() -> Response:
    return Response(status_code=204)


def _require_manga(services: LibraryService, manga_id: str):
    manga = services.library.get_manga(manga_id)
    if manga is None:
        raise HTTPException(status_code=404, detail="Manga not found")
    return manga


def _archive_info(services: LibraryService, manga_id: str):
    info = services.cache.info(manga_id) if services.cache is not None else None
    if info is None:
        raise HTTPException(status_code=404, detail="Archive missing on disk")
    return info


@app.get("/api/manga", response_model=list[MangaItem], response_model_by_alias=True)
def list_manga(services: LibraryService = Depends(get_services)) -> list[MangaItem]:
    """Return every manga in the library, in import order."""
    items = []
    for manga in services.library.list_manga():
        info = services.cache.info(manga.id) if services.cache is not None else None
        items.append(
            MangaItem(
                id=manga.id,
                name=manga.name,
                size=info.size if info else None,
                created_time=manga.added_at,
                modified_time=info.modified_at if info else None,
                page_count=manga.page_count,
                progress_percent=services.library.progress_percent(manga.id),
                read_url=build_read_url(manga.id),
                download_url=build_download_url(manga.id, manga.name),
            )
        )
    return items


@app.get("/api/manga/{manga_id}/read")
def read_manga(manga_id: str, services: LibraryService = Depends(get_services)):
    """Return the archive for in-browser reading."""
    _require_manga(services, manga_id)
    info = _archive_info(services, manga_id)
    return FileResponse(info.path, media_type=CBZ_MEDIA_TYPE)


@app.get("/api/manga/{manga_id}/download")
def download_manga(
    manga_id: str,
    filename: Optional[str] = Query(None),
    services: LibraryService = Depends(get_services),
):
    """Return the archive as an attachment with a sanitized filename."""
    manga = _require_manga(services, manga_id)
    info = _archive_info(services, manga_id)
    return FileResponse(
        info.path,
        media_type=CBZ_MEDIA_TYPE,
        filename=make_safe_filename(filename or manga.name),
    )


@app.get("/api/manga/{manga_id}/pages/{page_index}")
def get_page(manga_id: str, page_index: int, services: LibraryService = Depends(get_services)):
    """Return one page image (0-based index)."""
    _require_manga(services, manga_id)
    try:
        page = services.page_image(manga_id, page_index)
    except ArchiveUnavailableError:
        raise HTTPException(status_code=404, detail="Archive missing on disk")
    except CorruptArchiveError:
        raise HTTPException(status_code=422, detail="Archive is corrupt")
    if page is None:
        raise HTTPException(status_code=404, detail="Page not found")
    data, content_type = page
    return Response(content=data, media_type=content_type)


@app.get("/api/manga/{manga_id}/thumbnail")
def get_thumbnail(manga_id: str, services: LibraryService = Depends(get_services)):
    """Return JPEG cover thumbnail."""
    _require_manga(services, manga_id)
    if services.thumbnails is None:
        raise HTTPException(status_code=404, detail="Thumbnail not found")
    thumb_path = services.thumbnails.path_for(manga_id)
    if not thumb_path.exists():
        raise HTTPException(status_code=404, detail="Thumbnail not found")
    return FileResponse(thumb_path, media_type="image/jpeg")


@app.get("/api/manga/{manga_id}/progress", response_model=ProgressRecord)
def get_progress(manga_id: str, services: LibraryService = Depends(get_services)):
    _require_manga(services, manga_id)
    progress = services.library.get_progress(manga_id)
    if progress is None:
        raise HTTPException(status_code=404, detail="No progress recorded")
    return progress


class _AccessFilter(logging.Filter):
    """Filter out access log lines for successful requests to reduce console noise."""

    def filter(self, record: logging.LogRecord) -> bool:
        try:
            msg = record.getMessage()
        except Exception:
            return True
        return not any(code in msg for code in ('" 200', '" 204', '" 304'))


def run_server(
    config: ShelfConfig,
    host: Optional[str],
    port: Optional[int],
) -> None:
    """Run the FastAPI app with Uvicorn."""
    import uvicorn

    effective_host = host or config.server_host
    effective_port = port or config.server_port
    app.state.api_url = f"http://{effective_host}:{effective_port}/api/manga"

    logging.getLogger("uvicorn.access").addFilter(_AccessFilter())

    uvicorn.run(
        app,
        host=effective_host,
        port=effective_port,
        log_level="info",
        log_config=None,
    )

"""Tests for the listing API."""

import io
import zipfile

import pytest
from fastapi.testclient import TestClient
from PIL import Image

from shelf.api import CBZ_MEDIA_TYPE, app, get_services, reset_services
from shelf.cache import ArchiveCache
from shelf.config import ShelfConfig
from shelf.library import LibraryStore
from shelf.services import LibraryService, build_services
from shelf.storage import MemoryGateway
from shelf.thumbnails import ThumbnailWriter


def _make_cbz(pages: int = 2) -> bytes:
    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, "w") as zf:
        for i in range(1, pages + 1):
            img = io.BytesIO()
            Image.new("RGB", (20, 30), color="blue").save(img, format="PNG")
            zf.writestr(f"p{i}.png", img.getvalue())
    return buffer.getvalue()


@pytest.fixture
def services(tmp_path):
    return LibraryService(
        LibraryStore(MemoryGateway()),
        cache=ArchiveCache(tmp_path / "archives"),
        thumbnails=ThumbnailWriter(tmp_path / "thumbnails"),
    )


@pytest.fixture
def client(services):
    app.dependency_overrides[get_services] = lambda: services
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def manga(services):
    result = services.import_bytes(_make_cbz(4), "One Piece: Vol/1.cbz")
    result.release()
    return result.manga


def test_listing_is_empty(client):
    response = client.get("/api/manga")
    assert response.status_code == 200
    assert response.json() == []


def test_listing_uses_camel_case(client, services, manga):
    services.library.set_progress(manga.id, 2)

    response = client.get("/api/manga")
    assert response.status_code == 200
    [item] = response.json()

    assert item["id"] == manga.id
    assert item["name"] == manga.name
    assert item["pageCount"] == 4
    assert item["progressPercent"] == 50
    assert item["size"] > 0
    assert item["createdTime"] is not None
    assert item["modifiedTime"] is not None
    assert item["readUrl"] == f"/api/manga/{manga.id}/read"
    assert item["downloadUrl"].startswith(f"/api/manga/{manga.id}/download?filename=")


def test_read_returns_archive(client, services, manga):
    response = client.get(f"/api/manga/{manga.id}/read")

    assert response.status_code == 200
    assert response.headers["content-type"] == CBZ_MEDIA_TYPE
    assert response.content == services.cache.get(manga.id)


def test_download_uses_safe_filename(client, manga):
    response = client.get(f"/api/manga/{manga.id}/download", params={"filename": "Weird/Name?.cbz"})

    assert response.status_code == 200
    assert "attachment" in response.headers["content-disposition"]
    assert "WeirdName.cbz" in response.headers["content-disposition"]


def test_page_endpoint(client, manga):
    response = client.get(f"/api/manga/{manga.id}/pages/0")
    assert response.status_code == 200
    assert response.headers["content-type"] == "image/png"

    assert client.get(f"/api/manga/{manga.id}/pages/9").status_code == 404


def test_page_endpoint_for_missing_archive(client, services, manga):
    services.cache.remove(manga.id)
    assert client.get(f"/api/manga/{manga.id}/pages/0").status_code == 404
    assert client.get(f"/api/manga/{manga.id}/read").status_code == 404


def test_page_endpoint_for_corrupt_archive(client, services, manga):
    services.cache.put(manga.id, b"no longer a zip")
    assert client.get(f"/api/manga/{manga.id}/pages/0").status_code == 422


def test_thumbnail(client, manga):
    response = client.get(f"/api/manga/{manga.id}/thumbnail")
    assert response.status_code == 200
    assert response.headers["content-type"] == "image/jpeg"


def test_progress(client, services, manga):
    assert client.get(f"/api/manga/{manga.id}/progress").status_code == 404

    services.library.set_progress(manga.id, 3)
    response = client.get(f"/api/manga/{manga.id}/progress")

    assert response.status_code == 200
    assert response.json()["current_page_index"] == 3


def test_unknown_manga_is_404(client):
    for suffix in ("read", "download", "pages/0", "thumbnail", "progress"):
        assert client.get(f"/api/manga/missing/{suffix}").status_code == 404


def test_favicon(client):
    assert client.get("/favicon.ico").status_code == 204


def test_listing_sees_archives_imported_by_another_process(tmp_path, monkeypatch):
    config = ShelfConfig(data_dir=tmp_path)
    monkeypatch.setattr("shelf.api.get_config", lambda: config)
    reset_services()
    client = TestClient(app)
    try:
        assert client.get("/api/manga").json() == []

        # A separate CLI invocation imports into the same database.
        cli_services = build_services(config)
        cli_services.import_bytes(_make_cbz(1), "Added Later.cbz").release()

        names = [item["name"] for item in client.get("/api/manga").json()]
        assert names == ["Added Later"]
    finally:
        reset_services()

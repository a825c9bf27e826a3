"""Tests for import, resume and removal through LibraryService."""

import io
import zipfile
from pathlib import Path

import pytest
from PIL import Image

from shelf.archive import ArchiveExtractor
from shelf.cache import ArchiveCache
from shelf.config import ShelfConfig, StorageConfig
from shelf.errors import ArchiveUnavailableError, EmptyArchiveError, UnsupportedArchiveError
from shelf.library import LibraryStore
from shelf.services import LibraryService, build_gateway, build_services
from shelf.storage import MemoryGateway, SqlGateway
from shelf.thumbnails import ThumbnailWriter


def _png(color: str = "red") -> bytes:
    buffer = io.BytesIO()
    Image.new("RGB", (40, 60), color=color).save(buffer, format="PNG")
    return buffer.getvalue()


def _make_cbz(pages: int = 3) -> bytes:
    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, "w") as zf:
        for i in range(1, pages + 1):
            zf.writestr(f"page{i}.png", _png())
    return buffer.getvalue()


@pytest.fixture
def services(tmp_path):
    return LibraryService(
        LibraryStore(MemoryGateway()),
        cache=ArchiveCache(tmp_path / "archives"),
        thumbnails=ThumbnailWriter(tmp_path / "thumbnails"),
    )


def test_import_file_registers_caches_and_thumbnails(services, tmp_path):
    source = tmp_path / "Berserk 01.cbz"
    source.write_bytes(_make_cbz(3))

    manga = services.import_file(source)

    assert services.library.list_manga() == [manga]
    assert manga.name == "Berserk 01"
    assert manga.page_count == 3
    assert services.cache.get(manga.id) == source.read_bytes()
    assert services.thumbnails.path_for(manga.id).exists()


def test_import_rejects_non_cbz_name(services, tmp_path):
    source = tmp_path / "comic.cbr"
    source.write_bytes(_make_cbz(1))

    with pytest.raises(UnsupportedArchiveError):
        services.import_file(source)
    assert services.library.list_manga() == []


def test_failed_import_leaves_library_untouched(services):
    empty = io.BytesIO()
    with zipfile.ZipFile(empty, "w") as zf:
        zf.writestr("info.txt", "nothing")

    with pytest.raises(EmptyArchiveError):
        services.import_bytes(empty.getvalue(), "empty.cbz")
    assert services.library.list_manga() == []
    assert not services.cache.directory.exists()


def test_load_pages_reads_cached_archive(services):
    result = services.import_bytes(_make_cbz(4), "four.cbz")
    result.release()

    pages = services.load_pages(result.manga.id)

    assert [p.name for p in pages] == ["page1.png", "page2.png", "page3.png", "page4.png"]
    for page in pages:
        page.resource.release()


def test_load_pages_without_cache_raises(tmp_path):
    services = LibraryService(LibraryStore(MemoryGateway()))
    result = services.import_bytes(_make_cbz(1), "one.cbz")
    result.release()

    with pytest.raises(ArchiveUnavailableError) as excinfo:
        services.load_pages(result.manga.id)
    assert excinfo.value.manga_id == result.manga.id


def test_page_image(services):
    result = services.import_bytes(_make_cbz(2), "two.cbz")
    result.release()

    data, content_type = services.page_image(result.manga.id, 1)
    assert content_type == "image/png"
    assert data.startswith(b"\x89PNG")
    assert services.page_image(result.manga.id, 5) is None
    assert services.page_image("unknown", 0) is None


def test_thumbnail_failure_does_not_block_import(services):
    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, "w") as zf:
        zf.writestr("001.jpg", b"not really a jpeg")

    result = services.import_bytes(buffer.getvalue(), "odd.cbz")
    result.release()

    assert services.library.get_manga(result.manga.id) is not None
    assert not services.thumbnails.path_for(result.manga.id).exists()


def test_remove_cascades_to_cache_and_thumbnail(services):
    result = services.import_bytes(_make_cbz(2), "two.cbz")
    result.release()
    manga_id = result.manga.id
    services.library.set_progress(manga_id, 1)

    assert services.remove(manga_id) is True

    assert services.library.get_manga(manga_id) is None
    assert services.library.get_progress(manga_id) is None
    assert services.cache.get(manga_id) is None
    assert not services.thumbnails.path_for(manga_id).exists()
    assert services.remove(manga_id) is False


def test_cleanup_removes_orphans(services):
    result = services.import_bytes(_make_cbz(1), "keep.cbz")
    result.release()
    services.cache.put("orphan", b"stale")
    services.thumbnails.path_for("orphan").write_bytes(b"stale")

    assert services.cleanup() == 2
    assert services.cache.get(result.manga.id) is not None
    assert services.thumbnails.path_for(result.manga.id).exists()


def test_build_gateway_selects_backend(tmp_path):
    memory = ShelfConfig(storage=StorageConfig(backend="memory"), data_dir=tmp_path)
    sqlite = ShelfConfig(storage=StorageConfig(namespace="shelf-test"), data_dir=tmp_path)

    assert isinstance(build_gateway(memory), MemoryGateway)
    gateway = build_gateway(sqlite)
    assert isinstance(gateway, SqlGateway)
    assert gateway.namespace == "shelf-test"
    assert (tmp_path / "mangashelf.db").exists()


def test_build_gateway_falls_back_to_memory(tmp_path):
    blocker = tmp_path / "not-a-dir"
    blocker.write_text("file in the way")
    config = ShelfConfig(data_dir=blocker)

    assert isinstance(build_gateway(config), MemoryGateway)


def test_build_services_persists_across_instances(tmp_path):
    config = ShelfConfig(data_dir=tmp_path)
    first = build_services(config)
    result = first.import_bytes(_make_cbz(2), "Persisted.cbz")
    result.release()
    first.library.set_progress(result.manga.id, 1)

    second = build_services(config)

    assert [m.name for m in second.library.list_manga()] == ["Persisted"]
    assert second.library.get_progress(result.manga.id).current_page_index == 1
    assert isinstance(second.cache.directory, Path)


def test_failed_register_releases_pages(monkeypatch):
    services = LibraryService(
        LibraryStore(MemoryGateway()),
        extractor=ArchiveExtractor(id_factory=lambda: "same-id"),
    )
    extracted = []
    original_extract = services.extract

    def recording_extract(data, filename):
        result = original_extract(data, filename)
        extracted.append(result)
        return result

    monkeypatch.setattr(services, "extract", recording_extract)

    services.import_bytes(_make_cbz(2), "first.cbz").release()
    with pytest.raises(ValueError):
        services.import_bytes(_make_cbz(2), "second.cbz")

    assert len(extracted) == 2
    assert all(page.resource.released for page in extracted[1].pages)
    assert [m.name for m in services.library.list_manga()] == ["first"]

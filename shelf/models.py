"""Data model for mangashelf: pages, records, persisted envelopes and the SQL table."""

from __future__ import annotations

import dataclasses
import tempfile
from datetime import datetime, timezone
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field
from sqlmodel import Field as SQLField, SQLModel

from .errors import ResourceReleasedError

SCHEMA_VERSION = 1

# Pages larger than this spill from memory to a temporary file.
SPOOL_MAX_BYTES = 2 * 1024 * 1024


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class PageResource:
    """Handle on one page's image bytes. Must be released explicitly."""

    def __init__(self, data: bytes, content_type: str):
        self.content_type = content_type
        self.size = len(data)
        self._file: Optional[tempfile.SpooledTemporaryFile] = tempfile.SpooledTemporaryFile(
            max_size=SPOOL_MAX_BYTES
        )
        self._file.write(data)

    @property
    def released(self) -> bool:
        return self._file is None

    def read(self) -> bytes:
        if self._file is None:
            raise ResourceReleasedError("Page resource has been released")
        self._file.seek(0)
        return self._file.read()

    def release(self) -> None:
        if self._file is not None:
            self._file.close()
            self._file = None

    def __repr__(self) -> str:
        state = "released" if self.released else f"{self.size} bytes"
        return f"<PageResource {self.content_type} {state}>"


@dataclasses.dataclass(frozen=True)
class Page:
    index: int
    name: str
    resource: PageResource


class MangaRecord(BaseModel):
    """One imported archive. Immutable once created."""

    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    page_count: int = Field(ge=0)
    added_at: datetime


class ProgressRecord(BaseModel):
    model_config = ConfigDict(frozen=True)

    manga_id: str
    current_page_index: int = Field(ge=0)
    last_read_at: datetime


class LibrarySnapshot(BaseModel):
    """Persisted shape of the manga collection."""

    version: Literal[1] = SCHEMA_VERSION
    items: list[MangaRecord] = Field(default_factory=list)


class ProgressSnapshot(BaseModel):
    """Persisted shape of the progress map, keyed by manga id."""

    version: Literal[1] = SCHEMA_VERSION
    entries: dict[str, ProgressRecord] = Field(default_factory=dict)


class ThemePreference(BaseModel):
    version: Literal[1] = SCHEMA_VERSION
    theme: Literal["dark", "light"] = "dark"


class KeyValueEntry(SQLModel, table=True):
    """Namespaced JSON value stored by the SQL persistence gateway."""

    __tablename__ = "kv_store"

    namespace: str = SQLField(primary_key=True)
    key: str = SQLField(primary_key=True)
    value: str
    updated_at: datetime = SQLField(default_factory=utcnow)

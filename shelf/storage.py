"""Persistence gateways: namespaced key/value storage for the library.

Every read and write of durable state goes through a PersistenceGateway so
the backing store can be swapped (memory for tests, SQLite for real use).
Values are JSON documents. Backend failures surface as StorageError; a
value that cannot be decoded raises StoredValueError.
"""

from __future__ import annotations

import json
from typing import Any, MutableMapping, Optional, Protocol

from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session, select

from .errors import StorageError, StoredValueError
from .logging_config import get_logger
from .models import KeyValueEntry, utcnow

logger = get_logger(__name__)

DEFAULT_NAMESPACE = "manga-reader"


def build_key(key: str, namespace: str = DEFAULT_NAMESPACE) -> str:
    return f"{namespace}:{key}"


class PersistenceGateway(Protocol):
    namespace: str

    def get(self, key: str) -> Optional[Any]:
        ...

    def set(self, key: str, value: Any) -> None:
        ...

    def remove(self, key: str) -> None:
        ...

    def clear(self) -> None:
        """Remove every key in this gateway's namespace."""
        ...


def _dumps(value: Any) -> str:
    try:
        return json.dumps(value, sort_keys=True)
    except (TypeError, ValueError) as exc:
        raise StorageError(f"Value is not JSON serializable: {exc}") from exc


def _loads(key: str, raw: str) -> Any:
    try:
        return json.loads(raw)
    except ValueError as exc:
        raise StoredValueError(f"Stored value for '{key}' is not valid JSON") from exc


class MemoryGateway:
    """In-process gateway. Several gateways may share one backing mapping."""

    def __init__(
        self,
        namespace: str = DEFAULT_NAMESPACE,
        backing: Optional[MutableMapping[str, str]] = None,
    ):
        self.namespace = namespace
        self.backing: MutableMapping[str, str] = backing if backing is not None else {}

    def get(self, key: str) -> Optional[Any]:
        raw = self.backing.get(build_key(key, self.namespace))
        if raw is None:
            return None
        return _loads(key, raw)

    def set(self, key: str, value: Any) -> None:
        self.backing[build_key(key, self.namespace)] = _dumps(value)

    def remove(self, key: str) -> None:
        self.backing.pop(build_key(key, self.namespace), None)

    def clear(self) -> None:
        prefix = f"{self.namespace}:"
        for stored_key in [k for k in self.backing if k.startswith(prefix)]:
            del self.backing[stored_key]


class SqlGateway:
    """Gateway backed by the kv_store table. Each call commits before returning."""

    def __init__(self, engine: Engine, namespace: str = DEFAULT_NAMESPACE):
        self.engine = engine
        self.namespace = namespace

    def get(self, key: str) -> Optional[Any]:
        try:
            with Session(self.engine) as session:
                entry = session.get(KeyValueEntry, (self.namespace, key))
                raw = entry.value if entry else None
        except SQLAlchemyError as exc:
            raise StorageError(f"Failed to read '{build_key(key, self.namespace)}': {exc}") from exc
        if raw is None:
            return None
        return _loads(key, raw)

    def set(self, key: str, value: Any) -> None:
        raw = _dumps(value)
        try:
            with Session(self.engine) as session:
                entry = session.get(KeyValueEntry, (self.namespace, key))
                if entry:
                    entry.value = raw
                    entry.updated_at = utcnow()
                else:
                    entry = KeyValueEntry(namespace=self.namespace, key=key, value=raw)
                session.add(entry)
                session.commit()
        except SQLAlchemyError as exc:
            raise StorageError(f"Failed to write '{build_key(key, self.namespace)}': {exc}") from exc

    def remove(self, key: str) -> None:
        try:
            with Session(self.engine) as session:
                entry = session.get(KeyValueEntry, (self.namespace, key))
                if entry:
                    session.delete(entry)
                    session.commit()
        except SQLAlchemyError as exc:
            raise StorageError(f"Failed to remove '{build_key(key, self.namespace)}': {exc}") from exc

    def clear(self) -> None:
        try:
            with Session(self.engine) as session:
                statement = select(KeyValueEntry).where(KeyValueEntry.namespace == self.namespace)
                for entry in session.exec(statement).all():
                    session.delete(entry)
                session.commit()
        except SQLAlchemyError as exc:
            raise StorageError(f"Failed to clear namespace '{self.namespace}': {exc}") from exc

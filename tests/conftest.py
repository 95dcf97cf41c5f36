"""Shared test fixtures for renodes tests."""

from __future__ import annotations

from typing import Any

import pytest

from renodes.config import RenodesConfig
from renodes.driver import OrderedCollectionDriver
from renodes.errors import ConditionFailedError
from renodes.records import Record
from renodes.storage import SqliteRecordStore


def keys(records: list[Record]) -> list[str]:
    return [r.key for r in records]


class FaultyStore:
    """Wraps a record store and makes selected writes fail once.

    ``fail("update", "A")`` rejects the next update of record ``A`` with a
    ConditionFailedError (or the given error) without touching storage.
    """

    def __init__(self, inner: SqliteRecordStore) -> None:
        self.inner = inner
        self.failures: dict[tuple[str, str], Exception] = {}

    def fail(self, action: str, key: str, error: Exception | None = None) -> None:
        self.failures[(action, key)] = error or ConditionFailedError(key)

    def _check(self, action: str, key: str) -> None:
        err = self.failures.pop((action, key), None)
        if err is not None:
            raise err

    def put(self, record: Record, condition: Any = None) -> None:
        self._check("put", record.key)
        self.inner.put(record, condition)

    def update(self, key: str, changes: dict[str, Any], condition: Any = None) -> None:
        self._check("update", key)
        self.inner.update(key, changes, condition)

    def update_metadata(self, key: str, values: dict[str, Any], condition: Any = None) -> None:
        self._check("update_metadata", key)
        self.inner.update_metadata(key, values, condition)

    def delete(self, key: str, condition: Any = None) -> None:
        self._check("delete", key)
        self.inner.delete(key, condition)

    def __getattr__(self, name: str) -> Any:
        return getattr(self.inner, name)


# --- Fixtures ---


@pytest.fixture
def tmp_db(tmp_path):
    """Create a temporary SQLite database path."""
    return str(tmp_path / "test.db")


@pytest.fixture
def store(tmp_db):
    """Create a SqliteRecordStore with a temporary database."""
    s = SqliteRecordStore(tmp_db)
    yield s
    s.close()


@pytest.fixture
def config():
    return RenodesConfig(max_workers=4)


@pytest.fixture
def driver(store, config):
    d = OrderedCollectionDriver(store, config=config)
    yield d
    d.close()


@pytest.fixture
def faulty_store(store):
    return FaultyStore(store)


@pytest.fixture
def faulty_driver(faulty_store, config):
    d = OrderedCollectionDriver(faulty_store, config=config)  # type: ignore[arg-type]
    yield d
    d.close()


@pytest.fixture
def populate(driver):
    """Append the given keys to a collection, in order."""

    def _populate(collection: str, *members: str) -> None:
        for key in members:
            driver.insert(key, collection, {"content": key.lower()})

    return _populate

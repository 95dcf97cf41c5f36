"""Record store backends, storage URI binding and condition compilation."""

from __future__ import annotations

import json
import logging
import os
import re
import sqlite3
import threading
from dataclasses import dataclass
from typing import Any, Protocol, runtime_checkable
from urllib.parse import urlparse

from renodes.conditions import (
    CONDITION_ATTRIBUTES,
    ComparisonCondition,
    Condition,
    ExistsCondition,
    LogicalCondition,
)
from renodes.config import RenodesConfig
from renodes.errors import ConditionFailedError, MetadataMissingError, StorageBackendError
from renodes.records import Record

logger = logging.getLogger(__name__)

_METADATA_KEY_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")

# Attributes a plain update may set. ``key`` and ``collection`` never change
# after creation.
UPDATABLE_ATTRIBUTES = ("successor", "content", "kind", "metadata")


def validate_metadata_key(name: str) -> None:
    if not _METADATA_KEY_RE.match(name):
        raise ValueError(f"Invalid metadata key '{name}': must match [A-Za-z_][A-Za-z0-9_]*")


def validate_changes(changes: dict[str, Any]) -> None:
    unknown = sorted(set(changes) - set(UPDATABLE_ATTRIBUTES))
    if unknown:
        raise ValueError(f"Attributes cannot be updated: {unknown}")


def _check_attribute(name: str) -> None:
    if name not in CONDITION_ATTRIBUTES:
        raise ValueError(f"Unsupported condition attribute: {name}")


def _compile_condition(cond: Condition, params: list[Any]) -> str:
    """Compile a Condition tree into a SQL WHERE clause fragment."""
    if isinstance(cond, ComparisonCondition):
        _check_attribute(cond.attribute)
        params.append(cond.value)
        if cond.op == "==":
            return f"{cond.attribute} = ?"
        if cond.op == "!=":
            # A missing attribute differs from any value.
            return f"({cond.attribute} IS NULL OR {cond.attribute} != ?)"
        raise ValueError(f"Unknown comparison operator: {cond.op}")
    elif isinstance(cond, ExistsCondition):
        _check_attribute(cond.attribute)
        return f"{cond.attribute} IS NOT NULL" if cond.exists else f"{cond.attribute} IS NULL"
    elif isinstance(cond, LogicalCondition):
        if cond.op == "NOT":
            return f"NOT ({_compile_condition(cond.children[0], params)})"
        elif cond.op in ("AND", "OR"):
            parts = [_compile_condition(c, params) for c in cond.children]
            joiner = f" {cond.op} "
            return f"({joiner.join(parts)})"
    raise ValueError(f"Unknown condition type: {type(cond)}")


@dataclass(frozen=True)
class StorageTarget:
    """Resolved storage target from db_path and URI forms."""

    backend: str
    uri: str
    db_path: str | None = None
    table_name: str | None = None


def parse_storage_target(
    db_path: str | None = None,
    storage_uri: str | None = None,
) -> StorageTarget:
    """Resolve backend target from db_path and URI forms."""
    if storage_uri is None and db_path is None:
        db_path = "renodes.db"

    if storage_uri is None and db_path is not None:
        return StorageTarget(backend="sqlite", uri=f"sqlite:///{db_path}", db_path=db_path)

    assert storage_uri is not None
    parsed = urlparse(storage_uri)

    if parsed.scheme == "sqlite":
        sqlite_path = parsed.path
        if parsed.netloc:
            sqlite_path = f"{parsed.netloc}{sqlite_path}"
        elif sqlite_path.startswith("//"):
            # sqlite:////abs/path -> /abs/path
            sqlite_path = sqlite_path[1:]
        if sqlite_path == "/:memory:":
            sqlite_path = ":memory:"
        if not sqlite_path:
            raise StorageBackendError("parse_storage_uri", f"Invalid sqlite URI: {storage_uri}")
        if db_path is not None and os.path.abspath(db_path) != os.path.abspath(sqlite_path):
            raise StorageBackendError(
                "parse_storage_uri",
                f"Conflicting db_path '{db_path}' and storage_uri '{storage_uri}'",
            )
        return StorageTarget(backend="sqlite", uri=storage_uri, db_path=sqlite_path)

    if parsed.scheme == "dynamodb":
        table_name = parsed.netloc or parsed.path.strip("/")
        if not table_name:
            raise StorageBackendError("parse_storage_uri", f"Invalid dynamodb URI: {storage_uri}")
        if db_path is not None:
            raise StorageBackendError(
                "parse_storage_uri",
                "db_path cannot be provided for dynamodb storage targets",
            )
        return StorageTarget(backend="dynamodb", uri=storage_uri, table_name=table_name)

    raise StorageBackendError(
        "parse_storage_uri",
        f"Unsupported storage URI scheme '{parsed.scheme}' for '{storage_uri}'",
    )


@runtime_checkable
class RecordStoreProtocol(Protocol):
    """Backend-agnostic point-access contract used by the collection driver."""

    def close(self) -> None: ...

    def get(self, key: str) -> Record | None: ...

    def put(self, record: Record, condition: Condition | None = None) -> None: ...

    def update(
        self, key: str, changes: dict[str, Any], condition: Condition | None = None
    ) -> None: ...

    def update_metadata(
        self, key: str, values: dict[str, Any], condition: Condition | None = None
    ) -> None: ...

    def delete(self, key: str, condition: Condition | None = None) -> None: ...

    def query_collection(self, collection: str) -> list[Record]: ...

    def query_successor(self, collection: str, successor: str) -> Record | None: ...

    def create_schema(self) -> None: ...

    def drop_schema(self) -> None: ...

    def storage_info(self) -> dict[str, Any]: ...


_COLUMNS = "key, collection, successor, content, kind, metadata"


def _row_to_record(row: tuple[Any, ...]) -> Record:
    return Record(
        key=row[0],
        collection=row[1],
        successor=row[2],
        content=row[3],
        kind=row[4],
        metadata=json.loads(row[5]) if row[5] is not None else None,
    )


class SqliteRecordStore:
    """SQLite-backed record store.

    One connection is shared between the driver's worker threads and guarded by
    a re-entrant lock. Conditional writes either run as a single guarded
    statement or inside ``BEGIN IMMEDIATE``, so the condition is evaluated
    atomically with the write.
    """

    def __init__(self, db_path: str) -> None:
        self.db_path = db_path
        self._lock = threading.RLock()
        self._conn = sqlite3.connect(db_path, check_same_thread=False)
        self._conn.execute("PRAGMA journal_mode=WAL")
        self._create_tables()

    def _create_tables(self) -> None:
        with self._lock:
            self._conn.executescript("""
                CREATE TABLE IF NOT EXISTS records (
                    key TEXT PRIMARY KEY,
                    collection TEXT NOT NULL,
                    successor TEXT NOT NULL,
                    content TEXT,
                    kind TEXT,
                    metadata TEXT
                );

                CREATE INDEX IF NOT EXISTS idx_records_by_collection
                    ON records(collection, key);

                CREATE INDEX IF NOT EXISTS idx_records_by_successor
                    ON records(collection, successor);
            """)
            self._conn.commit()

    def close(self) -> None:
        with self._lock:
            self._conn.close()

    # --- Schema ---

    def create_schema(self) -> None:
        self._create_tables()

    def drop_schema(self) -> None:
        with self._lock:
            self._conn.execute("DROP TABLE IF EXISTS records")
            self._conn.commit()

    def storage_info(self) -> dict[str, Any]:
        with self._lock:
            row = self._conn.execute("SELECT COUNT(*) FROM records").fetchone()
        return {
            "backend": "sqlite",
            "db_path": self.db_path,
            "record_count": row[0] if row else 0,
        }

    # --- Point access ---

    def get(self, key: str) -> Record | None:
        with self._lock:
            row = self._conn.execute(
                f"SELECT {_COLUMNS} FROM records WHERE key = ?", (key,)
            ).fetchone()
        return _row_to_record(row) if row is not None else None

    def _write_row(self, record: Record) -> None:
        self._conn.execute(
            f"INSERT OR REPLACE INTO records ({_COLUMNS}) VALUES (?, ?, ?, ?, ?, ?)",
            (
                record.key,
                record.collection,
                record.successor,
                record.content,
                record.kind,
                json.dumps(record.metadata) if record.metadata is not None else None,
            ),
        )

    def put(self, record: Record, condition: Condition | None = None) -> None:
        with self._lock:
            if condition is None:
                self._write_row(record)
                self._conn.commit()
                return

            self._conn.execute("BEGIN IMMEDIATE")
            try:
                current = self.get(record.key)
                if not condition.evaluate(current.to_dict() if current else None):
                    raise ConditionFailedError(record.key)
                self._write_row(record)
                self._conn.commit()
            except Exception:
                self._conn.rollback()
                raise

    def update(
        self, key: str, changes: dict[str, Any], condition: Condition | None = None
    ) -> None:
        """Set top-level attributes of an existing record.

        A ``None`` value removes the attribute. A missing record fails the
        write like an unmet condition.
        """
        validate_changes(changes)
        if not changes:
            return
        assignments: list[str] = []
        params: list[Any] = []
        for name, value in changes.items():
            if name == "successor" and value is None:
                raise ValueError("successor cannot be removed")
            if name == "metadata" and value is not None:
                value = json.dumps(value)
            assignments.append(f"{name} = ?")
            params.append(value)
        sql = f"UPDATE records SET {', '.join(assignments)} WHERE key = ?"
        params.append(key)
        if condition is not None:
            sql += f" AND {_compile_condition(condition, params)}"

        with self._lock:
            cursor = self._conn.execute(sql, params)
            self._conn.commit()
        if cursor.rowcount == 0:
            raise ConditionFailedError(key)

    def update_metadata(
        self, key: str, values: dict[str, Any], condition: Condition | None = None
    ) -> None:
        """Set individual metadata sub-keys without rewriting the whole map."""
        if not values:
            return
        paths: list[str] = []
        params: list[Any] = []
        for name, value in values.items():
            validate_metadata_key(name)
            paths.append(f"'$.{name}', json(?)")
            params.append(json.dumps(value))
        sql = (
            f"UPDATE records SET metadata = json_set(metadata, {', '.join(paths)}) "
            "WHERE key = ? AND metadata IS NOT NULL"
        )
        params.append(key)
        if condition is not None:
            sql += f" AND {_compile_condition(condition, params)}"

        with self._lock:
            cursor = self._conn.execute(sql, params)
            self._conn.commit()
            if cursor.rowcount > 0:
                return
            current = self.get(key)
        if current is None:
            raise ConditionFailedError(key)
        if condition is not None and not condition.evaluate(current.to_dict()):
            raise ConditionFailedError(key)
        raise MetadataMissingError(key)

    def delete(self, key: str, condition: Condition | None = None) -> None:
        params: list[Any] = [key]
        sql = "DELETE FROM records WHERE key = ?"
        if condition is not None:
            sql += f" AND {_compile_condition(condition, params)}"
        with self._lock:
            cursor = self._conn.execute(sql, params)
            self._conn.commit()
        if condition is not None and cursor.rowcount == 0:
            raise ConditionFailedError(key)

    # --- Index views ---

    def query_collection(self, collection: str) -> list[Record]:
        with self._lock:
            rows = self._conn.execute(
                f"SELECT {_COLUMNS} FROM records WHERE collection = ?", (collection,)
            ).fetchall()
        return [_row_to_record(r) for r in rows]

    def query_successor(self, collection: str, successor: str) -> Record | None:
        with self._lock:
            rows = self._conn.execute(
                f"SELECT {_COLUMNS} FROM records WHERE collection = ? AND successor = ? LIMIT 2",
                (collection, successor),
            ).fetchall()
        if not rows:
            return None
        if len(rows) > 1:
            logger.warning(
                "Collection %s has several records with successor %s", collection, successor
            )
        return _row_to_record(rows[0])


def open_record_store(
    db_path: str | None = None,
    *,
    storage_uri: str | None = None,
    config: RenodesConfig | None = None,
) -> RecordStoreProtocol:
    """Open a record store from a db path or a storage URI."""
    target = parse_storage_target(db_path=db_path, storage_uri=storage_uri)
    if target.backend == "sqlite":
        assert target.db_path is not None
        return SqliteRecordStore(target.db_path)
    if target.backend == "dynamodb":
        from renodes.storage_dynamodb import DynamoRecordStore

        assert target.table_name is not None
        cfg = config or RenodesConfig()
        return DynamoRecordStore(table_name=target.table_name, config=cfg)
    raise StorageBackendError("open_record_store", f"Unsupported backend '{target.backend}'")


__all__ = [
    "RecordStoreProtocol",
    "SqliteRecordStore",
    "StorageTarget",
    "parse_storage_target",
    "open_record_store",
    "_compile_condition",
]

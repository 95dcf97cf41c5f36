"""Ordered collection driver: a singly-linked sibling order over point records.

Every collection has a head record keyed ``"#" + collection`` whose successor
is the first member. Members point at the next member; the last one points at
``TAIL``. Operations read what they need concurrently, then issue their
conditional point writes concurrently. There are no multi-record
transactions, so a multi-write operation can fail half-way; such failures are
reported as ``PartialFailureError`` and leave an intent record behind.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Any

from renodes.conditions import attr, record_absent, record_exists
from renodes.config import RenodesConfig
from renodes.errors import (
    BrokenChainError,
    CollectionMismatchError,
    ConditionFailedError,
    DuplicateKeyError,
    InsertConflictError,
    MetadataMissingError,
    NotFoundError,
    OrphanRecordError,
    PartialFailureError,
    StorageBackendError,
    WriteConflictError,
)
from renodes.intents import INTENT_COLLECTION, Intent, IntentLog, PlannedWrite
from renodes.records import TAIL, Record, head_key, is_head_key
from renodes.storage import RecordStoreProtocol

logger = logging.getLogger(__name__)

BODY_FIELDS = ("content", "kind", "metadata")
PATCH_FIELDS = ("content", "kind")


@dataclass
class ChainReport:
    """Result of checking one collection against the chain invariants."""

    collection: str
    has_head: bool = False
    order: list[str] = field(default_factory=list)
    tails: list[str] = field(default_factory=list)
    duplicate_successors: dict[str, list[str]] = field(default_factory=dict)
    unreachable: list[str] = field(default_factory=list)
    dangling: str | None = None
    cycle_at: str | None = None

    @property
    def ok(self) -> bool:
        if not self.has_head:
            return not self.unreachable
        return (
            self.dangling is None
            and self.cycle_at is None
            and not self.unreachable
            and not self.duplicate_successors
            and len(self.tails) <= 1
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "collection": self.collection,
            "ok": self.ok,
            "has_head": self.has_head,
            "order": self.order,
            "tails": self.tails,
            "duplicate_successors": self.duplicate_successors,
            "unreachable": self.unreachable,
            "dangling": self.dangling,
            "cycle_at": self.cycle_at,
        }


def follow(collection: str, records: list[Record]) -> list[Record]:
    """Order the members of a collection by following successors from its head.

    Raises BrokenChainError when the chain cannot be followed to the tail.
    Members that the chain does not reach are logged and left out.
    """
    if not records:
        return []
    by_key = {r.key: r for r in records}
    head = by_key.pop(head_key(collection), None)
    if head is None:
        raise BrokenChainError(collection, f"{len(by_key)} record(s) but no head record")

    ordered: list[Record] = []
    cursor = head.successor
    while cursor != TAIL:
        record = by_key.pop(cursor, None)
        if record is None:
            if any(r.key == cursor for r in ordered):
                raise BrokenChainError(collection, f"cycle through '{cursor}'")
            raise BrokenChainError(collection, f"successor '{cursor}' is not a member")
        ordered.append(record)
        cursor = record.successor

    if by_key:
        logger.warning(
            "Collection %s has %d unreachable record(s): %s",
            collection,
            len(by_key),
            ", ".join(sorted(by_key)),
        )
    return ordered


class OrderedCollectionDriver:
    """Insert, delete, move and list records of ordered collections.

    The driver holds no locks. Consistency relies on the per-record
    conditions the store evaluates before each write.
    """

    def __init__(
        self,
        store: RecordStoreProtocol,
        *,
        config: RenodesConfig | None = None,
        executor: ThreadPoolExecutor | None = None,
    ) -> None:
        self.store = store
        self.config = config or RenodesConfig()
        self._owns_executor = executor is None
        self._executor = executor or ThreadPoolExecutor(
            max_workers=self.config.max_workers, thread_name_prefix="renodes"
        )
        self.intents = IntentLog(store) if self.config.record_intents else None

    def close(self) -> None:
        if self._owns_executor:
            self._executor.shutdown(wait=True)

    def __enter__(self) -> OrderedCollectionDriver:
        return self

    def __exit__(self, *exc: object) -> None:
        self.close()

    # --- Concurrency helpers ---

    def _read(self, *calls: Callable[[], Any]) -> list[Any]:
        futures = [self._executor.submit(call) for call in calls]
        return [f.result() for f in futures]

    def _apply(
        self,
        operation: str,
        key: str,
        collection: str,
        writes: list[PlannedWrite],
    ) -> None:
        """Issue all writes concurrently and classify the outcome."""
        intent_key = None
        if self.intents is not None:
            intent_key = self.intents.begin(operation, collection, key, writes)

        futures = [self._executor.submit(w.apply, self.store) for w in writes]
        applied: list[str] = []
        failed: list[str] = []
        errors: list[Exception] = []
        for write, future in zip(writes, futures):
            try:
                future.result()
                applied.append(write.label)
            except ConditionFailedError:
                failed.append(write.label)
            except Exception as e:
                failed.append(write.label)
                errors.append(e)

        if not failed:
            self._clear_intent(intent_key)
            logger.debug("%s %s in %s: %s", operation, key, collection, ", ".join(applied))
            return

        if not applied:
            self._clear_intent(intent_key)
            if errors:
                raise errors[0]
            logger.info("%s %s in %s lost a race: %s", operation, key, collection, failed)
            if operation == "insert":
                raise InsertConflictError(key)
            raise WriteConflictError(operation, key)

        logger.error(
            "Partial failure during %s of %s in %s: applied %s, failed %s (intent %s)",
            operation,
            key,
            collection,
            applied,
            failed,
            intent_key,
        )
        err = PartialFailureError(operation, key, applied, failed, intent_key)
        if errors:
            raise err from errors[0]
        raise err

    def _clear_intent(self, intent_key: str | None) -> None:
        if intent_key is None or self.intents is None:
            return
        try:
            self.intents.clear(intent_key)
        except StorageBackendError as e:
            logger.warning("Could not clear intent %s: %s", intent_key, e)

    # --- Reads ---

    def get(self, key: str) -> Record | None:
        return self.store.get(key)

    def list(self, collection: str) -> list[Record]:
        return follow(collection, self.store.query_collection(collection))

    # --- Mutations ---

    def insert(
        self,
        key: str,
        collection: str,
        body: dict[str, Any] | None = None,
        after_key: str | None = None,
    ) -> Record:
        """Insert a new record after ``after_key``, or at the end of the collection."""
        body = dict(body or {})
        unknown = sorted(set(body) - set(BODY_FIELDS))
        if unknown:
            raise ValueError(f"Unknown record fields: {unknown}")
        if is_head_key(key) or key == TAIL:
            raise ValueError(f"Reserved record key: {key!r}")
        if collection == INTENT_COLLECTION:
            raise ValueError(f"Reserved collection: {collection!r}")

        if after_key is not None:
            after, existing = self._read(
                lambda: self.store.get(after_key),
                lambda: self.store.get(key),
            )
            if after is None:
                raise NotFoundError(after_key)
            if after.collection != collection:
                raise CollectionMismatchError(after_key, collection, after.collection)
        else:
            after, existing = self._read(
                lambda: self.store.query_successor(collection, TAIL),
                lambda: self.store.get(key),
            )
        if existing is not None:
            raise DuplicateKeyError(key)

        if after is None:
            record = Record(key=key, collection=collection, successor=TAIL, **body)
            writes = [
                PlannedWrite.put(Record.head(collection, successor=key), record_absent()),
                PlannedWrite.put(record, record_absent()),
            ]
        else:
            record = Record(key=key, collection=collection, successor=after.successor, **body)
            writes = [
                PlannedWrite.update(
                    after.key, {"successor": key}, attr("successor") == after.successor
                ),
                PlannedWrite.put(record, record_absent()),
            ]
        self._apply("insert", key, collection, writes)
        return record

    def delete(self, key: str) -> None:
        """Unlink and delete a record. Deleting an absent key succeeds."""
        if is_head_key(key):
            raise ValueError(f"Head records cannot be deleted: {key!r}")
        record = self.store.get(key)
        if record is None:
            logger.debug("delete %s: already absent", key)
            return
        predecessor = self.store.query_successor(record.collection, key)
        if predecessor is None:
            raise OrphanRecordError(key, record.collection)

        writes = [
            PlannedWrite.update(
                predecessor.key, {"successor": record.successor}, attr("successor") == key
            ),
            PlannedWrite.delete(key, attr("successor") == record.successor),
        ]
        self._apply("delete", key, record.collection, writes)

    def move(self, key: str, collection: str, after_key: str | None = None) -> None:
        """Move a record after ``after_key``, or to the front of its collection."""
        if key == after_key:
            return
        anchor_key = after_key if after_key is not None else head_key(collection)
        moved, after, previous = self._read(
            lambda: self.store.get(key),
            lambda: self.store.get(anchor_key),
            lambda: self.store.query_successor(collection, key),
        )
        if moved is None:
            raise NotFoundError(key)
        if moved.collection != collection:
            raise CollectionMismatchError(key, collection, moved.collection)
        if after is None:
            raise NotFoundError(anchor_key)
        if after.collection != collection:
            raise CollectionMismatchError(anchor_key, collection, after.collection)
        if after.successor == moved.key:
            logger.debug("move %s: already after %s", key, anchor_key)
            return
        if previous is None:
            raise OrphanRecordError(key, collection)

        writes = [
            PlannedWrite.update(
                moved.key, {"successor": after.successor}, attr("successor") != after.successor
            ),
            PlannedWrite.update(
                after.key, {"successor": moved.key}, attr("successor") != moved.key
            ),
            PlannedWrite.update(
                previous.key,
                {"successor": moved.successor},
                attr("successor") != moved.successor,
            ),
        ]
        self._apply("move", key, collection, writes)

    def update(self, key: str, patch: dict[str, Any]) -> None:
        """Write the ``content``/``kind`` fields present in ``patch``."""
        unknown = sorted(set(patch) - set(PATCH_FIELDS))
        if unknown:
            raise ValueError(f"Fields cannot be patched: {unknown}")
        if not patch:
            return
        try:
            self.store.update(key, dict(patch), record_exists())
        except ConditionFailedError as e:
            raise NotFoundError(key) from e

    def metadata(self, key: str, patch: dict[str, Any]) -> None:
        """Shallow-merge ``patch`` into the record's metadata map.

        Only the given sub-keys are written. A record without a metadata map
        gets the patch as its whole map, on a single retry.
        """
        if not patch:
            return
        try:
            self.store.update_metadata(key, dict(patch), record_exists())
        except ConditionFailedError as e:
            raise NotFoundError(key) from e
        except MetadataMissingError:
            logger.debug("metadata %s: no map yet, writing whole map", key)
            try:
                self.store.update(key, {"metadata": dict(patch)}, record_exists())
            except ConditionFailedError as e:
                raise NotFoundError(key) from e

    # --- Maintenance ---

    def verify(self, collection: str) -> ChainReport:
        """Check a collection's chain without modifying it."""
        records = self.store.query_collection(collection)
        report = ChainReport(collection=collection)
        by_key = {r.key: r for r in records}
        head = by_key.get(head_key(collection))
        members = {k: r for k, r in by_key.items() if k != head_key(collection)}

        pointed: dict[str, list[str]] = {}
        for record in by_key.values():
            pointed.setdefault(record.successor, []).append(record.key)
        report.duplicate_successors = {
            successor: sorted(keys)
            for successor, keys in pointed.items()
            if len(keys) > 1
        }
        report.tails = sorted(k for k, r in members.items() if r.is_tail)

        if head is None:
            report.unreachable = sorted(members)
            return report
        report.has_head = True

        seen: set[str] = set()
        cursor = head.successor
        while cursor != TAIL:
            if cursor in seen:
                report.cycle_at = cursor
                break
            record = members.get(cursor)
            if record is None:
                report.dangling = cursor
                break
            seen.add(cursor)
            report.order.append(cursor)
            cursor = record.successor
        report.unreachable = sorted(set(members) - seen)
        return report

    def pending_intents(self, collection: str | None = None) -> list[Intent]:
        if self.intents is None:
            return []
        return self.intents.pending(collection)

    def clear_intent(self, key: str) -> None:
        if self.intents is None or self.intents.get(key) is None:
            raise NotFoundError(key)
        self.intents.clear(key)

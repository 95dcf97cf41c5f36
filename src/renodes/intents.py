"""Intent records: durable descriptions of in-flight multi-write operations.

An operation writes its intent before applying its writes and clears it once
every write succeeded. An intent that outlives its operation marks a
collection whose chain may be broken.
"""

from __future__ import annotations

import json
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

from renodes.conditions import Condition, record_absent
from renodes.records import Record
from renodes.storage import RecordStoreProtocol

INTENT_COLLECTION = "!intents"
INTENT_PREFIX = "!intent#"
INTENT_KIND = "intent"


@dataclass
class PlannedWrite:
    """A single point write belonging to a driver operation."""

    action: str  # "put", "update", "delete"
    key: str
    condition: Condition | None = None
    changes: dict[str, Any] = field(default_factory=dict)
    record: Record | None = None

    @classmethod
    def put(cls, record: Record, condition: Condition | None = None) -> PlannedWrite:
        return cls("put", record.key, condition=condition, record=record)

    @classmethod
    def update(
        cls, key: str, changes: dict[str, Any], condition: Condition | None = None
    ) -> PlannedWrite:
        return cls("update", key, condition=condition, changes=changes)

    @classmethod
    def delete(cls, key: str, condition: Condition | None = None) -> PlannedWrite:
        return cls("delete", key, condition=condition)

    @property
    def label(self) -> str:
        return f"{self.action} {self.key}"

    def apply(self, store: RecordStoreProtocol) -> None:
        if self.action == "put":
            assert self.record is not None
            store.put(self.record, self.condition)
        elif self.action == "update":
            store.update(self.key, self.changes, self.condition)
        elif self.action == "delete":
            store.delete(self.key, self.condition)
        else:
            raise ValueError(f"Unknown write action: {self.action}")

    def describe(self) -> dict[str, Any]:
        data: dict[str, Any] = {"action": self.action, "key": self.key}
        if self.changes:
            data["changes"] = self.changes
        if self.record is not None:
            data["record"] = self.record.to_dict()
        if self.condition is not None:
            data["condition"] = self.condition.describe()
        return data


@dataclass
class Intent:
    key: str
    operation: str
    collection: str
    target: str
    writes: list[dict[str, Any]]
    created_at: str


def _intent_from_record(record: Record) -> Intent:
    payload = json.loads(record.content or "{}")
    return Intent(
        key=record.key,
        operation=payload.get("operation", ""),
        collection=payload.get("collection", ""),
        target=payload.get("target", ""),
        writes=payload.get("writes", []),
        created_at=payload.get("created_at", ""),
    )


class IntentLog:
    """Stores intents as records of the reserved ``!intents`` collection.

    Each intent points at itself so the successor index never sees two
    intents sharing a successor.
    """

    def __init__(self, store: RecordStoreProtocol) -> None:
        self._store = store

    def begin(
        self,
        operation: str,
        collection: str,
        target: str,
        writes: list[PlannedWrite],
    ) -> str:
        key = f"{INTENT_PREFIX}{uuid.uuid4().hex}"
        payload = {
            "operation": operation,
            "collection": collection,
            "target": target,
            "writes": [w.describe() for w in writes],
            "created_at": datetime.now(timezone.utc).isoformat(),
        }
        self._store.put(
            Record(
                key=key,
                collection=INTENT_COLLECTION,
                successor=key,
                content=json.dumps(payload, sort_keys=True),
                kind=INTENT_KIND,
            ),
            record_absent(),
        )
        return key

    def clear(self, key: str) -> None:
        self._store.delete(key)

    def get(self, key: str) -> Intent | None:
        record = self._store.get(key)
        if record is None or record.collection != INTENT_COLLECTION:
            return None
        return _intent_from_record(record)

    def pending(self, collection: str | None = None) -> list[Intent]:
        intents = [_intent_from_record(r) for r in self._store.query_collection(INTENT_COLLECTION)]
        if collection is not None:
            intents = [i for i in intents if i.collection == collection]
        return sorted(intents, key=lambda i: i.created_at)

"""The physical record shared by every collection, plus head/tail conventions."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from typing import Any

TAIL = "."
HEAD_PREFIX = "#"


def head_key(collection: str) -> str:
    """Return the key of the synthetic head record of a collection."""
    return f"{HEAD_PREFIX}{collection}"


def is_head_key(key: str) -> bool:
    return key.startswith(HEAD_PREFIX)


@dataclass
class Record:
    """One stored item.

    ``successor`` holds the key of the next record in sibling order, or
    ``TAIL`` when the record is the last of its collection.
    """

    key: str
    collection: str
    successor: str = TAIL
    content: str | None = None
    kind: str | None = None
    metadata: dict[str, Any] | None = field(default=None)

    @classmethod
    def head(cls, collection: str, successor: str = TAIL) -> Record:
        return cls(key=head_key(collection), collection=collection, successor=successor)

    @property
    def is_head(self) -> bool:
        return self.key == head_key(self.collection)

    @property
    def is_tail(self) -> bool:
        return self.successor == TAIL

    def to_dict(self) -> dict[str, Any]:
        """Return the stored attributes, omitting absent ones."""
        return {k: v for k, v in asdict(self).items() if v is not None}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Record:
        return cls(
            key=data["key"],
            collection=data["collection"],
            successor=data.get("successor", TAIL),
            content=data.get("content"),
            kind=data.get("kind"),
            metadata=data.get("metadata"),
        )

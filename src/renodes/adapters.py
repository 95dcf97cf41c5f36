"""Entity adapters: translate domain models to records of ordered collections.

Keys and collections are composed as ``[user_id, type_tag, id]`` joined by
``"#"``, leaving out absent parts. The children of a node live in the
collection named by the node's own key; top-level items live in
``[user_id, type_tag]``.
"""

from __future__ import annotations

import logging
from collections.abc import Iterator
from contextlib import contextmanager
from typing import Any, Generic, TypeVar

from pydantic import BaseModel

from renodes.driver import OrderedCollectionDriver
from renodes.errors import (
    BrokenChainError,
    CollectionMismatchError,
    DuplicateKeyError,
    ModelConflictError,
    ModelNotFoundError,
    ModelStateUnknownError,
    NotFoundError,
    OrphanRecordError,
    PartialFailureError,
    WriteConflictError,
)
from renodes.models import Node, NodePatch, Task, TaskPatch, meta_values
from renodes.records import Record

logger = logging.getLogger(__name__)

M = TypeVar("M", bound=BaseModel)
P = TypeVar("P", bound=BaseModel)

SEPARATOR = "#"


class EntityCodec(Generic[M, P]):
    """Key composition and record translation for one entity kind."""

    type_tag: str = ""

    def __init__(self, home_id: str = "home") -> None:
        self.home_id = home_id

    def key(self, id: str | None = None, user_id: str | None = None) -> str:
        if id is not None and SEPARATOR in id:
            raise ValueError(f"Ids cannot contain {SEPARATOR!r}: {id!r}")
        return SEPARATOR.join(p for p in (user_id, self.type_tag, id) if p is not None)

    def collection(self, parent: str | None = None, user_id: str | None = None) -> str:
        if parent == self.home_id:
            parent = None
        return self.key(parent, user_id)

    def split_collection(self, collection: str) -> tuple[str | None, str | None]:
        """Return ``(user_id, parent_id)`` for a collection key."""
        parts = collection.split(SEPARATOR)
        if parts[0] == self.type_tag:
            return None, parts[1] if len(parts) > 1 else None
        if len(parts) < 2 or parts[1] != self.type_tag:
            raise ValueError(f"Not a {self.type_tag} collection: {collection!r}")
        return parts[0], parts[2] if len(parts) > 2 else None

    def id_from_key(self, key: str) -> str:
        return key.rsplit(SEPARATOR, 1)[-1]

    def to_model(self, record: Record) -> M:
        raise NotImplementedError

    def to_body(self, model: M) -> dict[str, Any]:
        raise NotImplementedError

    def parent_of(self, model: M) -> str | None:
        raise NotImplementedError

    def patch_fields(self, patch: P) -> tuple[dict[str, Any], dict[str, Any] | None]:
        """Split a patch into record field changes and a metadata patch."""
        raise NotImplementedError


class NodeCodec(EntityCodec[Node, NodePatch]):
    type_tag = "Nodes"

    def to_model(self, record: Record) -> Node:
        user_id, parent = self.split_collection(record.collection)
        return Node(
            id=self.id_from_key(record.key),
            content=record.content or "",
            interpreter=record.kind,
            parent=parent if parent is not None else self.home_id,
            user_id=user_id,
            meta=record.metadata or {},
        )

    def to_body(self, model: Node) -> dict[str, Any]:
        body: dict[str, Any] = {"content": model.content}
        if model.interpreter is not None:
            body["kind"] = model.interpreter
        if model.meta:
            body["metadata"] = dict(model.meta)
        return body

    def parent_of(self, model: Node) -> str | None:
        return model.parent

    def patch_fields(self, patch: NodePatch) -> tuple[dict[str, Any], dict[str, Any] | None]:
        changes = patch.model_dump(exclude_unset=True)
        fields: dict[str, Any] = {}
        if "content" in changes:
            fields["content"] = changes["content"]
        if "interpreter" in changes:
            fields["kind"] = changes["interpreter"]
        meta = meta_values(patch.meta) if patch.meta is not None else None
        return fields, meta


class TaskCodec(EntityCodec[Task, TaskPatch]):
    type_tag = "Tasks"

    def to_model(self, record: Record) -> Task:
        user_id, branch = self.split_collection(record.collection)
        return Task(
            id=self.id_from_key(record.key),
            content=record.content or "",
            branch=branch,
            user_id=user_id,
            meta=record.metadata or {},
        )

    def to_body(self, model: Task) -> dict[str, Any]:
        body: dict[str, Any] = {"content": model.content}
        if model.meta:
            body["metadata"] = dict(model.meta)
        return body

    def parent_of(self, model: Task) -> str | None:
        return model.branch

    def patch_fields(self, patch: TaskPatch) -> tuple[dict[str, Any], dict[str, Any] | None]:
        changes = patch.model_dump(exclude_unset=True)
        fields = {"content": changes["content"]} if "content" in changes else {}
        meta = meta_values(patch.meta) if patch.meta is not None else None
        return fields, meta


class EntityAdapter(Generic[M, P]):
    """Domain operations for one entity kind over the ordered collection driver.

    Driver errors are translated into ``ModelError`` subclasses:
    ``ModelNotFoundError`` for missing items, ``ModelConflictError`` for
    operations that lost a race without applying anything, and
    ``ModelStateUnknownError`` when the collection must be re-listed.
    """

    def __init__(self, driver: OrderedCollectionDriver, codec: EntityCodec[M, P]) -> None:
        self.driver = driver
        self.codec = codec

    @property
    def home_id(self) -> str:
        return self.codec.home_id

    @contextmanager
    def _domain_errors(self, action: str, id: str | None) -> Iterator[None]:
        tag = self.codec.type_tag
        try:
            yield
        except NotFoundError as e:
            raise ModelNotFoundError(f"{tag} {id!r} not found") from e
        except (PartialFailureError, OrphanRecordError, BrokenChainError) as e:
            logger.warning("%s %s %r left an unknown state: %s", action, tag, id, e)
            raise ModelStateUnknownError(
                f"couldn't {action} {tag} {id!r}: state unknown, re-list before retrying"
            ) from e
        except (WriteConflictError, DuplicateKeyError, CollectionMismatchError) as e:
            raise ModelConflictError(f"couldn't {action} {tag} {id!r}: {e}") from e

    def list(self, parent: str | None = None, user_id: str | None = None) -> list[M]:
        collection = self.codec.collection(parent, user_id)
        with self._domain_errors("list", parent):
            records = self.driver.list(collection)
        return [self.codec.to_model(r) for r in records]

    def get(self, id: str, user_id: str | None = None) -> M:
        record = self.driver.get(self.codec.key(id, user_id))
        if record is None:
            raise ModelNotFoundError(f"{self.codec.type_tag} {id!r} not found")
        return self.codec.to_model(record)

    def put(self, model: M, after_id: str | None = None) -> M:
        """Store a new item after ``after_id``, or at the end of its parent."""
        user_id = getattr(model, "user_id", None)
        key = self.codec.key(getattr(model, "id"), user_id)
        collection = self.codec.collection(self.codec.parent_of(model), user_id)
        after_key = self.codec.key(after_id, user_id) if after_id is not None else None
        with self._domain_errors("put", getattr(model, "id")):
            record = self.driver.insert(key, collection, self.codec.to_body(model), after_key)
        return self.codec.to_model(record)

    def update(self, id: str, patch: P, user_id: str | None = None) -> None:
        fields, meta = self.codec.patch_fields(patch)
        key = self.codec.key(id, user_id)
        with self._domain_errors("update", id):
            if fields:
                self.driver.update(key, fields)
            if meta:
                self.driver.metadata(key, meta)

    def delete(self, id: str, user_id: str | None = None) -> None:
        with self._domain_errors("delete", id):
            self.driver.delete(self.codec.key(id, user_id))

    def move(
        self,
        id: str,
        parent: str | None = None,
        after_id: str | None = None,
        user_id: str | None = None,
    ) -> None:
        """Move an item after ``after_id`` within its parent, or to the front."""
        key = self.codec.key(id, user_id)
        collection = self.codec.collection(parent, user_id)
        after_key = self.codec.key(after_id, user_id) if after_id is not None else None
        with self._domain_errors("move", id):
            self.driver.move(key, collection, after_key)

    def meta(
        self,
        id: str,
        values: dict[str, Any] | BaseModel | None = None,
        user_id: str | None = None,
    ) -> dict[str, Any]:
        """Merge ``values`` into an item's metadata, or return it when omitted."""
        if values is None:
            return dict(getattr(self.get(id, user_id), "meta"))
        if isinstance(values, BaseModel):
            values = meta_values(values)
        with self._domain_errors("meta", id):
            self.driver.metadata(self.codec.key(id, user_id), values)
        return values


def node_adapter(driver: OrderedCollectionDriver) -> EntityAdapter[Node, NodePatch]:
    return EntityAdapter(driver, NodeCodec(driver.config.home_id))


def task_adapter(driver: OrderedCollectionDriver) -> EntityAdapter[Task, TaskPatch]:
    return EntityAdapter(driver, TaskCodec(driver.config.home_id))

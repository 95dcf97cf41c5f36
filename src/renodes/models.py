"""Domain models exchanged with the entity adapters."""

from __future__ import annotations

import uuid
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


def new_id() -> str:
    return uuid.uuid4().hex


class NodeMeta(BaseModel):
    """UI metadata of a node. Unknown keys are kept as-is."""

    model_config = ConfigDict(extra="allow")

    isOpened: bool | None = None
    isInEditMode: bool | None = None


class Node(BaseModel):
    """A node of the hierarchy.

    ``parent`` is the id of the owning node, or the home id for top-level
    nodes. ``children`` is only filled in by the materializer.
    """

    id: str = Field(default_factory=new_id)
    content: str = ""
    interpreter: str | None = None
    parent: str | None = None
    user_id: str | None = None
    meta: dict[str, Any] = Field(default_factory=dict)
    children: list[Node] | None = None

    @property
    def is_opened(self) -> bool:
        return bool(self.meta.get("isOpened"))


class NodePatch(BaseModel):
    """Partial update of a node. Only fields explicitly set are written."""

    content: str | None = None
    interpreter: str | None = None
    meta: NodeMeta | None = None


class TaskMeta(BaseModel):
    model_config = ConfigDict(extra="allow")

    isOpened: bool | None = None


class Task(BaseModel):
    id: str = Field(default_factory=new_id)
    content: str = ""
    branch: str | None = None
    user_id: str | None = None
    meta: dict[str, Any] = Field(default_factory=dict)

    def apply(self, patch: TaskPatch) -> Task:
        """Return a copy with the patch applied; metadata is shallow-merged."""
        changes = patch.model_dump(exclude_unset=True)
        data = self.model_dump()
        if "content" in changes and changes["content"] is not None:
            data["content"] = changes["content"]
        if patch.meta is not None:
            data["meta"] = {**self.meta, **meta_values(patch.meta)}
        return Task(**data)


class TaskPatch(BaseModel):
    content: str | None = None
    meta: TaskMeta | None = None


def meta_values(meta: BaseModel) -> dict[str, Any]:
    """Return the metadata keys explicitly set on a metadata model."""
    return meta.model_dump(exclude_unset=True)

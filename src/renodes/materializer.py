"""Assemble node trees from ordered collections."""

from __future__ import annotations

import logging
from typing import Any

from renodes.adapters import EntityAdapter
from renodes.models import Node, NodePatch

logger = logging.getLogger(__name__)

HOME_CONTENT = "Home Node"


class HierarchyMaterializer:
    """Build a node with its opened descendants.

    ``held_meta`` maps node ids to metadata the caller already holds (for
    example ``isInEditMode``). Held keys always win over fetched ones.
    """

    def __init__(self, nodes: EntityAdapter[Node, NodePatch], *, max_depth: int = 64) -> None:
        self.nodes = nodes
        self.max_depth = max_depth

    @property
    def home_id(self) -> str:
        return self.nodes.home_id

    def home(self, user_id: str | None = None) -> Node:
        return Node(
            id=self.home_id,
            content=HOME_CONTENT,
            parent=self.home_id,
            user_id=user_id,
            meta={"isOpened": True},
        )

    def get(
        self,
        id: str,
        user_id: str | None = None,
        recursive: bool = False,
        held_meta: dict[str, dict[str, Any]] | None = None,
    ) -> Node:
        held_meta = held_meta or {}
        if id == self.home_id:
            node = self.home(user_id)
        else:
            node = self.nodes.get(id, user_id)
        node = _merge_meta(node, held_meta)
        if recursive:
            node.children = self.children(id, user_id, held_meta, depth=1)
        return node

    def children(
        self,
        parent: str,
        user_id: str | None = None,
        held_meta: dict[str, dict[str, Any]] | None = None,
        depth: int = 1,
    ) -> list[Node]:
        """List a node's children, descending into the opened ones."""
        held_meta = held_meta or {}
        nodes = [_merge_meta(n, held_meta) for n in self.nodes.list(parent, user_id)]
        for node in nodes:
            if not node.is_opened:
                continue
            if depth >= self.max_depth:
                logger.warning(
                    "Not expanding node %s: maximum depth %d reached", node.id, self.max_depth
                )
                continue
            node.children = self.children(node.id, user_id, held_meta, depth + 1)
        return nodes


def _merge_meta(node: Node, held_meta: dict[str, dict[str, Any]]) -> Node:
    held = held_meta.get(node.id)
    if not held:
        return node
    return node.model_copy(update={"meta": {**node.meta, **held}})

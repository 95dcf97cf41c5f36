"""Flat, copy-on-write cache of a node tree for clients.

Nodes are stored in an id-keyed map; each node lists its children by id.
Every mutation returns a new arena and leaves the previous one untouched, so
an optimistic change can be dropped by keeping the old arena.
"""

from __future__ import annotations

from collections.abc import Iterator
from dataclasses import dataclass, field, replace
from typing import Any

from renodes.models import Node, NodePatch, meta_values


@dataclass(frozen=True)
class ArenaNode:
    id: str
    content: str = ""
    parent: str | None = None
    interpreter: str | None = None
    meta: dict[str, Any] = field(default_factory=dict)
    children: tuple[str, ...] = ()

    @property
    def is_opened(self) -> bool:
        return bool(self.meta.get("isOpened"))


class NodeArena:
    def __init__(self, nodes: dict[str, ArenaNode] | None = None, root_id: str | None = None) -> None:
        self._nodes = dict(nodes or {})
        self.root_id = root_id

    @classmethod
    def from_tree(cls, tree: Node) -> NodeArena:
        """Normalize a materialized tree; its root is marked opened."""
        root = tree.model_copy(update={"meta": {**tree.meta, "isOpened": True}})
        return cls(root_id=tree.id).merge(root)

    def __contains__(self, id: object) -> bool:
        return id in self._nodes

    def __len__(self) -> int:
        return len(self._nodes)

    def __getitem__(self, id: str) -> ArenaNode:
        return self._nodes[id]

    def get(self, id: str) -> ArenaNode | None:
        return self._nodes.get(id)

    def _derive(self, nodes: dict[str, ArenaNode]) -> NodeArena:
        return NodeArena(nodes, self.root_id)

    def merge(self, tree: Node) -> NodeArena:
        """Fold a fetched tree into a new arena.

        Metadata already held for a node wins over the fetched metadata.
        Child lists are only replaced for nodes whose children were fetched.
        """
        nodes = dict(self._nodes)

        def visit(item: Node) -> None:
            current = nodes.get(item.id)
            if item.children is not None:
                children = tuple(child.id for child in item.children)
            elif current is not None:
                children = current.children
            else:
                children = ()
            meta = {**item.meta, **current.meta} if current is not None else dict(item.meta)
            nodes[item.id] = ArenaNode(
                id=item.id,
                content=item.content,
                parent=item.parent,
                interpreter=item.interpreter,
                meta=meta,
                children=children,
            )
            for child in item.children or []:
                visit(child)

        visit(tree)
        return self._derive(nodes)

    def add(self, node: ArenaNode, parent: str, after_id: str | None = None) -> NodeArena:
        """Place ``node`` after ``after_id`` among the parent's children, or last."""
        if parent not in self._nodes:
            return self
        owner = self._nodes[parent]
        children = [c for c in owner.children if c != node.id]
        if after_id is not None and after_id in children:
            children.insert(children.index(after_id) + 1, node.id)
        else:
            children.append(node.id)
        nodes = dict(self._nodes)
        nodes[parent] = replace(owner, children=tuple(children))
        nodes[node.id] = replace(node, parent=parent)
        return self._derive(nodes)

    def delete(self, id: str) -> NodeArena:
        """Remove a node and its cached descendants."""
        node = self._nodes.get(id)
        if node is None:
            return self
        nodes = dict(self._nodes)
        stack = [id]
        while stack:
            removed = nodes.pop(stack.pop(), None)
            if removed is not None:
                stack.extend(removed.children)
        owner = nodes.get(node.parent) if node.parent is not None else None
        if owner is not None and owner.id != id:
            nodes[owner.id] = replace(owner, children=tuple(c for c in owner.children if c != id))
        return self._derive(nodes)

    def edit(self, id: str, patch: NodePatch) -> NodeArena:
        node = self._nodes.get(id)
        if node is None:
            return self
        changes = patch.model_dump(exclude_unset=True, exclude={"meta"})
        if patch.meta is not None:
            changes["meta"] = {**node.meta, **meta_values(patch.meta)}
        nodes = dict(self._nodes)
        nodes[id] = replace(node, **changes)
        return self._derive(nodes)

    def set_meta(self, id: str, meta: dict[str, Any]) -> NodeArena:
        node = self._nodes.get(id)
        if node is None:
            return self
        nodes = dict(self._nodes)
        nodes[id] = replace(node, meta={**node.meta, **meta})
        return self._derive(nodes)

    def move(self, id: str, after_id: str | None = None) -> NodeArena:
        """Move a node after a sibling, or to the front when no sibling is given."""
        node = self._nodes.get(id)
        if node is None or node.parent not in self._nodes or id == after_id:
            return self
        owner = self._nodes[node.parent]
        children = [c for c in owner.children if c != id]
        if after_id is None:
            children.insert(0, id)
        elif after_id in children:
            children.insert(children.index(after_id) + 1, id)
        else:
            return self
        nodes = dict(self._nodes)
        nodes[owner.id] = replace(owner, children=tuple(children))
        return self._derive(nodes)

    def walk(self, root_id: str | None = None) -> Iterator[tuple[int, ArenaNode]]:
        """Yield ``(depth, node)`` depth-first through opened nodes."""
        start = root_id if root_id is not None else self.root_id
        if start is None or start not in self._nodes:
            return
        stack: list[tuple[int, str]] = [(0, start)]
        seen: set[str] = set()
        while stack:
            depth, current = stack.pop()
            node = self._nodes.get(current)
            if node is None or current in seen:
                continue
            seen.add(current)
            yield depth, node
            if node.is_opened:
                stack.extend((depth + 1, c) for c in reversed(node.children))

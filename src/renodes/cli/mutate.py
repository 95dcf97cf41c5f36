"""renodes add / edit / rm / mv / meta: change collections."""

from __future__ import annotations

import json
from typing import Any, Optional

import typer

from renodes.cli import _exitcodes as ec
from renodes.cli._errors import exit_on_error
from renodes.cli._output import print_error, print_object
from renodes.cli._storage import open_context
from renodes.models import Node, NodePatch, Task, TaskPatch


def add_cmd(
    content: str = typer.Argument("", help="Content of the new item"),
    parent: Optional[str] = typer.Option(None, "--parent", "-p", help="Parent id (default: top level)"),
    after: Optional[str] = typer.Option(None, "--after", "-a", help="Insert after this sibling id"),
    id: Optional[str] = typer.Option(None, "--id", help="Id of the new item (default: generated)"),
    interpreter: Optional[str] = typer.Option(None, "--interpreter", help="Node interpreter tag"),
) -> None:
    """Add an item at the end of a parent, or after a sibling."""
    from renodes.cli import state

    fields: dict[str, Any] = {"content": content}
    if id is not None:
        fields["id"] = id
    with exit_on_error(), open_context() as ctx:
        if state.kind == "tasks":
            item: Any = Task(branch=parent, user_id=ctx.user_id, **fields)
        else:
            item = Node(parent=parent, interpreter=interpreter, user_id=ctx.user_id, **fields)
        stored = ctx.adapter.put(item, after)

    print_object(stored.model_dump(exclude_none=True), json_mode=state.json_output)


def edit_cmd(
    id: str = typer.Argument(..., help="Item id"),
    content: Optional[str] = typer.Option(None, "--content", help="New content"),
    interpreter: Optional[str] = typer.Option(None, "--interpreter", help="New interpreter tag"),
) -> None:
    """Rewrite the content or interpreter of an item."""
    from renodes.cli import state

    changes: dict[str, Any] = {}
    if content is not None:
        changes["content"] = content
    if interpreter is not None:
        if state.kind == "tasks":
            print_error("Tasks have no interpreter")
            raise typer.Exit(ec.USAGE_ERROR)
        changes["interpreter"] = interpreter
    if not changes:
        print_error("Nothing to edit: pass --content or --interpreter")
        raise typer.Exit(ec.USAGE_ERROR)

    patch: Any = TaskPatch(**changes) if state.kind == "tasks" else NodePatch(**changes)
    with exit_on_error(), open_context() as ctx:
        ctx.adapter.update(id, patch, ctx.user_id)
        item = ctx.adapter.get(id, ctx.user_id)

    print_object(item.model_dump(exclude_none=True), json_mode=state.json_output)


def rm_cmd(id: str = typer.Argument(..., help="Item id")) -> None:
    """Delete an item. Deleting a missing item succeeds."""
    from renodes.cli import state

    with exit_on_error(), open_context() as ctx:
        ctx.adapter.delete(id, ctx.user_id)
    print_object({"status": "deleted", "id": id}, json_mode=state.json_output)


def mv_cmd(
    id: str = typer.Argument(..., help="Item id"),
    after: Optional[str] = typer.Option(
        None, "--after", "-a", help="Sibling to move after (default: move to the front)"
    ),
    parent: Optional[str] = typer.Option(
        None, "--parent", "-p", help="Parent id (default: the item's current parent)"
    ),
) -> None:
    """Reorder an item within its parent."""
    from renodes.cli import state

    with exit_on_error(), open_context() as ctx:
        if parent is None:
            current = ctx.adapter.get(id, ctx.user_id)
            parent = ctx.adapter.codec.parent_of(current)
        ctx.adapter.move(id, parent, after, ctx.user_id)
    print_object({"status": "moved", "id": id, "after": after}, json_mode=state.json_output)


def _parse_assignment(text: str) -> tuple[str, Any]:
    name, sep, raw = text.partition("=")
    if not sep or not name:
        raise ValueError(f"Expected KEY=VALUE, got '{text}'")
    try:
        value = json.loads(raw)
    except json.JSONDecodeError:
        value = raw
    return name, value


def meta_cmd(
    id: str = typer.Argument(..., help="Item id"),
    assignments: Optional[list[str]] = typer.Argument(
        None, help="KEY=VALUE pairs; values are parsed as JSON when possible"
    ),
) -> None:
    """Show an item's metadata, or merge KEY=VALUE pairs into it."""
    from renodes.cli import state

    with exit_on_error(), open_context() as ctx:
        if not assignments:
            meta = ctx.adapter.meta(id, None, ctx.user_id)
        else:
            values = dict(_parse_assignment(a) for a in assignments)
            ctx.adapter.meta(id, values, ctx.user_id)
            meta = ctx.adapter.meta(id, None, ctx.user_id)

    print_object(meta, json_mode=state.json_output)

"""renodes ls / show: read collections and node trees."""

from __future__ import annotations

import json
from typing import Any, Optional

import typer
import yaml

from renodes.arena import NodeArena
from renodes.cli import _exitcodes as ec
from renodes.cli._errors import exit_on_error
from renodes.cli._output import print_error, print_object, print_table, print_tree
from renodes.cli._storage import open_context
from renodes.models import Node


def _row(item: Any) -> list[Any]:
    meta = json.dumps(item.meta, sort_keys=True) if item.meta else ""
    return [item.id, item.content, getattr(item, "interpreter", None), meta]


def ls_cmd(
    parent: Optional[str] = typer.Argument(None, help="Parent id (default: top level)"),
) -> None:
    """List the children of a parent in order."""
    from renodes.cli import state

    with exit_on_error(), open_context() as ctx:
        items = ctx.adapter.list(parent, ctx.user_id)

    headers = ["id", "content", "interpreter", "meta"]
    rows = [_row(item) for item in items]
    if not rows and not state.json_output:
        print("(empty)")
        return
    print_table(headers, rows, json_mode=state.json_output)


def _parse_held_meta(values: list[str]) -> dict[str, dict[str, Any]]:
    held: dict[str, dict[str, Any]] = {}
    for node_id in values:
        held.setdefault(node_id, {})["isOpened"] = True
    return held


def show_cmd(
    id: str = typer.Argument("home", help="Node id (default: home)"),
    recursive: bool = typer.Option(False, "--recursive", "-r", help="Include opened descendants"),
    open_ids: list[str] = typer.Option(
        [], "--open", help="Treat this node as opened (repeatable)"
    ),
    fmt: str = typer.Option("text", "--format", help="Output format: text, json or yaml"),
) -> None:
    """Show a node, optionally with its opened descendants."""
    from renodes.cli import state

    if fmt not in {"text", "json", "yaml"}:
        print_error(f"Unsupported format '{fmt}'")
        raise typer.Exit(ec.USAGE_ERROR)
    if state.json_output:
        fmt = "json"

    with exit_on_error(), open_context() as ctx:
        if state.kind == "tasks":
            item: Any = ctx.adapter.get(id, ctx.user_id)
        else:
            item = ctx.materializer.get(
                id,
                ctx.user_id,
                recursive=recursive,
                held_meta=_parse_held_meta(open_ids),
            )

    data = item.model_dump(exclude_none=True)
    if fmt == "json":
        print_object(data, json_mode=True)
    elif fmt == "yaml":
        print(yaml.dump(data, default_flow_style=False, sort_keys=False), end="")
    elif isinstance(item, Node) and recursive:
        print_tree(NodeArena.from_tree(item).walk())
    else:
        data.pop("children", None)
        print_object(data)

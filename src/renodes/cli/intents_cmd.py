"""renodes intents: list and clear intents left by partial failures."""

from __future__ import annotations

from typing import Optional

import typer

from renodes.cli._errors import exit_on_error
from renodes.cli._output import print_object, print_table
from renodes.cli._storage import open_context
from renodes.errors import NotFoundError

app = typer.Typer(no_args_is_help=True)


@app.command("ls")
def list_intents(
    parent: Optional[str] = typer.Option(
        None, "--parent", help="Only intents touching this parent's collection"
    ),
) -> None:
    """List pending intents."""
    from renodes.cli import state

    with exit_on_error(), open_context() as ctx:
        collection = None
        if parent is not None:
            collection = ctx.adapter.codec.collection(parent, ctx.user_id)
        intents = ctx.driver.pending_intents(collection)

    rows = [
        [i.key, i.operation, i.collection, i.target, len(i.writes), i.created_at]
        for i in intents
    ]
    if not rows and not state.json_output:
        print("No pending intents.")
        return
    print_table(
        ["key", "operation", "collection", "target", "writes", "created_at"],
        rows,
        json_mode=state.json_output,
    )


@app.command("show")
def show_intent(key: str = typer.Argument(..., help="Intent key")) -> None:
    """Show the planned writes of an intent."""
    from renodes.cli import state

    with exit_on_error(), open_context() as ctx:
        intent = ctx.driver.intents.get(key) if ctx.driver.intents is not None else None
        if intent is None:
            raise NotFoundError(key)

    print_object(
        {
            "key": intent.key,
            "operation": intent.operation,
            "collection": intent.collection,
            "target": intent.target,
            "created_at": intent.created_at,
            "writes": intent.writes,
        },
        json_mode=state.json_output,
    )


@app.command("clear")
def clear_intent(key: str = typer.Argument(..., help="Intent key")) -> None:
    """Remove an intent once its collection has been repaired."""
    from renodes.cli import state

    with exit_on_error(), open_context() as ctx:
        ctx.driver.clear_intent(key)
    print_object({"status": "cleared", "key": key}, json_mode=state.json_output)

"""renodes verify: check a collection's chain."""

from __future__ import annotations

from typing import Optional

import typer

from renodes.cli import _exitcodes as ec
from renodes.cli._errors import exit_on_error
from renodes.cli._output import print_object
from renodes.cli._storage import open_context


def verify_cmd(
    parent: Optional[str] = typer.Argument(None, help="Parent id (default: top level)"),
    strict: bool = typer.Option(False, "--strict", help="Non-zero exit when the chain is broken"),
) -> None:
    """Check that a collection's successor chain is intact."""
    from renodes.cli import state

    with exit_on_error(), open_context() as ctx:
        collection = ctx.adapter.codec.collection(parent, ctx.user_id)
        report = ctx.driver.verify(collection)
        pending = ctx.driver.pending_intents(collection)

    data = report.to_dict()
    data["pending_intents"] = [i.key for i in pending]
    if state.json_output:
        print_object(data, json_mode=True)
    elif report.ok:
        print(f"Chain OK: {collection} ({len(report.order)} record(s))")
        if pending:
            print(f"Pending intents: {', '.join(i.key for i in pending)}")
    else:
        print(f"Chain broken: {collection}")
        for key in ("tails", "duplicate_successors", "unreachable", "dangling", "cycle_at"):
            if data[key]:
                print(f"  {key}: {data[key]}")
        if pending:
            print(f"  pending_intents: {data['pending_intents']}")

    if strict and not report.ok:
        raise typer.Exit(ec.CHAIN_BROKEN)

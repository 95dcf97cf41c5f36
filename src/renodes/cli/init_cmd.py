"""renodes init / drop: create or remove the storage schema."""

from __future__ import annotations

import typer

from renodes.cli import _exitcodes as ec
from renodes.cli._output import print_error, print_object
from renodes.cli._storage import open_store, resolve_storage_binding
from renodes.storage import parse_storage_target


def init_cmd(
    dry_run: bool = typer.Option(False, "--dry-run", help="Preview initialization only"),
) -> None:
    """Initialize the selected storage backend."""
    from renodes.cli import state

    json_mode = state.json_output
    db_path, storage_uri = resolve_storage_binding()

    try:
        target = parse_storage_target(db_path=db_path, storage_uri=storage_uri)
    except Exception as e:
        print_error(str(e))
        raise typer.Exit(ec.USAGE_ERROR)

    if dry_run:
        data = {"backend": target.backend, "uri": target.uri, "status": "dry_run"}
        if target.table_name:
            data["table_name"] = target.table_name
        print_object(data, json_mode=json_mode)
        return

    try:
        store = open_store()
    except Exception as e:
        print_error(f"Cannot open storage backend: {e}")
        raise typer.Exit(ec.DATABASE_ERROR)

    try:
        store.create_schema()
        info = store.storage_info()
    except Exception as e:
        print_error(str(e))
        raise typer.Exit(ec.EXECUTION_FAILURE)
    finally:
        store.close()

    print_object({**info, "status": "initialized"}, json_mode=json_mode)


def drop_cmd(
    yes: bool = typer.Option(False, "--yes", help="Confirm dropping all stored records"),
) -> None:
    """Drop the storage schema and every stored record."""
    from renodes.cli import state

    if not yes:
        print_error("Refusing to drop storage without --yes")
        raise typer.Exit(ec.DROP_SAFETY)

    try:
        store = open_store()
    except Exception as e:
        print_error(f"Cannot open storage backend: {e}")
        raise typer.Exit(ec.DATABASE_ERROR)

    try:
        store.drop_schema()
    except Exception as e:
        print_error(str(e))
        raise typer.Exit(ec.EXECUTION_FAILURE)
    finally:
        store.close()

    _, storage_uri = resolve_storage_binding()
    print_object({"status": "dropped", "uri": storage_uri or state.db}, json_mode=state.json_output)

"""renodes CLI: operator console for ordered node collections."""

from __future__ import annotations

import logging
from typing import Optional

import typer

from renodes.cli import browse, init_cmd, intents_cmd, mutate, verify

app = typer.Typer(
    name="renodes",
    help="renodes CLI: inspect and edit ordered node collections.",
    no_args_is_help=True,
)

KINDS = ("nodes", "tasks")


class _State:
    """Global CLI state shared across subcommands."""

    db: str = "renodes.db"
    storage_uri: str | None = None
    user: str | None = None
    kind: str = "nodes"
    json_output: bool = False


state = _State()


def _version_callback(value: bool) -> None:
    if value:
        try:
            from importlib.metadata import version

            v = version("renodes")
        except Exception:
            v = "unknown"
        print(f"renodes {v}")
        raise typer.Exit()


def _source_name(ctx: typer.Context, param: str) -> str | None:
    """Name of the ParameterSource a value came from.

    Compared by name: typer may return its own copy of click's enum.
    """
    source = ctx.get_parameter_source(param)
    return source.name if source is not None else None


@app.callback(invoke_without_command=True)
def main_callback(
    ctx: typer.Context,
    db: Optional[str] = typer.Option(
        None,
        "--db",
        envvar="RENODES_DB",
        help="SQLite database file path (default: renodes.db)",
    ),
    storage_uri: Optional[str] = typer.Option(
        None,
        "--storage-uri",
        envvar="RENODES_STORAGE_URI",
        help="Backend storage URI (e.g. sqlite:///renodes.db or dynamodb://table)",
    ),
    user: Optional[str] = typer.Option(
        None, "--user", "-u", envvar="RENODES_USER", help="Owner scope of the collections"
    ),
    kind: str = typer.Option("nodes", "--kind", "-k", help="Entity kind: nodes or tasks"),
    json_output: bool = typer.Option(False, "--json", help="JSON output when supported"),
    log_level: Optional[str] = typer.Option(
        None, "--log-level", envvar="RENODES_LOG_LEVEL", help="Logging level (e.g. INFO, DEBUG)"
    ),
    version: bool = typer.Option(
        False, "--version", help="Show version", is_eager=True, callback=_version_callback
    ),
) -> None:
    """Global options for all renodes commands."""
    from renodes.storage import parse_storage_target

    if kind not in KINDS:
        raise typer.BadParameter(f"expected one of {', '.join(KINDS)}", param_hint="--kind")
    if log_level is not None:
        level = getattr(logging, log_level.upper(), None)
        if not isinstance(level, int):
            raise typer.BadParameter(f"unknown level '{log_level}'", param_hint="--log-level")
        logging.basicConfig(format="%(levelname)s %(name)s: %(message)s")
        logging.getLogger("renodes").setLevel(level)

    db_source = _source_name(ctx, "db")
    uri_source = _source_name(ctx, "storage_uri")

    resolved_db = db or "renodes.db"
    resolved_uri = storage_uri
    # Explicit --db overrides RENODES_STORAGE_URI unless --storage-uri is also given.
    if db_source == "COMMANDLINE" and uri_source == "ENVIRONMENT":
        resolved_uri = None

    db_for_validation: str | None = None
    if db_source == "COMMANDLINE":
        db_for_validation = resolved_db
    if resolved_uri:
        try:
            parse_storage_target(db_path=db_for_validation, storage_uri=resolved_uri)
        except Exception as e:
            raise typer.BadParameter(str(e))

    state.db = resolved_db
    state.storage_uri = resolved_uri
    state.user = user
    state.kind = kind
    state.json_output = json_output
    if ctx.invoked_subcommand is None and not version:
        print(ctx.get_help())
        raise typer.Exit()


app.add_typer(intents_cmd.app, name="intents", help="Inspect and clear pending intents")

app.command(name="init")(init_cmd.init_cmd)
app.command(name="drop")(init_cmd.drop_cmd)
app.command(name="ls")(browse.ls_cmd)
app.command(name="show")(browse.show_cmd)
app.command(name="add")(mutate.add_cmd)
app.command(name="edit")(mutate.edit_cmd)
app.command(name="rm")(mutate.rm_cmd)
app.command(name="mv")(mutate.mv_cmd)
app.command(name="meta")(mutate.meta_cmd)
app.command(name="verify")(verify.verify_cmd)


def main() -> None:
    """Entry point for the renodes CLI."""
    app()

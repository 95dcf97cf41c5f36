"""Shared fixtures for CLI tests."""

from __future__ import annotations

from typing import TYPE_CHECKING

import pytest
from typer.testing import CliRunner

from renodes.adapters import node_adapter
from renodes.cli import app
from renodes.driver import OrderedCollectionDriver
from renodes.models import Node
from renodes.storage import SqliteRecordStore

if TYPE_CHECKING:
    from click.testing import Result


@pytest.fixture
def runner():
    """Create a CLI test runner."""
    return CliRunner()


@pytest.fixture
def cli_db(tmp_path):
    """Create a temp DB path for the CLI."""
    return str(tmp_path / "cli_test.db")


@pytest.fixture
def seeded_db(cli_db):
    """Create a DB with a small node tree.

    home: a (opened) > [a1, a2], b
    """
    store = SqliteRecordStore(cli_db)
    with OrderedCollectionDriver(store) as driver:
        nodes = node_adapter(driver)
        nodes.put(Node(id="a", content="Alpha", meta={"isOpened": True}))
        nodes.put(Node(id="b", content="Beta"))
        nodes.put(Node(id="a1", content="Alpha one", parent="a"))
        nodes.put(Node(id="a2", content="Alpha two", parent="a", interpreter="md"))
    store.close()
    return cli_db


def invoke(runner: CliRunner, args: list[str], db_path: str | None = None) -> "Result":
    """Invoke CLI with proper state setup."""
    if db_path:
        # Inject --db before subcommand
        args = ["--db", db_path] + args
    return runner.invoke(app, args, catch_exceptions=False)

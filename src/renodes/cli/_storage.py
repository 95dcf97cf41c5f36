"""CLI helpers for backend-aware store, driver and adapter construction."""

from __future__ import annotations

import os
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Any

from renodes.adapters import EntityAdapter, node_adapter, task_adapter
from renodes.config import RenodesConfig
from renodes.driver import OrderedCollectionDriver
from renodes.materializer import HierarchyMaterializer
from renodes.storage import RecordStoreProtocol, open_record_store


def resolve_storage_binding() -> tuple[str | None, str | None]:
    """Return (db_path, storage_uri) from CLI state."""
    from renodes.cli import state

    if state.storage_uri:
        return None, state.storage_uri
    return state.db, None


def _config_from_env() -> RenodesConfig:
    """Build engine config from CLI environment defaults."""
    cfg = RenodesConfig()
    table_name = os.getenv("RENODES_TABLE_NAME")
    if table_name:
        cfg.table_name = table_name
    region = os.getenv("RENODES_REGION")
    if region:
        cfg.region = region
    cfg.endpoint_url = os.getenv("RENODES_DYNAMODB_ENDPOINT") or None
    return cfg


def open_store() -> RecordStoreProtocol:
    """Open the record store selected by the global CLI options."""
    db_path, storage_uri = resolve_storage_binding()
    return open_record_store(db_path, storage_uri=storage_uri, config=_config_from_env())


@dataclass
class CliContext:
    store: RecordStoreProtocol
    driver: OrderedCollectionDriver
    adapter: EntityAdapter[Any, Any]
    user_id: str | None

    @property
    def materializer(self) -> HierarchyMaterializer:
        return HierarchyMaterializer(self.adapter, max_depth=self.driver.config.max_depth)


@contextmanager
def open_context() -> Iterator[CliContext]:
    """Open store, driver and the adapter for ``--kind``; close them on exit."""
    from renodes.cli import state

    cfg = _config_from_env()
    store = open_store()
    driver = OrderedCollectionDriver(store, config=cfg)
    adapter = task_adapter(driver) if state.kind == "tasks" else node_adapter(driver)
    try:
        yield CliContext(store=store, driver=driver, adapter=adapter, user_id=state.user)
    finally:
        driver.close()
        store.close()

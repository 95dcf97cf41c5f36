"""Configuration for the renodes engine."""

from __future__ import annotations

from dataclasses import dataclass


@dataclass
class RenodesConfig:
    """Configuration shared by record stores, drivers and adapters."""

    table_name: str = "renodes"
    region: str | None = "us-east-1"
    endpoint_url: str | None = None
    request_timeout_s: float = 10.0
    max_workers: int = 8
    home_id: str = "home"
    record_intents: bool = True
    max_depth: int = 64

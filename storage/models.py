"""Dataclasses representing stored scanner records."""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from analysis.models import Path, TokenDatabase


@dataclass(slots=True)
class PathGenerationRecord:
    id: int
    generated_at: datetime
    hubs: list[str]
    paths: list[Path]
    token_database: TokenDatabase


@dataclass(slots=True)
class ScanCycleRecord:
    id: int
    started_at: datetime
    finished_at: Optional[datetime]
    mode: str
    hubs: list[str]
    paths_evaluated: int
    opportunities_found: int


@dataclass(slots=True)
class OpportunityRecord:
    id: int
    scan_cycle_id: Optional[int]
    hub: str
    description: str
    net_profit: int
    profit_percent: float
    executed: bool
    tx_hash: Optional[str]
    reason: Optional[str]
    recorded_at: datetime

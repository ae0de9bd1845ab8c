"""SQLite-backed persistence layer for generated paths, scan cycles and opportunities."""
from __future__ import annotations

import asyncio
import json
import sqlite3
import threading
from datetime import datetime, timezone
from pathlib import Path
from typing import Iterable, Optional

from analysis.models import Opportunity
from analysis.models import Path as TradePath
from analysis.models import TokenDatabase
from analysis.path_generator import path_from_dict, path_to_dict
from analysis.token_database import token_database_from_dict, token_database_to_dict
from storage.models import OpportunityRecord, PathGenerationRecord, ScanCycleRecord

ISO_FORMAT = "%Y-%m-%dT%H:%M:%S.%fZ"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _format_ts(value: datetime) -> str:
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc)
    return value.strftime(ISO_FORMAT)


def _parse_ts(value: Optional[str]) -> Optional[datetime]:
    if value is None:
        return None
    return datetime.strptime(value, ISO_FORMAT).replace(tzinfo=timezone.utc)


class SQLiteRepository:
    """Provides async-friendly helpers for persisting scanner activity."""

    def __init__(self, db_path: Path | str = Path("data/arbitrage.db")) -> None:
        self.db_path = Path(db_path)
        if self.db_path != Path(":memory:"):
            self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._lock = threading.Lock()
        self._connection = sqlite3.connect(
            str(self.db_path),
            detect_types=sqlite3.PARSE_DECLTYPES,
            check_same_thread=False,
        )
        self._connection.row_factory = sqlite3.Row
        self._configure()
        self._create_schema()

    def _configure(self) -> None:
        with self._lock:
            cursor = self._connection.cursor()
            try:
                cursor.execute("PRAGMA journal_mode=WAL;")
            except sqlite3.DatabaseError:
                pass
            cursor.execute("PRAGMA foreign_keys=ON;")
            cursor.close()

    def _create_schema(self) -> None:
        statements = [
            """
            CREATE TABLE IF NOT EXISTS path_generation (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                generated_at TEXT NOT NULL,
                hubs TEXT NOT NULL,
                paths TEXT NOT NULL,
                token_database TEXT NOT NULL
            );
            """,
            """
            CREATE TABLE IF NOT EXISTS scan_cycle (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                started_at TEXT NOT NULL,
                finished_at TEXT,
                mode TEXT NOT NULL,
                hubs TEXT NOT NULL,
                paths_evaluated INTEGER NOT NULL DEFAULT 0,
                opportunities_found INTEGER NOT NULL DEFAULT 0
            );
            """,
            """
            CREATE TABLE IF NOT EXISTS opportunity (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                scan_cycle_id INTEGER,
                hub TEXT NOT NULL,
                description TEXT NOT NULL,
                net_profit TEXT NOT NULL,
                profit_percent REAL NOT NULL,
                executed INTEGER NOT NULL DEFAULT 0,
                tx_hash TEXT,
                reason TEXT,
                recorded_at TEXT NOT NULL,
                FOREIGN KEY (scan_cycle_id) REFERENCES scan_cycle(id) ON DELETE SET NULL
            );
            """,
            """
            CREATE INDEX IF NOT EXISTS idx_path_generation_time
                ON path_generation(generated_at);
            """,
            """
            CREATE INDEX IF NOT EXISTS idx_opportunity_cycle
                ON opportunity(scan_cycle_id);
            """,
        ]

        with self._lock:
            cursor = self._connection.cursor()
            for statement in statements:
                cursor.execute(statement)
            self._connection.commit()
            cursor.close()

    async def save_paths(
        self,
        paths: list[TradePath],
        generated_at: datetime,
        hubs: Iterable[str],
        token_database: TokenDatabase,
    ) -> int:
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(
            None,
            self._save_paths_sync,
            list(paths),
            generated_at,
            list(hubs),
            token_database,
        )

    def _save_paths_sync(
        self,
        paths: list[TradePath],
        generated_at: datetime,
        hubs: list[str],
        token_database: TokenDatabase,
    ) -> int:
        payload = json.dumps([path_to_dict(p) for p in paths])
        database = json.dumps(token_database_to_dict(token_database))
        with self._lock:
            cursor = self._connection.cursor()
            cursor.execute(
                """
                INSERT INTO path_generation (generated_at, hubs, paths, token_database)
                VALUES (?, ?, ?, ?)
                """,
                (_format_ts(generated_at), json.dumps(hubs), payload, database),
            )
            self._connection.commit()
            generation_id = cursor.lastrowid
            cursor.close()
        return generation_id

    async def load_latest_paths(
        self,
        max_age: float,
        now: Optional[datetime] = None,
    ) -> Optional[PathGenerationRecord]:
        """Newest path generation no older than ``max_age`` seconds, or None."""
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, self._load_latest_paths_sync, max_age, now or _utcnow())

    def _load_latest_paths_sync(self, max_age: float, now: datetime) -> Optional[PathGenerationRecord]:
        with self._lock:
            cursor = self._connection.cursor()
            cursor.execute(
                """
                SELECT * FROM path_generation
                ORDER BY generated_at DESC, id DESC
                LIMIT 1
                """
            )
            row = cursor.fetchone()
            cursor.close()
        if row is None:
            return None
        generated_at = _parse_ts(row["generated_at"])
        if now.tzinfo is None:
            now = now.replace(tzinfo=timezone.utc)
        if (now - generated_at).total_seconds() > max_age:
            return None
        return PathGenerationRecord(
            id=row["id"],
            generated_at=generated_at,
            hubs=json.loads(row["hubs"]),
            paths=[path_from_dict(p) for p in json.loads(row["paths"])],
            token_database=token_database_from_dict(json.loads(row["token_database"])),
        )

    async def record_scan_cycle_start(self, mode: str, hubs: Iterable[str]) -> int:
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(
            None,
            self._record_scan_cycle_start_sync,
            mode,
            list(hubs),
        )

    def _record_scan_cycle_start_sync(self, mode: str, hubs: list[str]) -> int:
        started_at = _format_ts(_utcnow())
        with self._lock:
            cursor = self._connection.cursor()
            cursor.execute(
                """
                INSERT INTO scan_cycle (started_at, mode, hubs)
                VALUES (?, ?, ?)
                """,
                (started_at, mode, json.dumps(hubs)),
            )
            self._connection.commit()
            cycle_id = cursor.lastrowid
            cursor.close()
        return cycle_id

    async def record_scan_cycle_finish(self, scan_cycle_id: int, paths_evaluated: int, opportunities_found: int) -> None:
        loop = asyncio.get_running_loop()
        await loop.run_in_executor(
            None,
            self._record_scan_cycle_finish_sync,
            scan_cycle_id,
            paths_evaluated,
            opportunities_found,
        )

    def _record_scan_cycle_finish_sync(self, scan_cycle_id: int, paths_evaluated: int, opportunities_found: int) -> None:
        finished_at = _format_ts(_utcnow())
        with self._lock:
            cursor = self._connection.cursor()
            cursor.execute(
                """
                UPDATE scan_cycle
                SET finished_at = ?, paths_evaluated = ?, opportunities_found = ?
                WHERE id = ?
                """,
                (finished_at, paths_evaluated, opportunities_found, scan_cycle_id),
            )
            self._connection.commit()
            cursor.close()

    async def fetch_scan_cycle(self, scan_cycle_id: int) -> Optional[ScanCycleRecord]:
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, self._fetch_scan_cycle_sync, scan_cycle_id)

    def _fetch_scan_cycle_sync(self, scan_cycle_id: int) -> Optional[ScanCycleRecord]:
        with self._lock:
            cursor = self._connection.cursor()
            cursor.execute("SELECT * FROM scan_cycle WHERE id = ?", (scan_cycle_id,))
            row = cursor.fetchone()
            cursor.close()
        if row is None:
            return None
        return ScanCycleRecord(
            id=row["id"],
            started_at=_parse_ts(row["started_at"]),
            finished_at=_parse_ts(row["finished_at"]),
            mode=row["mode"],
            hubs=json.loads(row["hubs"]),
            paths_evaluated=row["paths_evaluated"],
            opportunities_found=row["opportunities_found"],
        )

    async def record_opportunity(
        self,
        *,
        scan_cycle_id: Optional[int],
        opportunity: Opportunity,
        executed: bool,
        tx_hash: Optional[str] = None,
        reason: Optional[str] = None,
    ) -> int:
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(
            None,
            self._record_opportunity_sync,
            scan_cycle_id,
            opportunity,
            executed,
            tx_hash,
            reason,
        )

    def _record_opportunity_sync(
        self,
        scan_cycle_id: Optional[int],
        opportunity: Opportunity,
        executed: bool,
        tx_hash: Optional[str],
        reason: Optional[str],
    ) -> int:
        with self._lock:
            cursor = self._connection.cursor()
            cursor.execute(
                """
                INSERT INTO opportunity (
                    scan_cycle_id,
                    hub,
                    description,
                    net_profit,
                    profit_percent,
                    executed,
                    tx_hash,
                    reason,
                    recorded_at
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    scan_cycle_id,
                    opportunity.hub,
                    opportunity.description,
                    str(opportunity.net_profit),
                    opportunity.profit_percent,
                    1 if executed else 0,
                    tx_hash,
                    reason,
                    _format_ts(_utcnow()),
                ),
            )
            self._connection.commit()
            opportunity_id = cursor.lastrowid
            cursor.close()
        return opportunity_id

    async def fetch_recent_opportunities(self, limit: int = 50) -> list[OpportunityRecord]:
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, self._fetch_recent_opportunities_sync, limit)

    def _fetch_recent_opportunities_sync(self, limit: int) -> list[OpportunityRecord]:
        with self._lock:
            cursor = self._connection.cursor()
            cursor.execute(
                """
                SELECT * FROM opportunity
                ORDER BY recorded_at DESC, id DESC
                LIMIT ?
                """,
                (limit,)
            )
            rows = cursor.fetchall()
            cursor.close()
        records: list[OpportunityRecord] = []
        for row in rows:
            records.append(
                OpportunityRecord(
                    id=row["id"],
                    scan_cycle_id=row["scan_cycle_id"],
                    hub=row["hub"],
                    description=row["description"],
                    net_profit=int(row["net_profit"]),
                    profit_percent=row["profit_percent"],
                    executed=bool(row["executed"]),
                    tx_hash=row["tx_hash"],
                    reason=row["reason"],
                    recorded_at=_parse_ts(row["recorded_at"]),
                )
            )
        return records

    async def close(self) -> None:
        loop = asyncio.get_running_loop()
        await loop.run_in_executor(None, self._close_sync)

    def _close_sync(self) -> None:
        with self._lock:
            self._connection.commit()
            self._connection.close()


__all__ = ["SQLiteRepository", "PathGenerationRecord", "ScanCycleRecord", "OpportunityRecord"]

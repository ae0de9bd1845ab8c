# scanner.py
import asyncio
import logging
import sqlite3
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Dict, List, Optional, Protocol

from analysis.models import Hop, Opportunity, Path, TokenDatabase
from analysis.path_evaluator import PathEvaluator
from analysis.path_generator import generate_paths
from analysis.profit_calculator import format_units, to_smallest_unit
from analysis.token_database import rank_tokens_by_liquidity
from config import SCAN_MODE_HUB, AppConfig
from constants import C_GREEN, C_RESET, C_YELLOW, MAX_RETRY_BACKOFF
from exceptions import ConfigurationError, MarketDataUnavailable, RpcError
from services.aave_client import AaveClient
from services.dexscreener_client import DexScreenerClient
from services.gas_oracle import GasOracle
from services.rpc_client import RpcClient
from services.trade_executor import TradeResult
from storage import SQLiteRepository

logger = logging.getLogger(__name__)


class Executor(Protocol):
    async def execute(self, opportunity: Opportunity) -> TradeResult: ...


@dataclass
class ScanState:
    """Everything the scan loop carries from one cycle to the next."""
    cycle_count: int = 0
    last_scan_time: Optional[str] = None
    found_last_scan: int = 0
    opportunities_found: int = 0
    last_error: Optional[str] = None
    hubs: List[str] = field(default_factory=list)
    paths: List[Path] = field(default_factory=list)
    paths_generated_at: Optional[datetime] = None
    token_database: TokenDatabase = field(default_factory=dict)
    hub_decimals: Dict[str, int] = field(default_factory=dict)
    market_data_failures: int = 0


class ArbitrageScanner:
    def __init__(
        self,
        config: AppConfig,
        evaluator: PathEvaluator,
        dex_client: DexScreenerClient,
        rpc: RpcClient,
        aave_client: Optional[AaveClient] = None,
        repository: Optional[SQLiteRepository] = None,
        executor: Optional[Executor] = None,
        gas_oracle: Optional[GasOracle] = None,
    ):
        self.config = config
        self.evaluator = evaluator
        self.dex_client = dex_client
        self.rpc = rpc
        self.aave_client = aave_client
        self.repository = repository
        self.executor = executor
        self.gas_oracle = gas_oracle
        self.state = ScanState()
        self._shutdown = asyncio.Event()
        self._current_scan_cycle_id: Optional[int] = None

    def request_shutdown(self) -> None:
        """Stops the loop after the cycle in progress has finished."""
        if not self._shutdown.is_set():
            logger.info("Shutdown requested, finishing current cycle...")
        self._shutdown.set()

    @property
    def shutdown_requested(self) -> bool:
        return self._shutdown.is_set()

    async def start(self):
        """Resolves hub assets and runs scan cycles until shutdown is requested."""
        self.state.hubs = await self.resolve_hubs()
        logger.info("Scanning %d hub assets in %s mode.", len(self.state.hubs), self.config.mode)
        await self._run_main_loop()

    async def _run_main_loop(self):
        """The main application loop."""
        while not self._shutdown.is_set():
            logger.info("=" * 50)
            logger.info("Starting arbitrage scan cycle #%d...", self.state.cycle_count + 1)
            delay = self.config.interval
            try:
                await self.run_scan_cycle()
                self.state.last_error = None
                self.state.market_data_failures = 0
            except ConfigurationError:
                raise
            except MarketDataUnavailable as e:
                self.state.market_data_failures += 1
                self.state.last_error = str(e)
                delay = self._backoff_delay()
                logger.warning("Market data unavailable (%s), retrying in %d seconds.", e, delay)
            except Exception as e:
                logger.exception("Error during scan cycle: %s", e)
                self.state.last_error = str(e)

            if self._shutdown.is_set():
                break
            logger.info("Scan finished. Waiting %d seconds...", delay)
            try:
                await asyncio.wait_for(self._shutdown.wait(), timeout=delay)
            except asyncio.TimeoutError:
                pass
        logger.info("Scanner stopped after %d cycles.", self.state.cycle_count)

    def _backoff_delay(self) -> int:
        return min(self.config.interval * (2 ** self.state.market_data_failures), MAX_RETRY_BACKOFF)

    async def resolve_hubs(self) -> List[str]:
        if self.config.hubs:
            hubs = [h.lower() for h in self.config.hubs]
        elif self.aave_client is not None:
            hubs = await self.aave_client.get_flash_loanable_assets()
        else:
            hubs = []
        if not hubs:
            raise ConfigurationError("No hub assets resolvable: pass --hub or make the Aave pool reachable.")
        return hubs

    async def run_scan_cycle(self) -> List[Opportunity]:
        """
        One full cycle: refresh paths if stale, evaluate them in batches, hand
        the single best opportunity to the executor and record the cycle.
        Returns every opportunity found, best first.
        """
        if not self.state.hubs:
            self.state.hubs = await self.resolve_hubs()
        if self.gas_oracle is not None:
            self.gas_oracle.begin_cycle()

        await self.ensure_paths()
        self._current_scan_cycle_id = await self._record_scan_cycle_start()

        use_consensus = self.config.mode == SCAN_MODE_HUB
        candidates = self.build_hub_paths() if use_consensus else list(self.state.paths)
        amounts = await self._initial_amounts({p[0].from_token for p in candidates if p})
        candidates = [p for p in candidates if p and p[0].from_token in amounts]

        opportunities: List[Opportunity] = []
        batch_size = max(1, self.config.batch_size)
        for i in range(0, len(candidates), batch_size):
            batch = candidates[i:i + batch_size]
            results = await asyncio.gather(
                *(self._evaluate(path, amounts[path[0].from_token], use_consensus) for path in batch),
                return_exceptions=True,
            )
            for path, result in zip(batch, results):
                if isinstance(result, BaseException):
                    logger.error("Evaluation of %d-hop path from %s failed: %r", len(path), path[0].from_token, result)
                elif result is not None:
                    opportunities.append(result)

        opportunities.sort(key=lambda o: o.net_profit, reverse=True)
        await self._process_opportunities(opportunities)

        self.state.cycle_count += 1
        self.state.last_scan_time = time.strftime('%Y-%m-%d %H:%M:%S')
        self.state.found_last_scan = len(opportunities)
        self.state.opportunities_found += len(opportunities)
        await self._record_scan_cycle_finish(len(candidates), len(opportunities))
        self._current_scan_cycle_id = None
        return opportunities

    async def _evaluate(self, path: Path, amount: int, use_consensus: bool) -> Optional[Opportunity]:
        hub = path[0].from_token
        return await self.evaluator.evaluate_path(
            path,
            amount,
            self.state.token_database,
            use_consensus=use_consensus,
            decimals=self.state.hub_decimals.get(hub, 18),
        )

    async def ensure_paths(self) -> None:
        """Reuses paths younger than ``path_cache_max_age``; otherwise loads or regenerates them."""
        max_age = self.config.path_cache_max_age
        now = datetime.now(timezone.utc)
        generated_at = self.state.paths_generated_at
        if self.state.token_database and generated_at and (now - generated_at).total_seconds() <= max_age:
            return

        if self.repository:
            try:
                record = await self.repository.load_latest_paths(max_age, now=now)
            except sqlite3.Error as exc:
                logger.warning("Failed to load cached paths: %s", exc)
                record = None
            if record is not None and {h.lower() for h in record.hubs} != {h.lower() for h in self.state.hubs}:
                logger.info("Cached paths were generated for other hubs (%s), regenerating.", ", ".join(record.hubs))
                record = None
            if record is not None and record.token_database:
                logger.info("Loaded %d cached paths generated at %s.", len(record.paths), record.generated_at.isoformat())
                self.state.paths = record.paths
                self.state.token_database = record.token_database
                self.state.paths_generated_at = record.generated_at
                return

        logger.info("Regenerating paths from DexScreener pairs...")
        token_database = await self.dex_client.fetch_token_database(self.config.dex_ids, self.config.min_liquidity)
        paths = generate_paths(
            token_database,
            self.state.hubs,
            max_paths=self.config.max_paths,
            keep=self.config.keep_paths,
        )
        self.state.paths = paths
        self.state.token_database = token_database
        self.state.paths_generated_at = now
        if self.repository:
            try:
                await self.repository.save_paths(paths, now, self.state.hubs, token_database)
            except sqlite3.Error as exc:
                logger.warning("Failed to persist generated paths: %s", exc)

    def build_hub_paths(self) -> List[Path]:
        """hub -> token -> hub for the most liquid non-hub tokens of the database."""
        ranked = rank_tokens_by_liquidity(self.state.token_database, exclude=self.state.hubs)
        tokens = ranked[:self.config.hub_token_limit]
        paths: List[Path] = []
        for hub in self.state.hubs:
            hub_token = self.state.token_database.get(hub)
            for token in tokens:
                venue = hub_token.pairs.get(token.address) if hub_token else None
                paths.append((
                    Hop(from_token=hub, to_token=token.address, venue_hint=venue),
                    Hop(from_token=token.address, to_token=hub, venue_hint=venue),
                ))
        return paths

    async def _initial_amounts(self, hubs) -> Dict[str, int]:
        """Flash-loan size per hub in smallest units; hubs whose decimals can't be read are skipped."""
        amounts: Dict[str, int] = {}
        for hub in sorted(hubs):
            if hub not in self.state.hub_decimals:
                try:
                    self.state.hub_decimals[hub] = await self.rpc.get_decimals(hub)
                except (RpcError, ValueError) as exc:
                    logger.warning("Skipping hub %s, decimals unavailable: %s", hub, exc)
                    continue
            amounts[hub] = to_smallest_unit(self.config.scan_amount, self.state.hub_decimals[hub])
        return amounts

    async def _process_opportunities(self, opportunities: List[Opportunity]) -> None:
        """Hands the single best opportunity to the executor and records it."""
        logger.info("-" * 40)
        if not opportunities:
            logger.info("Scan complete. No profitable opportunities.")
            return

        best = opportunities[0]
        decimals = self.state.hub_decimals.get(best.hub, 18)
        logger.info(
            "%sScan complete. Found %d opportunities, best: %s | net %s (%.2f%%)%s",
            C_GREEN, len(opportunities), best.description,
            format_units(best.net_profit, decimals), best.profit_percent, C_RESET,
        )

        result: Optional[TradeResult] = None
        if self.executor is not None:
            result = await self.executor.execute(best)
            if not result.executed:
                logger.info("%sOpportunity not executed: %s%s", C_YELLOW, result.reason, C_RESET)
        await self._record_opportunity(best, result)

    async def _record_scan_cycle_start(self) -> Optional[int]:
        if not self.repository:
            return None
        try:
            return await self.repository.record_scan_cycle_start(self.config.mode, self.state.hubs)
        except sqlite3.Error as exc:
            logger.error("Failed to persist scan cycle start: %s", exc)
            return None

    async def _record_scan_cycle_finish(self, paths_evaluated: int, opportunities_found: int) -> None:
        if not self.repository or self._current_scan_cycle_id is None:
            return
        try:
            await self.repository.record_scan_cycle_finish(self._current_scan_cycle_id, paths_evaluated, opportunities_found)
        except sqlite3.Error as exc:
            logger.error("Failed to persist scan cycle finish: %s", exc)

    async def _record_opportunity(self, opportunity: Opportunity, result: Optional[TradeResult]) -> None:
        if not self.repository:
            return
        try:
            await self.repository.record_opportunity(
                scan_cycle_id=self._current_scan_cycle_id,
                opportunity=opportunity,
                executed=bool(result and result.executed),
                tx_hash=result.tx_hashes[0] if result and result.tx_hashes else None,
                reason=result.reason if result else 'no_executor',
            )
        except sqlite3.Error as exc:
            logger.error("Failed to persist opportunity: %s", exc)

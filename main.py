#!/usr/bin/env python3
import asyncio
import logging
import signal
from datetime import datetime

import aiohttp

import constants
import logging_config
from analysis.hop_quoter import BestHopQuoter
from analysis.path_evaluator import PathEvaluator
from analysis.profit_calculator import ProfitGate
from analysis.zscore_engine import ConvictionGate
from config import AppConfig, load_config
from exceptions import ConfigurationError
from scanner import ArbitrageScanner
from services.aave_client import AaveClient
from services.amm_adapters import build_amm_adapters
from services.cowswap_client import CowSwapClient
from services.dexscreener_client import DexScreenerClient
from services.gas_oracle import GasOracle
from services.odos_client import OdosClient
from services.rpc_client import RpcClient
from services.simulator import TransactionSimulator
from services.trade_executor import DryRunExecutor, TradeExecutor
from storage import SQLiteRepository
from storage.models import OpportunityRecord

logger = logging.getLogger(__name__)


def build_executor(config: AppConfig):
    if config.auto_trade:
        return TradeExecutor(
            rpc_url=config.rpc_urls[0],
            private_key=config.private_key,
            contract_address=config.contract_address,
            max_gas_price_gwei=config.max_gas_price_gwei,
        )
    return DryRunExecutor()


def build_scanner(
    config: AppConfig,
    session: aiohttp.ClientSession,
    repository: SQLiteRepository,
    executor,
) -> ArbitrageScanner:
    """Wires every collaborator of the scan loop around one shared HTTP session."""
    rpc = RpcClient(session, rpc_urls=config.rpc_urls, timeout=config.rpc_timeout)
    dex_client = DexScreenerClient(session)

    adapters = build_amm_adapters(rpc, timeout=config.quote_timeout)
    adapters.append(OdosClient(
        session,
        contract_address=config.contract_address,
        base_url=config.odos_api_url,
        slippage_bps=config.slippage_bps,
        timeout=config.quote_timeout,
    ))
    adapters.append(CowSwapClient(session, from_address=config.contract_address, timeout=config.quote_timeout))
    quoter = BestHopQuoter(
        adapters,
        default_venues=config.default_venues,
        unknown_venue_policy=config.unknown_venue_policy,
    )

    conviction_check = None
    if config.conviction_enabled:
        conviction_check = ConvictionGate(dex_client.get_price_series, threshold=config.zscore_threshold).is_high_conviction
    profit_gate = ProfitGate(
        config.min_profit,
        conviction_check=conviction_check,
        conviction_multiplier_bps=config.conviction_multiplier_bps,
    )

    gas_oracle = GasOracle(rpc, quote_fn=quoter.get_best_hop_quote)
    simulator = TransactionSimulator(rpc) if config.contract_address else None
    evaluator = PathEvaluator(
        quoter,
        profit_gate,
        gas_oracle=gas_oracle,
        simulator=simulator,
        contract_address=config.contract_address,
        premium_bps=config.premium_bps,
        slippage_bps=config.slippage_bps,
    )
    return ArbitrageScanner(
        config,
        evaluator,
        dex_client,
        rpc,
        aave_client=AaveClient(rpc),
        repository=repository,
        executor=executor,
        gas_oracle=gas_oracle,
    )


async def run(config: AppConfig) -> None:
    repository = SQLiteRepository(config.db_path)
    executor = build_executor(config)
    session = aiohttp.ClientSession(headers={'User-Agent': 'FlashArbScanner/1.0'})
    try:
        scanner = build_scanner(config, session, repository, executor)
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGINT, signal.SIGTERM):
            try:
                loop.add_signal_handler(sig, scanner.request_shutdown)
            except NotImplementedError:
                # add_signal_handler is unavailable on Windows event loops
                pass
        mode = "LIVE" if config.auto_trade else "DRY RUN"
        logger.info("%sStarting flash-loan arbitrage scanner (%s).%s", constants.C_GREEN, mode, constants.C_RESET)
        await scanner.start()
    finally:
        await session.close()
        await repository.close()
        await executor.close()


def main() -> None:
    """The main synchronous entry point for the application."""
    config = load_config()
    logging_config.setup(getattr(logging, config.log_level))

    if config.show_opportunities:
        repository = SQLiteRepository(config.db_path)
        try:
            records = asyncio.run(repository.fetch_recent_opportunities(limit=config.show_limit))
        finally:
            asyncio.run(repository.close())
        _print_opportunity_records(records, config.show_limit)
        return

    try:
        asyncio.run(run(config))
    except ConfigurationError as exc:
        print(f"{constants.C_RED}Configuration error: {exc}{constants.C_RESET}")
        raise SystemExit(2)
    except KeyboardInterrupt:
        print("Interrupted.")


def _print_opportunity_records(records: list[OpportunityRecord], limit: int) -> None:
    heading = f"Showing up to {limit} recorded opportunities"
    print(heading)
    print("=" * len(heading))

    if not records:
        print("No opportunities recorded.")
        return

    headers = [
        "Time (UTC)",
        "Cycle",
        "Path",
        "Net (raw)",
        "Profit %",
        "Executed",
        "Tx / Reason",
    ]

    def _format_row(record: OpportunityRecord) -> list[str]:
        recorded_at: datetime = record.recorded_at
        time_str = recorded_at.strftime("%Y-%m-%d %H:%M:%S") if recorded_at else "N/A"
        outcome = record.tx_hash or record.reason or "-"
        return [
            time_str,
            str(record.scan_cycle_id) if record.scan_cycle_id is not None else "-",
            record.description,
            str(record.net_profit),
            f"{record.profit_percent:+.2f}",
            "Yes" if record.executed else "No",
            outcome,
        ]

    rows = [_format_row(rec) for rec in records]
    widths = [len(h) for h in headers]
    for row in rows:
        for idx, cell in enumerate(row):
            widths[idx] = max(widths[idx], len(cell))

    def _format_line(row: list[str]) -> str:
        return "  ".join(cell.ljust(widths[idx]) for idx, cell in enumerate(row))

    print(_format_line(headers))
    print("  ".join('-' * w for w in widths))
    for row in rows:
        print(_format_line(row))


if __name__ == "__main__":
    main()

from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock, MagicMock

import pytest

from analysis.models import Hop, Opportunity, Token
from config import load_config
from exceptions import ConfigurationError, MarketDataUnavailable, RpcError
from scanner import ArbitrageScanner
from services.trade_executor import TradeResult
from storage.models import PathGenerationRecord

WETH = '0x4200000000000000000000000000000000000006'
USDC = '0x833589fcd6edb6e08f4c7c32d4f71b54bda02913'
AERO = '0x940181a94a35a4569e4529a3cdfb74e38fd98631'
DEGEN = '0x4ed4e862860bed51a9570b96d89af5e1b0efefed'


@pytest.fixture
def mock_config(monkeypatch):
    monkeypatch.setenv('BASE_RPC_URLS', 'https://rpc.example')
    return load_config(['--hub', WETH, '--batch-size', '2', '--scan-amount', '1'])


@pytest.fixture
def token_database():
    return {
        WETH: Token(WETH, 'WETH', 'Wrapped Ether', 5_000_000.0, {USDC: 'uniswap', AERO: 'aerodrome', DEGEN: 'uniswap'}),
        USDC: Token(USDC, 'USDC', 'USD Coin', 4_000_000.0, {WETH: 'uniswap', AERO: 'aerodrome'}),
        AERO: Token(AERO, 'AERO', 'Aerodrome', 900_000.0, {WETH: 'aerodrome', USDC: 'aerodrome'}),
        DEGEN: Token(DEGEN, 'DEGEN', 'Degen', 100_000.0, {WETH: 'uniswap'}),
    }


def _opportunity(net_profit, description):
    return Opportunity(
        hub=WETH,
        net_profit=net_profit,
        profit_percent=net_profit / 10 ** 16,
        initial_amount=10 ** 18,
        final_amount=10 ** 18 + net_profit,
        tokens=(WETH, USDC, WETH),
        steps=(),
        description=description,
        premium=9 * 10 ** 14,
        repay_amount=10 ** 18 + 9 * 10 ** 14,
        gas_cost=0,
        pair_label='WETH/USDC',
    )


def _scanner(config, evaluator=None, dex_client=None, repository=None, executor=None, aave_client=None):
    rpc = MagicMock()
    rpc.get_decimals = AsyncMock(return_value=18)
    return ArbitrageScanner(
        config,
        evaluator or MagicMock(),
        dex_client or MagicMock(),
        rpc,
        aave_client=aave_client,
        repository=repository,
        executor=executor,
    )


def _primed(scanner, token_database, paths):
    scanner.state.hubs = [WETH]
    scanner.state.token_database = token_database
    scanner.state.paths = paths
    scanner.state.paths_generated_at = datetime.now(timezone.utc)
    return scanner


def _paths():
    return [
        (Hop(WETH, USDC, 'uniswap'), Hop(USDC, WETH, 'uniswap')),
        (Hop(WETH, AERO, 'aerodrome'), Hop(AERO, WETH, 'aerodrome')),
        (Hop(WETH, USDC, 'uniswap'), Hop(USDC, AERO, 'aerodrome'), Hop(AERO, WETH, 'aerodrome')),
        (Hop(WETH, DEGEN, 'uniswap'), Hop(DEGEN, WETH, 'uniswap')),
    ]


@pytest.mark.asyncio
async def test_failed_path_does_not_cancel_its_batch(mock_config, token_database):
    small = _opportunity(10 ** 15, 'WETH -> AERO -> WETH')
    best = _opportunity(3 * 10 ** 15, 'WETH -> USDC -> AERO -> WETH')
    evaluator = MagicMock()
    evaluator.evaluate_path = AsyncMock(side_effect=[RuntimeError('boom'), small, best, None])
    executor = MagicMock()
    executor.execute = AsyncMock(return_value=TradeResult(opportunity_key='k', executed=False, reason='dry_run'))
    scanner = _primed(_scanner(mock_config, evaluator=evaluator, executor=executor), token_database, _paths())

    opportunities = await scanner.run_scan_cycle()

    assert opportunities == [best, small]
    assert evaluator.evaluate_path.await_count == 4
    executor.execute.assert_awaited_once_with(best)
    assert scanner.state.cycle_count == 1
    assert scanner.state.found_last_scan == 2
    first_call = evaluator.evaluate_path.await_args_list[0]
    assert first_call.args[1] == 10 ** 18
    assert first_call.kwargs['use_consensus'] is False


@pytest.mark.asyncio
async def test_cycle_is_recorded(mock_config, token_database):
    best = _opportunity(10 ** 15, 'WETH -> USDC -> WETH')
    evaluator = MagicMock()
    evaluator.evaluate_path = AsyncMock(side_effect=[best, None, None, None])
    repository = MagicMock()
    repository.load_latest_paths = AsyncMock(return_value=None)
    repository.record_scan_cycle_start = AsyncMock(return_value=42)
    repository.record_scan_cycle_finish = AsyncMock()
    repository.record_opportunity = AsyncMock()
    scanner = _primed(_scanner(mock_config, evaluator=evaluator, repository=repository), token_database, _paths())

    await scanner.run_scan_cycle()

    repository.record_scan_cycle_finish.assert_awaited_once_with(42, 4, 1)
    kwargs = repository.record_opportunity.await_args.kwargs
    assert kwargs['scan_cycle_id'] == 42
    assert kwargs['opportunity'] is best
    assert kwargs['executed'] is False
    assert kwargs['reason'] == 'no_executor'


@pytest.mark.asyncio
async def test_hub_without_decimals_is_skipped(mock_config, token_database):
    evaluator = MagicMock()
    evaluator.evaluate_path = AsyncMock(return_value=None)
    scanner = _primed(_scanner(mock_config, evaluator=evaluator), token_database, _paths())
    scanner.rpc.get_decimals = AsyncMock(side_effect=RpcError('all 1 RPC endpoints failed'))

    assert await scanner.run_scan_cycle() == []
    evaluator.evaluate_path.assert_not_awaited()


@pytest.mark.asyncio
async def test_paths_loaded_from_durable_cache(mock_config, token_database):
    record = PathGenerationRecord(
        id=1,
        generated_at=datetime.now(timezone.utc) - timedelta(hours=1),
        hubs=[WETH],
        paths=_paths(),
        token_database=token_database,
    )
    repository = MagicMock()
    repository.load_latest_paths = AsyncMock(return_value=record)
    dex_client = MagicMock()
    dex_client.fetch_token_database = AsyncMock()
    scanner = _scanner(mock_config, dex_client=dex_client, repository=repository)
    scanner.state.hubs = [WETH]

    await scanner.ensure_paths()

    assert scanner.state.paths == _paths()
    dex_client.fetch_token_database.assert_not_awaited()
    assert repository.load_latest_paths.await_args.args[0] == mock_config.path_cache_max_age


@pytest.mark.asyncio
async def test_cached_paths_for_other_hubs_are_regenerated(monkeypatch, token_database):
    monkeypatch.setenv('BASE_RPC_URLS', 'https://rpc.example')
    config = load_config(['--hub', USDC])
    record = PathGenerationRecord(
        id=1,
        generated_at=datetime.now(timezone.utc) - timedelta(minutes=5),
        hubs=[WETH],
        paths=_paths(),
        token_database=token_database,
    )
    repository = MagicMock()
    repository.load_latest_paths = AsyncMock(return_value=record)
    repository.save_paths = AsyncMock(return_value=2)
    dex_client = MagicMock()
    dex_client.fetch_token_database = AsyncMock(return_value=token_database)
    scanner = _scanner(config, dex_client=dex_client, repository=repository)
    scanner.state.hubs = await scanner.resolve_hubs()

    await scanner.ensure_paths()

    dex_client.fetch_token_database.assert_awaited_once()
    assert scanner.state.paths
    assert {p[0].from_token for p in scanner.state.paths} == {USDC}
    assert repository.save_paths.await_args.args[2] == [USDC]


@pytest.mark.asyncio
async def test_paths_regenerated_and_saved_when_cache_is_stale(mock_config, token_database):
    repository = MagicMock()
    repository.load_latest_paths = AsyncMock(return_value=None)
    repository.save_paths = AsyncMock(return_value=1)
    dex_client = MagicMock()
    dex_client.fetch_token_database = AsyncMock(return_value=token_database)
    scanner = _scanner(mock_config, dex_client=dex_client, repository=repository)
    scanner.state.hubs = [WETH]

    await scanner.ensure_paths()

    assert scanner.state.paths
    assert all(p[0].from_token == WETH and p[-1].to_token == WETH for p in scanner.state.paths)
    saved_paths, _, saved_hubs, saved_database = repository.save_paths.await_args.args
    assert saved_paths == scanner.state.paths
    assert saved_hubs == [WETH]
    assert saved_database == token_database

    # Fresh in-memory paths are reused
    await scanner.ensure_paths()
    dex_client.fetch_token_database.assert_awaited_once()


def test_hub_mode_builds_round_trips(mock_config, token_database):
    config = mock_config._replace(hub_token_limit=2)
    scanner = _primed(_scanner(config), token_database, [])

    paths = scanner.build_hub_paths()

    assert paths == [
        (Hop(WETH, USDC, 'uniswap'), Hop(USDC, WETH, 'uniswap')),
        (Hop(WETH, AERO, 'aerodrome'), Hop(AERO, WETH, 'aerodrome')),
    ]


@pytest.mark.asyncio
async def test_hubs_resolved_from_aave_or_rejected(mock_config):
    aave_client = MagicMock()
    aave_client.get_flash_loanable_assets = AsyncMock(return_value=[WETH, USDC])
    scanner = _scanner(mock_config._replace(hubs=[]), aave_client=aave_client)
    assert await scanner.resolve_hubs() == [WETH, USDC]

    with pytest.raises(ConfigurationError):
        await _scanner(mock_config._replace(hubs=[])).resolve_hubs()


@pytest.mark.asyncio
async def test_loop_survives_a_failing_cycle_and_stops_on_request(mock_config):
    scanner = _scanner(mock_config._replace(interval=0))
    calls = []

    async def cycle():
        calls.append(1)
        if len(calls) == 1:
            raise RuntimeError('boom')
        scanner.request_shutdown()

    scanner.run_scan_cycle = cycle
    await scanner.start()

    assert len(calls) == 2
    assert scanner.state.last_error is None
    assert scanner.shutdown_requested


@pytest.mark.asyncio
async def test_configuration_error_halts_the_loop(mock_config):
    scanner = _scanner(mock_config._replace(interval=0))
    scanner.run_scan_cycle = AsyncMock(side_effect=ConfigurationError('no hubs'))
    with pytest.raises(ConfigurationError):
        await scanner.start()


@pytest.mark.asyncio
async def test_market_data_outage_backs_off(mock_config):
    scanner = _scanner(mock_config._replace(interval=0))
    outcomes = [MarketDataUnavailable('down'), MarketDataUnavailable('down')]
    seen_failures = []

    async def cycle():
        seen_failures.append(scanner.state.market_data_failures)
        if outcomes:
            raise outcomes.pop(0)
        scanner.request_shutdown()

    scanner.run_scan_cycle = cycle
    await scanner.start()

    assert seen_failures == [0, 1, 2]
    assert scanner.state.market_data_failures == 0

    slow = _scanner(mock_config._replace(interval=60))
    slow.state.market_data_failures = 1
    assert slow._backoff_delay() == 120
    slow.state.market_data_failures = 10
    assert slow._backoff_delay() == 300

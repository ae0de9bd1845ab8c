import asyncio
import math
from unittest.mock import AsyncMock

import pytest

from analysis.zscore_engine import ConvictionGate, compute_z_score, series_from_price_changes


def test_flat_series_scores_exactly_zero():
    z = compute_z_score([10, 10, 10, 10])
    assert z == 0
    assert not math.isnan(z)


def test_last_point_is_current_price():
    # mean 2.5, population std sqrt(1.25)
    assert compute_z_score([1, 2, 3, 4]) == pytest.approx(1.5 / math.sqrt(1.25))
    assert compute_z_score([4, 3, 2, 1]) == pytest.approx(-1.5 / math.sqrt(1.25))


def test_too_short_or_unusable_series():
    assert compute_z_score([]) is None
    assert compute_z_score([5.0]) is None
    assert compute_z_score([float('nan'), 'x', None, 3.0]) is None


def test_series_from_price_changes_orders_oldest_first():
    series = series_from_price_changes(110.0, {'h24': 10.0, 'h1': 0.0, 'm5': -100.0})
    assert series == pytest.approx([100.0, 110.0, 110.0])
    assert series_from_price_changes(0, {'h24': 5}) == []


@pytest.mark.asyncio
async def test_conviction_gate_flags_outliers_and_caches():
    source = AsyncMock(return_value=[1.0, 1.0, 1.0, 1.0, 1.0, 1.0, 1.0, 1.0, 1.0, 3.0])
    gate = ConvictionGate(source, threshold=2.5, cache_ttl=60)

    assert await gate.is_high_conviction('WETH/USDC') is True
    assert await gate.is_high_conviction('WETH/USDC', threshold=5.0) is False
    source.assert_awaited_once_with('WETH/USDC')


@pytest.mark.asyncio
async def test_conviction_gate_without_data_is_not_high():
    gate = ConvictionGate(AsyncMock(return_value=None))
    assert await gate.compute_z_score('AERO/WETH') is None
    assert await gate.is_high_conviction('AERO/WETH') is False


@pytest.mark.asyncio
async def test_malformed_series_payload_is_not_high_conviction():
    source = AsyncMock(side_effect=ValueError("could not convert string to float: 'n/a'"))
    gate = ConvictionGate(source)

    assert await gate.compute_z_score('WETH/USDC') is None
    assert await gate.is_high_conviction('WETH/USDC') is False
    source.assert_awaited_once_with('WETH/USDC')


@pytest.mark.asyncio
async def test_concurrent_misses_share_one_lookup():
    release = asyncio.Event()
    calls = []

    async def slow_source(pair_label):
        calls.append(pair_label)
        await release.wait()
        return [1.0, 2.0, 3.0, 4.0]

    gate = ConvictionGate(slow_source, cache_ttl=60)
    pending = asyncio.gather(*(gate.compute_z_score('AERO/WETH') for _ in range(5)))
    await asyncio.sleep(0)
    release.set()
    scores = await pending

    assert calls == ['AERO/WETH']
    assert scores == [pytest.approx(1.5 / math.sqrt(1.25))] * 5

from decimal import Decimal
from unittest.mock import AsyncMock

import pytest

from analysis.profit_calculator import (
    ProfitGate,
    calculate_net_profit,
    format_units,
    min_amount_out,
    to_smallest_unit,
)


def test_break_even_trade_nets_negative():
    result = calculate_net_profit(1_000_000, 1_000_000, 0, premium_bps=9, slippage_bps=30)

    assert result.premium == 900
    assert result.repay_amount == 1_000_900
    assert result.slippage_adjusted == 997_000
    assert result.net_profit == -3_900
    assert result.profit_percent == pytest.approx(-0.39)


def test_gas_is_subtracted_in_hub_units():
    result = calculate_net_profit(2_000_000, 1_000_000, 50_000, premium_bps=9, slippage_bps=0)
    assert result.net_profit == 2_000_000 - 1_000_900 - 50_000
    assert result.profit_percent == pytest.approx(94.91)


def test_borrowed_amount_must_be_positive():
    with pytest.raises(ValueError):
        calculate_net_profit(1, 0, 0)


def test_integer_helpers():
    assert min_amount_out(1_000_000, 30) == 997_000
    assert to_smallest_unit(Decimal('1.5'), 6) == 1_500_000
    assert to_smallest_unit(Decimal('0.002'), 18) == 2 * 10 ** 15
    assert format_units(1_500_000, 6) == '1.5'


@pytest.mark.asyncio
async def test_profit_gate_strictly_above_threshold():
    gate = ProfitGate(Decimal('0.001'))
    assert gate.threshold_for(6) == 1_000
    assert await gate.is_profitable(1_001, 'WETH/USDC', decimals=6) is True
    assert await gate.is_profitable(1_000, 'WETH/USDC', decimals=6) is False


@pytest.mark.asyncio
async def test_profit_gate_raises_bar_on_high_conviction():
    conviction = AsyncMock(return_value=True)
    gate = ProfitGate(Decimal('0.001'), conviction_check=conviction, conviction_multiplier_bps=20_000)

    profitable, high = await gate.evaluate(1_500, 'WETH/USDC', decimals=6)

    assert (profitable, high) == (False, True)
    conviction.assert_awaited_once_with('WETH/USDC')
    assert await gate.is_profitable(2_001, 'WETH/USDC', decimals=6) is True


@pytest.mark.asyncio
async def test_profit_gate_custom_multiplier():
    gate = ProfitGate(Decimal('0.001'), conviction_check=AsyncMock(return_value=True), conviction_multiplier_bps=15_000)
    assert await gate.is_profitable(1_499, 'AERO/WETH', decimals=6) is False
    assert await gate.is_profitable(1_501, 'AERO/WETH', decimals=6) is True


@pytest.mark.asyncio
async def test_conviction_not_queried_below_base_threshold():
    conviction = AsyncMock(return_value=True)
    gate = ProfitGate(Decimal('0.001'), conviction_check=conviction)

    assert await gate.evaluate(1_000, 'WETH/USDC', decimals=6) == (False, False)
    assert await gate.evaluate(-50, 'WETH/USDC', decimals=6) == (False, False)
    conviction.assert_not_awaited()


def test_multiplier_below_one_is_rejected():
    with pytest.raises(ValueError):
        ProfitGate(Decimal('0.001'), conviction_multiplier_bps=5_000)

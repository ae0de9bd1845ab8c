#!/usr/bin/env python3
"""Flash-loan profit accounting. Every settlement figure is an integer in the borrowed asset's smallest unit."""
import logging
from decimal import Decimal
from typing import Awaitable, Callable, Dict, Optional, Tuple

from analysis.models import ProfitBreakdown
from constants import AAVE_PREMIUM_BPS, BPS_DENOMINATOR, DEFAULT_CONVICTION_MULTIPLIER_BPS, DEFAULT_SLIPPAGE_BPS

logger = logging.getLogger(__name__)


def calculate_net_profit(
    gross_output: int,
    borrowed_amount: int,
    gas_estimate: int,
    premium_bps: int = AAVE_PREMIUM_BPS,
    slippage_bps: int = DEFAULT_SLIPPAGE_BPS,
) -> ProfitBreakdown:
    """
    Net result of repaying a flash loan out of ``gross_output``.

    ``gas_estimate`` must already be expressed in the borrowed asset's unit.
    """
    if borrowed_amount <= 0:
        raise ValueError("borrowed_amount must be positive")

    premium = borrowed_amount * premium_bps // BPS_DENOMINATOR
    repay_amount = borrowed_amount + premium
    slippage_adjusted = gross_output - gross_output * slippage_bps // BPS_DENOMINATOR
    net_profit = slippage_adjusted - repay_amount - gas_estimate

    # Integer bps first, float only for display
    profit_bps = _div_toward_zero(net_profit * BPS_DENOMINATOR, borrowed_amount)
    return ProfitBreakdown(
        net_profit=net_profit,
        profit_percent=profit_bps / 100,
        repay_amount=repay_amount,
        premium=premium,
        slippage_adjusted=slippage_adjusted,
    )


def min_amount_out(amount_out: int, slippage_bps: int) -> int:
    """Minimum acceptable output encoded on-chain for a quoted hop."""
    return amount_out * (BPS_DENOMINATOR - slippage_bps) // BPS_DENOMINATOR


def to_smallest_unit(amount: Decimal, decimals: int) -> int:
    scale = Decimal(10) ** decimals
    return int((Decimal(amount) * scale).to_integral_value())


def format_units(amount: int, decimals: int) -> str:
    value = Decimal(amount) / (Decimal(10) ** decimals)
    return f"{value.normalize():f}"


def _div_toward_zero(numerator: int, denominator: int) -> int:
    quotient = abs(numerator) // abs(denominator)
    return quotient if (numerator >= 0) == (denominator > 0) else -quotient


class ProfitGate:
    """
    Decides whether a net profit clears the configured minimum.

    ``min_profit`` is in the borrowed asset's major unit and is converted to an
    integer once per decimals value. When the conviction check flags the pair,
    the threshold is scaled by ``conviction_multiplier_bps`` / 10000.
    """

    def __init__(
        self,
        min_profit: Decimal,
        conviction_check: Optional[Callable[[str], Awaitable[bool]]] = None,
        conviction_multiplier_bps: int = DEFAULT_CONVICTION_MULTIPLIER_BPS,
    ) -> None:
        if conviction_multiplier_bps < BPS_DENOMINATOR:
            raise ValueError("conviction multiplier must not lower the profit threshold")
        self.min_profit = Decimal(min_profit)
        self.conviction_check = conviction_check
        self.conviction_multiplier_bps = conviction_multiplier_bps
        self._thresholds: Dict[int, int] = {}

    def threshold_for(self, decimals: int) -> int:
        if decimals not in self._thresholds:
            self._thresholds[decimals] = to_smallest_unit(self.min_profit, decimals)
        return self._thresholds[decimals]

    async def evaluate(self, net_profit: int, pair_label: str, decimals: int = 18) -> Tuple[bool, bool]:
        """Returns ``(is_profitable, high_conviction)``."""
        threshold = self.threshold_for(decimals)
        # The multiplier only raises the bar, so a miss here is final
        if net_profit <= threshold:
            return False, False
        high_conviction = False
        if self.conviction_check is not None:
            high_conviction = bool(await self.conviction_check(pair_label))
        if high_conviction:
            threshold = threshold * self.conviction_multiplier_bps // BPS_DENOMINATOR
            logger.info("High-conviction signal for %s, profit threshold raised to %d.", pair_label, threshold)
        return net_profit > threshold, high_conviction

    async def is_profitable(self, net_profit: int, pair_label: str, decimals: int = 18) -> bool:
        profitable, _ = await self.evaluate(net_profit, pair_label, decimals)
        return profitable

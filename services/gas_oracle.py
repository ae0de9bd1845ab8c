#!/usr/bin/env python3
import logging
from typing import Awaitable, Callable, Dict, Optional

from analysis.models import Quote
from constants import CHAIN_CONFIG, FLASH_LOAN_GAS_OVERHEAD, GAS_UNITS_PER_HOP
from exceptions import RpcError
from services.rpc_client import RpcClient

logger = logging.getLogger(__name__)

QuoteFn = Callable[[str, str, int], Awaitable[Optional[Quote]]]

ONE_NATIVE = 10 ** 18


def estimate_gas_units(hop_count: int) -> int:
    return FLASH_LOAN_GAS_OVERHEAD + hop_count * GAS_UNITS_PER_HOP


class GasOracle:
    """
    Heuristic gas cost of a flash-loan cycle, expressed in the hub asset.

    The gas price and the native -> hub conversion rate are cached until
    ``begin_cycle`` is called, so one scan cycle uses one consistent price.
    """

    def __init__(
        self,
        rpc: RpcClient,
        quote_fn: Optional[QuoteFn] = None,
        wrapped_native: str = CHAIN_CONFIG['wrappedNative'],
    ) -> None:
        self.rpc = rpc
        self.quote_fn = quote_fn
        self.wrapped_native = wrapped_native.lower()
        self._gas_price: Optional[int] = None
        self._rates: Dict[str, Optional[int]] = {}

    def begin_cycle(self) -> None:
        self._gas_price = None
        self._rates.clear()

    async def gas_price(self) -> int:
        if self._gas_price is None:
            self._gas_price = await self.rpc.gas_price()
        return self._gas_price

    async def _native_to_hub_rate(self, hub: str) -> Optional[int]:
        """Hub units received for one whole native token."""
        if hub not in self._rates:
            rate: Optional[int] = None
            if self.quote_fn is not None:
                quote = await self.quote_fn(self.wrapped_native, hub, ONE_NATIVE)
                rate = quote.amount_out if quote else None
            self._rates[hub] = rate
        return self._rates[hub]

    async def estimate_cost(self, hub: str, hop_count: int) -> Optional[int]:
        """Gas cost in ``hub`` units, or None when it cannot be priced."""
        hub = hub.lower()
        try:
            cost_wei = estimate_gas_units(hop_count) * await self.gas_price()
        except RpcError as exc:
            logger.warning("Could not read gas price: %s", exc)
            return None
        if hub == self.wrapped_native:
            return cost_wei

        rate = await self._native_to_hub_rate(hub)
        if not rate:
            return None
        return cost_wei * rate // ONE_NATIVE

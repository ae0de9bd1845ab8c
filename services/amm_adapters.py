#!/usr/bin/env python3
"""On-chain quoting for the AMM venues, read through ``eth_call``."""
import asyncio
from typing import Iterable, List, Optional, Tuple

from analysis.models import ExecutionStep, Quote, Venue
from constants import DEX_ADDRESSES, PANCAKESWAP_V3_FEE_TIERS, RPC_STALL_TIMEOUT, UNISWAP_V3_FEE_TIERS
from services.abi_codec import decode_result, encode_call
from services.rpc_client import RpcClient
from services.venues import ADAPTER_ERRORS, VenueAdapter

_V2_GET_AMOUNTS_OUT = 'getAmountsOut(uint256,address[])'
_V3_QUOTE_EXACT_INPUT_SINGLE = 'quoteExactInputSingle((address,address,uint256,uint24,uint160))'
_AERODROME_GET_AMOUNTS_OUT = 'getAmountsOut(uint256,(address,address,bool,address)[])'


class UniswapV2Adapter(VenueAdapter):
    """Router ``getAmountsOut`` over a direct two-token path. BaseSwap shares the interface."""

    def __init__(self, rpc: RpcClient, router: str, venue: Venue = Venue.UNISWAP_V2, timeout: float = RPC_STALL_TIMEOUT * 3) -> None:
        super().__init__(timeout=timeout)
        self.rpc = rpc
        self.router = router
        self.venue = venue

    async def _fetch_quote(self, token_in: str, token_out: str, amount_in: int) -> Optional[Quote]:
        data = encode_call(_V2_GET_AMOUNTS_OUT, ['uint256', 'address[]'], [amount_in, [token_in, token_out]])
        result = await self.rpc.eth_call(self.router, data)
        (amounts,) = decode_result(['uint256[]'], result)
        return Quote(venue=self.venue, token_in=token_in, token_out=token_out, amount_in=amount_in, amount_out=int(amounts[-1]))

    async def _build_step(self, quote: Quote, amount_out_min: int) -> Optional[ExecutionStep]:
        return ExecutionStep(
            dex_type=self.venue.dex_type,
            target=self.router,
            token_in=quote.token_in,
            token_out=quote.token_out,
            amount_out_min=amount_out_min,
        )


class V3QuoterAdapter(VenueAdapter):
    """QuoterV2 ``quoteExactInputSingle`` across every fee tier; the best tier wins."""

    def __init__(
        self,
        rpc: RpcClient,
        quoter: str,
        router: str,
        fee_tiers: Iterable[int],
        venue: Venue = Venue.UNISWAP_V3,
        timeout: float = RPC_STALL_TIMEOUT * 3,
    ) -> None:
        super().__init__(timeout=timeout)
        self.rpc = rpc
        self.quoter = quoter
        self.router = router
        self.fee_tiers: Tuple[int, ...] = tuple(fee_tiers)
        self.venue = venue

    async def _quote_tier(self, token_in: str, token_out: str, amount_in: int, fee: int) -> int:
        data = encode_call(
            _V3_QUOTE_EXACT_INPUT_SINGLE,
            ['(address,address,uint256,uint24,uint160)'],
            [(token_in, token_out, amount_in, fee, 0)],
        )
        result = await self.rpc.eth_call(self.quoter, data)
        amount_out, _, _, _ = decode_result(['uint256', 'uint160', 'uint32', 'uint256'], result)
        return int(amount_out)

    async def _fetch_quote(self, token_in: str, token_out: str, amount_in: int) -> Optional[Quote]:
        results = await asyncio.gather(
            *(self._quote_tier(token_in, token_out, amount_in, fee) for fee in self.fee_tiers),
            return_exceptions=True,
        )
        best_out, best_fee = 0, 0
        for fee, result in zip(self.fee_tiers, results):
            if isinstance(result, BaseException):
                if not isinstance(result, ADAPTER_ERRORS):
                    raise result
                continue  # no pool at this tier
            if result > best_out:
                best_out, best_fee = result, fee
        if best_out <= 0:
            return None
        return Quote(
            venue=self.venue,
            token_in=token_in,
            token_out=token_out,
            amount_in=amount_in,
            amount_out=best_out,
            fee=best_fee,
        )

    async def _build_step(self, quote: Quote, amount_out_min: int) -> Optional[ExecutionStep]:
        if not quote.fee:
            return None
        return ExecutionStep(
            dex_type=self.venue.dex_type,
            target=self.router,
            token_in=quote.token_in,
            token_out=quote.token_out,
            amount_out_min=amount_out_min,
            fee=quote.fee,
        )


class AerodromeAdapter(VenueAdapter):
    """Aerodrome router quotes for both the volatile and the stable pool."""

    venue = Venue.AERODROME

    def __init__(self, rpc: RpcClient, router: str, factory: str, timeout: float = RPC_STALL_TIMEOUT * 3) -> None:
        super().__init__(timeout=timeout)
        self.rpc = rpc
        self.router = router
        self.factory = factory

    async def _quote_pool(self, token_in: str, token_out: str, amount_in: int, stable: bool) -> int:
        data = encode_call(
            _AERODROME_GET_AMOUNTS_OUT,
            ['uint256', '(address,address,bool,address)[]'],
            [amount_in, [(token_in, token_out, stable, self.factory)]],
        )
        result = await self.rpc.eth_call(self.router, data)
        (amounts,) = decode_result(['uint256[]'], result)
        return int(amounts[-1])

    async def _fetch_quote(self, token_in: str, token_out: str, amount_in: int) -> Optional[Quote]:
        pool_types = (False, True)  # volatile, stable
        results = await asyncio.gather(
            *(self._quote_pool(token_in, token_out, amount_in, stable) for stable in pool_types),
            return_exceptions=True,
        )
        best_out, best_stable = 0, False
        for stable, result in zip(pool_types, results):
            if isinstance(result, BaseException):
                if not isinstance(result, ADAPTER_ERRORS):
                    raise result
                continue
            if result > best_out:
                best_out, best_stable = result, stable
        if best_out <= 0:
            return None
        return Quote(
            venue=self.venue,
            token_in=token_in,
            token_out=token_out,
            amount_in=amount_in,
            amount_out=best_out,
            stable=best_stable,
        )

    async def _build_step(self, quote: Quote, amount_out_min: int) -> Optional[ExecutionStep]:
        return ExecutionStep(
            dex_type=self.venue.dex_type,
            target=self.router,
            token_in=quote.token_in,
            token_out=quote.token_out,
            amount_out_min=amount_out_min,
            stable=quote.stable,
            factory=self.factory,
        )


def build_amm_adapters(rpc: RpcClient, timeout: float = RPC_STALL_TIMEOUT * 3) -> List[VenueAdapter]:
    """Every on-chain AMM venue on Base, wired to the shared RPC client."""
    return [
        UniswapV2Adapter(rpc, DEX_ADDRESSES['uniswap_v2']['router'], venue=Venue.UNISWAP_V2, timeout=timeout),
        UniswapV2Adapter(rpc, DEX_ADDRESSES['baseswap']['router'], venue=Venue.BASESWAP, timeout=timeout),
        V3QuoterAdapter(
            rpc,
            DEX_ADDRESSES['uniswap_v3']['quoter'],
            DEX_ADDRESSES['uniswap_v3']['router'],
            UNISWAP_V3_FEE_TIERS,
            venue=Venue.UNISWAP_V3,
            timeout=timeout,
        ),
        V3QuoterAdapter(
            rpc,
            DEX_ADDRESSES['pancakeswap_v3']['quoter'],
            DEX_ADDRESSES['pancakeswap_v3']['router'],
            PANCAKESWAP_V3_FEE_TIERS,
            venue=Venue.PANCAKESWAP_V3,
            timeout=timeout,
        ),
        AerodromeAdapter(rpc, DEX_ADDRESSES['aerodrome']['router'], DEX_ADDRESSES['aerodrome']['factory'], timeout=timeout),
    ]

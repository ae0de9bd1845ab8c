#!/usr/bin/env python3
import logging
from typing import Optional

import aiohttp

from analysis.models import ExecutionStep, Quote, Venue
from constants import COWSWAP_API_BASE_URL, COWSWAP_RATE_LIMIT_DELAY, QUOTE_API_TIMEOUT, ZERO_ADDRESS
from services.rate_limiter import RateLimiter
from services.venues import VenueAdapter

logger = logging.getLogger(__name__)


class CowSwapClient(VenueAdapter):
    """
    Quote-only CoW Protocol venue.

    CoW orders are settled from an off-chain EIP-712 signature, not from a
    router call, so a CoW quote can take part in consensus but can never be
    turned into an execution step.
    """

    venue = Venue.COWSWAP

    def __init__(
        self,
        session: aiohttp.ClientSession,
        *,
        base_url: str = COWSWAP_API_BASE_URL,
        from_address: Optional[str] = None,
        timeout: float = QUOTE_API_TIMEOUT,
        rate_limiter: Optional[RateLimiter] = None,
    ) -> None:
        super().__init__(timeout=timeout)
        self._session = session
        self._base_url = base_url.rstrip('/')
        self._from_address = from_address or ZERO_ADDRESS
        self._rate_limiter = rate_limiter or RateLimiter(COWSWAP_RATE_LIMIT_DELAY)

    async def _fetch_quote(self, token_in: str, token_out: str, amount_in: int) -> Optional[Quote]:
        await self._rate_limiter.wait()
        body = {
            'sellToken': token_in,
            'buyToken': token_out,
            'from': self._from_address,
            'kind': 'sell',
            'sellAmountBeforeFee': str(amount_in),
        }
        async with self._session.post(f"{self._base_url}/quote", json=body) as response:
            response.raise_for_status()
            data = await response.json()
        buy_amount = (data.get('quote') or {}).get('buyAmount')
        if buy_amount is None:
            return None
        return Quote(
            venue=self.venue,
            token_in=token_in,
            token_out=token_out,
            amount_in=amount_in,
            amount_out=int(buy_amount),
        )

    async def _build_step(self, quote: Quote, amount_out_min: int) -> Optional[ExecutionStep]:
        logger.info("CoW Swap orders need off-chain signing, no swap step for %s -> %s.", quote.token_in, quote.token_out)
        return None

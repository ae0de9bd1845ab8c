#!/usr/bin/env python3
"""Odos smart-order-router client: quote, then assemble router call data for the flash-arb contract."""
import logging
from typing import Any, Dict, Optional

import aiohttp

from analysis.models import DEX_GENERIC, ExecutionStep, Quote, Venue
from constants import (
    BPS_DENOMINATOR,
    CHAIN_CONFIG,
    DEFAULT_SLIPPAGE_BPS,
    DEX_ADDRESSES,
    ODOS_API_BASE_URL,
    ODOS_RATE_LIMIT_DELAY,
    QUOTE_API_TIMEOUT,
    ZERO_ADDRESS,
)
from services.rate_limiter import RateLimiter
from services.venues import VenueAdapter

logger = logging.getLogger(__name__)


class OdosClient(VenueAdapter):
    venue = Venue.ODOS

    def __init__(
        self,
        session: aiohttp.ClientSession,
        *,
        contract_address: Optional[str] = None,
        base_url: str = ODOS_API_BASE_URL,
        slippage_bps: int = DEFAULT_SLIPPAGE_BPS,
        timeout: float = QUOTE_API_TIMEOUT,
        rate_limiter: Optional[RateLimiter] = None,
    ) -> None:
        super().__init__(timeout=timeout)
        self._session = session
        self._base_url = base_url.rstrip('/')
        self._contract_address = contract_address.lower() if contract_address else None
        self._slippage_bps = slippage_bps
        self._rate_limiter = rate_limiter or RateLimiter(ODOS_RATE_LIMIT_DELAY)

    async def _post(self, path: str, body: Dict[str, Any]) -> Dict[str, Any]:
        await self._rate_limiter.wait()
        url = f"{self._base_url}{path}"
        async with self._session.post(url, json=body) as response:
            response.raise_for_status()
            return await response.json()

    async def _fetch_quote(self, token_in: str, token_out: str, amount_in: int) -> Optional[Quote]:
        body = {
            'chainId': CHAIN_CONFIG['chainId'],
            'inputTokens': [{'tokenAddress': token_in, 'amount': str(amount_in)}],
            'outputTokens': [{'tokenAddress': token_out, 'proportion': 1}],
            'userAddr': self._contract_address or ZERO_ADDRESS,
            'slippageLimitPercent': self._slippage_bps * 100 / BPS_DENOMINATOR,
            'referralCode': 0,
            'disableRFQs': True,
            'compact': True,
        }
        data = await self._post('/sor/quote/v2', body)
        out_amounts = data.get('outAmounts') or []
        if not out_amounts:
            return None
        return Quote(
            venue=self.venue,
            token_in=token_in,
            token_out=token_out,
            amount_in=amount_in,
            amount_out=int(out_amounts[0]),
            route_token=data.get('pathId'),
        )

    async def _build_step(self, quote: Quote, amount_out_min: int) -> Optional[ExecutionStep]:
        if not quote.route_token:
            logger.warning("Odos quote has no pathId, cannot assemble.")
            return None
        if not self._contract_address:
            logger.warning("Contract address not set, cannot assemble Odos transaction.")
            return None

        data = await self._post('/sor/assemble', {
            'userAddr': self._contract_address,
            'pathId': quote.route_token,
            'simulate': False,
        })
        transaction = data.get('transaction')
        if not transaction or not transaction.get('data'):
            return None
        call_data = transaction['data']
        return ExecutionStep(
            dex_type=DEX_GENERIC,
            target=(transaction.get('to') or DEX_ADDRESSES['odos']['router']).lower(),
            token_in=quote.token_in,
            token_out=quote.token_out,
            amount_out_min=amount_out_min,
            call_data=bytes.fromhex(call_data[2:] if call_data.startswith('0x') else call_data),
        )

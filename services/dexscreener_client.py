#!/usr/bin/env python3
import asyncio
import logging
from typing import Any, Dict, Iterable, List, Optional

import aiohttp

from analysis.models import TokenDatabase
from analysis.token_database import build_token_database
from analysis.zscore_engine import series_from_price_changes
from constants import (
    CHAIN_CONFIG,
    DEFAULT_MIN_PAIR_LIQUIDITY_USD,
    DEXSCREENER_API_BASE_URL,
    DEXSCREENER_RATE_LIMIT_DELAY,
)
from exceptions import MarketDataUnavailable
from services.rate_limiter import RateLimiter

logger = logging.getLogger(__name__)


async def api_get(
    url: str,
    session: aiohttp.ClientSession,
    params: Optional[Dict[str, str]] = None,
    retries: int = 3,
    timeout: int = 15,
) -> Optional[Dict]:
    """Makes an async GET request with retries and timeout."""
    for attempt in range(retries):
        try:
            async with session.get(url, params=params, timeout=aiohttp.ClientTimeout(total=timeout)) as response:
                response.raise_for_status()
                return await response.json()
        except (aiohttp.ClientError, asyncio.TimeoutError, ValueError) as e:
            if attempt < retries - 1:
                await asyncio.sleep(2)
            else:
                logger.error("API request failed after %d attempts: %s", retries, e)
                return None
    return None


def _liquidity_usd(pair: Dict[str, Any]) -> float:
    try:
        return float((pair.get('liquidity') or {}).get('usd') or 0.0)
    except (TypeError, ValueError, AttributeError):
        return 0.0


class DexScreenerClient:
    """Market-data collaborator: token database discovery and pair price series."""

    def __init__(
        self,
        session: aiohttp.ClientSession,
        chain_name: str = CHAIN_CONFIG['dexscreenerName'],
        base_url: str = DEXSCREENER_API_BASE_URL,
        rate_limiter: Optional[RateLimiter] = None,
    ):
        self.session = session
        self.chain_name = chain_name
        self.base_url = base_url.rstrip('/')
        self._rate_limiter = rate_limiter or RateLimiter(DEXSCREENER_RATE_LIMIT_DELAY)

    async def search_pairs(self, query: str) -> Optional[List[Dict[str, Any]]]:
        """Queries the DexScreener search endpoint. None when the request failed."""
        await self._rate_limiter.wait()
        data = await api_get(f"{self.base_url}/search", self.session, params={'q': query})
        if data is None:
            return None
        return data.get('pairs') or []

    async def fetch_token_database(
        self,
        dex_ids: Iterable[str],
        min_liquidity_usd: float = DEFAULT_MIN_PAIR_LIQUIDITY_USD,
    ) -> TokenDatabase:
        """
        Builds the token database from one search per dex id.

        Raises MarketDataUnavailable when every search failed, so the caller
        can back off instead of scanning an empty graph.
        """
        dex_ids = list(dex_ids)
        all_pairs: List[Dict[str, Any]] = []
        failures = 0
        for dex_id in dex_ids:
            pairs = await self.search_pairs(f"{dex_id} {self.chain_name}")
            if pairs is None:
                failures += 1
                continue
            logger.info("Found %d %s pairs for %s.", len(pairs), self.chain_name, dex_id)
            all_pairs.extend(pairs)

        if dex_ids and failures == len(dex_ids):
            raise MarketDataUnavailable(
                "DexScreener did not answer any pair search",
                details={'dex_ids': dex_ids},
            )
        return build_token_database(all_pairs, self.chain_name, min_liquidity_usd)

    async def find_pair(self, pair_label: str) -> Optional[Dict[str, Any]]:
        """Most liquid pair on this chain for a ``SYM0/SYM1`` label."""
        symbols = [s.strip() for s in pair_label.split('/') if s.strip()]
        if len(symbols) != 2:
            return None
        pairs = await self.search_pairs(f"{symbols[0]} {symbols[1]} {self.chain_name}")
        if not pairs:
            return None
        wanted = {s.upper() for s in symbols}
        candidates = [
            p for p in pairs
            if p.get('chainId') == self.chain_name
            and {
                ((p.get('baseToken') or {}).get('symbol') or '').upper(),
                ((p.get('quoteToken') or {}).get('symbol') or '').upper(),
            } == wanted
        ]
        if not candidates:
            return None
        return max(candidates, key=_liquidity_usd)

    async def get_price_series(self, pair_label: str) -> Optional[List[float]]:
        """
        Recent USD prices for a pair, oldest first.

        Uses explicit price history when the payload carries one, otherwise
        reconstructs points from the ``priceChange`` windows.
        """
        pair = await self.find_pair(pair_label)
        if not pair:
            return None

        history = pair.get('priceHistory24h')
        if history:
            try:
                return [float(point['priceUsd']) for point in history]
            except (KeyError, TypeError, ValueError):
                logger.debug("Malformed price history for %s, using priceChange.", pair_label)

        try:
            price_usd = float(pair.get('priceUsd') or 0.0)
        except (TypeError, ValueError):
            return None
        series = series_from_price_changes(price_usd, pair.get('priceChange') or {})
        return series or None

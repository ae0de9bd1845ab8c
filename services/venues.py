#!/usr/bin/env python3
import asyncio
import logging
from typing import Optional

import aiohttp
from eth_abi.exceptions import DecodingError

from analysis.models import ExecutionStep, Quote, Venue
from constants import QUOTE_API_TIMEOUT
from exceptions import RpcError

logger = logging.getLogger(__name__)

# Anything a venue can raise while talking to its upstream or parsing the reply
ADAPTER_ERRORS = (
    aiohttp.ClientError,
    asyncio.TimeoutError,
    RpcError,
    DecodingError,
    KeyError,
    IndexError,
    TypeError,
    ValueError,
)


class VenueAdapter:
    """
    Base class for a quote source.

    Subclasses implement ``_fetch_quote`` and ``_build_step``; the public
    methods bound each call by ``timeout`` and turn upstream failures into
    ``None`` so callers only ever see a quote, a step, or nothing.
    """

    venue: Venue

    def __init__(self, timeout: float = QUOTE_API_TIMEOUT) -> None:
        self.timeout = timeout

    async def quote(self, token_in: str, token_out: str, amount_in: int) -> Optional[Quote]:
        try:
            quote = await asyncio.wait_for(
                self._fetch_quote(token_in.lower(), token_out.lower(), amount_in),
                timeout=self.timeout,
            )
        except ADAPTER_ERRORS as exc:
            logger.debug("%s quote %s -> %s failed: %r", self.venue.value, token_in, token_out, exc)
            return None
        if quote is None or quote.amount_out <= 0:
            return None
        return quote

    async def build_swap_step(self, quote: Quote, amount_out_min: int) -> Optional[ExecutionStep]:
        try:
            return await asyncio.wait_for(self._build_step(quote, amount_out_min), timeout=self.timeout)
        except ADAPTER_ERRORS as exc:
            logger.warning("%s could not build swap step %s -> %s: %r", self.venue.value, quote.token_in, quote.token_out, exc)
            return None

    async def _fetch_quote(self, token_in: str, token_out: str, amount_in: int) -> Optional[Quote]:
        raise NotImplementedError

    async def _build_step(self, quote: Quote, amount_out_min: int) -> Optional[ExecutionStep]:
        raise NotImplementedError

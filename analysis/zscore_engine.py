#!/usr/bin/env python3
"""Conviction gate: flags pairs whose current price sits far from its recent mean."""
import asyncio
import logging
import math
import time
from typing import Awaitable, Callable, Dict, List, Optional, Sequence, Tuple

from constants import DEFAULT_ZSCORE_THRESHOLD, ZSCORE_CACHE_TTL

logger = logging.getLogger(__name__)

PriceSeriesSource = Callable[[str], Awaitable[Optional[List[float]]]]


def compute_z_score(series: Sequence[float]) -> Optional[float]:
    """
    Population z-score of the last observation against the whole series.

    Returns None for fewer than two usable points and exactly 0.0 for a flat
    series.
    """
    values = []
    for v in series:
        if v is None:
            continue
        try:
            f = float(v)
        except (TypeError, ValueError):
            continue
        if math.isfinite(f):
            values.append(f)
    if len(values) < 2:
        return None

    current = values[-1]
    mean = sum(values) / len(values)
    variance = sum((v - mean) ** 2 for v in values) / len(values)
    std_dev = math.sqrt(variance)
    if std_dev == 0:
        return 0.0
    return (current - mean) / std_dev


def series_from_price_changes(price_usd: Optional[float], price_change: Dict[str, float]) -> List[float]:
    """
    Approximate history from DexScreener ``priceChange`` percentages.

    Each window ``w`` gives the price ``price_usd / (1 + change_w / 100)`` at
    the start of that window. Points are ordered oldest first and end with the
    current price.
    """
    if not price_usd or price_usd <= 0:
        return []
    series: List[float] = []
    for window in ('h24', 'h6', 'h1', 'm5'):
        change = price_change.get(window)
        if change is None:
            continue
        try:
            factor = 1 + float(change) / 100
        except (TypeError, ValueError):
            continue
        if factor <= 0:
            continue
        series.append(price_usd / factor)
    series.append(price_usd)
    return series


class ConvictionGate:
    """Resolves pair labels (``WETH/USDC``) to price series and caches z-scores briefly."""

    def __init__(
        self,
        series_source: PriceSeriesSource,
        threshold: float = DEFAULT_ZSCORE_THRESHOLD,
        cache_ttl: float = ZSCORE_CACHE_TTL,
    ) -> None:
        self._series_source = series_source
        self.threshold = threshold
        self._cache_ttl = cache_ttl
        self._cache: Dict[str, Tuple[Optional[float], float]] = {}
        self._locks: Dict[str, asyncio.Lock] = {}

    def _cached(self, pair_label: str) -> Tuple[bool, Optional[float]]:
        cached = self._cache.get(pair_label)
        if cached and time.monotonic() - cached[1] <= self._cache_ttl:
            return True, cached[0]
        return False, None

    async def compute_z_score(self, pair_label: str) -> Optional[float]:
        """
        Z-score for a pair label, or None when no usable series is available.

        Concurrent misses for the same label share one lookup. A series source
        that fails on a malformed payload counts as missing data.
        """
        hit, z_score = self._cached(pair_label)
        if hit:
            return z_score

        lock = self._locks.setdefault(pair_label, asyncio.Lock())
        async with lock:
            hit, z_score = self._cached(pair_label)
            if hit:
                return z_score
            try:
                series = await self._series_source(pair_label)
            except (KeyError, TypeError, ValueError, AttributeError) as e:
                logger.warning("Price series for %s unusable: %s", pair_label, e)
                series = None
            z_score = compute_z_score(series) if series else None
            self._cache[pair_label] = (z_score, time.monotonic())
        return z_score

    async def is_high_conviction(self, pair_label: str, threshold: Optional[float] = None) -> bool:
        limit = self.threshold if threshold is None else threshold
        z_score = await self.compute_z_score(pair_label)
        if z_score is None:
            logger.debug("conviction pair=%s z=none", pair_label)
            return False
        flagged = abs(z_score) > limit
        logger.info("conviction pair=%s z=%.3f threshold=%.2f high=%s", pair_label, z_score, limit, flagged)
        return flagged

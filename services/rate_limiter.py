#!/usr/bin/env python3
import asyncio


class RateLimiter:
    """Enforces a minimum interval between requests to one upstream API."""

    def __init__(self, min_interval: float) -> None:
        self._min_interval = min_interval
        self._last_request_ts: float = 0.0
        self._lock = asyncio.Lock()

    async def wait(self) -> None:
        async with self._lock:
            loop = asyncio.get_running_loop()
            elapsed = loop.time() - self._last_request_ts
            if elapsed < self._min_interval:
                await asyncio.sleep(self._min_interval - elapsed)
            self._last_request_ts = loop.time()

#!/usr/bin/env python3
import asyncio
import logging
from typing import Any, Dict, List, Optional, Sequence

import aiohttp
from aiohttp import ClientSession

from constants import RPC_STALL_TIMEOUT
from exceptions import RpcError

logger = logging.getLogger(__name__)


class RpcClient:
    """
    Minimal JSON-RPC client over a list of endpoints.

    Each request tries the endpoints in order, starting from the last one that
    answered, and fails over after ``timeout`` seconds or a transport error.
    A JSON-RPC ``error`` object (e.g. an execution revert) is not retried on
    other endpoints, since every node would give the same answer.
    """

    _DECIMALS_SIG = "0x313ce567"

    def __init__(
        self,
        session: ClientSession,
        *,
        rpc_urls: Sequence[str],
        timeout: float = RPC_STALL_TIMEOUT,
    ) -> None:
        if not rpc_urls:
            raise ValueError("at least one RPC url is required")
        self._session = session
        self._rpc_urls: List[str] = list(rpc_urls)
        self._timeout = timeout
        self._preferred = 0
        self._decimals_cache: Dict[str, int] = {}
        self._id_lock = asyncio.Lock()
        self._next_request_id = 1

    @property
    def rpc_urls(self) -> List[str]:
        return list(self._rpc_urls)

    async def call(self, method: str, params: list) -> Any:
        request_id = await self._get_request_id()
        payload = {
            "jsonrpc": "2.0",
            "method": method,
            "params": params,
            "id": request_id,
        }
        count = len(self._rpc_urls)
        last_error: Optional[Exception] = None
        for offset in range(count):
            index = (self._preferred + offset) % count
            url = self._rpc_urls[index]
            try:
                data = await asyncio.wait_for(self._post(url, payload), timeout=self._timeout)
            except (aiohttp.ClientError, asyncio.TimeoutError, ValueError) as exc:
                last_error = exc
                logger.debug("RPC endpoint %s failed for %s: %r", url, method, exc)
                continue
            self._preferred = index
            if data.get('error'):
                raise RpcError(str(data['error']), method=method, details={'error': data['error']})
            return data.get('result')
        raise RpcError(f"all {count} RPC endpoints failed", method=method, details={'last_error': repr(last_error)})

    async def _post(self, url: str, payload: dict) -> dict:
        async with self._session.post(url, json=payload) as response:
            response.raise_for_status()
            data = await response.json(content_type=None)
        if not isinstance(data, dict):
            raise ValueError("malformed JSON-RPC response")
        return data

    async def eth_call(self, to: str, data: str, block: str = "latest") -> str:
        result = await self.call("eth_call", [{"to": to, "data": data}, block])
        if not isinstance(result, str):
            raise RpcError("empty eth_call result", method="eth_call")
        return result

    async def gas_price(self) -> int:
        result = await self.call("eth_gasPrice", [])
        return int(result, 16)

    async def block_number(self) -> int:
        result = await self.call("eth_blockNumber", [])
        return int(result, 16)

    async def get_decimals(self, token_address: str) -> int:
        token_address = self._normalise_address(token_address)
        cached = self._decimals_cache.get(token_address)
        if cached is not None:
            return cached
        result = await self.eth_call(token_address, self._DECIMALS_SIG)
        if len(result) < 3:
            raise RpcError(f"no decimals for {token_address}", method="eth_call")
        decimals = int(result, 16)
        self._decimals_cache[token_address] = decimals
        return decimals

    async def _get_request_id(self) -> int:
        async with self._id_lock:
            request_id = self._next_request_id
            self._next_request_id += 1
        return request_id

    @staticmethod
    def _normalise_address(address: str) -> str:
        if not address:
            return address
        if address.startswith('0x'):
            return '0x' + address[2:].lower()
        return '0x' + address.lower()

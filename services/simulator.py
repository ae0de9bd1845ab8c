#!/usr/bin/env python3
import asyncio
import logging
from typing import Optional

import aiohttp

from exceptions import RpcError
from services.rpc_client import RpcClient

logger = logging.getLogger(__name__)


class TransactionSimulator:
    """Read-only ``eth_call`` of a prepared transaction; a revert means the opportunity is dropped."""

    def __init__(self, rpc: RpcClient, from_address: Optional[str] = None) -> None:
        self.rpc = rpc
        self.from_address = from_address

    async def simulate(self, target: str, call_data: str) -> bool:
        call = {'to': target, 'data': call_data}
        if self.from_address:
            call['from'] = self.from_address
        try:
            await self.rpc.call('eth_call', [call, 'latest'])
        except RpcError as exc:
            logger.info("Simulation reverted for %s: %s", target, exc)
            return False
        except (aiohttp.ClientError, asyncio.TimeoutError) as exc:
            logger.warning("Simulation could not reach RPC for %s: %r", target, exc)
            return False
        logger.debug("Simulation succeeded for %s.", target)
        return True

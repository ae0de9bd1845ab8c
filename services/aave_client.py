#!/usr/bin/env python3
import logging
from typing import List

from eth_abi.exceptions import DecodingError

from constants import AAVE_V3_POOL, FALLBACK_FLASH_LOAN_ASSETS
from exceptions import RpcError
from services.abi_codec import decode_result, encode_call
from services.rpc_client import RpcClient

logger = logging.getLogger(__name__)

_GET_RESERVES_LIST = 'getReservesList()'


class AaveClient:
    """Reads the flash-loanable reserve list of the Aave V3 pool."""

    def __init__(self, rpc: RpcClient, pool_address: str = AAVE_V3_POOL) -> None:
        self.rpc = rpc
        self.pool_address = pool_address

    async def get_reserves_list(self) -> List[str]:
        result = await self.rpc.eth_call(self.pool_address, encode_call(_GET_RESERVES_LIST, [], []))
        (assets,) = decode_result(['address[]'], result)
        return [a.lower() for a in assets]

    async def get_flash_loanable_assets(self) -> List[str]:
        """Reserve list from chain, or the static list of known Base reserves when the pool can't be read."""
        logger.info("Fetching flash loanable assets from Aave V3...")
        try:
            assets = await self.get_reserves_list()
        except (RpcError, DecodingError, ValueError) as exc:
            logger.warning("Failed to fetch Aave assets: %s. Using %d fallback assets.", exc, len(FALLBACK_FLASH_LOAN_ASSETS))
            return list(FALLBACK_FLASH_LOAN_ASSETS)
        if not assets:
            logger.warning("Aave returned no reserves, using %d fallback assets.", len(FALLBACK_FLASH_LOAN_ASSETS))
            return list(FALLBACK_FLASH_LOAN_ASSETS)
        logger.info("Found %d flash loanable assets.", len(assets))
        return assets

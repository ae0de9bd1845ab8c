#!/usr/bin/env python3
"""Call-data helpers shared by the on-chain adapters and the flash-arb contract encoder."""
from functools import lru_cache
from typing import Any, Sequence, Tuple

from eth_abi import decode, encode
from web3 import Web3


@lru_cache(maxsize=None)
def function_selector(signature: str) -> bytes:
    """4-byte selector, e.g. ``getAmountsOut(uint256,address[])``."""
    return bytes(Web3.keccak(text=signature)[:4])


def encode_call(signature: str, arg_types: Sequence[str], args: Sequence[Any]) -> str:
    return '0x' + (function_selector(signature) + encode(list(arg_types), list(args))).hex()


def decode_result(result_types: Sequence[str], result_hex: str) -> Tuple[Any, ...]:
    raw = bytes.fromhex(result_hex[2:] if result_hex.startswith('0x') else result_hex)
    if not raw:
        raise ValueError("empty call result")
    return decode(list(result_types), raw)

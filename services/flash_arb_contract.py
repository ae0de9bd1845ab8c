#!/usr/bin/env python3
"""Call-data for the flash-loan receiver contract's multi-hop entry point."""
from typing import Sequence

from analysis.models import ExecutionStep
from services.abi_codec import encode_call

SWAP_STEP_TUPLE = '(uint8,address,address,address,uint24,bool,address,uint256,bytes)'
EXECUTE_ARB_SIGNATURE = f'executeArb(address,uint256,{SWAP_STEP_TUPLE}[])'


def encode_execute_arb(asset: str, amount: int, steps: Sequence[ExecutionStep]) -> str:
    """Hex call data for ``executeArb(asset, amount, steps)``."""
    if not steps:
        raise ValueError("executeArb needs at least one swap step")
    return encode_call(
        EXECUTE_ARB_SIGNATURE,
        ['address', 'uint256', f'{SWAP_STEP_TUPLE}[]'],
        [asset.lower(), amount, [step.as_abi_tuple() for step in steps]],
    )

#!/usr/bin/env python3
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Optional, Tuple

# Dex type ids understood by the flash-loan receiver contract
DEX_GENERIC = 0
DEX_UNISWAP_V3 = 1
DEX_AERODROME = 2
DEX_PANCAKESWAP_V3 = 3
DEX_UNISWAP_V2 = 4


class Venue(Enum):
    """Closed set of liquidity venues the scanner can quote and route through."""
    UNISWAP_V2 = 'uniswap_v2'
    BASESWAP = 'baseswap'
    UNISWAP_V3 = 'uniswap_v3'
    PANCAKESWAP_V3 = 'pancakeswap_v3'
    AERODROME = 'aerodrome'
    ODOS = 'odos'
    COWSWAP = 'cowswap'

    @property
    def dex_type(self) -> int:
        return _DEX_TYPES[self]

    @classmethod
    def from_dex_id(cls, dex_id: Optional[str]) -> Tuple['Venue', ...]:
        """Maps a market-data dex id (e.g. DexScreener ``dexId``) to venues, best guess first."""
        if not dex_id:
            return ()
        key = dex_id.strip().lower()
        if key in _DEX_ID_ALIASES:
            return _DEX_ID_ALIASES[key]
        try:
            return (cls(key),)
        except ValueError:
            return ()


_DEX_TYPES: Dict[Venue, int] = {
    Venue.UNISWAP_V2: DEX_UNISWAP_V2,
    Venue.BASESWAP: DEX_UNISWAP_V2,
    Venue.UNISWAP_V3: DEX_UNISWAP_V3,
    Venue.PANCAKESWAP_V3: DEX_PANCAKESWAP_V3,
    Venue.AERODROME: DEX_AERODROME,
    Venue.ODOS: DEX_GENERIC,
    Venue.COWSWAP: DEX_GENERIC,
}

_DEX_ID_ALIASES: Dict[str, Tuple[Venue, ...]] = {
    'uniswap': (Venue.UNISWAP_V3, Venue.UNISWAP_V2),
    'uniswapv2': (Venue.UNISWAP_V2,),
    'uniswapv3': (Venue.UNISWAP_V3,),
    'pancakeswap': (Venue.PANCAKESWAP_V3,),
    'pancakeswapv3': (Venue.PANCAKESWAP_V3,),
    'aerodrome': (Venue.AERODROME,),
    'baseswap': (Venue.BASESWAP,),
    'odos': (Venue.ODOS,),
    'cow': (Venue.COWSWAP,),
    'cowswap': (Venue.COWSWAP,),
}


@dataclass(frozen=True)
class Token:
    """Snapshot of one token in the market-data token database."""
    address: str
    symbol: str
    name: str
    liquidity_usd: float
    pairs: Dict[str, str] = field(default_factory=dict)  # counterparty address -> dex id


TokenDatabase = Dict[str, Token]


@dataclass(frozen=True)
class Hop:
    from_token: str
    to_token: str
    venue_hint: Optional[str] = None


Path = Tuple[Hop, ...]


@dataclass(frozen=True)
class Quote:
    """A venue's priced response for a single hop. Only valid at fetch time."""
    venue: Venue
    token_in: str
    token_out: str
    amount_in: int
    amount_out: int
    fee: int = 0
    stable: bool = False
    route_token: Optional[str] = None


@dataclass(frozen=True)
class ExecutionStep:
    """One resolved swap, laid out like the receiver contract's SwapStep struct."""
    dex_type: int
    target: str
    token_in: str
    token_out: str
    amount_out_min: int
    fee: int = 0
    stable: bool = False
    factory: str = '0x0000000000000000000000000000000000000000'
    call_data: bytes = b''

    def as_abi_tuple(self) -> tuple:
        return (
            self.dex_type,
            self.target,
            self.token_in,
            self.token_out,
            self.fee,
            self.stable,
            self.factory,
            self.amount_out_min,
            self.call_data,
        )


@dataclass(frozen=True)
class ProfitBreakdown:
    net_profit: int
    profit_percent: float  # display only
    repay_amount: int
    premium: int
    slippage_adjusted: int


@dataclass(frozen=True)
class Opportunity:
    """A profitable, fully assembled cycle. Consumed once by the scanner."""
    hub: str
    net_profit: int
    profit_percent: float
    initial_amount: int
    final_amount: int
    tokens: Tuple[str, ...]
    steps: Tuple[ExecutionStep, ...]
    description: str
    premium: int
    repay_amount: int
    gas_cost: int
    pair_label: str
    high_conviction: bool = False

#!/usr/bin/env python3
from typing import Dict, List, Union

# --- ANSI Color Codes ---
C_GREEN = '\033[92m'
C_RED = '\033[91m'
C_YELLOW = '\033[93m'
C_BLUE = '\033[94m'
C_RESET = '\033[0m'

# --- API Configuration ---
DEXSCREENER_API_BASE_URL = 'https://api.dexscreener.com/latest/dex'
ODOS_API_BASE_URL = 'https://api.odos.xyz'
COWSWAP_API_BASE_URL = 'https://api.cow.fi/base/api/v1'

# --- Environment Variable Names ---
RPC_URLS_ENV_VAR = 'BASE_RPC_URLS'
PRIVATE_KEY_ENV_VAR = 'PRIVATE_KEY'
ODOS_API_URL_ENV_VAR = 'ODOS_API_URL'

# --- Chain Configuration ---
CHAIN_CONFIG: Dict[str, Union[str, int]] = {
    'chainId': 8453,
    'dexscreenerName': 'base',
    'nativeSymbol': 'ETH',
    'wrappedNative': '0x4200000000000000000000000000000000000006',
}

# --- Fixed-point Arithmetic ---
BPS_DENOMINATOR = 10_000
AAVE_PREMIUM_BPS = 9  # Aave V3 flash loan premium, 0.09%
DEFAULT_SLIPPAGE_BPS = 30
DEFAULT_CONVICTION_MULTIPLIER_BPS = 20_000

# --- Path Generation ---
MIN_PATH_HOPS = 2
MAX_PATH_HOPS = 4
MAX_GENERATED_PATHS = 5000
MAX_RETAINED_PATHS = 2000

# --- Timeouts (seconds) ---
QUOTE_API_TIMEOUT = 12.0
RPC_STALL_TIMEOUT = 1.5

# --- Gas Heuristics ---
FLASH_LOAN_GAS_OVERHEAD = 180_000
GAS_UNITS_PER_HOP = 130_000
GAS_LIMIT_BUFFER_PCT = 30

# --- Aave V3 ---
AAVE_V3_POOL = '0xa238dd80c259a72e81d7e4664a9801593f98d1c5'
FALLBACK_FLASH_LOAN_ASSETS: List[str] = [
    '0x4200000000000000000000000000000000000006',  # WETH
    '0x833589fcd6edb6e08f4c7c32d4f71b54bda02913',  # USDC
    '0xd9aaec86b65d86f6a7b5b1b0c42ffa531710b6ca',  # USDbC
    '0x50c5725949a6f0c72e6c4a641f24049a917db0cb',  # DAI
    '0x2ae3f1ec7f1f5012cfeab0185bfc7aa3cf0dec22',  # cbETH
]

# --- Venue Contracts on Base (lowercase) ---
DEX_ADDRESSES: Dict[str, Dict[str, str]] = {
    'uniswap_v2': {
        'router': '0x4752ba5dbc23f44d87826276bf6fd6b1c372ad24',
    },
    'uniswap_v3': {
        'quoter': '0x3d4e44eb1374240ce5f1b871ab261cd16335b76a',
        'router': '0x2626664c2603336e57b271c5c0b26f421741e481',
    },
    'aerodrome': {
        'router': '0xcf77a3ba9a5ca399b7c97c74d54e5b1beb874e43',
        'factory': '0x420dd381b31aef6683db6b902084cb0ffece40da',
    },
    'pancakeswap_v3': {
        'quoter': '0xb048bbc1ee6b733fffcfb9e9cef7375518e25997',
        'router': '0x678aa4bf4e210cf2166753e054d5b7c31cc7fa86',
    },
    'baseswap': {
        'router': '0x327df1e6de05895d2ab08513aadd9313fe505d86',
    },
    'odos': {
        'router': '0x19ceead7105607cd444f5ad10dd51356436095a1',
    },
}

UNISWAP_V3_FEE_TIERS = (100, 500, 3000, 10000)
PANCAKESWAP_V3_FEE_TIERS = (100, 500, 2500, 10000)

# --- Market Data Discovery ---
DEFAULT_DISCOVERY_DEX_IDS: List[str] = ['uniswap', 'aerodrome', 'pancakeswap', 'baseswap']
DEFAULT_MIN_PAIR_LIQUIDITY_USD = 10_000.0
DEFAULT_QUOTE_VENUES: List[str] = ['uniswap_v3', 'aerodrome', 'uniswap_v2']

# --- Rate Limits (min seconds between requests) ---
DEXSCREENER_RATE_LIMIT_DELAY = 0.5  # stays under 300 req/min
ODOS_RATE_LIMIT_DELAY = 0.6
COWSWAP_RATE_LIMIT_DELAY = 1.0

# --- Scan Loop ---
DEFAULT_SCAN_INTERVAL = 60
DEFAULT_BATCH_SIZE = 5
DEFAULT_PATH_CACHE_MAX_AGE = 24 * 60 * 60
DEFAULT_HUB_TOKEN_LIMIT = 20
MAX_RETRY_BACKOFF = 300

# --- Gates ---
DEFAULT_ZSCORE_THRESHOLD = 2.5
ZSCORE_CACHE_TTL = 60.0
DEFAULT_MAX_GAS_PRICE_GWEI = 0.5

ZERO_ADDRESS = '0x0000000000000000000000000000000000000000'

#!/usr/bin/env python3
import os
import argparse
from decimal import Decimal, InvalidOperation
from typing import NamedTuple, Optional

import constants
from analysis.hop_quoter import UNKNOWN_VENUE_BROADCAST, UNKNOWN_VENUE_POLICIES
from analysis.models import Venue

SCAN_MODE_PATHS = 'paths'
SCAN_MODE_HUB = 'hub'


class AppConfig(NamedTuple):
    """Typed configuration object."""
    mode: str
    rpc_urls: list[str]
    hubs: list[str]
    dex_ids: list[str]
    default_venues: list[Venue]
    unknown_venue_policy: str
    scan_amount: Decimal
    min_profit: Decimal
    premium_bps: int
    slippage_bps: int
    conviction_enabled: bool
    zscore_threshold: float
    conviction_multiplier_bps: int
    interval: int
    batch_size: int
    max_paths: int
    keep_paths: int
    path_cache_max_age: int
    min_liquidity: float
    hub_token_limit: int
    contract_address: Optional[str]
    auto_trade: bool
    max_gas_price_gwei: float
    private_key: Optional[str]
    odos_api_url: str
    db_path: str
    log_level: str
    quote_timeout: float
    rpc_timeout: float
    show_opportunities: bool
    show_limit: int


def _decimal(value: str) -> Decimal:
    try:
        result = Decimal(value)
    except InvalidOperation:
        raise argparse.ArgumentTypeError(f"not a number: {value}")
    if not result.is_finite() or result < 0:
        raise argparse.ArgumentTypeError(f"must be a non-negative number: {value}")
    return result


def _address(value: str) -> str:
    value = value.strip().lower()
    if not value.startswith('0x') or len(value) != 42:
        raise argparse.ArgumentTypeError(f"not an address: {value}")
    try:
        int(value[2:], 16)
    except ValueError:
        raise argparse.ArgumentTypeError(f"not an address: {value}")
    return value


def _venue(value: str) -> Venue:
    try:
        return Venue(value.lower())
    except ValueError:
        choices = ', '.join(v.value for v in Venue)
        raise argparse.ArgumentTypeError(f"unknown venue {value!r} (choose from {choices})")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Scan Base for flash-loan funded circular arbitrage across DEXs and aggregators.",
        epilog="Example: ./main.py --mode paths --scan-amount 1 --min-profit 0.002 --conviction",
    )
    # --- Scan Mode ---
    parser.add_argument('--mode', choices=[SCAN_MODE_PATHS, SCAN_MODE_HUB], default=SCAN_MODE_PATHS,
                        help='paths: multi-hop cycles with best-of quoting; hub: hub -> token -> hub with consensus (default: paths).')
    parser.add_argument('--hub', nargs='+', type=_address, help='Hub asset addresses. Defaults to the Aave V3 reserve list.')
    parser.add_argument('--dex', nargs='+', default=constants.DEFAULT_DISCOVERY_DEX_IDS,
                        help='DexScreener dex ids used to discover pairs (default: %(default)s).')
    parser.add_argument('--default-venue', nargs='+', type=_venue,
                        default=[Venue(v) for v in constants.DEFAULT_QUOTE_VENUES],
                        help='Venues queried when a hop has no usable venue hint.')
    parser.add_argument('--unknown-venue-policy', choices=UNKNOWN_VENUE_POLICIES, default=UNKNOWN_VENUE_BROADCAST,
                        help='What to do with an unrecognised venue hint: query defaults + aggregator, or fail the hop (default: broadcast).')

    # --- Sizing & Profit ---
    parser.add_argument('--scan-amount', type=_decimal, default=Decimal('1'),
                        help='Flash-loan size in hub major units (default: 1).')
    parser.add_argument('--min-profit', type=_decimal, default=Decimal('0'),
                        help='Minimum net profit in hub major units (default: 0).')
    parser.add_argument('--premium-bps', type=int, default=constants.AAVE_PREMIUM_BPS,
                        help='Flash-loan premium in basis points (default: %(default)s).')
    parser.add_argument('--slippage-bps', type=int, default=constants.DEFAULT_SLIPPAGE_BPS,
                        help='Slippage allowance in basis points (default: %(default)s).')

    # --- Conviction Gate ---
    parser.add_argument('--conviction', action='store_true', help='Raise the profit bar for pairs with a high price z-score.')
    parser.add_argument('--zscore-threshold', type=float, default=constants.DEFAULT_ZSCORE_THRESHOLD,
                        help='Absolute z-score that marks a pair as high conviction (default: %(default)s).')
    parser.add_argument('--conviction-multiplier', type=_decimal, default=Decimal('2'),
                        help='Threshold multiplier for high-conviction pairs (default: 2).')

    # --- Loop & Path Generation ---
    parser.add_argument('--interval', type=int, default=constants.DEFAULT_SCAN_INTERVAL,
                        help='Seconds to wait between each scan (default: %(default)s).')
    parser.add_argument('--batch-size', type=int, default=constants.DEFAULT_BATCH_SIZE,
                        help='Paths evaluated concurrently (default: %(default)s).')
    parser.add_argument('--max-paths', type=int, default=constants.MAX_GENERATED_PATHS,
                        help='Cap on cycles found during generation (default: %(default)s).')
    parser.add_argument('--keep-paths', type=int, default=constants.MAX_RETAINED_PATHS,
                        help='Most liquid cycles kept after generation (default: %(default)s).')
    parser.add_argument('--path-cache-max-age', type=int, default=constants.DEFAULT_PATH_CACHE_MAX_AGE,
                        help='Seconds before cached paths are regenerated (default: %(default)s).')
    parser.add_argument('--min-liquidity', type=float, default=constants.DEFAULT_MIN_PAIR_LIQUIDITY_USD,
                        help='Min USD liquidity per pair (default: %(default)s).')
    parser.add_argument('--hub-token-limit', type=int, default=constants.DEFAULT_HUB_TOKEN_LIMIT,
                        help='Most liquid tokens scanned per hub in hub mode (default: %(default)s).')

    # --- Execution ---
    parser.add_argument('--contract-address', type=_address, help='Flash-arb receiver contract; enables simulation before execution.')
    parser.add_argument('--auto-trade', action='store_true', help='Submit the best opportunity of each cycle on-chain.')
    parser.add_argument('--max-gas-price-gwei', type=float, default=constants.DEFAULT_MAX_GAS_PRICE_GWEI,
                        help='Skip execution above this gas price (default: %(default)s).')

    # --- Runtime ---
    parser.add_argument('--db-path', type=str, default='data/arbitrage.db', help='SQLite database path (default: %(default)s).')
    parser.add_argument('--log-level', choices=['DEBUG', 'INFO', 'WARNING', 'ERROR'], default='INFO')
    parser.add_argument('--quote-timeout', type=float, default=constants.QUOTE_API_TIMEOUT,
                        help='Seconds before a venue quote is abandoned (default: %(default)s).')
    parser.add_argument('--rpc-timeout', type=float, default=constants.RPC_STALL_TIMEOUT,
                        help='Seconds before an RPC endpoint is skipped for the next one (default: %(default)s).')
    parser.add_argument('--show-opportunities', action='store_true', help='Display recent recorded opportunities and exit.')
    parser.add_argument('--show-limit', type=int, default=10, help='Number of records to display (default: 10).')
    return parser


def load_config(argv: Optional[list[str]] = None) -> AppConfig:
    """
    Parses command-line arguments and loads environment variables to create a configuration object.
    """
    parser = build_parser()
    args = parser.parse_args(argv)

    rpc_urls = [u.strip() for u in os.environ.get(constants.RPC_URLS_ENV_VAR, '').split(',') if u.strip()]
    private_key = os.environ.get(constants.PRIVATE_KEY_ENV_VAR) or None
    odos_api_url = os.environ.get(constants.ODOS_API_URL_ENV_VAR) or constants.ODOS_API_BASE_URL

    if not args.show_opportunities and not rpc_urls:
        parser.error(f'{constants.RPC_URLS_ENV_VAR} environment variable not set (comma-separated RPC URLs).')

    if args.premium_bps < 0 or args.premium_bps >= constants.BPS_DENOMINATOR:
        parser.error('--premium-bps must be between 0 and 9999.')
    if args.slippage_bps < 0 or args.slippage_bps >= constants.BPS_DENOMINATOR:
        parser.error('--slippage-bps must be between 0 and 9999.')
    if args.scan_amount <= 0:
        parser.error('--scan-amount must be positive.')
    if args.conviction_multiplier < 1:
        parser.error('--conviction-multiplier must be at least 1.')
    for flag, value in (('--batch-size', args.batch_size), ('--interval', args.interval),
                        ('--max-paths', args.max_paths), ('--keep-paths', args.keep_paths)):
        if value <= 0:
            parser.error(f'{flag} must be positive.')

    if args.auto_trade:
        if not private_key:
            parser.error(f'{constants.PRIVATE_KEY_ENV_VAR} environment variable not set; required for --auto-trade.')
        if not args.contract_address:
            parser.error('--auto-trade requires --contract-address.')

    # Integer bps so the threshold scaling stays in fixed point
    conviction_multiplier_bps = int(args.conviction_multiplier * constants.BPS_DENOMINATOR)

    return AppConfig(
        mode=args.mode,
        rpc_urls=rpc_urls,
        hubs=args.hub or [],
        dex_ids=args.dex,
        default_venues=args.default_venue,
        unknown_venue_policy=args.unknown_venue_policy,
        scan_amount=args.scan_amount,
        min_profit=args.min_profit,
        premium_bps=args.premium_bps,
        slippage_bps=args.slippage_bps,
        conviction_enabled=args.conviction,
        zscore_threshold=args.zscore_threshold,
        conviction_multiplier_bps=conviction_multiplier_bps,
        interval=args.interval,
        batch_size=args.batch_size,
        max_paths=args.max_paths,
        keep_paths=args.keep_paths,
        path_cache_max_age=args.path_cache_max_age,
        min_liquidity=args.min_liquidity,
        hub_token_limit=args.hub_token_limit,
        contract_address=args.contract_address,
        auto_trade=args.auto_trade,
        max_gas_price_gwei=args.max_gas_price_gwei,
        private_key=private_key,
        odos_api_url=odos_api_url,
        db_path=args.db_path,
        log_level=args.log_level,
        quote_timeout=args.quote_timeout,
        rpc_timeout=args.rpc_timeout,
        show_opportunities=args.show_opportunities,
        show_limit=args.show_limit,
    )

#!/usr/bin/env python3
"""Builds the token database snapshot from raw DexScreener pair payloads."""
import logging
from typing import Any, Dict, Iterable, List, Tuple

from analysis.models import Token, TokenDatabase

logger = logging.getLogger(__name__)


def build_token_database(
    pairs_data: Iterable[Dict[str, Any]],
    chain_name: str,
    min_liquidity_usd: float,
) -> TokenDatabase:
    """
    Aggregates pairs into ``{address: Token}``.

    Liquidity is summed over every accepted pair touching a token. When two
    tokens are connected by several pairs, the venue of the most liquid pair
    wins (first seen on ties), so the resulting graph does not depend on
    payload ordering beyond that tie-break.
    """
    symbols: Dict[str, Tuple[str, str]] = {}
    liquidity: Dict[str, float] = {}
    pairs: Dict[str, Dict[str, str]] = {}
    best_edge: Dict[Tuple[str, str], float] = {}
    seen_pairs: set = set()

    for pair in pairs_data:
        try:
            if pair.get('chainId') != chain_name:
                continue
            liq_usd = float((pair.get('liquidity') or {}).get('usd') or 0.0)
            if liq_usd < min_liquidity_usd:
                continue
            pair_address = (pair.get('pairAddress') or '').lower()
            if pair_address and pair_address in seen_pairs:
                continue
            base = pair['baseToken']
            quote = pair['quoteToken']
            base_addr = base['address'].lower()
            quote_addr = quote['address'].lower()
            dex_id = pair.get('dexId') or 'unknown'
        except (KeyError, TypeError, ValueError, AttributeError):
            continue  # malformed pair

        if base_addr == quote_addr:
            continue
        if pair_address:
            seen_pairs.add(pair_address)

        for addr, token in ((base_addr, base), (quote_addr, quote)):
            if addr not in symbols:
                symbols[addr] = (token.get('symbol') or addr[:6], token.get('name') or '')
                liquidity[addr] = 0.0
                pairs[addr] = {}
            liquidity[addr] += liq_usd

        edge_key = (min(base_addr, quote_addr), max(base_addr, quote_addr))
        if edge_key not in best_edge or liq_usd > best_edge[edge_key]:
            best_edge[edge_key] = liq_usd
            pairs[base_addr][quote_addr] = dex_id
            pairs[quote_addr][base_addr] = dex_id

    database: TokenDatabase = {}
    for addr, (symbol, name) in symbols.items():
        database[addr] = Token(
            address=addr,
            symbol=symbol,
            name=name,
            liquidity_usd=liquidity[addr],
            pairs=dict(pairs[addr]),
        )
    logger.info("Built token database with %d tokens from %d pairs.", len(database), len(seen_pairs))
    return database


def rank_tokens_by_liquidity(database: TokenDatabase, exclude: Iterable[str] = ()) -> List[Token]:
    excluded = {addr.lower() for addr in exclude}
    tokens = [t for addr, t in database.items() if addr not in excluded]
    return sorted(tokens, key=lambda t: t.liquidity_usd, reverse=True)


def token_database_to_dict(database: TokenDatabase) -> Dict[str, Dict[str, Any]]:
    return {
        addr: {
            'symbol': token.symbol,
            'name': token.name,
            'liquidityUsd': token.liquidity_usd,
            'pairs': dict(token.pairs),
        }
        for addr, token in database.items()
    }


def token_database_from_dict(payload: Dict[str, Dict[str, Any]]) -> TokenDatabase:
    database: TokenDatabase = {}
    for addr, data in payload.items():
        key = addr.lower()
        database[key] = Token(
            address=key,
            symbol=data.get('symbol', key[:6]),
            name=data.get('name', ''),
            liquidity_usd=float(data.get('liquidityUsd', 0.0)),
            pairs={k.lower(): v for k, v in (data.get('pairs') or {}).items()},
        )
    return database

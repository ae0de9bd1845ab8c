#!/usr/bin/env python3
import logging
from typing import Any, Dict, Iterable, List, Optional, Set

import networkx as nx

from analysis.models import Hop, Path, TokenDatabase
from constants import MAX_GENERATED_PATHS, MAX_PATH_HOPS, MAX_RETAINED_PATHS, MIN_PATH_HOPS

logger = logging.getLogger(__name__)


def build_trading_graph(token_database: TokenDatabase) -> nx.DiGraph:
    """
    Builds a directed graph from the token database.
    Nodes are token addresses, each edge carries the venue id that connects them.
    Counterparties missing from the database are ignored.
    """
    graph = nx.DiGraph()
    for token_address, token in token_database.items():
        addr = token_address.lower()
        for counterparty, venue in token.pairs.items():
            other = counterparty.lower()
            if other == addr or other not in token_database:
                continue
            graph.add_edge(addr, other, venue=venue)
    logger.info("Built trading graph with %d nodes and %d edges.", graph.number_of_nodes(), graph.number_of_edges())
    return graph


def generate_paths(
    token_database: TokenDatabase,
    hub_assets: Iterable[str],
    max_paths: int = MAX_GENERATED_PATHS,
    keep: int = MAX_RETAINED_PATHS,
) -> List[Path]:
    """
    Enumerates closed cycles of MIN_PATH_HOPS..MAX_PATH_HOPS hops starting at each hub.

    Hubs are walked in the given order and neighbours in graph insertion order,
    so the result is fully determined by the inputs. The search stops once
    ``max_paths`` cycles were found; survivors are ranked by their bottleneck
    token liquidity and cut to ``keep``.
    """
    graph = build_trading_graph(token_database)
    all_paths: List[Path] = []

    for hub in hub_assets:
        start = hub.lower()
        if start not in graph:
            logger.debug("Hub %s has no observed pairs, skipping.", start)
            continue
        if len(all_paths) >= max_paths:
            break
        _find_circular_paths(graph, start, [start], {start}, all_paths, max_paths)

    logger.info("Generated %d potential arbitrage paths.", len(all_paths))
    ranked = sort_paths_by_liquidity(all_paths, token_database)
    return ranked[:keep]


def _find_circular_paths(
    graph: nx.DiGraph,
    start: str,
    current: List[str],
    visited: Set[str],
    all_paths: List[Path],
    max_paths: int,
) -> None:
    # len(current) equals the hop count the cycle would have if closed now
    depth = len(current)
    for neighbor in graph.successors(current[-1]):
        if len(all_paths) >= max_paths:
            return
        if neighbor == start:
            if depth >= MIN_PATH_HOPS:
                all_paths.append(_format_path(graph, current + [start]))
        elif neighbor not in visited and depth < MAX_PATH_HOPS:
            visited.add(neighbor)
            current.append(neighbor)
            _find_circular_paths(graph, start, current, visited, all_paths, max_paths)
            current.pop()
            visited.discard(neighbor)


def _format_path(graph: nx.DiGraph, nodes: List[str]) -> Path:
    return tuple(
        Hop(from_token=u, to_token=v, venue_hint=graph[u][v].get('venue'))
        for u, v in zip(nodes, nodes[1:])
    )


def path_liquidity(path: Path, token_database: TokenDatabase) -> float:
    """Liquidity of the thinnest token touched by the path; 0 when none is known."""
    min_liquidity: Optional[float] = None
    for addr in path_tokens(path):
        token = token_database.get(addr)
        if token is None:
            continue
        if min_liquidity is None or token.liquidity_usd < min_liquidity:
            min_liquidity = token.liquidity_usd
    return min_liquidity if min_liquidity is not None else 0.0


def sort_paths_by_liquidity(paths: List[Path], token_database: TokenDatabase) -> List[Path]:
    # sorted() is stable, equal-liquidity paths keep discovery order
    return sorted(paths, key=lambda p: path_liquidity(p, token_database), reverse=True)


def path_tokens(path: Path) -> List[str]:
    """Token sequence of a path including the closing return, e.g. [A, B, C, A]."""
    if not path:
        return []
    return [path[0].from_token] + [hop.to_token for hop in path]


def describe_path(path: Path, token_database: TokenDatabase) -> str:
    symbols = []
    for addr in path_tokens(path):
        token = token_database.get(addr)
        symbols.append(token.symbol if token else addr[:8])
    return ' -> '.join(symbols)


def path_to_dict(path: Path) -> List[Dict[str, Any]]:
    return [{'from': hop.from_token, 'to': hop.to_token, 'dex': hop.venue_hint} for hop in path]


def path_from_dict(payload: List[Dict[str, Any]]) -> Path:
    return tuple(
        Hop(from_token=item['from'].lower(), to_token=item['to'].lower(), venue_hint=item.get('dex'))
        for item in payload
    )

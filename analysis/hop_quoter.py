#!/usr/bin/env python3
import asyncio
import logging
from typing import Dict, Iterable, List, Optional, Sequence

from analysis.consensus import check_consensus
from analysis.models import Quote, Venue
from services.venues import VenueAdapter

logger = logging.getLogger(__name__)

UNKNOWN_VENUE_BROADCAST = 'broadcast'
UNKNOWN_VENUE_FAIL = 'fail'
UNKNOWN_VENUE_POLICIES = (UNKNOWN_VENUE_BROADCAST, UNKNOWN_VENUE_FAIL)


class BestHopQuoter:
    """
    Picks the best quote for one hop across the registered venues.

    A recognised venue hint narrows the query to that venue family. Without
    a hint the default venues plus the aggregator are queried. What happens
    for an unrecognised hint is decided by ``unknown_venue_policy``.
    """

    def __init__(
        self,
        adapters: Iterable[VenueAdapter],
        default_venues: Sequence[Venue] = (),
        aggregator: Optional[Venue] = Venue.ODOS,
        unknown_venue_policy: str = UNKNOWN_VENUE_BROADCAST,
    ) -> None:
        if unknown_venue_policy not in UNKNOWN_VENUE_POLICIES:
            raise ValueError(f"unknown venue policy: {unknown_venue_policy}")
        self._adapters: Dict[Venue, VenueAdapter] = {}
        for adapter in adapters:
            self._adapters[adapter.venue] = adapter
        self.default_venues = [v for v in default_venues if v in self._adapters]
        self.aggregator = aggregator if aggregator in self._adapters else None
        self.unknown_venue_policy = unknown_venue_policy

    @property
    def venues(self) -> List[Venue]:
        return list(self._adapters)

    def adapter_for(self, venue: Venue) -> Optional[VenueAdapter]:
        return self._adapters.get(venue)

    def candidate_venues(self, preferred_venue: Optional[str] = None) -> List[Venue]:
        if preferred_venue:
            family = [v for v in Venue.from_dex_id(preferred_venue) if v in self._adapters]
            if family:
                return family
            if self.unknown_venue_policy == UNKNOWN_VENUE_FAIL:
                logger.debug("Unrecognised venue hint %r, hop not viable.", preferred_venue)
                return []
        venues = list(self.default_venues)
        if self.aggregator is not None and self.aggregator not in venues:
            venues.append(self.aggregator)
        return venues

    async def _collect(self, venues: Sequence[Venue], token_in: str, token_out: str, amount_in: int) -> List[Quote]:
        results = await asyncio.gather(
            *(self._adapters[v].quote(token_in, token_out, amount_in) for v in venues)
        )
        return [q for q in results if q is not None and q.amount_out > 0]

    async def get_best_hop_quote(
        self,
        token_in: str,
        token_out: str,
        amount_in: int,
        preferred_venue: Optional[str] = None,
    ) -> Optional[Quote]:
        venues = self.candidate_venues(preferred_venue)
        if not venues:
            return None
        quotes = await self._collect(venues, token_in, token_out, amount_in)
        best: Optional[Quote] = None
        for quote in quotes:
            # Strict > keeps the earliest venue on ties
            if best is None or quote.amount_out > best.amount_out:
                best = quote
        return best

    async def get_consensus_quote(
        self,
        token_in: str,
        token_out: str,
        amount_in: int,
        label: str = '',
    ) -> Optional[Quote]:
        """Queries every registered venue and returns the best quote only if enough of them agree."""
        quotes = await self._collect(self.venues, token_in, token_out, amount_in)
        return check_consensus(quotes, label=label or f"{token_in}->{token_out}")

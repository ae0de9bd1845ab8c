import asyncio

import pytest

from analysis.hop_quoter import UNKNOWN_VENUE_FAIL, BestHopQuoter
from analysis.models import ExecutionStep, Quote, Venue
from services.venues import VenueAdapter

WETH = '0x4200000000000000000000000000000000000006'
USDC = '0x833589fcd6edb6e08f4c7c32d4f71b54bda02913'


class FakeAdapter(VenueAdapter):
    def __init__(self, venue, amount_out, timeout=1.0):
        super().__init__(timeout=timeout)
        self.venue = venue
        self.amount_out = amount_out
        self.calls = []

    async def _fetch_quote(self, token_in, token_out, amount_in):
        self.calls.append((token_in, token_out, amount_in))
        if isinstance(self.amount_out, Exception):
            raise self.amount_out
        if self.amount_out is None:
            return None
        return Quote(venue=self.venue, token_in=token_in, token_out=token_out, amount_in=amount_in, amount_out=self.amount_out)

    async def _build_step(self, quote, amount_out_min):
        return ExecutionStep(
            dex_type=self.venue.dex_type,
            target='0x4752ba5dbc23f44d87826276bf6fd6b1c372ad24',
            token_in=quote.token_in,
            token_out=quote.token_out,
            amount_out_min=amount_out_min,
        )


@pytest.mark.asyncio
async def test_best_of_two_quotes_wins():
    adapters = [FakeAdapter(Venue.UNISWAP_V2, 500), FakeAdapter(Venue.AERODROME, 700)]
    quoter = BestHopQuoter(adapters, default_venues=[Venue.UNISWAP_V2, Venue.AERODROME])

    quote = await quoter.get_best_hop_quote(WETH, USDC, 10 ** 18)

    assert quote.venue == Venue.AERODROME
    assert quote.amount_out == 700


@pytest.mark.asyncio
async def test_no_usable_quote_returns_none():
    adapters = [FakeAdapter(Venue.UNISWAP_V2, None), FakeAdapter(Venue.AERODROME, 0)]
    quoter = BestHopQuoter(adapters, default_venues=[Venue.UNISWAP_V2, Venue.AERODROME])
    assert await quoter.get_best_hop_quote(WETH, USDC, 10 ** 18) is None


@pytest.mark.asyncio
async def test_failing_adapter_is_treated_as_no_quote():
    adapters = [
        FakeAdapter(Venue.UNISWAP_V2, ValueError('bad payload')),
        FakeAdapter(Venue.AERODROME, 650),
    ]
    quoter = BestHopQuoter(adapters, default_venues=[Venue.UNISWAP_V2, Venue.AERODROME])
    quote = await quoter.get_best_hop_quote(WETH, USDC, 10 ** 18)
    assert quote.amount_out == 650


@pytest.mark.asyncio
async def test_ties_keep_the_first_venue():
    adapters = [FakeAdapter(Venue.UNISWAP_V3, 700), FakeAdapter(Venue.AERODROME, 700)]
    quoter = BestHopQuoter(adapters, default_venues=[Venue.UNISWAP_V3, Venue.AERODROME])
    quote = await quoter.get_best_hop_quote(WETH, USDC, 10 ** 18)
    assert quote.venue == Venue.UNISWAP_V3


@pytest.mark.asyncio
async def test_known_hint_narrows_the_query():
    v3 = FakeAdapter(Venue.UNISWAP_V3, 600)
    aero = FakeAdapter(Venue.AERODROME, 900)
    odos = FakeAdapter(Venue.ODOS, 1000)
    quoter = BestHopQuoter([v3, aero, odos], default_venues=[Venue.UNISWAP_V3])

    quote = await quoter.get_best_hop_quote(WETH, USDC, 10 ** 18, preferred_venue='aerodrome')

    assert quote.venue == Venue.AERODROME
    assert v3.calls == [] and odos.calls == []


@pytest.mark.asyncio
async def test_unknown_hint_broadcasts_to_defaults_and_aggregator():
    v3 = FakeAdapter(Venue.UNISWAP_V3, 600)
    odos = FakeAdapter(Venue.ODOS, 610)
    quoter = BestHopQuoter([v3, odos], default_venues=[Venue.UNISWAP_V3])

    assert quoter.candidate_venues('sushiswap') == [Venue.UNISWAP_V3, Venue.ODOS]
    quote = await quoter.get_best_hop_quote(WETH, USDC, 10 ** 18, preferred_venue='sushiswap')
    assert quote.venue == Venue.ODOS


@pytest.mark.asyncio
async def test_unknown_hint_fails_hop_under_fail_policy():
    v3 = FakeAdapter(Venue.UNISWAP_V3, 600)
    quoter = BestHopQuoter([v3], default_venues=[Venue.UNISWAP_V3], unknown_venue_policy=UNKNOWN_VENUE_FAIL)

    assert await quoter.get_best_hop_quote(WETH, USDC, 10 ** 18, preferred_venue='sushiswap') is None
    assert v3.calls == []


def test_rejects_unknown_policy():
    with pytest.raises(ValueError):
        BestHopQuoter([], unknown_venue_policy='guess')


@pytest.mark.asyncio
async def test_consensus_quote_uses_every_venue():
    adapters = [
        FakeAdapter(Venue.UNISWAP_V3, 1000),
        FakeAdapter(Venue.AERODROME, 995),
        FakeAdapter(Venue.ODOS, 400),
    ]
    quoter = BestHopQuoter(adapters, default_venues=[Venue.UNISWAP_V3])

    quote = await quoter.get_consensus_quote(WETH, USDC, 10 ** 18)

    assert quote.amount_out == 1000
    assert all(a.calls for a in adapters)


@pytest.mark.asyncio
async def test_slow_adapter_times_out():
    class SlowAdapter(FakeAdapter):
        async def _fetch_quote(self, token_in, token_out, amount_in):
            await asyncio.sleep(1)
            return await super()._fetch_quote(token_in, token_out, amount_in)

    adapters = [SlowAdapter(Venue.UNISWAP_V2, 900, timeout=0.01), FakeAdapter(Venue.AERODROME, 500)]
    quoter = BestHopQuoter(adapters, default_venues=[Venue.UNISWAP_V2, Venue.AERODROME])
    quote = await quoter.get_best_hop_quote(WETH, USDC, 10 ** 18)
    assert quote.venue == Venue.AERODROME

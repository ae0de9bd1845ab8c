#!/usr/bin/env python3
import logging
from typing import List, Optional

from eth_abi.exceptions import EncodingError

from analysis.hop_quoter import BestHopQuoter
from analysis.models import ExecutionStep, Opportunity, Path, TokenDatabase
from analysis.path_generator import describe_path, path_tokens
from analysis.profit_calculator import ProfitGate, calculate_net_profit, min_amount_out
from constants import AAVE_PREMIUM_BPS, DEFAULT_SLIPPAGE_BPS
from services.flash_arb_contract import encode_execute_arb
from services.gas_oracle import GasOracle
from services.simulator import TransactionSimulator

logger = logging.getLogger(__name__)


def log_discard(label: str, reason: str) -> None:
    logger.info("discard path=%s reason=%s", label, reason)


def pair_label_for(path: Path, token_database: TokenDatabase) -> str:
    """``HUB/FIRST`` symbols of the opening hop, the pair the conviction gate looks up."""
    first = path[0]
    symbols = []
    for addr in (first.from_token, first.to_token):
        token = token_database.get(addr)
        symbols.append(token.symbol if token else addr[:8])
    return '/'.join(symbols)


class PathEvaluator:
    """
    Prices a cycle hop by hop and turns it into an Opportunity when it pays.

    Each hop's raw quoted output is the next hop's input; the slippage
    allowance only shapes ``amount_out_min`` and the final profit figure.
    Any missing quote, step, gas price, unprofitable result or reverted
    simulation discards the whole path.
    """

    def __init__(
        self,
        quoter: BestHopQuoter,
        profit_gate: ProfitGate,
        gas_oracle: Optional[GasOracle] = None,
        simulator: Optional[TransactionSimulator] = None,
        contract_address: Optional[str] = None,
        premium_bps: int = AAVE_PREMIUM_BPS,
        slippage_bps: int = DEFAULT_SLIPPAGE_BPS,
    ) -> None:
        if contract_address and simulator is None:
            raise ValueError("a simulator is required when a contract address is configured")
        self.quoter = quoter
        self.profit_gate = profit_gate
        self.gas_oracle = gas_oracle
        self.simulator = simulator
        self.contract_address = contract_address.lower() if contract_address else None
        self.premium_bps = premium_bps
        self.slippage_bps = slippage_bps

    async def evaluate_path(
        self,
        path: Path,
        initial_amount: int,
        token_database: TokenDatabase,
        use_consensus: bool = False,
        decimals: int = 18,
    ) -> Optional[Opportunity]:
        label = describe_path(path, token_database)
        if not path:
            log_discard(label, 'empty_path')
            return None
        pair_label = pair_label_for(path, token_database)

        amount = initial_amount
        steps: List[ExecutionStep] = []
        for index, hop in enumerate(path):
            if use_consensus:
                quote = await self.quoter.get_consensus_quote(hop.from_token, hop.to_token, amount, label=label)
            else:
                quote = await self.quoter.get_best_hop_quote(hop.from_token, hop.to_token, amount, hop.venue_hint)
            if quote is None:
                log_discard(label, f"no_quote hop={index}")
                return None

            adapter = self.quoter.adapter_for(quote.venue)
            step = None
            if adapter is not None:
                step = await adapter.build_swap_step(quote, min_amount_out(quote.amount_out, self.slippage_bps))
            if step is None:
                log_discard(label, f"no_swap_step hop={index} venue={quote.venue.value}")
                return None

            steps.append(step)
            amount = quote.amount_out

        hub = path[0].from_token
        gas_cost = 0
        if self.gas_oracle is not None:
            estimate = await self.gas_oracle.estimate_cost(hub, len(path))
            if estimate is None:
                log_discard(label, 'gas_unpriced')
                return None
            gas_cost = estimate

        breakdown = calculate_net_profit(
            amount,
            initial_amount,
            gas_cost,
            premium_bps=self.premium_bps,
            slippage_bps=self.slippage_bps,
        )
        profitable, high_conviction = await self.profit_gate.evaluate(breakdown.net_profit, pair_label, decimals)
        if not profitable:
            log_discard(label, f"unprofitable net={breakdown.net_profit}")
            return None

        if self.contract_address:
            try:
                call_data = encode_execute_arb(hub, initial_amount, steps)
            except (EncodingError, ValueError, TypeError) as exc:
                log_discard(label, f"encode_failed error={exc}")
                return None
            if not await self.simulator.simulate(self.contract_address, call_data):
                log_discard(label, 'simulation_failed')
                return None

        logger.info(
            "opportunity path=%s net=%d profit_pct=%.2f high_conviction=%s",
            label, breakdown.net_profit, breakdown.profit_percent, high_conviction,
        )
        return Opportunity(
            hub=hub,
            net_profit=breakdown.net_profit,
            profit_percent=breakdown.profit_percent,
            initial_amount=initial_amount,
            final_amount=amount,
            tokens=tuple(path_tokens(path)),
            steps=tuple(steps),
            description=label,
            premium=breakdown.premium,
            repay_amount=breakdown.repay_amount,
            gas_cost=gas_cost,
            pair_label=pair_label,
            high_conviction=high_conviction,
        )

"""Flash-loan execution: submits one assembled opportunity to the receiver contract."""
from __future__ import annotations

import asyncio
import logging
import threading
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Optional

from web3 import Web3
from web3.exceptions import Web3Exception

from analysis.models import Opportunity
from analysis.profit_calculator import format_units
from constants import CHAIN_CONFIG, GAS_LIMIT_BUFFER_PCT
from services.flash_arb_contract import encode_execute_arb


@dataclass(slots=True)
class TradeResult:
    opportunity_key: str
    executed: bool
    tx_hashes: list[str] = field(default_factory=list)
    reason: Optional[str] = None


def opportunity_key(opportunity: Opportunity) -> str:
    return f"{opportunity.hub}-{opportunity.description}-{opportunity.initial_amount}"


class NonceManager:
    """Hands out sequential nonces for one wallet; ``reset`` re-reads the chain after a failure."""

    def __init__(self, web3: Web3, address: str) -> None:
        self._web3 = web3
        self._address = address
        self._nonce: Optional[int] = None
        self._lock = threading.Lock()

    def get_next(self) -> int:
        with self._lock:
            if self._nonce is None:
                self._nonce = self._web3.eth.get_transaction_count(self._address, 'pending')
            nonce = self._nonce
            self._nonce += 1
            return nonce

    def reset(self) -> None:
        with self._lock:
            self._nonce = self._web3.eth.get_transaction_count(self._address, 'pending')


class TradeExecutor:
    """Signs and sends ``executeArb`` transactions, one at a time, under a static gas ceiling."""

    def __init__(
        self,
        rpc_url: str,
        private_key: str,
        contract_address: str,
        max_gas_price_gwei: float,
        receipt_timeout: float = 120.0,
        web3: Optional[Web3] = None,
    ) -> None:
        self.web3 = web3 or Web3(Web3.HTTPProvider(rpc_url))
        self.account = self.web3.eth.account.from_key(private_key)
        self.contract_address = Web3.to_checksum_address(contract_address)
        self.max_gas_price_wei = int(Web3.to_wei(Decimal(str(max_gas_price_gwei)), 'gwei'))
        self.receipt_timeout = receipt_timeout
        self.nonces = NonceManager(self.web3, self.account.address)
        self.logger = logging.getLogger(__name__)

    async def execute(self, opportunity: Opportunity) -> TradeResult:
        return await asyncio.to_thread(self._execute_sync, opportunity)

    def _execute_sync(self, opportunity: Opportunity) -> TradeResult:
        opp_key = opportunity_key(opportunity)
        try:
            base_fee = self.web3.eth.get_block('latest').get('baseFeePerGas', 0)
            priority_fee = self.web3.eth.max_priority_fee
            current = base_fee + priority_fee
            if current > self.max_gas_price_wei:
                self.logger.warning(
                    "[AutoTrade] Gas price %s gwei exceeds max %s gwei, skipping %s.",
                    format_units(current, 9),
                    format_units(self.max_gas_price_wei, 9),
                    opportunity.description,
                )
                return TradeResult(opportunity_key=opp_key, executed=False, reason="gas_price_above_ceiling")

            call_data = encode_execute_arb(opportunity.hub, opportunity.initial_amount, opportunity.steps)
            tx = {
                'from': self.account.address,
                'to': self.contract_address,
                'data': call_data,
                'value': 0,
                'chainId': CHAIN_CONFIG['chainId'],
                'type': 2,
                'maxPriorityFeePerGas': priority_fee,
                'maxFeePerGas': min(self.max_gas_price_wei, base_fee * 2 + priority_fee),
            }
            gas_estimate = self.web3.eth.estimate_gas(tx)
            tx['gas'] = gas_estimate * (100 + GAS_LIMIT_BUFFER_PCT) // 100
            tx['nonce'] = self.nonces.get_next()

            self.logger.info(
                "[AutoTrade] %s | borrow=%s net=%s nonce=%d gas=%d",
                opportunity.description,
                opportunity.initial_amount,
                opportunity.net_profit,
                tx['nonce'],
                tx['gas'],
            )
            signed = self.account.sign_transaction(tx)
            tx_hash = self.web3.eth.send_raw_transaction(signed.raw_transaction)
            tx_hex = Web3.to_hex(tx_hash)
            self.logger.info("[AutoTrade] Transaction sent: %s", tx_hex)

            receipt = self.web3.eth.wait_for_transaction_receipt(tx_hash, timeout=self.receipt_timeout)
            if receipt.get('status') != 1:
                self.logger.error("[AutoTrade] Transaction %s reverted.", tx_hex)
                return TradeResult(opportunity_key=opp_key, executed=False, tx_hashes=[tx_hex], reason="reverted")
            self.logger.info("[AutoTrade] Transaction %s confirmed in block %s.", tx_hex, receipt.get('blockNumber'))
            return TradeResult(opportunity_key=opp_key, executed=True, tx_hashes=[tx_hex])
        except Web3Exception as exc:
            self.logger.error("Web3 error while executing trade: %s", exc)
            self.nonces.reset()
            return TradeResult(opportunity_key=opp_key, executed=False, reason=str(exc))
        except (ValueError, TimeoutError, OSError) as exc:
            self.logger.error("Error while executing trade: %s", exc)
            self.nonces.reset()
            return TradeResult(opportunity_key=opp_key, executed=False, reason=str(exc))

    async def close(self) -> None:
        return None


class DryRunExecutor:
    """Execution stand-in that only reports what would have been sent."""

    def __init__(self) -> None:
        self.logger = logging.getLogger(__name__)
        self.submitted: list[Opportunity] = []

    async def execute(self, opportunity: Opportunity) -> TradeResult:
        self.submitted.append(opportunity)
        self.logger.info(
            "[DryRun] Would execute %s | borrow=%d net=%d (%.2f%%) steps=%d premium=%d",
            opportunity.description,
            opportunity.initial_amount,
            opportunity.net_profit,
            opportunity.profit_percent,
            len(opportunity.steps),
            opportunity.premium,
        )
        return TradeResult(opportunity_key=opportunity_key(opportunity), executed=False, reason="dry_run")

    async def close(self) -> None:
        return None

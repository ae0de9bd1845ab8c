from unittest.mock import MagicMock

import pytest
from web3.exceptions import Web3Exception

from analysis.models import DEX_UNISWAP_V3, ExecutionStep, Opportunity
from services.trade_executor import DryRunExecutor, NonceManager, TradeExecutor

WETH = '0x4200000000000000000000000000000000000006'
USDC = '0x833589fcd6edb6e08f4c7c32d4f71b54bda02913'
ROUTER = '0x2626664c2603336e57b271c5c0b26f421741e481'
CONTRACT = '0x1111111111111111111111111111111111111111'
WALLET = '0x2222222222222222222222222222222222222222'


def _opportunity():
    steps = (
        ExecutionStep(dex_type=DEX_UNISWAP_V3, target=ROUTER, token_in=WETH, token_out=USDC, amount_out_min=1, fee=500),
        ExecutionStep(dex_type=DEX_UNISWAP_V3, target=ROUTER, token_in=USDC, token_out=WETH, amount_out_min=1, fee=500),
    )
    return Opportunity(
        hub=WETH,
        net_profit=5 * 10 ** 15,
        profit_percent=0.5,
        initial_amount=10 ** 18,
        final_amount=1_010 * 10 ** 15,
        tokens=(WETH, USDC, WETH),
        steps=steps,
        description='WETH -> USDC -> WETH',
        premium=9 * 10 ** 14,
        repay_amount=10 ** 18 + 9 * 10 ** 14,
        gas_cost=10 ** 12,
        pair_label='WETH/USDC',
    )


def _web3(base_fee=100_000_000, priority_fee=1_000_000, status=1):
    web3 = MagicMock()
    web3.eth.account.from_key.return_value.address = WALLET
    web3.eth.get_block.return_value = {'baseFeePerGas': base_fee}
    web3.eth.max_priority_fee = priority_fee
    web3.eth.estimate_gas.return_value = 400_000
    web3.eth.get_transaction_count.return_value = 7
    web3.eth.send_raw_transaction.return_value = b'\x12' * 32
    web3.eth.wait_for_transaction_receipt.return_value = {'status': status, 'blockNumber': 123}
    return web3


def _executor(web3, max_gas_price_gwei=0.5):
    return TradeExecutor(
        rpc_url='http://localhost:8545',
        private_key='0x' + '11' * 32,
        contract_address=CONTRACT,
        max_gas_price_gwei=max_gas_price_gwei,
        web3=web3,
    )


@pytest.mark.asyncio
async def test_execute_signs_and_confirms():
    web3 = _web3()
    executor = _executor(web3)

    result = await executor.execute(_opportunity())

    assert result.executed is True
    assert result.tx_hashes == ['0x' + '12' * 32]
    tx = web3.eth.account.from_key.return_value.sign_transaction.call_args.args[0]
    assert tx['nonce'] == 7
    assert tx['gas'] == 400_000 * 130 // 100
    assert tx['type'] == 2
    assert tx['maxFeePerGas'] <= 500_000_000
    assert tx['to'].lower() == CONTRACT


@pytest.mark.asyncio
async def test_gas_ceiling_skips_execution():
    web3 = _web3(base_fee=2_000_000_000)
    result = await _executor(web3).execute(_opportunity())

    assert result.executed is False
    assert result.reason == 'gas_price_above_ceiling'
    web3.eth.send_raw_transaction.assert_not_called()


@pytest.mark.asyncio
async def test_reverted_receipt_is_not_executed():
    result = await _executor(_web3(status=0)).execute(_opportunity())
    assert result.executed is False
    assert result.reason == 'reverted'


@pytest.mark.asyncio
async def test_send_failure_resets_nonce():
    web3 = _web3()
    web3.eth.send_raw_transaction.side_effect = Web3Exception('nonce too low')
    executor = _executor(web3)

    result = await executor.execute(_opportunity())

    assert result.executed is False
    assert 'nonce too low' in result.reason
    assert web3.eth.get_transaction_count.call_count == 2


def test_nonce_manager_hands_out_sequential_nonces():
    web3 = MagicMock()
    web3.eth.get_transaction_count.return_value = 3
    nonces = NonceManager(web3, WALLET)

    assert [nonces.get_next() for _ in range(3)] == [3, 4, 5]
    nonces.reset()
    assert nonces.get_next() == 3


@pytest.mark.asyncio
async def test_dry_run_never_submits():
    executor = DryRunExecutor()
    opportunity = _opportunity()

    result = await executor.execute(opportunity)

    assert result.executed is False
    assert result.reason == 'dry_run'
    assert executor.submitted == [opportunity]

"""Unit tests for batch executors and the Solana RPC wrapper."""
import pytest
from datetime import datetime
from unittest.mock import AsyncMock, MagicMock

from solders.keypair import Keypair
from solders.pubkey import Pubkey

from airdrop.config import get_settings
from airdrop.exceptions import ExecutionError
from airdrop.services.execution import MockBatchExecutor, SolanaBatchExecutor
from airdrop.services.price_gate import StaticFeeOracle
from airdrop.services.solana_client import MAX_TRANSACTION_SIZE, SolanaClient, transaction_size


def _transfers(count: int):
    return [{"address": str(Pubkey.new_unique()), "amount": 1_000 * (i + 1)} for i in range(count)]


class TestMockBatchExecutor:
    """Tests for the network-free executor"""

    @pytest.mark.asyncio
    async def test_signatures_are_reproducible(self):
        first = await MockBatchExecutor().execute([{"address": "A", "amount": 1}])
        second = await MockBatchExecutor().execute([{"address": "B", "amount": 2}])
        assert first.tx_signature == second.tx_signature

    @pytest.mark.asyncio
    async def test_receipts_are_distinct_within_a_run(self):
        executor = MockBatchExecutor()
        first = await executor.execute([{"address": "A", "amount": 1}])
        second = await executor.execute([{"address": "B", "amount": 2}])

        assert first.tx_signature != second.tx_signature
        assert second.confirmed_slot == first.confirmed_slot + 1
        assert len(executor.executed) == 2

    @pytest.mark.asyncio
    async def test_failure_injection(self):
        executor = MockBatchExecutor(fail_addresses=["bad"])
        with pytest.raises(ExecutionError) as exc_info:
            await executor.execute([{"address": "good", "amount": 1}, {"address": "bad", "amount": 1}])
        assert exc_info.value.details == {"addresses": ["bad"]}
        assert executor.executed == []

    @pytest.mark.asyncio
    async def test_lookup(self):
        executor = MockBatchExecutor()
        receipt = await executor.execute([{"address": "A", "amount": 1}])
        assert await executor.lookup(receipt.tx_signature) == receipt
        assert await executor.lookup("unknown") is None


class TestSolanaBatchExecutor:
    """Tests for the SPL transfer executor with a mocked RPC client"""

    @pytest.fixture
    def rpc(self):
        client = MagicMock(spec=SolanaClient)
        client.get_token_balance = AsyncMock(return_value=10 ** 18)
        client.send_transaction = AsyncMock(return_value=("5igna7ure", 1_000))
        client.confirm_transaction = AsyncMock(return_value=None)
        client.get_confirmed_transaction = AsyncMock(return_value={
            "signature": "5igna7ure",
            "slot": 321,
            "fee": 5000,
            "block_time": datetime(2025, 1, 8, 1, 0),
        })
        return client

    @pytest.fixture
    def executor(self, rpc):
        return SolanaBatchExecutor(
            client=rpc,
            payer=Keypair(),
            mint=Pubkey.new_unique(),
            decimals=9,
            fee_oracle=StaticFeeOracle(80_000),
            max_priority_fee=50_000,
            compute_units_per_recipient=40_000,
        )

    def test_instructions_per_recipient(self, executor):
        """Compute budget pair, then ATA creation and transfer per recipient."""
        instructions = executor.build_instructions(_transfers(3), fee_price=1000)
        assert len(instructions) == 2 + 2 * 3

    def test_configured_batch_size_fits_in_one_transaction(self, executor):
        batch_size = get_settings().batch_size
        instructions = executor.build_instructions(_transfers(batch_size), fee_price=50_000)

        assert transaction_size(instructions, executor.payer) <= MAX_TRANSACTION_SIZE
        assert executor.check_batch_size(batch_size) <= MAX_TRANSACTION_SIZE

    def test_check_batch_size_rejects_oversized_batches(self, executor):
        with pytest.raises(ValueError, match="lower BATCH_SIZE"):
            executor.check_batch_size(20)

    @pytest.mark.asyncio
    async def test_execute_returns_confirmed_receipt(self, executor, rpc):
        receipt = await executor.execute(_transfers(2))

        assert receipt.tx_signature == "5igna7ure"
        assert receipt.fee_used == 5000
        assert receipt.confirmed_slot == 321
        assert receipt.confirmed_at == datetime(2025, 1, 8, 1, 0)
        # Oracle price is capped at the configured maximum
        assert receipt.fee_price == 50_000
        rpc.send_transaction.assert_awaited_once()
        rpc.confirm_transaction.assert_awaited_once_with("5igna7ure", 1_000)

    @pytest.mark.asyncio
    async def test_insufficient_balance_never_sends(self, executor, rpc):
        rpc.get_token_balance.return_value = 10
        with pytest.raises(ExecutionError, match="Insufficient token balance"):
            await executor.execute(_transfers(1))
        rpc.send_transaction.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_oversized_batch_never_sends(self, executor, rpc):
        with pytest.raises(ExecutionError, match="Transaction too large") as exc_info:
            await executor.execute(_transfers(20))
        assert exc_info.value.details["size"] > MAX_TRANSACTION_SIZE
        rpc.send_transaction.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_rpc_errors_before_broadcast_have_no_signature(self, executor, rpc):
        rpc.send_transaction.side_effect = RuntimeError("blockhash expired")
        with pytest.raises(ExecutionError, match="blockhash expired") as exc_info:
            await executor.execute(_transfers(1))
        assert "tx_signature" not in exc_info.value.details

    @pytest.mark.asyncio
    async def test_missing_transaction_after_broadcast_keeps_signature(self, executor, rpc):
        rpc.get_confirmed_transaction.return_value = None
        with pytest.raises(ExecutionError, match="not found after confirmation") as exc_info:
            await executor.execute(_transfers(1))
        assert exc_info.value.details == {"tx_signature": "5igna7ure"}

    @pytest.mark.asyncio
    async def test_confirmation_timeout_keeps_signature(self, executor, rpc):
        rpc.confirm_transaction.side_effect = RuntimeError("Transaction 5igna7ure was not confirmed")
        with pytest.raises(ExecutionError, match="was not confirmed") as exc_info:
            await executor.execute(_transfers(1))
        assert exc_info.value.details == {"tx_signature": "5igna7ure"}
        rpc.get_confirmed_transaction.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_lookup_unknown_signature(self, executor, rpc):
        rpc.get_confirmed_transaction.return_value = None
        assert await executor.lookup("missing") is None


class TestSolanaClient:
    """Tests for the Solana RPC wrapper"""

    def test_client_requires_connection(self):
        client = SolanaClient(rpc_url="https://api.devnet.solana.com")
        with pytest.raises(RuntimeError, match="not connected"):
            _ = client.client

    def test_commitment_from_settings(self):
        assert SolanaClient().commitment == get_settings().confirm_commitment
        assert SolanaClient(commitment="finalized").commitment == "finalized"

    @pytest.mark.asyncio
    async def test_recent_priority_fees(self):
        client = SolanaClient(rpc_url="https://api.devnet.solana.com")
        response = MagicMock()
        response.value = [MagicMock(prioritization_fee=10), MagicMock(prioritization_fee=30)]
        client._client = MagicMock()
        client._client.get_recent_prioritization_fees = AsyncMock(return_value=response)

        assert await client.get_recent_priority_fees() == [10, 30]

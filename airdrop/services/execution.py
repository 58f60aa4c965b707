"""
Batch executors.

An executor pays every (address, amount) of one batch in a single
transaction and returns the confirmed receipt, or raises ExecutionError.
"""
import asyncio
import hashlib
from dataclasses import dataclass
from datetime import datetime
from typing import Dict, List, Optional, Protocol, Sequence

import structlog
from solders.compute_budget import set_compute_unit_limit, set_compute_unit_price
from solders.keypair import Keypair
from solders.pubkey import Pubkey
from spl.token.constants import TOKEN_PROGRAM_ID
from spl.token.instructions import (
    TransferCheckedParams,
    create_idempotent_associated_token_account,
    get_associated_token_address,
    transfer_checked,
)

from airdrop.config import get_settings
from airdrop.exceptions import ExecutionError
from airdrop.services.price_gate import FeeOracle
from airdrop.services.solana_client import MAX_TRANSACTION_SIZE, SolanaClient, transaction_size

logger = structlog.get_logger()
settings = get_settings()


@dataclass
class ExecutionReceipt:
    """Confirmed batch transaction"""
    tx_signature: str
    fee_used: int  # lamports
    fee_price: int  # micro-lamports per compute unit
    confirmed_slot: int
    confirmed_at: datetime


class BatchExecutor(Protocol):
    async def execute(self, transfers: Sequence[Dict[str, int]]) -> ExecutionReceipt:
        """
        Pay a batch; raise ExecutionError if it was not confirmed.

        When the transaction was already broadcast, the error details carry
        its signature under "tx_signature".
        """
        ...

    async def lookup(self, signature: str) -> Optional[ExecutionReceipt]:
        """Receipt of a previously broadcast transaction, None if not confirmed"""
        ...


class MockBatchExecutor:
    """
    Executor that never touches the network.

    Signatures are derived from a counter so runs are reproducible. Addresses
    listed in fail_addresses make any batch containing them fail.
    """

    def __init__(self, delay_seconds: float = 0.0, fail_addresses: Optional[Sequence[str]] = None):
        self.delay_seconds = delay_seconds
        self.fail_addresses = set(fail_addresses or ())
        self.executed: List[List[Dict[str, int]]] = []
        self._receipts: Dict[str, ExecutionReceipt] = {}
        self._counter = 0

    async def execute(self, transfers: Sequence[Dict[str, int]]) -> ExecutionReceipt:
        logger.info("[MOCK] Executing batch transfer", recipients=len(transfers))
        if self.delay_seconds:
            await asyncio.sleep(self.delay_seconds)

        failing = [t["address"] for t in transfers if t["address"] in self.fail_addresses]
        if failing:
            raise ExecutionError("Simulated transfer failure", {"addresses": failing})

        self._counter += 1
        digest = hashlib.sha256(f"mock-{self._counter}".encode()).hexdigest()
        receipt = ExecutionReceipt(
            tx_signature=f"mock_{digest[:60]}",
            fee_used=5000 + 1000 * len(transfers),
            fee_price=1000,
            confirmed_slot=250_000_000 + self._counter,
            confirmed_at=datetime.utcnow(),
        )
        self.executed.append(list(transfers))
        self._receipts[receipt.tx_signature] = receipt
        logger.info("[MOCK] Transaction confirmed", signature=receipt.tx_signature)
        return receipt

    async def lookup(self, signature: str) -> Optional[ExecutionReceipt]:
        return self._receipts.get(signature)


class SolanaBatchExecutor:
    """
    Pays a batch with SPL transfer_checked instructions in one versioned transaction.

    Each recipient gets an idempotent associated-token-account creation ahead
    of the transfer, so first-time recipients do not fail the whole batch.
    """

    def __init__(
        self,
        client: SolanaClient,
        payer: Keypair,
        mint: Pubkey,
        decimals: int,
        fee_oracle: Optional[FeeOracle] = None,
        max_priority_fee: Optional[int] = None,
        compute_units_per_recipient: Optional[int] = None,
    ):
        self.client = client
        self.payer = payer
        self.mint = mint
        self.decimals = decimals
        self.fee_oracle = fee_oracle
        self.max_priority_fee = max_priority_fee if max_priority_fee is not None else settings.max_priority_fee
        self.compute_units_per_recipient = (
            compute_units_per_recipient or settings.compute_unit_limit_per_recipient
        )

    @classmethod
    def from_settings(cls, client: SolanaClient, fee_oracle: Optional[FeeOracle] = None) -> "SolanaBatchExecutor":
        if not settings.payer_private_key:
            raise ValueError("Payer private key not configured")
        return cls(
            client=client,
            payer=Keypair.from_base58_string(settings.payer_private_key),
            mint=Pubkey.from_string(settings.reward_mint),
            decimals=settings.reward_decimals,
            fee_oracle=fee_oracle,
        )

    async def _fee_price(self) -> int:
        if self.fee_oracle is None:
            return 0
        return min(await self.fee_oracle.current_fee(), self.max_priority_fee)

    def build_instructions(self, transfers: Sequence[Dict[str, int]], fee_price: int) -> list:
        owner = self.payer.pubkey()
        source = get_associated_token_address(owner, self.mint)
        instructions = [
            set_compute_unit_limit(self.compute_units_per_recipient * len(transfers)),
            set_compute_unit_price(fee_price),
        ]
        for transfer in transfers:
            recipient = Pubkey.from_string(transfer["address"])
            instructions.append(create_idempotent_associated_token_account(owner, recipient, self.mint))
            instructions.append(transfer_checked(TransferCheckedParams(
                program_id=TOKEN_PROGRAM_ID,
                source=source,
                mint=self.mint,
                dest=get_associated_token_address(recipient, self.mint),
                owner=owner,
                amount=int(transfer["amount"]),
                decimals=self.decimals,
            )))
        return instructions

    def check_batch_size(self, batch_size: int) -> int:
        """
        Raise ValueError if a batch of batch_size first-time recipients does
        not fit in one transaction. Returns the serialized size.
        """
        transfers = [{"address": str(Pubkey.new_unique()), "amount": 2 ** 64 - 1} for _ in range(batch_size)]
        size = transaction_size(self.build_instructions(transfers, self.max_priority_fee), self.payer)
        if size > MAX_TRANSACTION_SIZE:
            raise ValueError(
                f"Batch size {batch_size} needs a {size} byte transaction "
                f"(limit {MAX_TRANSACTION_SIZE}); lower BATCH_SIZE"
            )
        return size

    async def execute(self, transfers: Sequence[Dict[str, int]]) -> ExecutionReceipt:
        total = sum(int(t["amount"]) for t in transfers)
        logger.info("Executing batch transfer", recipients=len(transfers), total_amount=str(total))

        try:
            balance = await self.client.get_token_balance(self.payer.pubkey(), self.mint)
            if balance < total:
                raise ExecutionError(
                    f"Insufficient token balance: {balance} < {total}",
                    {"balance": str(balance), "required": str(total)},
                )

            fee_price = await self._fee_price()
            instructions = self.build_instructions(transfers, fee_price)
            size = transaction_size(instructions, self.payer)
            if size > MAX_TRANSACTION_SIZE:
                raise ExecutionError(
                    f"Transaction too large: {size} > {MAX_TRANSACTION_SIZE} bytes",
                    {"size": size, "recipients": len(transfers)},
                )

            signature, last_valid_block_height = await self.client.send_transaction(instructions, self.payer)
        except ExecutionError:
            raise
        except Exception as e:
            raise ExecutionError(str(e)) from e

        # Broadcast happened: every failure from here on carries the signature
        try:
            await self.client.confirm_transaction(signature, last_valid_block_height)
            confirmed = await self.client.get_confirmed_transaction(signature)
        except Exception as e:
            raise ExecutionError(str(e), {"tx_signature": signature}) from e

        if confirmed is None:
            raise ExecutionError(
                f"Transaction {signature} not found after confirmation",
                {"tx_signature": signature},
            )

        logger.info(
            "Transaction confirmed",
            signature=signature,
            slot=confirmed["slot"],
            fee=confirmed["fee"],
        )
        return ExecutionReceipt(
            tx_signature=signature,
            fee_used=confirmed["fee"],
            fee_price=fee_price,
            confirmed_slot=confirmed["slot"],
            confirmed_at=confirmed["block_time"] or datetime.utcnow(),
        )

    async def lookup(self, signature: str) -> Optional[ExecutionReceipt]:
        confirmed = await self.client.get_confirmed_transaction(signature)
        if confirmed is None:
            return None
        return ExecutionReceipt(
            tx_signature=signature,
            fee_used=confirmed["fee"],
            fee_price=0,  # not recoverable from the receipt alone
            confirmed_slot=confirmed["slot"],
            confirmed_at=confirmed["block_time"] or datetime.utcnow(),
        )

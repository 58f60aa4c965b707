"""Solana RPC client wrapper for reward payouts"""
from datetime import datetime
from typing import Optional, List, Dict, Any, Sequence, Tuple

import structlog
from solana.rpc.async_api import AsyncClient
from solana.rpc.commitment import Commitment
from solana.rpc.types import TxOpts
from solders.hash import Hash
from solders.instruction import Instruction
from solders.keypair import Keypair
from solders.message import MessageV0
from solders.pubkey import Pubkey
from solders.signature import Signature
from solders.transaction import VersionedTransaction
from spl.token.instructions import get_associated_token_address

from airdrop.config import get_settings

logger = structlog.get_logger()
settings = get_settings()

# Largest serialized transaction a validator accepts (PACKET_DATA_SIZE)
MAX_TRANSACTION_SIZE = 1232


def compile_transaction(
    instructions: Sequence[Instruction],
    payer: Keypair,
    recent_blockhash: Hash,
) -> VersionedTransaction:
    """Compile and sign a v0 transaction without lookup tables"""
    message = MessageV0.try_compile(
        payer=payer.pubkey(),
        instructions=list(instructions),
        address_lookup_table_accounts=[],
        recent_blockhash=recent_blockhash,
    )
    return VersionedTransaction(message, [payer])


def transaction_size(instructions: Sequence[Instruction], payer: Keypair) -> int:
    """Serialized size in bytes; the blockhash is fixed-width so a default one is used"""
    return len(bytes(compile_transaction(instructions, payer, Hash.default())))


class SolanaClient:
    """Async Solana RPC client with the calls the payout flow needs"""

    def __init__(self, rpc_url: Optional[str] = None, commitment: Optional[str] = None):
        self.rpc_url = rpc_url or settings.solana_rpc_url
        self.commitment = Commitment(commitment or settings.confirm_commitment)
        self._client: Optional[AsyncClient] = None

    async def connect(self) -> None:
        """Establish connection to Solana RPC"""
        if self._client is None:
            self._client = AsyncClient(self.rpc_url, commitment=self.commitment)
            logger.info("Connected to Solana RPC", url=self.rpc_url)

    async def disconnect(self) -> None:
        """Close RPC connection"""
        if self._client:
            await self._client.close()
            self._client = None
            logger.info("Disconnected from Solana RPC")

    @property
    def client(self) -> AsyncClient:
        """Get the async client, raise if not connected"""
        if self._client is None:
            raise RuntimeError("Solana client not connected. Call connect() first.")
        return self._client

    async def get_recent_priority_fees(self) -> List[int]:
        """Recent prioritization fees (micro-lamports per compute unit)"""
        response = await self.client.get_recent_prioritization_fees()
        return [fee.prioritization_fee for fee in response.value]

    async def get_token_balance(self, owner: Pubkey, mint: Pubkey) -> int:
        """Balance of the owner's associated token account for a mint"""
        token_account = get_associated_token_address(owner, mint)
        response = await self.client.get_token_account_balance(token_account, commitment=self.commitment)
        return int(response.value.amount)

    async def send_transaction(self, instructions: Sequence[Instruction], payer: Keypair) -> Tuple[str, int]:
        """
        Compile, sign and broadcast a versioned transaction.

        Returns the signature and the last block height at which the
        transaction can still land.
        """
        blockhash_resp = await self.client.get_latest_blockhash(commitment=self.commitment)
        transaction = compile_transaction(instructions, payer, blockhash_resp.value.blockhash)

        response = await self.client.send_transaction(
            transaction,
            opts=TxOpts(skip_preflight=False, preflight_commitment=self.commitment),
        )
        signature = str(response.value)
        logger.info("Transaction submitted", signature=signature)
        return signature, blockhash_resp.value.last_valid_block_height

    async def confirm_transaction(self, signature: str, last_valid_block_height: int) -> None:
        """Wait for the transaction to reach the configured commitment, raise if it failed"""
        confirmation = await self.client.confirm_transaction(
            Signature.from_string(signature),
            commitment=self.commitment,
            last_valid_block_height=last_valid_block_height,
        )
        status = confirmation.value[0]
        if status is None:
            raise RuntimeError(f"Transaction {signature} was not confirmed")
        if status.err is not None:
            raise RuntimeError(f"Transaction {signature} failed: {status.err}")

    async def get_confirmed_transaction(self, signature: str) -> Optional[Dict[str, Any]]:
        """Slot, fee and block time of a confirmed transaction, None if unknown or failed"""
        response = await self.client.get_transaction(
            Signature.from_string(signature),
            encoding="json",
            commitment=self.commitment,
            max_supported_transaction_version=0,
        )
        if response.value is None:
            return None

        meta = response.value.transaction.meta
        if meta is not None and meta.err is not None:
            return None
        block_time = response.value.block_time
        return {
            "signature": signature,
            "slot": response.value.slot,
            "fee": meta.fee if meta is not None else 0,
            "block_time": datetime.utcfromtimestamp(block_time) if block_time else None,
        }


# Singleton instance
_solana_client: Optional[SolanaClient] = None


async def get_solana_client() -> SolanaClient:
    """Get or create Solana client singleton"""
    global _solana_client
    if _solana_client is None:
        _solana_client = SolanaClient()
        await _solana_client.connect()
    return _solana_client


async def close_solana_client() -> None:
    """Close Solana client singleton"""
    global _solana_client
    if _solana_client is not None:
        await _solana_client.disconnect()
        _solana_client = None

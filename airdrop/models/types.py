"""Column types shared by the airdrop models"""
from typing import Optional

from sqlalchemy import String
from sqlalchemy.types import TypeDecorator


class TokenAmount(TypeDecorator):
    """
    Arbitrary-precision token amount stored as a decimal string.

    Balances and rewards can exceed a signed 64-bit integer once multiplied
    out in smallest units, so they never go through BIGINT or NUMERIC columns.
    """

    impl = String(80)
    cache_ok = True

    def process_bind_param(self, value: Optional[int], dialect) -> Optional[str]:
        if value is None:
            return None
        amount = int(value)
        if amount < 0:
            raise ValueError(f"Token amount cannot be negative: {amount}")
        return str(amount)

    def process_result_value(self, value: Optional[str], dialect) -> Optional[int]:
        if value is None:
            return None
        return int(value)

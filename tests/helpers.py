"""Shared test data"""
from typing import Dict

PREVIOUS_PERIOD = "2025-W01"
CURRENT_PERIOD = "2025-W02"

# Two snapshots from the reference scenario: threshold 400, pool 900 gives A=180, B=720
PREVIOUS_BALANCES: Dict[str, int] = {"A": 1000, "B": 2000, "C": 0}
CURRENT_BALANCES: Dict[str, int] = {"A": 500, "B": 2500, "C": 300}


class SwitchableGate:
    """Fee gate that opens for a fixed number of checks, then closes"""

    def __init__(self, open_checks: int):
        self.open_checks = open_checks
        self.checks = 0

    async def is_acceptable(self) -> bool:
        self.checks += 1
        return self.checks <= self.open_checks

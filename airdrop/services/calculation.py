"""
Reward Calculator Service

Computes proportional holder rewards from two balance snapshots.

1. Every address seen in either snapshot is considered
2. Policy-excluded and restricted addresses are dropped (tallied separately)
3. A holder must hold in both snapshots; the eligible balance is the MIN of
   the two, so buying in just before a snapshot earns nothing extra
4. Holders below the minimum balance are dropped (boundary inclusive)
5. reward = eligible_balance * reward_pool // total_eligible_balance

All arithmetic is on Python ints. The floor division never over-allocates the
pool; the remainder (dust) stays in the distribution wallet.
"""
from typing import List, Dict, Any, Iterable, Mapping, Optional
from dataclasses import dataclass, field
from collections import Counter


NOT_HELD_PREVIOUS = "not_held_previous"
NOT_HELD_CURRENT = "not_held_current"
BELOW_MINIMUM = "below_minimum"


@dataclass
class Eligibility:
    """Eligibility decision for a single holder"""
    eligible: bool
    eligible_balance: int
    reason: Optional[str] = None


@dataclass
class RecipientReward:
    """Reward computed for an eligible holder"""
    address: str
    previous_balance: int
    current_balance: int
    eligible_balance: int
    reward: int
    percentage: float  # Share of total eligible balance, 2 decimals


@dataclass
class CalculationStats:
    """Aggregate counters for a calculation"""
    total_holders: int = 0
    eligible_count: int = 0  # Passed eligibility (including zero-reward holders)
    recipient_count: int = 0  # Non-zero rewards
    policy_excluded: int = 0
    restricted_excluded: int = 0
    ineligible: Dict[str, int] = field(default_factory=dict)
    total_eligible_balance: int = 0
    total_allocated: int = 0
    dust: int = 0

    @property
    def excluded_count(self) -> int:
        return self.policy_excluded + self.restricted_excluded

    @property
    def ineligible_count(self) -> int:
        return sum(self.ineligible.values())


@dataclass
class RewardCalculation:
    """Complete reward calculation result"""
    reward_pool: int
    min_balance: int
    recipients: List[RecipientReward]
    stats: CalculationStats

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for API response"""
        return {
            "reward_pool": str(self.reward_pool),
            "min_balance": str(self.min_balance),
            "stats": {
                "total_holders": self.stats.total_holders,
                "eligible_count": self.stats.eligible_count,
                "recipient_count": self.stats.recipient_count,
                "policy_excluded": self.stats.policy_excluded,
                "restricted_excluded": self.stats.restricted_excluded,
                "ineligible": dict(self.stats.ineligible),
                "total_eligible_balance": str(self.stats.total_eligible_balance),
                "total_allocated": str(self.stats.total_allocated),
                "dust": str(self.stats.dust),
            },
            "recipients": [
                {
                    "address": r.address,
                    "eligible_balance": str(r.eligible_balance),
                    "reward": str(r.reward),
                    "percentage": r.percentage,
                }
                for r in self.recipients
            ],
        }


def check_eligibility(previous_balance: int, current_balance: int, min_balance: int) -> Eligibility:
    """
    Decide whether a holder qualifies for a reward.

    Zero in either snapshot disqualifies regardless of the other balance;
    the two cases keep distinct reasons for diagnostics.
    """
    if previous_balance <= 0:
        return Eligibility(eligible=False, eligible_balance=0, reason=NOT_HELD_PREVIOUS)
    if current_balance <= 0:
        return Eligibility(eligible=False, eligible_balance=0, reason=NOT_HELD_CURRENT)

    eligible_balance = min(previous_balance, current_balance)
    if eligible_balance < min_balance:
        return Eligibility(eligible=False, eligible_balance=eligible_balance, reason=BELOW_MINIMUM)

    return Eligibility(eligible=True, eligible_balance=eligible_balance)


def share_percentage(eligible_balance: int, total_eligible_balance: int) -> float:
    """Share of the eligible weight at basis-point precision"""
    if total_eligible_balance <= 0:
        return 0.0
    return (eligible_balance * 10000 // total_eligible_balance) / 100


def calculate_rewards(
    previous: Mapping[str, int],
    current: Mapping[str, int],
    reward_pool: int,
    min_balance: int = 0,
    excluded: Optional[Iterable[str]] = None,
    restricted: Optional[Iterable[str]] = None,
) -> RewardCalculation:
    """
    Calculate rewards for every eligible holder.

    Args:
        previous: address -> balance at the start of the period
        current: address -> balance at the end of the period
        reward_pool: Amount to distribute, smallest token unit
        min_balance: Minimum eligible balance (inclusive)
        excluded: Policy exclusion list
        restricted: Restriction list

    Returns:
        RewardCalculation with recipients ordered by reward descending,
        ties broken by address
    """
    if reward_pool < 0:
        raise ValueError("Reward pool cannot be negative")
    if min_balance < 0:
        raise ValueError("Minimum balance cannot be negative")

    excluded_set = set(excluded or ())
    restricted_set = set(restricted or ())

    stats = CalculationStats()
    ineligible = Counter()
    eligible: List[tuple] = []

    addresses = set(previous) | set(current)
    stats.total_holders = len(addresses)

    for address in sorted(addresses):
        if address in excluded_set:
            stats.policy_excluded += 1
            continue
        if address in restricted_set:
            stats.restricted_excluded += 1
            continue

        previous_balance = int(previous.get(address, 0))
        current_balance = int(current.get(address, 0))
        decision = check_eligibility(previous_balance, current_balance, min_balance)
        if not decision.eligible:
            ineligible[decision.reason] += 1
            continue

        eligible.append((address, previous_balance, current_balance, decision.eligible_balance))
        stats.total_eligible_balance += decision.eligible_balance

    stats.eligible_count = len(eligible)
    stats.ineligible = dict(ineligible)

    total = stats.total_eligible_balance
    recipients: List[RecipientReward] = []
    if total > 0:
        for address, previous_balance, current_balance, eligible_balance in eligible:
            reward = eligible_balance * reward_pool // total
            if reward <= 0:
                continue
            recipients.append(RecipientReward(
                address=address,
                previous_balance=previous_balance,
                current_balance=current_balance,
                eligible_balance=eligible_balance,
                reward=reward,
                percentage=share_percentage(eligible_balance, total),
            ))

    recipients.sort(key=lambda r: (-r.reward, r.address))

    stats.recipient_count = len(recipients)
    stats.total_allocated = sum(r.reward for r in recipients)
    stats.dust = reward_pool - stats.total_allocated

    return RewardCalculation(
        reward_pool=reward_pool,
        min_balance=min_balance,
        recipients=recipients,
        stats=stats,
    )

"""Holder Airdrop Services"""
from .calculation import calculate_rewards, check_eligibility, RewardCalculation, RecipientReward
from .partition import partition_rewards, verify_partition, BatchPlan
from .price_gate import CachedFeeOracle, MaxFeePriceGate, SolanaFeeOracle, StaticFeeOracle
from .solana_client import SolanaClient


# Lazy imports for the database-backed services (require complete model setup)
def get_distribution_service():
    from .distribution_service import DistributionService
    return DistributionService


def get_orchestrator():
    from .orchestrator import DistributionOrchestrator
    return DistributionOrchestrator


__all__ = [
    "SolanaClient",
    "get_distribution_service",
    "get_orchestrator",
    # Reward calculation
    "calculate_rewards",
    "check_eligibility",
    "RewardCalculation",
    "RecipientReward",
    # Batching
    "partition_rewards",
    "verify_partition",
    "BatchPlan",
    # Fee gate
    "CachedFeeOracle",
    "MaxFeePriceGate",
    "SolanaFeeOracle",
    "StaticFeeOracle",
]

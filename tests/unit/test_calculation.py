"""Unit tests for eligibility and reward calculation."""
import pytest

from airdrop.services.calculation import (
    BELOW_MINIMUM,
    NOT_HELD_CURRENT,
    NOT_HELD_PREVIOUS,
    calculate_rewards,
    check_eligibility,
    share_percentage,
)


class TestCheckEligibility:
    """Tests for the per-holder eligibility decision."""

    def test_new_buyer_is_ineligible(self):
        """Holding nothing at the start disqualifies."""
        decision = check_eligibility(0, 5000, 100)
        assert not decision.eligible
        assert decision.reason == NOT_HELD_PREVIOUS

    def test_seller_is_ineligible(self):
        """Holding nothing at the end disqualifies."""
        decision = check_eligibility(5000, 0, 100)
        assert not decision.eligible
        assert decision.reason == NOT_HELD_CURRENT

    def test_eligible_balance_is_minimum_of_snapshots(self):
        decision = check_eligibility(1000, 250, 0)
        assert decision.eligible
        assert decision.eligible_balance == 250

    def test_threshold_is_inclusive(self):
        assert check_eligibility(400, 900, 400).eligible

    def test_one_unit_below_threshold_is_ineligible(self):
        decision = check_eligibility(399, 900, 400)
        assert not decision.eligible
        assert decision.reason == BELOW_MINIMUM


class TestCalculateRewards:
    """Tests for proportional reward calculation."""

    def test_reference_scenario(self):
        """A=180, B=720, C ineligible, no dust."""
        result = calculate_rewards(
            {"A": 1000, "B": 2000, "C": 0},
            {"A": 500, "B": 2500, "C": 300},
            reward_pool=900,
            min_balance=400,
        )

        rewards = {r.address: r.reward for r in result.recipients}
        assert rewards == {"A": 180, "B": 720}
        assert [r.address for r in result.recipients] == ["B", "A"]
        assert result.stats.total_eligible_balance == 2500
        assert result.stats.total_allocated == 900
        assert result.stats.dust == 0
        assert result.stats.ineligible == {NOT_HELD_PREVIOUS: 1}
        assert result.stats.total_holders == 3

    def test_percentage_is_display_share(self):
        result = calculate_rewards({"A": 1000, "B": 2000}, {"A": 500, "B": 2500}, reward_pool=900)
        percentages = {r.address: r.percentage for r in result.recipients}
        assert percentages == {"A": 20.0, "B": 80.0}

    def test_floor_division_never_over_allocates(self):
        """Three equal holders splitting 100 leave 1 unit of dust."""
        balances = {"A": 10, "B": 10, "C": 10}
        result = calculate_rewards(balances, balances, reward_pool=100)

        assert [r.reward for r in result.recipients] == [33, 33, 33]
        assert result.stats.total_allocated == 99
        assert result.stats.dust == 1

    def test_ties_broken_by_address(self):
        balances = {"C": 10, "A": 10, "B": 10}
        result = calculate_rewards(balances, balances, reward_pool=30)
        assert [r.address for r in result.recipients] == ["A", "B", "C"]

    def test_zero_rewards_are_dropped(self):
        """A holder whose share floors to zero gets no payout row."""
        previous = {"whale": 1_000_000, "minnow": 1}
        result = calculate_rewards(previous, previous, reward_pool=10)

        assert [r.address for r in result.recipients] == ["whale"]
        assert result.stats.eligible_count == 2
        assert result.stats.recipient_count == 1

    def test_no_eligible_holders_is_not_an_error(self):
        result = calculate_rewards({"A": 0}, {"A": 100}, reward_pool=900)
        assert result.recipients == []
        assert result.stats.total_allocated == 0
        assert result.stats.dust == 900

    def test_policy_exclusion_and_restriction_are_tallied_separately(self):
        balances = {"lp": 5000, "bot": 5000, "holder": 5000}
        result = calculate_rewards(
            balances,
            balances,
            reward_pool=1000,
            excluded={"lp", "bot"},
            restricted={"bot"},
        )

        assert [r.address for r in result.recipients] == ["holder"]
        assert result.recipients[0].reward == 1000
        # Policy exclusion wins when an address is on both lists
        assert result.stats.policy_excluded == 2
        assert result.stats.restricted_excluded == 0
        assert result.stats.excluded_count == 2

    def test_large_amounts_stay_exact(self):
        """Products far beyond 64 bits keep integer precision."""
        big = 10 ** 30
        result = calculate_rewards({"A": big, "B": 2 * big}, {"A": big, "B": 2 * big}, reward_pool=3 * 10 ** 27 + 1)

        rewards = {r.address: r.reward for r in result.recipients}
        assert rewards == {"A": 10 ** 27, "B": 2 * 10 ** 27}
        assert result.stats.dust == 1

    def test_conservation(self):
        previous = {f"holder{i}": (i * 7919) % 10007 + 1 for i in range(200)}
        current = {f"holder{i}": (i * 104729) % 10009 for i in range(200)}
        result = calculate_rewards(previous, current, reward_pool=1_000_003, min_balance=50)

        assert sum(r.reward for r in result.recipients) <= 1_000_003
        assert result.stats.total_allocated + result.stats.dust == 1_000_003

    def test_negative_inputs_rejected(self):
        with pytest.raises(ValueError):
            calculate_rewards({}, {}, reward_pool=-1)
        with pytest.raises(ValueError):
            calculate_rewards({}, {}, reward_pool=1, min_balance=-1)

    def test_to_dict_serializes_amounts_as_strings(self):
        result = calculate_rewards({"A": 10}, {"A": 10}, reward_pool=5)
        data = result.to_dict()
        assert data["reward_pool"] == "5"
        assert data["recipients"][0]["reward"] == "5"


def test_share_percentage_handles_empty_total():
    assert share_percentage(10, 0) == 0.0
    assert share_percentage(1, 3) == 33.33

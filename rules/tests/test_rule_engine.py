"""
Unit Tests for the Cashback Rule Engine

Tests cover:
1. Step accrual and the daily cap
2. Zero, inactive and already-capped cases
3. Replay independence from payment granularity
4. Rule serialization
"""

from decimal import Decimal

import pytest

from rules.rule_engine import CashbackRule, RuleEngine


ZERO = Decimal("0")


def make_engine() -> RuleEngine:
    return RuleEngine(CashbackRule(
        step_amount=Decimal("15000"),
        reward_per_step=Decimal("2500"),
        daily_cap=Decimal("5000"),
    ))


class TestComputeEarned:
    """Tests for a single incremental payment."""

    def test_one_full_step(self):
        """15,000 with nothing earned yet today yields one reward."""
        engine = make_engine()

        assert engine.compute_earned(ZERO, ZERO, Decimal("15000")) == Decimal("2500")

    def test_below_one_step(self):
        """Less than a full step earns nothing."""
        engine = make_engine()

        assert engine.compute_earned(ZERO, ZERO, Decimal("14999")) == ZERO

    def test_cap_applies_to_cumulative_entitlement(self):
        """45,000 cumulative is worth 7,500 uncapped, 5,000 capped."""
        engine = make_engine()

        earned = engine.compute_earned(Decimal("15000"), Decimal("2500"), Decimal("30000"))

        assert earned == Decimal("2500")

    def test_nothing_after_cap_reached(self):
        """Once the cap is reached, further cash that day earns nothing."""
        engine = make_engine()

        assert engine.compute_earned(Decimal("45000"), Decimal("5000"), Decimal("100000")) == ZERO

    def test_prior_earned_above_cap_never_goes_negative(self):
        """A day already over the cap (e.g. a lowered cap) yields zero, not a clawback."""
        engine = make_engine()

        assert engine.compute_earned(Decimal("60000"), Decimal("7500"), Decimal("15000")) == ZERO

    def test_zero_cash_earns_nothing(self):
        """A zero cash amount always yields zero."""
        engine = make_engine()

        assert engine.compute_earned(Decimal("14000"), ZERO, ZERO) == ZERO

    def test_inactive_member_earns_nothing(self):
        """Inactive members never earn, whatever they pay."""
        engine = make_engine()

        assert engine.compute_earned(ZERO, ZERO, Decimal("45000"), member_active=False) == ZERO

    def test_prior_shortfall_is_caught_up(self):
        """Only the difference to the cumulative entitlement is earned."""
        engine = make_engine()

        # 29,000 earlier earned one step; +1,000 completes the second
        assert engine.compute_earned(Decimal("29000"), Decimal("2500"), Decimal("1000")) == Decimal("2500")


class TestReplayDay:
    """Tests for replaying a day's payments in order."""

    @pytest.mark.parametrize(
        "payments",
        [
            [45000],
            [15000, 15000, 15000],
            [5000, 10000, 30000],
            [44999, 1],
        ],
    )
    def test_granularity_does_not_change_total(self, payments):
        """Splitting 45,000 any way earns the same 5,000 in total."""
        engine = make_engine()

        assert sum(engine.replay_day(payments), ZERO) == Decimal("5000")

    def test_total_never_exceeds_cap(self):
        """Many payments in one day stay under the cap."""
        engine = make_engine()

        earned = engine.replay_day([15000] * 10)

        assert sum(earned, ZERO) == Decimal("5000")
        assert earned[:3] == [Decimal("2500"), Decimal("2500"), ZERO]

    def test_replay_is_deterministic(self):
        """Replaying the same day twice gives the same per-payment results."""
        engine = make_engine()
        payments = [7000, 9000, 20000, 3000]

        assert engine.replay_day(payments) == engine.replay_day(payments)


class TestCashbackRule:
    """Tests for the rule definition itself."""

    def test_entitlement_floors_steps(self):
        rule = make_engine().rule

        assert rule.entitlement(Decimal("29999")) == Decimal("2500")
        assert rule.entitlement(ZERO) == ZERO

    def test_rejects_non_positive_policy(self):
        with pytest.raises(ValueError):
            CashbackRule(step_amount=ZERO, reward_per_step=Decimal("2500"), daily_cap=Decimal("5000"))

    def test_dict_round_trip(self):
        rule = make_engine().rule

        restored = CashbackRule.from_dict(rule.to_dict())

        assert restored == rule
        assert '"daily_cap": "5000"' in rule.to_json()

    def test_default_engine_uses_settings(self):
        engine = RuleEngine()

        assert engine.rule.step_amount == Decimal("15000")
        assert engine.rule.daily_cap == Decimal("5000")

from dataclasses import dataclass, field
from decimal import Decimal, ROUND_FLOOR
from typing import Iterable, Optional
import json


ZERO = Decimal("0")


@dataclass(frozen=True)
class CashbackRule:
    """Stepped daily cashback.

    Every full ``step_amount`` of cumulative same-day cash yields
    ``reward_per_step``, never more than ``daily_cap`` per member per day.
    """
    step_amount: Decimal
    reward_per_step: Decimal
    daily_cap: Decimal
    name: str = "daily-stepped-cashback"
    metadata: dict = field(default_factory=dict, compare=False)

    def __post_init__(self):
        for attr in ("step_amount", "reward_per_step", "daily_cap"):
            value = Decimal(str(getattr(self, attr)))
            if value <= ZERO:
                raise ValueError(f"{attr} must be positive, got {value}")
            object.__setattr__(self, attr, value)

    def entitlement(self, cumulative_cash: Decimal) -> Decimal:
        """Total cashback a day's cumulative cash is worth, cap applied."""
        if cumulative_cash <= ZERO:
            return ZERO
        steps = (cumulative_cash / self.step_amount).to_integral_value(rounding=ROUND_FLOOR)
        return min(self.daily_cap, steps * self.reward_per_step)

    def to_dict(self) -> dict:
        return {
            "name": self.name,
            "step_amount": str(self.step_amount),
            "reward_per_step": str(self.reward_per_step),
            "daily_cap": str(self.daily_cap),
            "metadata": self.metadata,
        }

    def to_json(self, indent: int = 2) -> str:
        return json.dumps(self.to_dict(), indent=indent)

    @classmethod
    def from_dict(cls, data: dict) -> "CashbackRule":
        return cls(
            step_amount=Decimal(str(data["step_amount"])),
            reward_per_step=Decimal(str(data["reward_per_step"])),
            daily_cap=Decimal(str(data["daily_cap"])),
            name=data.get("name", "daily-stepped-cashback"),
            metadata=data.get("metadata", {}),
        )

    @classmethod
    def from_settings(cls, settings) -> "CashbackRule":
        return cls(
            step_amount=settings.cashback_step_amount,
            reward_per_step=settings.cashback_reward_per_step,
            daily_cap=settings.cashback_daily_cap,
        )


class RuleEngine:
    def __init__(self, rule: Optional[CashbackRule] = None):
        if rule is None:
            from ledger.settings import settings
            rule = CashbackRule.from_settings(settings)
        self.rule = rule

    def compute_earned(
        self,
        prior_cash_today: Decimal,
        prior_earned_today: Decimal,
        incoming_cash: Decimal,
        member_active: bool = True,
    ) -> Decimal:
        """Cashback newly earned by ``incoming_cash`` on top of what the day already holds.

        Depends only on cumulative cash and cumulative earned, so replaying a
        day in any split yields the same total.
        """
        if not member_active or incoming_cash <= ZERO:
            return ZERO
        if prior_earned_today >= self.rule.daily_cap:
            return ZERO
        possible = self.rule.entitlement(prior_cash_today + incoming_cash)
        return max(ZERO, possible - prior_earned_today)

    def replay_day(self, cash_payments: Iterable[Decimal]) -> list[Decimal]:
        """Earned amount for each cash payment of one member's day, in order."""
        cash_total = ZERO
        earned_total = ZERO
        results = []
        for amount in cash_payments:
            amount = Decimal(str(amount))
            earned = self.compute_earned(cash_total, earned_total, amount)
            cash_total += max(amount, ZERO)
            earned_total += earned
            results.append(earned)
        return results

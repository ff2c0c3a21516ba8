"""
Cashback Rules Package

Pure computation of how much cashback a cash payment earns under the
stepped, daily-capped policy. No storage or clock access happens here.
"""

from .rule_engine import (
    CashbackRule,
    RuleEngine,
)

__all__ = [
    "CashbackRule",
    "RuleEngine",
]

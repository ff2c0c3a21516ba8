"""
Loyalty Ledger & Membership Renewal Engine

This module provides:
- Rolling 30-day membership windows with one-level undo
- Delayed, daily-capped cashback earned on cash purchases
- Event-sourced cashback balances (usable vs pending)
- Per-member serialization of every compound action
- Compensating rollback when a store write fails mid-operation
"""

from .errors import (
    LedgerServiceError,
    BackdatedPaymentError,
    MemberNotFoundError,
    MemberArchivedError,
    MembershipInactiveError,
    InvalidAmountError,
    InsufficientCashbackError,
    NoPaymentToUndoError,
    StoreUnavailableError,
)
from .models import (
    EntryType,
    PaymentMode,
    Member,
    MembershipPayment,
    CashbackLedgerEntry,
    Transaction,
)
from .service import LedgerService

__all__ = [
    "LedgerServiceError",
    "BackdatedPaymentError",
    "MemberNotFoundError",
    "MemberArchivedError",
    "MembershipInactiveError",
    "InvalidAmountError",
    "InsufficientCashbackError",
    "NoPaymentToUndoError",
    "StoreUnavailableError",
    "EntryType",
    "PaymentMode",
    "Member",
    "MembershipPayment",
    "CashbackLedgerEntry",
    "Transaction",
    "LedgerService",
]

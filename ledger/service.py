from datetime import datetime, timezone
from decimal import Decimal
from typing import Optional
from uuid import UUID, uuid4

from loguru import logger

from rules import CashbackRule, RuleEngine

from .cashback import CashbackLedger
from .clock import Clock, day_key, get_zone
from .errors import (
    InsufficientCashbackError,
    InvalidAmountError,
    MembershipInactiveError,
    StoreUnavailableError,
)
from .locks import MemberLockRegistry
from .membership import MembershipEngine
from .models import (
    CashbackBalance,
    CashbackLedgerEntry,
    CreateMemberRequest,
    CreateTransactionRequest,
    LedgerHistoryResponse,
    Member,
    MemberDetail,
    MembershipPayment,
    MembershipResponse,
    PayMembershipRequest,
    PaymentMode,
    Transaction,
    TransactionResponse,
    UpdateMemberRequest,
)
from .settings import Settings, get_settings
from .store import InMemoryStorage, LedgerStore


ZERO = Decimal("0")


class LedgerService:
    def __init__(
        self,
        storage: Optional[LedgerStore] = None,
        clock: Optional[Clock] = None,
        rule_engine: Optional[RuleEngine] = None,
        settings: Optional[Settings] = None,
    ):
        self.settings = settings or get_settings()
        self.storage = storage or InMemoryStorage(timeout=self.settings.store_timeout_seconds)
        self.clock = clock or Clock(get_zone(self.settings.timezone))
        self.locks = MemberLockRegistry(self.settings.member_lock_timeout_seconds)
        self.rule_engine = rule_engine or RuleEngine(CashbackRule.from_settings(self.settings))
        self.cashback = CashbackLedger(self.storage, cache_enabled=self.settings.ledger_cache_enabled)
        self.membership = MembershipEngine(
            self.storage, self.clock, self.locks, period_days=self.settings.membership_period_days
        )

    # Members

    def register_member(self, request: CreateMemberRequest) -> Member:
        member = Member(
            id=uuid4(),
            name=request.name,
            whatsapp=request.whatsapp,
            created_at=datetime.now(timezone.utc),
        )
        self.storage.add_member(member)
        logger.info("Registered member", member_id=str(member.id))
        return member

    def update_member(self, member_id: UUID, request: UpdateMemberRequest) -> Member:
        self.membership.get_member(member_id)
        member = self.storage.update_member(member_id, **request.model_dump(exclude_none=True))
        logger.info("Updated member profile", member_id=str(member_id))
        return member

    def archive_member(self, member_id: UUID) -> Member:
        with self.locks.hold(member_id):
            member = self.membership.get_member(member_id)
            if member.is_archived:
                return member
            member = self.storage.update_member(member_id, archived_at=datetime.now(timezone.utc))
        logger.info("Archived member", member_id=str(member_id))
        return member

    def get_member(self, member_id: UUID) -> Member:
        return self.membership.get_member(member_id)

    def list_members(self, include_archived: bool = False) -> list[Member]:
        return self.storage.list_members(include_archived=include_archived)

    def get_member_detail(self, member_id: UUID, at: Optional[datetime] = None) -> MemberDetail:
        member = self.membership.get_member(member_id)
        at = self.clock.localize(at)
        balance = self.cashback.balance(member_id, at)
        return MemberDetail(
            id=member.id,
            name=member.name,
            whatsapp=member.whatsapp,
            membership_end_at=member.membership_end_at,
            is_active=self.membership.is_active(member, at),
            is_archived=member.is_archived,
            usable_cashback=balance.usable,
            pending_cashback=balance.pending,
            can_undo_last_payment=self.membership.can_undo(member),
        )

    # Membership

    def is_active(self, member_id: UUID, at: Optional[datetime] = None) -> bool:
        return self.membership.is_active(self.membership.get_member(member_id), at)

    def pay(self, member_id: UUID, request: Optional[PayMembershipRequest] = None) -> MembershipResponse:
        request = request or PayMembershipRequest()
        amount = request.amount if request.amount is not None else self.settings.membership_default_fee
        member, payment = self.membership.pay(member_id, amount, request.paid_at)
        return MembershipResponse(
            member_id=member_id,
            membership_end_at=member.membership_end_at,
            is_active=self.membership.is_active(member),
            payment=payment,
            message="Membership renewed successfully",
        )

    def undo_last_payment(self, member_id: UUID) -> MembershipResponse:
        member, payment = self.membership.undo_last_payment(member_id)
        return MembershipResponse(
            member_id=member_id,
            membership_end_at=member.membership_end_at,
            is_active=self.membership.is_active(member),
            payment=payment,
            message="Last membership payment undone",
        )

    def list_payments(self, member_id: UUID, limit: Optional[int] = None) -> list[MembershipPayment]:
        return self.membership.list_payments(member_id, limit or self.settings.history_default_limit)

    # Cashback balances

    def usable_balance(self, member_id: UUID, at: Optional[datetime] = None) -> Decimal:
        self.membership.get_member(member_id)
        return self.cashback.usable_balance(member_id, self.clock.localize(at))

    def pending_balance(self, member_id: UUID, at: Optional[datetime] = None) -> Decimal:
        self.membership.get_member(member_id)
        return self.cashback.pending_balance(member_id, self.clock.localize(at))

    def get_balance(self, member_id: UUID, at: Optional[datetime] = None) -> CashbackBalance:
        self.membership.get_member(member_id)
        return self.cashback.balance(member_id, self.clock.localize(at))

    def get_ledger_history(
        self, member_id: UUID, limit: int = 50, offset: int = 0, at: Optional[datetime] = None
    ) -> LedgerHistoryResponse:
        self.membership.get_member(member_id)
        at = self.clock.localize(at)
        all_entries = sorted(self.cashback.entries(member_id), key=lambda e: e.created_at, reverse=True)
        balance = self.cashback.balance(member_id, at)
        return LedgerHistoryResponse(
            member_id=member_id,
            entries=all_entries[offset:offset + limit],
            total_count=len(all_entries),
            usable_balance=balance.usable,
            pending_balance=balance.pending,
        )

    # Transactions

    def post_transaction(self, request: CreateTransactionRequest) -> TransactionResponse:
        total = request.total_amount
        cashback_to_use = request.cashback_to_use or ZERO
        if not total.is_finite() or total <= ZERO:
            raise InvalidAmountError(f"Transaction total must be positive, got {total}")
        if not cashback_to_use.is_finite() or cashback_to_use < ZERO:
            raise InvalidAmountError(f"Cashback to use cannot be negative, got {cashback_to_use}")
        at = self.clock.localize(request.transacted_at)
        member_id = request.member_id

        with self.locks.hold(member_id):
            member = self.membership.require_open_member(member_id)
            active = self.membership.is_active(member, at)

            if request.payment_mode == PaymentMode.CASHBACK:
                paid_cashback = self._validate_cashback_spend(member_id, active, total, cashback_to_use, at)
                paid_cash = total - paid_cashback
            else:
                paid_cashback = ZERO
                paid_cash = total

            earned = ZERO
            if active and paid_cash > ZERO:
                earned = self._compute_earned(member_id, at, paid_cash)

            transaction = Transaction(
                id=uuid4(),
                member_id=member_id,
                transacted_at=at,
                day_key=day_key(at),
                total_amount=total,
                paid_cash=paid_cash,
                paid_cashback=paid_cashback,
                cashback_earned=earned,
            )
            earn_entry, spend_entry = self._persist_transaction(transaction)

        logger.info(
            "Posted transaction",
            member_id=str(member_id),
            transaction_id=str(transaction.id),
            paid_cash=str(paid_cash),
            paid_cashback=str(paid_cashback),
            cashback_earned=str(earned),
        )
        return TransactionResponse(
            transaction=transaction,
            cashback_spent=paid_cashback,
            membership_active=active,
            earn_entry=earn_entry,
            spend_entry=spend_entry,
        )

    def list_transactions(self, member_id: Optional[UUID] = None, limit: Optional[int] = None) -> list[Transaction]:
        if member_id is not None:
            self.membership.get_member(member_id)
        return self.storage.list_transactions(
            member_id=member_id, limit=limit or self.settings.history_default_limit
        )

    def _validate_cashback_spend(
        self, member_id: UUID, active: bool, total: Decimal, cashback_to_use: Decimal, at: datetime
    ) -> Decimal:
        if not active:
            logger.warning("Rejected cashback spend by inactive member", member_id=str(member_id))
            raise MembershipInactiveError(f"Member {member_id} must be active to spend cashback")
        if cashback_to_use <= ZERO:
            raise InvalidAmountError("Cashback to use must be positive for a cashback payment")
        if cashback_to_use > total:
            raise InvalidAmountError(
                f"Cashback to use ({cashback_to_use}) exceeds transaction total ({total})"
            )
        # Checked before this transaction's own earn is posted, against the
        # store rather than the cache that lock-free readers refill
        usable = self.cashback.raw_usable_balance(member_id, at, use_cache=False)
        if cashback_to_use > usable:
            logger.warning(
                "Rejected cashback spend above usable balance",
                member_id=str(member_id), requested=str(cashback_to_use), usable=str(usable),
            )
            raise InsufficientCashbackError(
                f"Cashback to use ({cashback_to_use}) exceeds usable balance ({max(usable, ZERO)})"
            )
        return cashback_to_use

    def _compute_earned(self, member_id: UUID, at: datetime, paid_cash: Decimal) -> Decimal:
        same_day = self.storage.list_transactions(member_id=member_id, day_key=day_key(at))
        prior_cash = sum((t.paid_cash for t in same_day), ZERO)
        prior_earned = sum((t.cashback_earned for t in same_day), ZERO)
        return self.rule_engine.compute_earned(prior_cash, prior_earned, paid_cash)

    def _persist_transaction(
        self, transaction: Transaction
    ) -> tuple[Optional[CashbackLedgerEntry], Optional[CashbackLedgerEntry]]:
        written: list[CashbackLedgerEntry] = []
        self.storage.add_transaction(transaction)
        try:
            earn_entry = self.cashback.post_earn(
                transaction.member_id, transaction.id, transaction.cashback_earned, transaction.transacted_at
            )
            if earn_entry:
                written.append(earn_entry)
            spend_entry = self.cashback.post_spend(
                transaction.member_id, transaction.id, transaction.paid_cashback, transaction.transacted_at
            )
        except StoreUnavailableError:
            logger.warning(
                "Rolling back transaction after ledger write failed",
                member_id=str(transaction.member_id), transaction_id=str(transaction.id),
            )
            self._roll_back_transaction(transaction, written)
            raise
        return earn_entry, spend_entry

    def _roll_back_transaction(self, transaction: Transaction, written: list[CashbackLedgerEntry]) -> None:
        try:
            for entry in reversed(written):
                self.cashback.remove_entry(entry)
            self.storage.delete_transaction(transaction.id)
        except StoreUnavailableError:
            logger.error(
                "Compensating write failed; transaction needs repair",
                member_id=str(transaction.member_id), transaction_id=str(transaction.id),
            )

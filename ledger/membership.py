from datetime import datetime
from decimal import Decimal
from typing import Optional
from uuid import UUID, uuid4

from loguru import logger

from .clock import Clock, add_days, end_of_day
from .errors import (
    BackdatedPaymentError,
    InvalidAmountError,
    MemberArchivedError,
    MemberNotFoundError,
    NoPaymentToUndoError,
    StoreUnavailableError,
)
from .locks import MemberLockRegistry
from .models import Member, MembershipPayment
from .store import LedgerStore


class MembershipEngine:
    """Rolling membership window.

    A member is active exactly when ``membership_end_at`` is set and the end
    of that civil day has not passed; there is no stored status. Paying
    extends the window from the later of the paid day and the current end;
    undo restores the state recorded on the most recent payment.
    """

    def __init__(
        self,
        store: LedgerStore,
        clock: Clock,
        locks: MemberLockRegistry,
        period_days: int = 30,
    ):
        self.store = store
        self.clock = clock
        self.locks = locks
        self.period_days = period_days

    def is_active(self, member: Member, at: Optional[datetime] = None) -> bool:
        if member.membership_end_at is None:
            return False
        at = self.clock.localize(at)
        return end_of_day(member.membership_end_at, self.clock.tz) >= at

    def get_member(self, member_id: UUID) -> Member:
        member = self.store.get_member(member_id)
        if member is None:
            raise MemberNotFoundError(f"Member {member_id} not found")
        return member

    def require_open_member(self, member_id: UUID) -> Member:
        member = self.get_member(member_id)
        if member.is_archived:
            raise MemberArchivedError(f"Member {member_id} is archived")
        return member

    def pay(self, member_id: UUID, amount: Decimal, paid_at: Optional[datetime] = None) -> tuple[Member, MembershipPayment]:
        if amount is None or not amount.is_finite() or amount <= 0:
            raise InvalidAmountError(f"Membership payment must be positive, got {amount}")
        paid_at = self.clock.localize(paid_at)

        with self.locks.hold(member_id):
            member = self.require_open_member(member_id)
            latest = self._latest_payment(member_id)
            if latest is not None and paid_at < latest.paid_at:
                logger.warning(
                    "Rejected membership payment dated before the latest payment",
                    member_id=str(member_id), paid_at=paid_at.isoformat(),
                    latest_paid_at=latest.paid_at.isoformat(),
                )
                raise BackdatedPaymentError(
                    f"Payment at {paid_at.isoformat()} is older than the latest payment "
                    f"of member {member_id} ({latest.paid_at.isoformat()})"
                )
            if self.is_active(member, paid_at):
                base = member.membership_end_at
            else:
                base = paid_at.date()
            new_end = add_days(base, self.period_days)

            payment = MembershipPayment(
                id=uuid4(),
                member_id=member_id,
                amount=amount,
                previous_end_at=member.membership_end_at,
                new_end_at=new_end,
                paid_at=paid_at,
            )
            self.store.add_payment(payment)
            try:
                member = self.store.update_member(
                    member_id, membership_end_at=new_end, last_payment_id=payment.id
                )
            except StoreUnavailableError:
                logger.warning(
                    "Rolling back membership payment after member update failed",
                    member_id=str(member_id), payment_id=str(payment.id),
                )
                self._compensate(lambda: self.store.delete_payment(payment.id), member_id)
                raise

        logger.info(
            "Membership renewed",
            member_id=str(member_id),
            amount=str(amount),
            previous_end_at=payment.previous_end_at.isoformat() if payment.previous_end_at else None,
            new_end_at=new_end.isoformat(),
        )
        return member, payment

    def undo_last_payment(self, member_id: UUID) -> tuple[Member, MembershipPayment]:
        with self.locks.hold(member_id):
            member = self.require_open_member(member_id)
            last = self._latest_payment(member_id)
            if last is None:
                logger.warning("No membership payment to undo", member_id=str(member_id))
                raise NoPaymentToUndoError(f"Member {member_id} has no membership payment to undo")
            if member.last_payment_id != last.id:
                logger.warning(
                    "Latest membership payment is not undoable",
                    member_id=str(member_id), payment_id=str(last.id),
                )
                raise NoPaymentToUndoError(
                    f"Last membership payment of member {member_id} was already undone"
                )

            self.store.delete_payment(last.id)
            try:
                member = self.store.update_member(
                    member_id, membership_end_at=last.previous_end_at, last_payment_id=None
                )
            except StoreUnavailableError:
                logger.warning(
                    "Restoring membership payment after member update failed",
                    member_id=str(member_id), payment_id=str(last.id),
                )
                self._compensate(lambda: self.store.add_payment(last), member_id)
                raise

        logger.info(
            "Membership payment undone",
            member_id=str(member_id),
            payment_id=str(last.id),
            membership_end_at=last.previous_end_at.isoformat() if last.previous_end_at else None,
        )
        return member, last

    def can_undo(self, member: Member) -> bool:
        last = self._latest_payment(member.id)
        return last is not None and member.last_payment_id == last.id

    def list_payments(self, member_id: UUID, limit: Optional[int] = None) -> list[MembershipPayment]:
        self.get_member(member_id)
        return self.store.list_payments(member_id, limit=limit)

    def _latest_payment(self, member_id: UUID) -> Optional[MembershipPayment]:
        payments = self.store.list_payments(member_id, limit=1)
        return payments[0] if payments else None

    def _compensate(self, action, member_id: UUID) -> None:
        try:
            action()
        except StoreUnavailableError:
            logger.error("Compensating write failed; member needs repair", member_id=str(member_id))

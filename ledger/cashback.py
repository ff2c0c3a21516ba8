import threading
from datetime import date, datetime
from decimal import Decimal
from typing import Optional, Union
from uuid import UUID, uuid4

from loguru import logger

from .clock import first_day_of_next_month
from .models import CashbackBalance, CashbackLedgerEntry, EntryType
from .store import LedgerStore


ZERO = Decimal("0")
DEBIT_TYPES = (EntryType.SPEND, EntryType.ADJUST)


def _as_date(as_of: Union[date, datetime]) -> date:
    return as_of.date() if isinstance(as_of, datetime) else as_of


class CashbackLedger:
    """Derived cashback balances over the append-only entry stream.

    Balances are never stored. An optional per-member cache of the entry
    stream is dropped on every append or delete for that member, and a
    stream fetched before the latest write for that member is never cached.
    """

    def __init__(self, store: LedgerStore, cache_enabled: bool = True):
        self.store = store
        self.cache_enabled = cache_enabled
        self._cache: dict[UUID, list[CashbackLedgerEntry]] = {}
        self._versions: dict[UUID, int] = {}
        self._cache_lock = threading.Lock()

    def entries(self, member_id: UUID, use_cache: bool = True) -> list[CashbackLedgerEntry]:
        if not (self.cache_enabled and use_cache):
            return self.store.list_ledger_entries(member_id)
        with self._cache_lock:
            cached = self._cache.get(member_id)
            version = self._versions.get(member_id, 0)
        if cached is not None:
            logger.debug("Ledger cache hit", member_id=str(member_id))
            return cached
        entries = self.store.list_ledger_entries(member_id)
        with self._cache_lock:
            # a write landed while fetching; the list may be stale
            if self._versions.get(member_id, 0) == version:
                self._cache[member_id] = entries
        return entries

    def invalidate(self, member_id: UUID) -> None:
        with self._cache_lock:
            self._versions[member_id] = self._versions.get(member_id, 0) + 1
            self._cache.pop(member_id, None)

    def raw_usable_balance(
        self, member_id: UUID, as_of: Union[date, datetime], use_cache: bool = True
    ) -> Decimal:
        """Usable balance without the display floor; may be negative.

        Pass ``use_cache=False`` to read the stream straight from the store.
        """
        day = _as_date(as_of)
        total = ZERO
        for entry in self.entries(member_id, use_cache=use_cache):
            if entry.entry_type == EntryType.EARN:
                if entry.usable_from is not None and entry.usable_from <= day:
                    total += entry.amount
            elif entry.entry_type in DEBIT_TYPES:
                total += entry.amount
        return total

    def usable_balance(self, member_id: UUID, as_of: Union[date, datetime]) -> Decimal:
        return max(ZERO, self.raw_usable_balance(member_id, as_of))

    def pending_balance(self, member_id: UUID, as_of: Union[date, datetime]) -> Decimal:
        day = _as_date(as_of)
        return sum(
            (
                e.amount for e in self.entries(member_id)
                if e.entry_type == EntryType.EARN and e.usable_from is not None and e.usable_from > day
            ),
            ZERO,
        )

    def balance(self, member_id: UUID, as_of: Union[date, datetime]) -> CashbackBalance:
        balance = CashbackBalance(
            member_id=member_id,
            as_of=_as_date(as_of),
            usable=self.usable_balance(member_id, as_of),
            pending=self.pending_balance(member_id, as_of),
        )
        logger.debug(
            "Derived cashback balance",
            member_id=str(member_id), usable=str(balance.usable), pending=str(balance.pending),
        )
        return balance

    def post_earn(
        self,
        member_id: UUID,
        transaction_id: Optional[UUID],
        amount: Decimal,
        earned_at: datetime,
    ) -> Optional[CashbackLedgerEntry]:
        if amount <= ZERO:
            return None
        entry = CashbackLedgerEntry(
            id=uuid4(),
            member_id=member_id,
            transaction_id=transaction_id,
            entry_type=EntryType.EARN,
            amount=amount,
            usable_from=first_day_of_next_month(earned_at),
            description="Cashback earned from transaction",
            created_at=earned_at,
        )
        self._append(entry)
        logger.info(
            "Posted cashback earn",
            member_id=str(member_id), amount=str(amount), usable_from=entry.usable_from.isoformat(),
        )
        return entry

    def post_spend(
        self,
        member_id: UUID,
        transaction_id: Optional[UUID],
        amount: Decimal,
        spent_at: datetime,
    ) -> Optional[CashbackLedgerEntry]:
        if amount <= ZERO:
            return None
        entry = CashbackLedgerEntry(
            id=uuid4(),
            member_id=member_id,
            transaction_id=transaction_id,
            entry_type=EntryType.SPEND,
            amount=-amount,
            description="Cashback spent on transaction",
            created_at=spent_at,
        )
        self._append(entry)
        logger.info("Posted cashback spend", member_id=str(member_id), amount=str(amount))
        return entry

    def post_adjust(
        self,
        member_id: UUID,
        amount: Decimal,
        description: str,
        adjusted_at: datetime,
    ) -> Optional[CashbackLedgerEntry]:
        """Deduct ``amount`` from the member's cashback outside any transaction."""
        if amount <= ZERO:
            return None
        entry = CashbackLedgerEntry(
            id=uuid4(),
            member_id=member_id,
            entry_type=EntryType.ADJUST,
            amount=-amount,
            description=description,
            created_at=adjusted_at,
        )
        self._append(entry)
        logger.info("Posted cashback adjustment", member_id=str(member_id), amount=str(amount))
        return entry

    def _append(self, entry: CashbackLedgerEntry) -> None:
        try:
            self.store.add_ledger_entry(entry)
        finally:
            self.invalidate(entry.member_id)

    def remove_entry(self, entry: CashbackLedgerEntry) -> None:
        """Drop an entry written by a transaction that is being rolled back."""
        try:
            self.store.delete_ledger_entry(entry.id)
        finally:
            self.invalidate(entry.member_id)

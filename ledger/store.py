import threading
from contextlib import contextmanager
from datetime import date, datetime, timezone
from typing import Iterable, Iterator, Optional, Protocol
from uuid import UUID

from loguru import logger

from .errors import MemberNotFoundError, StoreUnavailableError
from .models import (
    CashbackLedgerEntry,
    EntryType,
    Member,
    MembershipPayment,
    Transaction,
)
from .settings import settings


class LedgerStore(Protocol):
    """Persistence primitives the engine relies on.

    Implementations raise ``StoreUnavailableError`` when a call fails or does
    not complete within their timeout.
    """

    def get_member(self, member_id: UUID) -> Optional[Member]: ...

    def list_members(self, include_archived: bool = False) -> list[Member]: ...

    def add_member(self, member: Member) -> Member: ...

    def update_member(self, member_id: UUID, **fields) -> Member: ...

    def add_payment(self, payment: MembershipPayment) -> MembershipPayment: ...

    def delete_payment(self, payment_id: UUID) -> None: ...

    def list_payments(self, member_id: UUID, limit: Optional[int] = None) -> list[MembershipPayment]: ...

    def add_ledger_entry(self, entry: CashbackLedgerEntry) -> CashbackLedgerEntry: ...

    def delete_ledger_entry(self, entry_id: UUID) -> None: ...

    def list_ledger_entries(
        self,
        member_id: UUID,
        entry_types: Optional[Iterable[EntryType]] = None,
        usable_from_lte: Optional[date] = None,
        usable_from_gt: Optional[date] = None,
    ) -> list[CashbackLedgerEntry]: ...

    def add_transaction(self, transaction: Transaction) -> Transaction: ...

    def delete_transaction(self, transaction_id: UUID) -> None: ...

    def list_transactions(
        self,
        member_id: Optional[UUID] = None,
        day_key: Optional[str] = None,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
        limit: Optional[int] = None,
    ) -> list[Transaction]: ...


SEED_MEMBER_IDS = (
    UUID("550e8400-e29b-41d4-a716-446655440000"),
    UUID("660e8400-e29b-41d4-a716-446655440001"),
)


class InMemoryStorage:
    def __init__(self, seed: bool = True, timeout: Optional[float] = None):
        self.members: dict[UUID, dict] = {}
        self.payments: dict[UUID, dict] = {}
        self.ledger_entries: dict[UUID, dict] = {}
        self.transactions: dict[UUID, dict] = {}
        self.timeout = timeout if timeout is not None else settings.store_timeout_seconds
        self._lock = threading.RLock()
        self._sequence = 0
        if seed:
            self._seed_data()

    def _seed_data(self):
        now = datetime.now(timezone.utc)
        self.members[SEED_MEMBER_IDS[0]] = {
            "id": SEED_MEMBER_IDS[0], "name": "Budi Santoso", "whatsapp": "6281111111111",
            "membership_end_at": None, "last_payment_id": None,
            "created_at": now, "archived_at": None,
        }
        self.members[SEED_MEMBER_IDS[1]] = {
            "id": SEED_MEMBER_IDS[1], "name": "Siti Rahma", "whatsapp": "6282222222222",
            "membership_end_at": None, "last_payment_id": None,
            "created_at": now, "archived_at": None,
        }

    @contextmanager
    def _guard(self) -> Iterator[None]:
        if not self._lock.acquire(timeout=self.timeout):
            logger.error("Ledger store lock timed out", timeout=self.timeout)
            raise StoreUnavailableError(f"Ledger store did not respond within {self.timeout}s")
        try:
            yield
        finally:
            self._lock.release()

    def _next_sequence(self) -> int:
        self._sequence += 1
        return self._sequence

    def get_member(self, member_id: UUID) -> Optional[Member]:
        with self._guard():
            data = self.members.get(member_id)
            return Member(**data) if data else None

    def list_members(self, include_archived: bool = False) -> list[Member]:
        with self._guard():
            members = [
                Member(**m) for m in self.members.values()
                if include_archived or m["archived_at"] is None
            ]
        members.sort(key=lambda m: m.name.lower())
        return members

    def add_member(self, member: Member) -> Member:
        with self._guard():
            self.members[member.id] = member.model_dump()
        return member

    def update_member(self, member_id: UUID, **fields) -> Member:
        with self._guard():
            data = self.members.get(member_id)
            if data is None:
                raise MemberNotFoundError(f"Member {member_id} not found")
            data.update(fields)
            return Member(**data)

    def add_payment(self, payment: MembershipPayment) -> MembershipPayment:
        with self._guard():
            self.payments[payment.id] = {**payment.model_dump(), "_seq": self._next_sequence()}
        return payment

    def delete_payment(self, payment_id: UUID) -> None:
        with self._guard():
            self.payments.pop(payment_id, None)

    def list_payments(self, member_id: UUID, limit: Optional[int] = None) -> list[MembershipPayment]:
        with self._guard():
            rows = [p for p in self.payments.values() if p["member_id"] == member_id]
        rows.sort(key=lambda p: (p["paid_at"], p["_seq"]), reverse=True)
        if limit is not None:
            rows = rows[:limit]
        return [MembershipPayment(**_public(p)) for p in rows]

    def add_ledger_entry(self, entry: CashbackLedgerEntry) -> CashbackLedgerEntry:
        with self._guard():
            self.ledger_entries[entry.id] = {**entry.model_dump(), "_seq": self._next_sequence()}
        return entry

    def delete_ledger_entry(self, entry_id: UUID) -> None:
        with self._guard():
            self.ledger_entries.pop(entry_id, None)

    def list_ledger_entries(
        self,
        member_id: UUID,
        entry_types: Optional[Iterable[EntryType]] = None,
        usable_from_lte: Optional[date] = None,
        usable_from_gt: Optional[date] = None,
    ) -> list[CashbackLedgerEntry]:
        types = set(entry_types) if entry_types is not None else None
        with self._guard():
            rows = [e for e in self.ledger_entries.values() if e["member_id"] == member_id]
        if types is not None:
            rows = [e for e in rows if e["entry_type"] in types]
        if usable_from_lte is not None:
            rows = [e for e in rows if e["usable_from"] is not None and e["usable_from"] <= usable_from_lte]
        if usable_from_gt is not None:
            rows = [e for e in rows if e["usable_from"] is not None and e["usable_from"] > usable_from_gt]
        rows.sort(key=lambda e: e["_seq"])
        return [CashbackLedgerEntry(**_public(e)) for e in rows]

    def add_transaction(self, transaction: Transaction) -> Transaction:
        with self._guard():
            self.transactions[transaction.id] = {**transaction.model_dump(exclude={"cashback_spent"}), "_seq": self._next_sequence()}
        return transaction

    def delete_transaction(self, transaction_id: UUID) -> None:
        with self._guard():
            self.transactions.pop(transaction_id, None)

    def list_transactions(
        self,
        member_id: Optional[UUID] = None,
        day_key: Optional[str] = None,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
        limit: Optional[int] = None,
    ) -> list[Transaction]:
        with self._guard():
            rows = list(self.transactions.values())
        if member_id is not None:
            rows = [t for t in rows if t["member_id"] == member_id]
        if day_key is not None:
            rows = [t for t in rows if t["day_key"] == day_key]
        if start is not None:
            rows = [t for t in rows if t["transacted_at"] >= start]
        if end is not None:
            rows = [t for t in rows if t["transacted_at"] <= end]
        rows.sort(key=lambda t: (t["transacted_at"], t["_seq"]), reverse=True)
        if limit is not None:
            rows = rows[:limit]
        return [Transaction(**_public(t)) for t in rows]


def _public(row: dict) -> dict:
    return {k: v for k, v in row.items() if not k.startswith("_")}

from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Optional
from uuid import UUID
from pydantic import BaseModel, Field, ConfigDict, computed_field, model_validator


class EntryType(str, Enum):
    EARN = "earn"
    SPEND = "spend"
    ADJUST = "adjust"


class PaymentMode(str, Enum):
    CASH = "cash"
    CASHBACK = "cashback"


class Member(BaseModel):
    id: UUID
    name: str
    whatsapp: str
    membership_end_at: Optional[date] = None
    last_payment_id: Optional[UUID] = None
    created_at: datetime
    archived_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)

    @property
    def is_archived(self) -> bool:
        return self.archived_at is not None


class MembershipPayment(BaseModel):
    id: UUID
    member_id: UUID
    amount: Decimal
    previous_end_at: Optional[date] = None
    new_end_at: date
    paid_at: datetime

    model_config = ConfigDict(from_attributes=True, frozen=True)


class CashbackLedgerEntry(BaseModel):
    id: UUID
    member_id: UUID
    transaction_id: Optional[UUID] = None
    entry_type: EntryType
    amount: Decimal
    usable_from: Optional[date] = None
    description: str
    created_at: datetime

    model_config = ConfigDict(from_attributes=True, frozen=True)


class Transaction(BaseModel):
    id: UUID
    member_id: UUID
    transacted_at: datetime
    day_key: str
    total_amount: Decimal
    paid_cash: Decimal
    paid_cashback: Decimal
    cashback_earned: Decimal

    model_config = ConfigDict(from_attributes=True, frozen=True)

    @computed_field
    @property
    def cashback_spent(self) -> Decimal:
        return self.paid_cashback


class CreateMemberRequest(BaseModel):
    name: str = Field(..., min_length=1)
    whatsapp: str = Field(..., min_length=5)

    model_config = ConfigDict(json_schema_extra={
        "example": {"name": "Siti Rahma", "whatsapp": "6281234567890"}
    })


class UpdateMemberRequest(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1)
    whatsapp: Optional[str] = Field(default=None, min_length=5)

    @model_validator(mode="after")
    def _require_one_field(self) -> "UpdateMemberRequest":
        if self.name is None and self.whatsapp is None:
            raise ValueError("At least one of name or whatsapp must be provided")
        return self


class PayMembershipRequest(BaseModel):
    amount: Optional[Decimal] = Field(default=None, description="Defaults to the configured membership fee")
    paid_at: Optional[datetime] = None


class CreateTransactionRequest(BaseModel):
    member_id: UUID
    total_amount: Decimal
    payment_mode: PaymentMode = PaymentMode.CASH
    cashback_to_use: Decimal = Decimal("0")
    transacted_at: Optional[datetime] = None

    model_config = ConfigDict(json_schema_extra={
        "example": {
            "member_id": "550e8400-e29b-41d4-a716-446655440000",
            "total_amount": 45000,
            "payment_mode": "cashback",
            "cashback_to_use": 2500,
        }
    })


class CashbackBalance(BaseModel):
    member_id: UUID
    as_of: date
    usable: Decimal
    pending: Decimal


class MemberDetail(BaseModel):
    id: UUID
    name: str
    whatsapp: str
    membership_end_at: Optional[date] = None
    is_active: bool
    is_archived: bool
    usable_cashback: Decimal
    pending_cashback: Decimal
    can_undo_last_payment: bool


class MembershipResponse(BaseModel):
    member_id: UUID
    membership_end_at: Optional[date] = None
    is_active: bool
    payment: Optional[MembershipPayment] = None
    message: str


class TransactionResponse(BaseModel):
    transaction: Transaction
    cashback_spent: Decimal
    membership_active: bool
    earn_entry: Optional[CashbackLedgerEntry] = None
    spend_entry: Optional[CashbackLedgerEntry] = None


class LedgerHistoryResponse(BaseModel):
    member_id: UUID
    entries: list[CashbackLedgerEntry]
    total_count: int
    usable_balance: Decimal
    pending_balance: Decimal

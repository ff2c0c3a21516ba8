from contextlib import asynccontextmanager
from datetime import datetime
from typing import Optional
from uuid import UUID

from fastapi import FastAPI, HTTPException, status

from .errors import (
    LedgerServiceError,
    MemberNotFoundError,
    StoreUnavailableError,
)
from .logging import configure_logging
from .models import (
    CashbackBalance,
    CreateMemberRequest,
    CreateTransactionRequest,
    LedgerHistoryResponse,
    Member,
    MemberDetail,
    MembershipPayment,
    MembershipResponse,
    PayMembershipRequest,
    Transaction,
    TransactionResponse,
    UpdateMemberRequest,
)
from .service import LedgerService
from .settings import settings


@asynccontextmanager
async def lifespan(_app: FastAPI):
    configure_logging(
        service_name=settings.service_name,
        environment=settings.environment,
        version=settings.version,
    )
    yield


app = FastAPI(
    title="Loyalty Ledger API",
    description="Membership renewal and delayed, capped cashback for a loyalty program",
    version=settings.version,
    lifespan=lifespan,
)

ledger_service = LedgerService()


def _raise_http(exc: LedgerServiceError):
    if isinstance(exc, MemberNotFoundError):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc))
    if isinstance(exc, StoreUnavailableError):
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc))
    raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc))


@app.get("/health", tags=["System"])
def health_check():
    return {"status": "healthy", "service": settings.service_name}


@app.get("/members", response_model=list[Member], tags=["Members"])
def list_members(include_archived: bool = False) -> list[Member]:
    return ledger_service.list_members(include_archived=include_archived)


@app.post("/members", response_model=Member, status_code=status.HTTP_201_CREATED, tags=["Members"])
def create_member(request: CreateMemberRequest) -> Member:
    return ledger_service.register_member(request)


@app.put("/members/{member_id}", response_model=Member, tags=["Members"])
def update_member(member_id: UUID, request: UpdateMemberRequest) -> Member:
    try:
        return ledger_service.update_member(member_id, request)
    except LedgerServiceError as e:
        _raise_http(e)


@app.post("/members/{member_id}/archive", response_model=Member, tags=["Members"])
def archive_member(member_id: UUID) -> Member:
    try:
        return ledger_service.archive_member(member_id)
    except LedgerServiceError as e:
        _raise_http(e)


@app.get("/members/{member_id}/detail", response_model=MemberDetail, tags=["Members"])
def get_member_detail(member_id: UUID) -> MemberDetail:
    try:
        return ledger_service.get_member_detail(member_id)
    except LedgerServiceError as e:
        _raise_http(e)


@app.post("/members/{member_id}/membership/pay", response_model=MembershipResponse, tags=["Membership"])
def pay_membership(member_id: UUID, request: Optional[PayMembershipRequest] = None) -> MembershipResponse:
    try:
        return ledger_service.pay(member_id, request)
    except LedgerServiceError as e:
        _raise_http(e)


@app.post("/members/{member_id}/membership/undo-last-payment", response_model=MembershipResponse, tags=["Membership"])
def undo_last_payment(member_id: UUID) -> MembershipResponse:
    try:
        return ledger_service.undo_last_payment(member_id)
    except LedgerServiceError as e:
        _raise_http(e)


@app.get("/members/{member_id}/membership/payments", response_model=list[MembershipPayment], tags=["Membership"])
def list_payments(member_id: UUID, limit: int = 50) -> list[MembershipPayment]:
    try:
        return ledger_service.list_payments(member_id, limit)
    except LedgerServiceError as e:
        _raise_http(e)


@app.get("/members/{member_id}/cashback", response_model=CashbackBalance, tags=["Cashback"])
def get_cashback_balance(member_id: UUID, at: Optional[datetime] = None) -> CashbackBalance:
    try:
        return ledger_service.get_balance(member_id, at)
    except LedgerServiceError as e:
        _raise_http(e)


@app.get("/members/{member_id}/cashback/ledger", response_model=LedgerHistoryResponse, tags=["Cashback"])
def get_cashback_ledger(member_id: UUID, limit: int = 50, offset: int = 0) -> LedgerHistoryResponse:
    try:
        return ledger_service.get_ledger_history(member_id, limit, offset)
    except LedgerServiceError as e:
        _raise_http(e)


@app.post("/transactions", response_model=TransactionResponse, status_code=status.HTTP_201_CREATED, tags=["Transactions"])
def create_transaction(request: CreateTransactionRequest) -> TransactionResponse:
    try:
        return ledger_service.post_transaction(request)
    except LedgerServiceError as e:
        _raise_http(e)


@app.get("/transactions", response_model=list[Transaction], tags=["Transactions"])
def list_transactions(member_id: Optional[UUID] = None, limit: int = 50) -> list[Transaction]:
    try:
        return ledger_service.list_transactions(member_id, limit)
    except LedgerServiceError as e:
        _raise_http(e)


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)

"""
HTTP adapter tests

The adapter holds no rules of its own; these tests check that core
operations are reachable and that errors map to the right status codes.
"""

from datetime import timedelta
from decimal import Decimal
from uuid import UUID, uuid4

import pytest
from fastapi.testclient import TestClient

from ledger.api import app, ledger_service


client = TestClient(app)


@pytest.fixture
def member_id():
    response = client.post("/members", json={"name": "Dewi Lestari", "whatsapp": "6283333333333"})
    assert response.status_code == 201
    return response.json()["id"]


def test_health_check():
    response = client.get("/health")

    assert response.status_code == 200
    assert response.json()["status"] == "healthy"


def test_create_member_validation():
    response = client.post("/members", json={"name": "Dewi", "whatsapp": "12"})

    assert response.status_code == 422


def test_pay_and_undo_membership(member_id):
    expected_end = ledger_service.clock.today() + timedelta(days=30)

    paid = client.post(f"/members/{member_id}/membership/pay", json={"amount": 35000})
    assert paid.status_code == 200
    assert paid.json()["membership_end_at"] == expected_end.isoformat()
    assert paid.json()["is_active"] is True

    detail = client.get(f"/members/{member_id}/detail").json()
    assert detail["can_undo_last_payment"] is True

    undone = client.post(f"/members/{member_id}/membership/undo-last-payment")
    assert undone.status_code == 200
    assert undone.json()["membership_end_at"] is None

    again = client.post(f"/members/{member_id}/membership/undo-last-payment")
    assert again.status_code == 400


def test_backdated_membership_payment_rejected(member_id):
    client.post(f"/members/{member_id}/membership/pay", json={"paid_at": "2024-05-10T10:00:00+07:00"})

    response = client.post(
        f"/members/{member_id}/membership/pay", json={"paid_at": "2024-05-05T10:00:00+07:00"}
    )

    assert response.status_code == 400
    assert len(client.get(f"/members/{member_id}/membership/payments").json()) == 1


def test_cash_transaction_earns_pending_cashback(member_id):
    client.post(f"/members/{member_id}/membership/pay", json={})

    response = client.post("/transactions", json={
        "member_id": member_id, "total_amount": 15000, "payment_mode": "cash",
    })

    assert response.status_code == 201
    assert Decimal(response.json()["transaction"]["cashback_earned"]) == Decimal("2500")

    balance = client.get(f"/members/{member_id}/cashback").json()
    assert Decimal(balance["usable"]) == Decimal("0")
    assert Decimal(balance["pending"]) == Decimal("2500")

    listed = client.get("/transactions", params={"member_id": member_id}).json()
    assert len(listed) == 1
    assert Decimal(listed[0]["cashback_spent"]) == Decimal("0")


def test_cashback_spend_without_balance_rejected(member_id):
    client.post(f"/members/{member_id}/membership/pay", json={})

    response = client.post("/transactions", json={
        "member_id": member_id, "total_amount": 20000,
        "payment_mode": "cashback", "cashback_to_use": 10000,
    })

    assert response.status_code == 400


def test_unknown_member_is_404():
    response = client.get(f"/members/{uuid4()}/detail")

    assert response.status_code == 404


def test_busy_member_is_503(member_id, monkeypatch):
    monkeypatch.setattr(ledger_service.locks, "timeout", 0.05)

    with ledger_service.locks.hold(UUID(member_id)):
        response = client.post(f"/members/{member_id}/membership/pay", json={})

    assert response.status_code == 503

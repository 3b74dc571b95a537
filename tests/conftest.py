"""Pytest fixtures for testing"""

import pytest
from datetime import datetime, timedelta, timezone
from fastapi.testclient import TestClient

from careflex_billing.api.main import create_app
from careflex_billing.domain.models import Invoice, InvoiceStatus, Payment, PaymentKind

NOW = datetime(2025, 6, 1, 12, 0, tzinfo=timezone.utc)


def make_invoice(
    invoice_id: str,
    amount: float,
    created_days_ago: int = 30,
    due_in_days: int = 30,
    explicit_status: InvoiceStatus = InvoiceStatus.UNPAID,
) -> Invoice:
    """Canonical invoice relative to NOW"""
    return Invoice(
        id=invoice_id,
        title=f"Invoice {invoice_id}",
        amount=amount,
        currency="GBP",
        created_at=NOW - timedelta(days=created_days_ago),
        due_at=NOW + timedelta(days=due_in_days),
        explicit_status=explicit_status,
    )


def make_payment(
    payment_id: str,
    amount: float,
    invoice_id: str | None = None,
    status: str = "paid",
    kind: PaymentKind | None = None,
    days_ago: int = 1,
) -> Payment:
    """Canonical payment; kind defaults to direct when linked, else pool"""
    if kind is None:
        kind = PaymentKind.DIRECT if invoice_id else PaymentKind.POOL
    return Payment(
        id=payment_id,
        invoice_id=invoice_id,
        amount=amount,
        status=status,
        kind=kind,
        created_at=NOW - timedelta(days=days_ago),
    )


@pytest.fixture
def now() -> datetime:
    return NOW


@pytest.fixture
def client() -> TestClient:
    """Create FastAPI test client"""
    return TestClient(create_app())


@pytest.fixture
def raw_dashboard() -> dict:
    """Dashboard payload in the shape the patient backend returns"""
    return {
        "data": {
            "account": {"creditLimit": "2000", "creditScore": 750},
            "invoices": [
                {
                    "_id": "inv_a",
                    "title": "Consultation",
                    "total": 100,
                    "status": "unpaid",
                    "createdAt": "2025-01-01T00:00:00Z",
                    "dueDate": "2099-01-01T00:00:00Z",
                },
                {
                    "_id": "inv_b",
                    "title": "Lab work",
                    "total": 100,
                    "status": "unpaid",
                    "createdAt": "2025-01-05T00:00:00Z",
                    "dueDate": "2099-01-05T00:00:00Z",
                },
            ],
            "payments": [
                {"_id": "pay_1", "amount": 150, "status": "succeeded", "kind": "pool"},
            ],
        }
    }

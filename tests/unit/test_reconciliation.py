"""Unit tests for the reconciliation pipeline and snapshot helpers"""

import pytest
from datetime import datetime, timedelta, timezone

from careflex_billing.domain.exceptions import InvalidSnapshotError
from careflex_billing.domain.models import InvoiceStatus
from careflex_billing.domain.reconciliation import (
    coerce_credit_limit,
    extract_snapshot,
    is_careflex_eligible,
    reconcile,
    resolve_credit_limit,
    resolve_eligibility_score,
)
from tests.conftest import NOW


def _iso(days_from_now: int) -> str:
    return (NOW + timedelta(days=days_from_now)).isoformat()


def test_extract_snapshot_unwraps_data(raw_dashboard):
    snapshot = extract_snapshot(raw_dashboard)

    assert [inv["_id"] for inv in snapshot.invoices] == ["inv_a", "inv_b"]
    assert len(snapshot.payments) == 1
    assert snapshot.account["creditScore"] == 750
    assert snapshot.profile == {}


def test_extract_snapshot_alternate_keys():
    payload = {
        "billing": {"invoices": [{"id": "x"}]},
        "payment_requests": [{"id": "p"}],
        "patientAccount": {"credit_limit": 10},
        "me": {"name": "Pat"},
    }
    snapshot = extract_snapshot(payload)

    assert snapshot.invoices == [{"id": "x"}]
    assert snapshot.payments == [{"id": "p"}]
    assert snapshot.account == {"credit_limit": 10}
    assert snapshot.profile == {"name": "Pat"}


def test_extract_snapshot_missing_one_collection_is_empty():
    assert extract_snapshot({"invoices": []}).payments == []


@pytest.mark.parametrize("payload", [None, [], "oops", {"profile": {}}])
def test_extract_snapshot_rejects_unusable_payloads(payload):
    with pytest.raises(InvalidSnapshotError):
        extract_snapshot(payload)


def test_resolve_credit_limit_fallback_chain():
    assert resolve_credit_limit({"creditLimit": "2500"}, {"careflexLimit": 100}) == 2500
    assert resolve_credit_limit({"creditLimit": 0}, {"careflexLimit": 100}) == 100
    assert resolve_credit_limit({}, {}) == 5000
    assert resolve_credit_limit(None, None, default=750) == 750


def test_coerce_credit_limit():
    assert coerce_credit_limit("1200") == 1200
    assert coerce_credit_limit(-5) == 5000
    assert coerce_credit_limit(None, default=10) == 10


def test_resolve_eligibility_score():
    assert resolve_eligibility_score({"credit_score": "690"}) == 690
    assert resolve_eligibility_score({}) == 720


def test_careflex_eligibility(now):
    result = reconcile([{"_id": "a", "total": 10, "dueDate": _iso(5)}], [], now=now)
    assert is_careflex_eligible(700, result.invoices)
    assert not is_careflex_eligible(699, result.invoices)

    overdue = reconcile([{"_id": "a", "total": 10, "dueDate": _iso(-5)}], [], now=now)
    assert not is_careflex_eligible(900, overdue.invoices)


def test_reconcile_full_pipeline(raw_dashboard, now):
    snapshot = extract_snapshot(raw_dashboard)
    result = reconcile(snapshot.invoices, snapshot.payments, credit_limit=2000, now=now)

    a, b = result.invoices
    assert (a.covered, a.balance_due, a.status) == (100, 0, InvoiceStatus.PAID)
    assert (b.covered, b.balance_due, b.status) == (50, 50, InvoiceStatus.UNPAID)
    assert result.aggregates.total_outstanding == 50
    assert result.aggregates.total_paid == 150
    assert result.aggregates.available_credit == 1950
    assert result.next_due_invoice.id == "inv_b"
    assert result.last_payment.id == "pay_1"
    assert result.unallocated_pool == 0
    assert result.has_overdue is False
    assert result.generated_at == now


def test_reconcile_is_full_recomputation(raw_dashboard, now):
    snapshot = extract_snapshot(raw_dashboard)

    first = reconcile(snapshot.invoices, snapshot.payments, now=now)
    second = reconcile(snapshot.invoices, snapshot.payments, now=now)

    assert first == second
    assert "covered" not in snapshot.invoices[0]


def test_reconcile_accepts_naive_now():
    result = reconcile([{"_id": "a", "total": 10, "dueDate": "2025-01-01"}], [], now=datetime(2025, 6, 1))
    assert result.generated_at.tzinfo == timezone.utc
    assert result.invoices[0].status == InvoiceStatus.OVERDUE


def test_reconcile_trust_paid_marker(now):
    invoices = [
        {"_id": "old", "total": 100, "status": "paid", "createdAt": _iso(-90), "dueDate": _iso(-60)},
        {"_id": "new", "total": 100, "createdAt": _iso(-10), "dueDate": _iso(20)},
    ]
    payments = [{"_id": "r", "amount": 60, "status": "paid", "method": "careflex"}]

    recomputed = reconcile(invoices, payments, now=now)
    trusted = reconcile(invoices, payments, now=now, paid_marker_policy="trust")

    assert [inv.status for inv in recomputed.invoices] == [InvoiceStatus.OVERDUE, InvoiceStatus.UNPAID]
    assert [inv.status for inv in trusted.invoices] == [InvoiceStatus.PAID, InvoiceStatus.UNPAID]
    assert trusted.invoices[1].balance_due == 40


def test_reconcile_rejects_unknown_policy():
    with pytest.raises(ValueError):
        reconcile([], [], paid_marker_policy="sometimes")


def test_reconcile_garbage_records_are_safe(now):
    """Malformed records become zero-amount invoices and unsuccessful payments"""
    result = reconcile([None, "x", {"total": "??"}], [42, None], now=now)

    assert len(result.invoices) == 3
    assert all(inv.amount == 0 for inv in result.invoices)
    assert all(not p.is_successful for p in result.payments)
    assert result.aggregates.total_paid == 0

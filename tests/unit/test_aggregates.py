"""Unit tests for portfolio aggregates"""

import pytest
from dataclasses import replace

from careflex_billing.domain.aggregates import available_credit, summarize, total_paid
from careflex_billing.domain.models import InvoiceStatus
from tests.conftest import make_invoice, make_payment


def _with_status(invoice_id, amount, balance_due, status):
    return replace(make_invoice(invoice_id, amount), covered=amount - balance_due, balance_due=balance_due, status=status)


@pytest.fixture
def reconciled():
    return [
        _with_status("unpaid", 100, 70, InvoiceStatus.UNPAID),
        _with_status("overdue", 50, 50, InvoiceStatus.OVERDUE),
        _with_status("paid", 80, 0, InvoiceStatus.PAID),
        _with_status("waived", 40, 0, InvoiceStatus.WAIVED),
    ]


def test_outstanding_and_overdue(reconciled):
    agg = summarize(reconciled, [], credit_limit=1000)

    assert agg.total_outstanding == 120
    assert agg.total_overdue == 50
    assert agg.available_credit == 880
    assert agg.credit_limit == 1000


def test_total_paid_prefers_payment_rows(reconciled):
    payments = [make_payment("p1", 30), make_payment("p2", 25, status="Settled"), make_payment("p3", 99, status="pending")]

    assert summarize(reconciled, payments).total_paid == 55


def test_total_paid_falls_back_to_paid_invoices(reconciled):
    """No successful rows at all: sum Paid invoices instead"""
    payments = [make_payment("p1", 30, status="failed")]

    assert summarize(reconciled, payments).total_paid == 80


def test_total_paid_fallback_from_invoice_marks_only():
    invoices = [_with_status("A", 50, 0, InvoiceStatus.PAID)]
    assert summarize(invoices, []).total_paid == 50


def test_total_paid_explicit_sources(reconciled):
    payments = [make_payment("p1", 30)]

    assert total_paid(reconciled, payments, source="payments") == 30
    assert total_paid(reconciled, payments, source="invoices") == 80
    assert total_paid(reconciled, [], source="payments") == 0


def test_total_paid_rejects_unknown_source(reconciled):
    with pytest.raises(ValueError):
        total_paid(reconciled, [], source="both")


def test_available_credit_never_negative():
    assert available_credit(100, 250) == 0
    assert available_credit(5000, 1200.5) == 3799.5


def test_summarize_empty_portfolio():
    agg = summarize([], [])

    assert agg.total_outstanding == 0
    assert agg.total_overdue == 0
    assert agg.total_paid == 0
    assert agg.available_credit == 5000

"""Portfolio aggregates over reconciled invoices"""

from typing import Sequence

from careflex_billing.domain.models import Aggregates, Invoice, InvoiceStatus, Payment
from careflex_billing.utils.numeric import non_negative

OUTSTANDING_STATUSES = (InvoiceStatus.UNPAID, InvoiceStatus.OVERDUE)
TOTAL_PAID_SOURCES = ("auto", "payments", "invoices")


def _balance(invoice: Invoice) -> float:
    return invoice.balance_due if invoice.balance_due is not None else 0.0


def total_outstanding(invoices: Sequence[Invoice]) -> float:
    return sum(_balance(inv) for inv in invoices if inv.status in OUTSTANDING_STATUSES)


def total_overdue(invoices: Sequence[Invoice]) -> float:
    return sum(_balance(inv) for inv in invoices if inv.status == InvoiceStatus.OVERDUE)


def total_paid(
    invoices: Sequence[Invoice],
    payments: Sequence[Payment],
    source: str = "auto",
) -> float:
    """
    Money received to date.

    Sources:
    - "payments": sum of successful payment rows
    - "invoices": sum of amounts of invoices whose status is Paid
    - "auto": payment rows when at least one successful row exists, otherwise
      the invoice fallback (backends that mark invoices paid without rows)

    The two sources are never added together.
    """
    if source not in TOTAL_PAID_SOURCES:
        raise ValueError(f"Unknown total paid source: {source}")

    successful = [p for p in payments if p.is_successful]
    if source == "payments" or (source == "auto" and successful):
        return sum(p.amount for p in successful)
    return sum(inv.amount for inv in invoices if inv.status == InvoiceStatus.PAID)


def available_credit(credit_limit: float, outstanding: float) -> float:
    return non_negative(credit_limit - outstanding)


def summarize(
    invoices: Sequence[Invoice],
    payments: Sequence[Payment] = (),
    credit_limit: float = 5000.0,
    total_paid_source: str = "auto",
) -> Aggregates:
    """Fold status-annotated invoices (and the payment rows) into portfolio totals"""
    outstanding = total_outstanding(invoices)
    return Aggregates(
        total_outstanding=outstanding,
        total_overdue=total_overdue(invoices),
        total_paid=total_paid(invoices, payments, source=total_paid_source),
        available_credit=available_credit(credit_limit, outstanding),
        credit_limit=credit_limit,
    )

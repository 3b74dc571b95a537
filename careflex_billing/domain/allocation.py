"""Payment allocation - two-tier waterfall of direct payments, then the repayment pool"""

from dataclasses import replace
from typing import Dict, List, Sequence, Tuple

from careflex_billing.domain.models import Invoice, InvoiceStatus, Payment, PaymentKind
from careflex_billing.utils.numeric import non_negative


def is_pool_payment(payment: Payment) -> bool:
    """Successful, not tied to an invoice, and classified as a repayment"""
    return payment.is_successful and payment.invoice_id is None and payment.kind == PaymentKind.POOL


def repayment_pool(payments: Sequence[Payment]) -> float:
    return non_negative(sum(p.amount for p in payments if is_pool_payment(p)))


def allocate_with_remainder(
    invoices: Sequence[Invoice],
    payments: Sequence[Payment],
    trust_paid_marker: bool = False,
) -> Tuple[List[Invoice], float]:
    """
    Allocate payments against invoices and report pool money left over.

    Algorithm:
    1. total = 0 for waived invoices, else amount
    2. Direct pass: successful payments linked to an existing invoice, in input
       order, each adding min(remaining, amount) to that invoice
    3. Pool pass: successful undesignated repayments are summed into one pool and
       drained into invoices oldest-created first (stable on input order)
    4. balance_due = max(0, total - covered)

    With trust_paid_marker, an invoice the backend already marked Paid counts as
    fully covered before either pass, so no payment is spent on it.

    Inputs are not mutated; new Invoice values are returned in input order.
    """
    totals = [inv.total for inv in invoices]
    covered = [0.0] * len(invoices)

    if trust_paid_marker:
        for idx, inv in enumerate(invoices):
            if inv.explicit_status == InvoiceStatus.PAID:
                covered[idx] = totals[idx]

    # First occurrence wins when the backend repeats an id
    index_by_id: Dict[str, int] = {}
    for idx, inv in enumerate(invoices):
        index_by_id.setdefault(inv.id, idx)

    # 1) Direct pass
    for payment in payments:
        if not payment.is_successful or payment.invoice_id is None:
            continue
        idx = index_by_id.get(payment.invoice_id)
        if idx is None:
            continue
        remaining = non_negative(totals[idx] - covered[idx])
        covered[idx] += min(remaining, payment.amount)

    # 2) Pool pass, oldest debt first
    pool = repayment_pool(payments)
    ordered = sorted(range(len(invoices)), key=lambda i: invoices[i].created_at)
    for idx in ordered:
        if pool <= 0:
            break
        remaining = non_negative(totals[idx] - covered[idx])
        if remaining <= 0:
            continue
        applied = min(remaining, pool)
        covered[idx] += applied
        pool = non_negative(pool - applied)

    allocated = []
    for idx, inv in enumerate(invoices):
        inv_covered = min(totals[idx], covered[idx])
        allocated.append(
            replace(
                inv,
                covered=inv_covered,
                balance_due=non_negative(totals[idx] - inv_covered),
            )
        )
    return allocated, pool


def allocate(
    invoices: Sequence[Invoice],
    payments: Sequence[Payment],
    trust_paid_marker: bool = False,
) -> List[Invoice]:
    """Return invoices annotated with covered and balance_due"""
    allocated, _ = allocate_with_remainder(invoices, payments, trust_paid_marker=trust_paid_marker)
    return allocated

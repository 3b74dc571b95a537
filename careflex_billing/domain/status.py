"""Status derivation - recompute each invoice's lifecycle state from its balance"""

from dataclasses import replace
from datetime import datetime
from typing import List, Optional, Sequence

from careflex_billing.domain.models import Invoice, InvoiceStatus
from careflex_billing.utils.date_utils import utc_now


def derive_status(invoice: Invoice, now: datetime) -> InvoiceStatus:
    """
    Map an allocated invoice to Waived, Paid, Overdue or Unpaid.

    - Waived upstream stays Waived regardless of balance
    - Nothing left to pay is Paid
    - A balance past its due date is Overdue
    - Otherwise Unpaid

    Pending approval is never produced here; it only survives as explicit_status.
    """
    if invoice.explicit_status == InvoiceStatus.WAIVED:
        return InvoiceStatus.WAIVED

    balance_due = invoice.balance_due
    if balance_due is None:
        balance_due = max(0.0, invoice.total - invoice.covered)

    if balance_due <= 0:
        return InvoiceStatus.PAID
    if invoice.due_at < now:
        return InvoiceStatus.OVERDUE
    return InvoiceStatus.UNPAID


def annotate_statuses(invoices: Sequence[Invoice], now: Optional[datetime] = None) -> List[Invoice]:
    """Return copies of the invoices with `status` filled in"""
    now = now or utc_now()
    return [replace(inv, status=derive_status(inv, now)) for inv in invoices]

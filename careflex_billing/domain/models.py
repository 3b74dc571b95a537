"""Domain models - immutable dataclasses for the billing reconciliation engine"""

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import List, Optional, Tuple


class InvoiceStatus(str, Enum):
    """Invoice lifecycle state; values match the portal's display strings"""

    UNPAID = "Unpaid"
    PENDING_APPROVAL = "Pending approval"
    PAID = "Paid"
    OVERDUE = "Overdue"
    WAIVED = "Waived"


class PaymentKind(str, Enum):
    """How a payment is applied: to its own invoice, or into the repayment pool"""

    DIRECT = "direct"
    POOL = "pool"


# Terminal success statuses, compared case-insensitively
SUCCESSFUL_PAYMENT_STATUSES = frozenset(
    {
        "paid",
        "successful",
        "success",
        "completed",
        "approved",
        "succeeded",
        "settled",
        "processed",
    }
)


@dataclass(frozen=True)
class Invoice:
    """Canonical invoice; the last three fields are filled in by the engine"""

    id: str
    title: str
    amount: float
    currency: str
    created_at: datetime
    due_at: datetime
    explicit_status: InvoiceStatus
    covered: float = 0.0
    balance_due: Optional[float] = None
    status: Optional[InvoiceStatus] = None

    @property
    def total(self) -> float:
        """Amount that allocation works against (0 for waived invoices)"""
        if self.explicit_status == InvoiceStatus.WAIVED:
            return 0.0
        return self.amount


@dataclass(frozen=True)
class Payment:
    """Canonical payment record"""

    id: str
    invoice_id: Optional[str]
    amount: float
    status: str
    kind: PaymentKind
    created_at: datetime
    method: Optional[str] = None
    title: Optional[str] = None
    currency: Optional[str] = None
    reference: Optional[str] = None

    @property
    def is_successful(self) -> bool:
        return self.status.strip().lower() in SUCCESSFUL_PAYMENT_STATUSES


@dataclass(frozen=True)
class LineItem:
    """Single billed line on an invoice"""

    description: str
    qty: float
    unit_price: float
    amount: float
    code: Optional[str] = None


@dataclass(frozen=True)
class InvoiceDetails:
    """Full invoice view with line items, as shown on the detail screen"""

    id: str
    invoice_no: str
    status: InvoiceStatus
    currency: str
    issued_at: datetime
    due_at: datetime
    paid_at: Optional[datetime]
    items: Tuple[LineItem, ...]
    subtotal: float
    tax: float
    total: float
    patient_name: Optional[str] = None
    facility: Optional[str] = None
    covered_amount: Optional[float] = None
    balance_due: Optional[float] = None


@dataclass(frozen=True)
class Aggregates:
    """Portfolio-level totals"""

    total_outstanding: float
    total_overdue: float
    total_paid: float
    available_credit: float
    credit_limit: float


@dataclass(frozen=True)
class Reconciliation:
    """Output of one full pipeline run over a snapshot"""

    invoices: List[Invoice]
    payments: List[Payment]
    aggregates: Aggregates
    has_overdue: bool
    unallocated_pool: float
    next_due_invoice: Optional[Invoice] = None
    last_payment: Optional[Payment] = None
    generated_at: Optional[datetime] = None

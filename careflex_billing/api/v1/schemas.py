"""Pydantic schemas for API request/response validation"""

from datetime import datetime
from typing import Any, List, Optional

from pydantic import BaseModel, Field


class ReconcileRequest(BaseModel):
    """Request body for POST /v1/billing/reconcile; records are accepted in any shape"""

    invoices: List[Any] = Field(default_factory=list, description="Raw invoice records")
    payments: List[Any] = Field(default_factory=list, description="Raw payment records")
    credit_limit: Optional[Any] = Field(None, description="CareFlex credit limit; default used if absent")
    eligibility_score: Optional[float] = Field(None, ge=0, le=999)
    now: Optional[datetime] = Field(None, description="Reference time for overdue checks")


class InvoiceSchema(BaseModel):
    """Reconciled invoice"""

    id: str
    title: str
    amount: float
    currency: str
    created_at: datetime
    due_at: datetime
    explicit_status: str
    covered: float
    balance_due: float
    status: str


class PaymentSchema(BaseModel):
    """Normalized payment"""

    id: str
    invoice_id: Optional[str] = None
    amount: float
    status: str
    kind: str
    created_at: datetime
    method: Optional[str] = None
    title: Optional[str] = None
    currency: Optional[str] = None
    reference: Optional[str] = None


class AggregatesSchema(BaseModel):
    """Portfolio totals"""

    total_outstanding: float
    total_overdue: float
    total_paid: float
    available_credit: float
    credit_limit: float


class ReconcileResponse(BaseModel):
    """Response for both reconcile and overview endpoints"""

    invoices: List[InvoiceSchema]
    aggregates: AggregatesSchema
    has_overdue: bool
    unallocated_pool: float
    careflex_eligible: bool
    next_due_invoice_id: Optional[str] = None
    days_until_next_due: Optional[int] = None
    last_payment: Optional[PaymentSchema] = None
    generated_at: datetime

"""Billing endpoints - reconcile a caller-supplied snapshot or the patient's live one"""

import logging
import time
from datetime import datetime
from typing import Any, Sequence

from fastapi import APIRouter, Depends, HTTPException, Request

from careflex_billing.api.dependencies import get_bearer_token, get_request_id, get_upstream_client
from careflex_billing.api.v1.schemas import (
    AggregatesSchema,
    InvoiceSchema,
    PaymentSchema,
    ReconcileRequest,
    ReconcileResponse,
)
from careflex_billing.config import settings
from careflex_billing.domain.exceptions import InvalidSnapshotError, UpstreamAPIError
from careflex_billing.domain.models import Invoice, Payment, Reconciliation
from careflex_billing.domain.reconciliation import (
    DEFAULT_ELIGIBILITY_SCORE,
    is_careflex_eligible,
    reconcile,
    resolve_credit_limit,
    resolve_eligibility_score,
)
from careflex_billing.infrastructure.clients.upstream import UpstreamClient
from careflex_billing.infrastructure.observability.logging import log_reconciliation
from careflex_billing.infrastructure.observability.metrics import (
    record_reconciliation,
    upstream_fetch_failures_counter,
)
from careflex_billing.utils.date_utils import days_between

router = APIRouter()


def _run(raw_invoices: Sequence[Any], raw_payments: Sequence[Any], credit_limit: Any, now: datetime | None) -> Reconciliation:
    return reconcile(
        raw_invoices,
        raw_payments,
        credit_limit=credit_limit,
        now=now,
        default_credit_limit=settings.default_credit_limit,
        default_currency=settings.default_currency,
        infer_payment_kind=settings.infer_payment_kind,
        repayment_keywords=settings.repayment_keywords,
        total_paid_source=settings.total_paid_source,
        paid_marker_policy=settings.paid_marker_policy,
    )


def _invoice_schema(inv: Invoice) -> InvoiceSchema:
    return InvoiceSchema(
        id=inv.id,
        title=inv.title,
        amount=inv.amount,
        currency=inv.currency,
        created_at=inv.created_at,
        due_at=inv.due_at,
        explicit_status=inv.explicit_status.value,
        covered=inv.covered,
        balance_due=inv.balance_due or 0.0,
        status=inv.status.value if inv.status else inv.explicit_status.value,
    )


def _payment_schema(payment: Payment) -> PaymentSchema:
    return PaymentSchema(
        id=payment.id,
        invoice_id=payment.invoice_id,
        amount=payment.amount,
        status=payment.status,
        kind=payment.kind.value,
        created_at=payment.created_at,
        method=payment.method,
        title=payment.title,
        currency=payment.currency,
        reference=payment.reference,
    )


def to_response(result: Reconciliation, eligibility_score: float) -> ReconcileResponse:
    """Map a Reconciliation onto the wire schema"""
    next_due = result.next_due_invoice
    days_until_due = None
    if next_due is not None and result.generated_at is not None:
        days_until_due = days_between(result.generated_at, next_due.due_at)

    agg = result.aggregates
    return ReconcileResponse(
        invoices=[_invoice_schema(inv) for inv in result.invoices],
        aggregates=AggregatesSchema(
            total_outstanding=agg.total_outstanding,
            total_overdue=agg.total_overdue,
            total_paid=agg.total_paid,
            available_credit=agg.available_credit,
            credit_limit=agg.credit_limit,
        ),
        has_overdue=result.has_overdue,
        unallocated_pool=result.unallocated_pool,
        careflex_eligible=is_careflex_eligible(
            eligibility_score,
            result.invoices,
            min_score=settings.eligibility_min_score,
        ),
        next_due_invoice_id=next_due.id if next_due else None,
        days_until_next_due=days_until_due,
        last_payment=_payment_schema(result.last_payment) if result.last_payment else None,
        generated_at=result.generated_at,
    )


@router.post("/billing/reconcile", response_model=ReconcileResponse)
def reconcile_snapshot(request_body: ReconcileRequest, request: Request):
    """
    Reconcile a snapshot supplied by the caller.

    Records may arrive in any backend shape; malformed ones are normalized to
    safe defaults rather than rejected.
    """
    start_time = time.time()
    request_id = get_request_id(request)
    request.state.reconciliation_source = "request"

    result = _run(request_body.invoices, request_body.payments, request_body.credit_limit, request_body.now)
    score = request_body.eligibility_score
    if score is None:
        score = DEFAULT_ELIGIBILITY_SCORE

    record_reconciliation(result, source="request")
    duration_ms = (time.time() - start_time) * 1000
    log_reconciliation(
        request_id,
        len(result.invoices),
        len(result.payments),
        result.aggregates.total_outstanding,
        result.has_overdue,
        duration_ms,
    )
    return to_response(result, score)


@router.get("/billing/overview", response_model=ReconcileResponse)
async def billing_overview(
    request: Request,
    token: str = Depends(get_bearer_token),
    upstream: UpstreamClient = Depends(get_upstream_client),
):
    """
    Fetch the signed-in patient's dashboard from the backend and reconcile it.

    Flow:
    1. Fetch the dashboard snapshot with the caller's bearer token
    2. Resolve credit limit and eligibility score from the account
    3. Run the full reconciliation pipeline
    """
    start_time = time.time()
    request_id = get_request_id(request)
    request.state.reconciliation_source = "upstream"

    try:
        snapshot = await upstream.get_billing_snapshot(token)

    except UpstreamAPIError as e:
        upstream_fetch_failures_counter.inc()
        logging.error(f"Upstream error: {e}", extra={"request_id": request_id})
        raise HTTPException(status_code=503, detail="Patient backend unavailable")

    except InvalidSnapshotError as e:
        logging.warning(f"Invalid snapshot: {e}", extra={"request_id": request_id})
        raise HTTPException(status_code=422, detail=str(e))

    credit_limit = resolve_credit_limit(
        snapshot.account,
        snapshot.profile,
        default=settings.default_credit_limit,
    )
    result = _run(snapshot.invoices, snapshot.payments, credit_limit, None)

    record_reconciliation(result, source="upstream")
    duration_ms = (time.time() - start_time) * 1000
    log_reconciliation(
        request_id,
        len(result.invoices),
        len(result.payments),
        result.aggregates.total_outstanding,
        result.has_overdue,
        duration_ms,
    )
    return to_response(result, resolve_eligibility_score(snapshot.account))

"""Billing reconciliation pipeline: raw -> normalized -> allocated -> status-annotated -> aggregated"""

import math
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, List, Optional, Sequence

from careflex_billing.domain.aggregates import OUTSTANDING_STATUSES, summarize
from careflex_billing.domain.allocation import allocate_with_remainder
from careflex_billing.domain.exceptions import InvalidSnapshotError
from careflex_billing.domain.models import Invoice, InvoiceStatus, Payment, Reconciliation
from careflex_billing.domain.normalization import (
    DEFAULT_REPAYMENT_KEYWORDS,
    normalize_invoices,
    normalize_payments,
)
from careflex_billing.domain.status import annotate_statuses
from careflex_billing.utils.date_utils import parse_timestamp, utc_now
from careflex_billing.utils.numeric import num_from_any

DEFAULT_CREDIT_LIMIT = 5000.0
DEFAULT_ELIGIBILITY_SCORE = 720
ELIGIBILITY_MIN_SCORE = 700

SNAPSHOT_INVOICE_PATHS = (
    ("invoices",),
    ("invoice",),
    ("billing", "invoices"),
    ("billing", "invoice"),
    ("billingInvoices",),
)
SNAPSHOT_PAYMENT_PATHS = (("payments",), ("paymentRequests",), ("payment_requests",))
SNAPSHOT_ACCOUNT_KEYS = ("account", "patientAccount", "patient_account")
SNAPSHOT_PROFILE_KEYS = ("profile", "me", "user")
CREDIT_LIMIT_ACCOUNT_KEYS = ("creditLimit", "credit_limit")
CREDIT_LIMIT_PROFILE_KEYS = ("careflexLimit",)
CREDIT_SCORE_KEYS = ("creditScore", "credit_score")


@dataclass(frozen=True)
class BillingSnapshot:
    """Raw billing collections pulled out of a dashboard payload"""

    invoices: List[Any]
    payments: List[Any]
    account: Dict[str, Any]
    profile: Dict[str, Any]


def _dig(payload: Dict[str, Any], path: Sequence[str]) -> Any:
    node: Any = payload
    for key in path:
        if not isinstance(node, dict):
            return None
        node = node.get(key)
    return node


def _first_list(payload: Dict[str, Any], paths: Sequence[Sequence[str]]) -> Optional[List[Any]]:
    for path in paths:
        found = _dig(payload, path)
        if isinstance(found, list):
            return found
    return None


def _first_dict(payload: Dict[str, Any], keys: Sequence[str]) -> Dict[str, Any]:
    for key in keys:
        if isinstance(payload.get(key), dict):
            return payload[key]
    return {}


def extract_snapshot(payload: Any) -> BillingSnapshot:
    """
    Pull invoices, payments, account and profile out of a dashboard payload.

    Unwraps a {"data": ...} envelope. Missing collections become empty lists.

    Raises:
        InvalidSnapshotError: payload is not an object, or has neither invoices nor payments
    """
    if isinstance(payload, dict) and isinstance(payload.get("data"), dict):
        payload = payload["data"]
    if not isinstance(payload, dict):
        raise InvalidSnapshotError(f"Dashboard payload must be an object, got {type(payload).__name__}")

    invoices = _first_list(payload, SNAPSHOT_INVOICE_PATHS)
    payments = _first_list(payload, SNAPSHOT_PAYMENT_PATHS)
    if invoices is None and payments is None:
        raise InvalidSnapshotError("Dashboard payload has no invoices or payments")

    return BillingSnapshot(
        invoices=invoices or [],
        payments=payments or [],
        account=_first_dict(payload, SNAPSHOT_ACCOUNT_KEYS),
        profile=_first_dict(payload, SNAPSHOT_PROFILE_KEYS),
    )


def _first_positive_number(record: Dict[str, Any], keys: Sequence[str]) -> Optional[float]:
    for key in keys:
        n = num_from_any(record.get(key))
        if math.isfinite(n) and n > 0:
            return n
    return None


def resolve_credit_limit(
    account: Optional[Dict[str, Any]] = None,
    profile: Optional[Dict[str, Any]] = None,
    default: float = DEFAULT_CREDIT_LIMIT,
) -> float:
    """Account limit, then the profile's CareFlex limit, then the default"""
    found = _first_positive_number(account or {}, CREDIT_LIMIT_ACCOUNT_KEYS)
    if found is None:
        found = _first_positive_number(profile or {}, CREDIT_LIMIT_PROFILE_KEYS)
    return found if found is not None else default


def coerce_credit_limit(value: Any, default: float = DEFAULT_CREDIT_LIMIT) -> float:
    """Caller-supplied limit; absent or non-positive falls back to the default"""
    n = num_from_any(value)
    return n if math.isfinite(n) and n > 0 else default


def resolve_eligibility_score(account: Optional[Dict[str, Any]] = None) -> float:
    n = _first_positive_number(account or {}, CREDIT_SCORE_KEYS)
    return n if n is not None else DEFAULT_ELIGIBILITY_SCORE


def is_careflex_eligible(
    eligibility_score: float,
    invoices: Sequence[Invoice],
    min_score: float = ELIGIBILITY_MIN_SCORE,
) -> bool:
    """Eligible with a high enough score and nothing overdue"""
    has_overdue = any(inv.status == InvoiceStatus.OVERDUE for inv in invoices)
    return eligibility_score >= min_score and not has_overdue


def next_due_invoice(invoices: Sequence[Invoice]) -> Optional[Invoice]:
    """Outstanding invoice with the earliest due date"""
    outstanding = [inv for inv in invoices if inv.status in OUTSTANDING_STATUSES]
    if not outstanding:
        return None
    return min(outstanding, key=lambda inv: inv.due_at)


def last_successful_payment(payments: Sequence[Payment]) -> Optional[Payment]:
    successful = [p for p in payments if p.is_successful]
    if not successful:
        return None
    return max(successful, key=lambda p: p.created_at)


def reconcile_normalized(
    invoices: Sequence[Invoice],
    payments: Sequence[Payment],
    credit_limit: float = DEFAULT_CREDIT_LIMIT,
    now: Optional[datetime] = None,
    total_paid_source: str = "auto",
    trust_paid_marker: bool = False,
) -> Reconciliation:
    """Run allocation, status derivation and aggregation over canonical records"""
    now = parse_timestamp(now) or utc_now()

    allocated, leftover = allocate_with_remainder(invoices, payments, trust_paid_marker=trust_paid_marker)
    annotated = annotate_statuses(allocated, now)
    aggregates = summarize(
        annotated,
        payments,
        credit_limit=credit_limit,
        total_paid_source=total_paid_source,
    )

    return Reconciliation(
        invoices=annotated,
        payments=list(payments),
        aggregates=aggregates,
        has_overdue=any(inv.status == InvoiceStatus.OVERDUE for inv in annotated),
        unallocated_pool=leftover,
        next_due_invoice=next_due_invoice(annotated),
        last_payment=last_successful_payment(payments),
        generated_at=now,
    )


def reconcile(
    raw_invoices: Sequence[Any],
    raw_payments: Sequence[Any],
    credit_limit: Any = None,
    now: Optional[datetime] = None,
    default_credit_limit: float = DEFAULT_CREDIT_LIMIT,
    default_currency: str = "GBP",
    infer_payment_kind: bool = True,
    repayment_keywords: Sequence[str] = DEFAULT_REPAYMENT_KEYWORDS,
    total_paid_source: str = "auto",
    paid_marker_policy: str = "recompute",
) -> Reconciliation:
    """
    Main entry point: full recomputation from a raw snapshot.

    Every call starts from scratch; nothing is carried over between calls and
    the inputs are never modified.
    """
    if paid_marker_policy not in ("recompute", "trust"):
        raise ValueError(f"Unknown paid marker policy: {paid_marker_policy}")

    now = parse_timestamp(now) or utc_now()
    invoices = normalize_invoices(raw_invoices, now=now, default_currency=default_currency)
    payments = normalize_payments(
        raw_payments,
        now=now,
        infer_kind=infer_payment_kind,
        repayment_keywords=repayment_keywords,
    )

    return reconcile_normalized(
        invoices,
        payments,
        credit_limit=coerce_credit_limit(credit_limit, default=default_credit_limit),
        now=now,
        total_paid_source=total_paid_source,
        trust_paid_marker=paid_marker_policy == "trust",
    )

"""Record normalization - turn loosely-shaped backend records into canonical ones"""

import logging
import math
from datetime import datetime
from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence, Tuple

from careflex_billing.domain.models import (
    Invoice,
    InvoiceDetails,
    InvoiceStatus,
    LineItem,
    Payment,
    PaymentKind,
)
from careflex_billing.utils.date_utils import parse_timestamp, utc_now
from careflex_billing.utils.identifiers import coerce_id, generate_id
from careflex_billing.utils.numeric import non_negative, num_from_any, positive_or_nan

# Candidate field names per logical field, in priority order
ID_FIELDS = ("_id", "id")
INVOICE_TITLE_FIELDS = ("title", "invoiceNo", "invoice_no", "number")
INVOICE_AMOUNT_FIELDS = (
    "total",
    "grandTotal",
    "grand_total",
    "amountTotal",
    "amount_total",
    "totalAmount",
    "total_amount",
    "amount",
    "subtotal",
    "subTotal",
    "sub_total",
    "subtotalAmount",
    "subtotal_amount",
)
LINE_ITEMS_FIELDS = ("items", "lineItems", "lines")
LINE_QTY_FIELDS = ("qty", "quantity", "count")
LINE_AMOUNT_FIELDS = ("amount", "total", "lineTotal", "line_total")
LINE_UNIT_PRICE_FIELDS = ("unitPrice", "unit_price", "price", "rate")
LINE_DESCRIPTION_FIELDS = ("description", "name", "title")
TAX_FIELDS = ("tax", "vat")
SUBTOTAL_FIELDS = ("subtotal", "subTotal", "sub_total")
DETAIL_TOTAL_FIELDS = ("total", "grandTotal", "grand_total", "amount")
INVOICE_CREATED_FIELDS = ("createdISO", "issuedAt", "issued_at", "createdAt", "created_at")
INVOICE_DUE_FIELDS = ("dueDate", "due_date", "dueISO", "dueAt", "due_at")
PAID_AT_FIELDS = ("paidAt", "paid_at", "paidISO", "paid_iso")
CURRENCY_FIELDS = ("currency", "curr")

PAYMENT_INVOICE_ID_FIELDS = ("invoiceId", "invoice_id")
PAYMENT_AMOUNT_FIELDS = ("amount", "amountTotal", "total")
PAYMENT_REFERENCE_FIELDS = ("reference", "requestRef", "ref")
PAYMENT_TITLE_FIELDS = ("title", "adminNote", "description")
PAYMENT_CREATED_FIELDS = ("createdAt", "createdISO", "created_at")
PAYMENT_KIND_FIELDS = ("kind", "paymentKind", "payment_kind", "type", "category")

DEFAULT_INVOICE_TITLE = "Hospital invoice"
DEFAULT_REPAYMENT_KEYWORDS = ("careflex", "repay")
PAYMENT_TITLE_MAX_LENGTH = 64

_KIND_ALIASES = {
    "direct": PaymentKind.DIRECT,
    "invoice": PaymentKind.DIRECT,
    "invoice_payment": PaymentKind.DIRECT,
    "pool": PaymentKind.POOL,
    "repayment": PaymentKind.POOL,
    "careflex_repayment": PaymentKind.POOL,
}


def _as_record(raw: Any) -> Dict[str, Any]:
    return raw if isinstance(raw, dict) else {}


def first_value(
    record: Dict[str, Any],
    fields: Sequence[str],
    parse: Callable[[Any], Any],
    accept: Callable[[Any], bool],
) -> Any:
    """
    Walk candidate fields in order and return the first parsed value that
    passes `accept`. Returns None when no candidate qualifies.
    """
    for name in fields:
        if name not in record:
            continue
        parsed = parse(record[name])
        if accept(parsed):
            return parsed
    return None


def _first_positive(record: Dict[str, Any], fields: Sequence[str]) -> Optional[float]:
    return first_value(record, fields, positive_or_nan, math.isfinite)


def _first_finite(record: Dict[str, Any], fields: Sequence[str]) -> Optional[float]:
    return first_value(record, fields, num_from_any, math.isfinite)


def _first_timestamp(record: Dict[str, Any], fields: Sequence[str]) -> Optional[datetime]:
    return first_value(record, fields, parse_timestamp, lambda v: v is not None)


def _first_text(record: Dict[str, Any], fields: Sequence[str]) -> Optional[str]:
    def _text(value: Any) -> Optional[str]:
        if value is None or isinstance(value, (dict, list)):
            return None
        text = str(value).strip()
        return text or None

    return first_value(record, fields, _text, lambda v: v is not None)


def _first_id(record: Dict[str, Any], fields: Sequence[str]) -> Optional[str]:
    return first_value(record, fields, coerce_id, lambda v: v is not None)


def _line_items(record: Dict[str, Any]) -> Optional[List[Any]]:
    for name in LINE_ITEMS_FIELDS:
        if isinstance(record.get(name), list):
            return record[name]
    return None


def _line_quantity(item: Dict[str, Any]) -> float:
    qty = _first_positive(item, LINE_QTY_FIELDS)
    return qty if qty is not None else 1.0


def _tax(record: Dict[str, Any]) -> float:
    tax = _first_positive(record, TAX_FIELDS)
    return tax if tax is not None else 0.0


def line_items_total(record: Dict[str, Any]) -> float:
    """
    Sum an invoice's line items: explicit line amount, else unit price x qty
    (qty defaults to 1). Tax/VAT is added on top. Returns 0 when nothing sums.
    """
    items = _line_items(record)
    if not items:
        return 0.0

    items_total = 0.0
    for raw_item in items:
        item = _as_record(raw_item)
        line_amount = _first_positive(item, LINE_AMOUNT_FIELDS)
        if line_amount is not None:
            items_total += line_amount
            continue
        unit_price = _first_positive(item, LINE_UNIT_PRICE_FIELDS)
        if unit_price is not None:
            items_total += unit_price * _line_quantity(item)

    computed = items_total + _tax(record)
    return computed if math.isfinite(computed) and computed > 0 else 0.0


def resolve_invoice_amount(record: Dict[str, Any]) -> float:
    """Top-level total candidates first, then the line-item sum, then 0"""
    amount = _first_positive(record, INVOICE_AMOUNT_FIELDS)
    if amount is not None:
        return amount
    return line_items_total(record)


def map_invoice_status(value: Any) -> InvoiceStatus:
    text = str(value if value is not None else "").strip().lower()
    if text == "paid":
        return InvoiceStatus.PAID
    if text in ("void", "waived"):
        return InvoiceStatus.WAIVED
    if text == "overdue":
        return InvoiceStatus.OVERDUE
    if text in ("pending", "pending approval", "pending_approval"):
        return InvoiceStatus.PENDING_APPROVAL
    return InvoiceStatus.UNPAID


def _has_paid_marker(record: Dict[str, Any]) -> bool:
    if record.get("paid") is True:
        return True
    return any(record.get(name) for name in PAID_AT_FIELDS)


def resolve_invoice_status(record: Dict[str, Any]) -> InvoiceStatus:
    # A paid flag or paid timestamp beats the textual status
    if _has_paid_marker(record):
        return InvoiceStatus.PAID
    return map_invoice_status(record.get("status"))


def _currency(record: Dict[str, Any], default_currency: str) -> str:
    currency = _first_text(record, CURRENCY_FIELDS)
    return (currency or default_currency).upper()


def normalize_invoice(
    raw: Any,
    now: Optional[datetime] = None,
    default_currency: str = "GBP",
    taken_ids: Iterable[str] = (),
) -> Invoice:
    """
    Build a canonical Invoice from an arbitrary backend record.

    Never raises: missing or malformed fields fall back to safe defaults
    (amount 0, created "now", due = created, status Unpaid).
    """
    record = _as_record(raw)
    now = now or utc_now()

    invoice_id = _first_id(record, ID_FIELDS)
    if invoice_id is None:
        invoice_id = generate_id(taken_ids)
        logging.debug("Generated invoice id", extra={"invoice_id": invoice_id})

    created_at = _first_timestamp(record, INVOICE_CREATED_FIELDS) or now
    due_at = _first_timestamp(record, INVOICE_DUE_FIELDS) or created_at

    return Invoice(
        id=invoice_id,
        title=_first_text(record, INVOICE_TITLE_FIELDS) or DEFAULT_INVOICE_TITLE,
        amount=resolve_invoice_amount(record),
        currency=_currency(record, default_currency),
        created_at=created_at,
        due_at=due_at,
        explicit_status=resolve_invoice_status(record),
    )


def _matches_keywords(payment_text: Tuple[Optional[str], ...], keywords: Sequence[str]) -> bool:
    haystacks = [text.lower() for text in payment_text if text]
    return any(keyword.lower() in hay for hay in haystacks for keyword in keywords)


def resolve_payment_kind(
    record: Dict[str, Any],
    invoice_id: Optional[str],
    method: Optional[str],
    title: Optional[str],
    infer_kind: bool = True,
    repayment_keywords: Sequence[str] = DEFAULT_REPAYMENT_KEYWORDS,
) -> PaymentKind:
    """
    Decide whether a payment is applied directly or pooled.

    Order:
    1. An explicit kind field with a recognised value
    2. Invoice-linked payments are direct
    3. Legacy text heuristic: "careflex"/"repay" in method or title means pool
       (fragile; only used when the backend sends no kind)
    4. Everything else is direct, and without an invoice it stays unallocated
    """
    explicit = first_value(
        record,
        PAYMENT_KIND_FIELDS,
        lambda v: _KIND_ALIASES.get(str(v).strip().lower()) if isinstance(v, str) else None,
        lambda v: v is not None,
    )
    if explicit is not None:
        return explicit
    if invoice_id is not None:
        return PaymentKind.DIRECT
    if infer_kind and _matches_keywords((method, title), repayment_keywords):
        logging.debug(
            "Payment kind inferred from text",
            extra={"method": method, "title": title, "kind": PaymentKind.POOL.value},
        )
        return PaymentKind.POOL
    return PaymentKind.DIRECT


def normalize_payment(
    raw: Any,
    now: Optional[datetime] = None,
    taken_ids: Iterable[str] = (),
    infer_kind: bool = True,
    repayment_keywords: Sequence[str] = DEFAULT_REPAYMENT_KEYWORDS,
) -> Payment:
    """Build a canonical Payment. Never raises; bad amounts become 0"""
    record = _as_record(raw)
    now = now or utc_now()

    payment_id = _first_id(record, ID_FIELDS)
    if payment_id is None:
        payment_id = generate_id(taken_ids)
        logging.debug("Generated payment id", extra={"payment_id": payment_id})

    invoice_id = _first_id(record, PAYMENT_INVOICE_ID_FIELDS)
    amount = _first_finite(record, PAYMENT_AMOUNT_FIELDS)
    method = _first_text(record, ("method",))
    title = _first_text(record, PAYMENT_TITLE_FIELDS)
    if title is not None:
        title = title[:PAYMENT_TITLE_MAX_LENGTH]
    currency = _first_text(record, CURRENCY_FIELDS)

    return Payment(
        id=payment_id,
        invoice_id=invoice_id,
        amount=non_negative(amount) if amount is not None else 0.0,
        status=_first_text(record, ("status",)) or "unknown",
        kind=resolve_payment_kind(
            record,
            invoice_id,
            method,
            title,
            infer_kind=infer_kind,
            repayment_keywords=repayment_keywords,
        ),
        created_at=_first_timestamp(record, PAYMENT_CREATED_FIELDS) or now,
        method=method,
        title=title,
        currency=currency.upper() if currency else None,
        reference=_first_text(record, PAYMENT_REFERENCE_FIELDS),
    )


def _real_ids(records: List[Dict[str, Any]]) -> set:
    return {rid for rid in (_first_id(r, ID_FIELDS) for r in records) if rid is not None}


def normalize_invoices(
    raws: Iterable[Any],
    now: Optional[datetime] = None,
    default_currency: str = "GBP",
) -> List[Invoice]:
    """Normalize a batch; generated ids never collide with ids in the batch"""
    records = [_as_record(r) for r in raws]
    now = now or utc_now()
    taken = _real_ids(records)
    invoices = []
    for record in records:
        invoice = normalize_invoice(record, now=now, default_currency=default_currency, taken_ids=taken)
        taken.add(invoice.id)
        invoices.append(invoice)
    return invoices


def normalize_payments(
    raws: Iterable[Any],
    now: Optional[datetime] = None,
    infer_kind: bool = True,
    repayment_keywords: Sequence[str] = DEFAULT_REPAYMENT_KEYWORDS,
) -> List[Payment]:
    """Normalize a batch of payments with the same id guarantee as invoices"""
    records = [_as_record(r) for r in raws]
    now = now or utc_now()
    taken = _real_ids(records)
    payments = []
    for record in records:
        payment = normalize_payment(
            record,
            now=now,
            taken_ids=taken,
            infer_kind=infer_kind,
            repayment_keywords=repayment_keywords,
        )
        taken.add(payment.id)
        payments.append(payment)
    return payments


def _normalize_line_item(raw: Any) -> LineItem:
    item = _as_record(raw)
    qty = _line_quantity(item)
    unit_price = _first_finite(item, LINE_UNIT_PRICE_FIELDS)
    unit_price = unit_price if unit_price is not None else 0.0
    amount = _first_positive(item, LINE_AMOUNT_FIELDS)
    return LineItem(
        code=_first_text(item, ("code",)),
        description=_first_text(item, LINE_DESCRIPTION_FIELDS) or "Item",
        qty=qty,
        unit_price=unit_price,
        amount=amount if amount is not None else unit_price * qty,
    )


def _unwrap_invoice(raw: Any) -> Dict[str, Any]:
    record = _as_record(raw)
    data = _as_record(record.get("data"))
    for candidate in (record.get("invoice"), data.get("invoice"), record.get("data")):
        if isinstance(candidate, dict):
            return candidate
    return record


def normalize_invoice_details(
    raw: Any,
    now: Optional[datetime] = None,
    default_currency: str = "GBP",
) -> InvoiceDetails:
    """
    Normalize a single-invoice detail payload (possibly wrapped in
    {"invoice": ...} or {"data": ...}) including its line items.

    Subtotal falls back to the item sum, total to subtotal + tax.
    An unpaid invoice past its due date is shown as Overdue.
    """
    record = _unwrap_invoice(raw)
    now = now or utc_now()

    issued_at = _first_timestamp(record, INVOICE_CREATED_FIELDS) or now
    due_at = _first_timestamp(record, INVOICE_DUE_FIELDS) or issued_at
    paid_at = _first_timestamp(record, PAID_AT_FIELDS)

    status = InvoiceStatus.PAID if (record.get("paid") is True or paid_at) else map_invoice_status(record.get("status"))
    if status in (InvoiceStatus.UNPAID, InvoiceStatus.PENDING_APPROVAL) and due_at < now:
        status = InvoiceStatus.OVERDUE

    items = tuple(_normalize_line_item(it) for it in (_line_items(record) or []))
    items_sum = sum(it.amount for it in items)

    subtotal = _first_finite(record, SUBTOTAL_FIELDS)
    subtotal = subtotal if subtotal is not None else items_sum
    tax = _first_finite(record, TAX_FIELDS)
    tax = tax if tax is not None else 0.0
    total = _first_finite(record, DETAIL_TOTAL_FIELDS)
    total = total if total is not None else subtotal + tax

    covered = _first_finite(record, ("coveredAmount", "covered_amount"))
    balance = _first_finite(record, ("balanceDue", "balance_due"))
    if balance is None and covered is not None:
        balance = non_negative(total - covered)

    patient = _as_record(record.get("patient"))
    patient_name = _first_text(record, ("patientName", "patient_full_name")) or _first_text(
        patient, ("fullName", "name")
    )

    invoice_id = _first_id(record, ID_FIELDS + ("invoiceId", "invoice_id"))
    invoice_no = _first_text(record, ("invoiceNo", "invoice_no", "number", "title")) or "Invoice"

    return InvoiceDetails(
        id=invoice_id or invoice_no,
        invoice_no=invoice_no,
        status=status,
        currency=_currency(record, default_currency),
        issued_at=issued_at,
        due_at=due_at,
        paid_at=paid_at,
        items=items,
        subtotal=subtotal,
        tax=tax,
        total=total,
        patient_name=patient_name,
        facility=_first_text(record, ("facility", "hospital", "clinic", "facilityName")),
        covered_amount=covered,
        balance_due=balance,
    )

"""Prometheus metrics for reconciliation outcomes and upstream health"""

from prometheus_client import Counter, Histogram

from careflex_billing.domain.models import Reconciliation

# Reconciliation metrics
reconciliation_counter = Counter(
    "careflex_reconciliation_total",
    "Total billing reconciliations run",
    ["source"],  # request | upstream
)

invoice_status_counter = Counter(
    "careflex_invoice_status_total",
    "Reconciled invoices by derived status",
    ["status"],
)

unallocated_pool_histogram = Histogram(
    "careflex_unallocated_pool_amount",
    "Repayment pool money left after allocating to all open invoices",
    buckets=[0, 1, 10, 50, 100, 500, 1000, 5000],
)

# Upstream metrics
upstream_fetch_failures_counter = Counter(
    "upstream_fetch_failures_total",
    "Failed patient backend calls",
)

upstream_latency_histogram = Histogram(
    "upstream_latency_seconds",
    "Patient backend response time",
    buckets=[0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0],
)

# Service health
request_duration_histogram = Histogram(
    "http_request_duration_seconds",
    "HTTP request latency",
    ["method", "endpoint", "status", "source"],
)


def record_reconciliation(result: Reconciliation, source: str) -> None:
    """Record per-status invoice counts and leftover pool money"""
    reconciliation_counter.labels(source=source).inc()
    for invoice in result.invoices:
        status = invoice.status.value if invoice.status else "unknown"
        invoice_status_counter.labels(status=status).inc()
    unallocated_pool_histogram.observe(result.unallocated_pool)

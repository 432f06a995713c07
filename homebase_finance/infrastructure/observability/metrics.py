"""Prometheus metrics for fee revenue, payouts, referral credits and ledger health"""

from prometheus_client import Counter, Histogram

# Revenue metrics
payments_recorded_counter = Counter(
    "homebase_payments_recorded_total",
    "Completed client payments recorded",
    ["tier"],
)

platform_fee_cents_counter = Counter(
    "homebase_platform_fee_cents_total",
    "Platform transaction fees computed, in cents",
    ["tier"],
)

payments_refunded_counter = Counter(
    "homebase_payments_refunded_total",
    "Client payments refunded, by the tier whose fee was given up",
    ["tier"],
)

refunded_fee_cents_counter = Counter(
    "homebase_refunded_fee_cents_total",
    "Platform fees given up on refunded payments, in cents",
    ["tier"],
)

duplicate_events_counter = Counter(
    "homebase_duplicate_events_total",
    "Re-delivered processor events ignored",
    ["kind"],  # payment | refund | credit
)

# Payout metrics
payout_requests_counter = Counter(
    "homebase_payout_requests_total",
    "Payout requests by type and outcome",
    ["type", "outcome"],  # outcome: requested | failed | unavailable | replayed
)

payout_transitions_counter = Counter(
    "homebase_payout_transitions_total",
    "Processor-reported payout status changes",
    ["status"],
)

# Referral metrics
referral_credit_cents_counter = Counter(
    "homebase_referral_credit_cents_total",
    "Referral credit movements, in cents",
    ["action"],  # issued | redeemed | expired
)

# Processor / alert metrics
processor_failures_counter = Counter(
    "processor_failures_total",
    "Failed payment processor calls",
    ["operation"],
)

processor_latency_histogram = Histogram(
    "processor_latency_seconds",
    "Payment processor response time",
    ["operation"],
    buckets=[0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0],
)

alert_failure_counter = Counter(
    "alert_webhook_failures_total",
    "Failed alert webhook deliveries",
)

integrity_violations_counter = Counter(
    "homebase_integrity_violations_total",
    "Ledger integrity violations (aborted transactions, failed consistency checks)",
    ["operation"],
)

# Service health
request_duration_histogram = Histogram(
    "http_request_duration_seconds",
    "HTTP request latency",
    ["method", "endpoint", "status"],
)


def record_payment(tier: str, fee_amount_cents: int) -> None:
    """Record fee revenue for the tier that produced it"""
    payments_recorded_counter.labels(tier=tier).inc()
    platform_fee_cents_counter.labels(tier=tier).inc(fee_amount_cents)


def record_refund(tier: str, fee_amount_cents: int) -> None:
    """Counters only grow; fees given up are tracked alongside the fees earned"""
    payments_refunded_counter.labels(tier=tier).inc()
    refunded_fee_cents_counter.labels(tier=tier).inc(fee_amount_cents)


def record_payout_request(payout_type: str, outcome: str) -> None:
    payout_requests_counter.labels(type=payout_type, outcome=outcome).inc()

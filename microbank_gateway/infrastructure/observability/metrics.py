"""Prometheus metrics for monitoring FD interest runs and HTTP latency"""

from prometheus_client import Counter, Histogram
from microbank_gateway.domain.models import AccrualResult

# Accrual run metrics
accrual_run_counter = Counter(
    "fd_interest_runs_total",
    "FD interest accrual runs",
    ["trigger", "outcome"],  # scheduled | manual ; processed | already_processed | partial_failure | nothing_credited | error
)

deposit_outcome_counter = Counter(
    "fd_interest_deposits_total",
    "Fixed deposits handled by accrual runs",
    ["status"],  # credited | failed | skipped_already_credited | skipped_no_interest
)

credited_amount_counter = Counter(
    "fd_interest_credited_amount_total",
    "Interest credited to savings accounts",
)

accrual_duration_histogram = Histogram(
    "fd_interest_run_duration_seconds",
    "Accrual run wall time",
    buckets=[0.1, 0.5, 1.0, 5.0, 15.0, 60.0, 300.0],
)

# Service health
request_duration_histogram = Histogram(
    "http_request_duration_seconds",
    "HTTP request latency",
    ["method", "endpoint", "status"],
)


def record_accrual_run(trigger: str, result: AccrualResult, duration_seconds: float) -> None:
    """Record run outcome, per-deposit outcomes and credited amount"""
    accrual_run_counter.labels(trigger=trigger, outcome=result.status.value).inc()
    accrual_duration_histogram.observe(duration_seconds)

    for deposit in result.deposits:
        deposit_outcome_counter.labels(status=deposit.outcome.value).inc()

    if result.credited:
        credited_amount_counter.inc(float(result.total_interest))


def record_accrual_error(trigger: str) -> None:
    accrual_run_counter.labels(trigger=trigger, outcome="error").inc()

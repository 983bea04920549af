"""
Prometheus-based metrics for production monitoring.
Provides /metrics endpoint for scraping.
"""
from prometheus_client import Counter, Histogram, Gauge, generate_latest, CONTENT_TYPE_LATEST
from fastapi import APIRouter, Response


# Counters
sessions_created_total = Counter(
    "sessions_created_total",
    "Total number of sessions bootstrapped",
)

payments_committed_total = Counter(
    "payments_committed_total",
    "Total number of payments committed to sessions",
    ["source"],  # webhook, verify, check
)

payments_rejected_total = Counter(
    "payments_rejected_total",
    "Total payment notifications rejected",
    ["error_code"],
)

sweep_attempts_total = Counter(
    "sweep_attempts_total",
    "Total per-session sweep attempts",
    ["outcome"],  # success, skip, fail
)

swept_lamports_total = Counter(
    "swept_lamports_total",
    "Total base units moved to the operator account",
)

sweep_runs_total = Counter(
    "sweep_runs_total",
    "Total full sweep runs by trigger and status",
    ["trigger", "status"],
)

ledger_requests_total = Counter(
    "ledger_requests_total",
    "Total ledger RPC requests",
    ["method", "status"],
)

rate_limited_total = Counter(
    "rate_limited_total",
    "Total requests rejected by the rate limiter",
)

# Histograms
sweep_run_duration_seconds = Histogram(
    "sweep_run_duration_seconds",
    "Full sweep run duration",
    buckets=[1, 5, 10, 30, 60, 120, 300],
)

ledger_request_duration_seconds = Histogram(
    "ledger_request_duration_seconds",
    "Ledger RPC request duration",
    ["method"],
    buckets=[0.1, 0.5, 1, 2, 5, 10],
)

# Gauges
sweeps_in_flight = Gauge(
    "sweeps_in_flight",
    "Sessions currently being swept",
)

sweep_scheduler_running = Gauge(
    "sweep_scheduler_running",
    "1 while a full sweep run is in progress",
)


# Metrics endpoint router
router = APIRouter()


@router.get("/metrics")
def metrics_endpoint() -> Response:
    """Prometheus metrics endpoint for scraping."""
    return Response(
        content=generate_latest(),
        media_type=CONTENT_TYPE_LATEST,
    )

"""Prometheus metrics for the correlation engine."""

from prometheus_client import Counter, Histogram, Info

# Application info
app_info = Info("product_correlation_engine", "Product correlation engine application info")
app_info.info({"version": "0.1.0", "name": "product-correlation-engine"})

# Discovery metrics
correlation_runs_total = Counter(
    "correlation_runs_total",
    "Total number of discovery requests",
    ["action", "status"],
)

correlation_run_duration_seconds = Histogram(
    "correlation_run_duration_seconds",
    "Wall-clock time of sync runs",
    buckets=[1.0, 5.0, 15.0, 30.0, 60.0, 120.0, 300.0, 900.0],
)

correlation_candidates_total = Counter(
    "correlation_candidates_total",
    "Candidates produced by discovery",
    ["kind", "outcome"],
)

# Provider metrics
keepa_requests_total = Counter(
    "keepa_requests_total",
    "Total number of Keepa API requests",
    ["endpoint", "status"],
)

keepa_request_duration_seconds = Histogram(
    "keepa_request_duration_seconds",
    "Time spent waiting on Keepa",
    ["endpoint"],
    buckets=[0.25, 0.5, 1.0, 2.0, 5.0, 10.0, 30.0],
)

# Classifier metrics
classifier_calls_total = Counter(
    "classifier_calls_total",
    "Similarity classifier outcomes",
    ["result"],
)

llm_cost_dollars_total = Counter(
    "llm_cost_dollars_total",
    "Estimated LLM spend in USD",
    ["model"],
)

# Feedback metrics
feedback_decisions_total = Counter(
    "feedback_decisions_total",
    "Feedback actions recorded",
    ["action"],
)

availability_probes_total = Counter(
    "availability_probes_total",
    "Marketplace availability probe results",
    ["marketplace", "result"],
)

prompt_regenerations_total = Counter(
    "prompt_regenerations_total",
    "Criteria profile regeneration attempts",
    ["status"],
)

# Security metrics
decryption_failures_total = Counter(
    "decryption_failures_total",
    "Stored credential decryption failures",
    ["exception_type"],
)


def record_run(action: str, success: bool, duration: float | None = None):
    """Record a discovery request."""
    status = "success" if success else "error"
    correlation_runs_total.labels(action=action, status=status).inc()
    if duration is not None:
        correlation_run_duration_seconds.observe(duration)


def record_candidates(kind: str, outcome: str, count: int = 1):
    """Record candidates of a kind with their outcome (saved, rejected)."""
    if count:
        correlation_candidates_total.labels(kind=kind, outcome=outcome).inc(count)


def record_keepa_request(endpoint: str, success: bool, duration: float):
    """Record a Keepa API call."""
    status = "success" if success else "error"
    keepa_requests_total.labels(endpoint=endpoint, status=status).inc()
    keepa_request_duration_seconds.labels(endpoint=endpoint).observe(duration)


def record_classification(result: str):
    """Record a classifier outcome: approved, declined or error."""
    classifier_calls_total.labels(result=result).inc()


def record_llm_cost(model: str, cost: float):
    """Record estimated LLM cost."""
    llm_cost_dollars_total.labels(model=model).inc(cost)


def record_feedback(action: str):
    """Record a feedback action."""
    feedback_decisions_total.labels(action=action).inc()


def record_availability_probe(marketplace: str, result: str):
    """Record one marketplace probe: available, unavailable or unknown."""
    availability_probes_total.labels(marketplace=marketplace, result=result).inc()


def record_prompt_regeneration(status: str):
    """Record a personalization attempt."""
    prompt_regenerations_total.labels(status=status).inc()


def record_decryption_failure(exception_type: str):
    """Record a failed credential decryption."""
    decryption_failures_total.labels(exception_type=exception_type).inc()

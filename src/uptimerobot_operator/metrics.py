"""Prometheus metrics for the UptimeRobot Operator."""

from prometheus_client import Counter, Histogram

# Reconciliation metrics
reconcile_total = Counter(
    "uptimerobot_operator_reconcile_total",
    "Total number of reconciliations",
    ["kind", "result"],
)

reconcile_duration_seconds = Histogram(
    "uptimerobot_operator_reconcile_duration_seconds",
    "Duration of reconciliations in seconds",
    ["kind"],
    buckets=[0.1, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0],
)

error_total = Counter(
    "uptimerobot_operator_error_total",
    "Total number of reconciliation errors",
    ["kind", "error_type"],
)

resource_status_total = Counter(
    "uptimerobot_operator_resource_status_total",
    "Resource readiness observed at the end of a reconciliation",
    ["kind", "status"],
)

# Sync protocol metrics
sync_operations_total = Counter(
    "uptimerobot_operator_sync_operations_total",
    "Sync protocol transitions",
    ["kind", "operation", "result"],
)

drift_recovered_total = Counter(
    "uptimerobot_operator_drift_recovered_total",
    "External entities recreated after out-of-band deletion or drift",
    ["kind"],
)

adoption_total = Counter(
    "uptimerobot_operator_adoption_total",
    "Adoptions of pre-existing external entities",
    ["kind", "source"],
)

# Finalizer metrics
cleanup_total = Counter(
    "uptimerobot_operator_cleanup_total",
    "Finalizer cleanup outcomes",
    ["kind", "result"],
)

# API call metrics
api_call_total = Counter(
    "uptimerobot_operator_api_call_total",
    "Total number of API calls",
    ["api_type", "operation", "result"],
)

api_call_duration_seconds = Histogram(
    "uptimerobot_operator_api_call_duration_seconds",
    "Duration of API calls in seconds",
    ["api_type", "operation"],
    buckets=[0.01, 0.05, 0.1, 0.5, 1.0, 2.5, 5.0],
)

rate_limit_hits_total = Counter(
    "uptimerobot_operator_rate_limit_hits_total",
    "Total number of rate limit hits",
    ["api_type"],
)

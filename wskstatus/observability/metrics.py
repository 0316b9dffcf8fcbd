"""Prometheus metric definitions for wskstatus self-instrumentation.

All metrics are module-level singletons registered with the default
prometheus_client registry.  Import them wherever instrumentation is needed.
"""

from prometheus_client import Counter, Gauge, Histogram, Info

# ---------------------------------------------------------------------------
# Histogram bucket definitions
# ---------------------------------------------------------------------------

FETCH_DURATION_BUCKETS = (0.05, 0.1, 0.25, 0.5, 1.0, 2.0, 5.0, 10.0, 15.0)
REFRESH_DURATION_BUCKETS = (0.1, 0.5, 1.0, 2.0, 5.0, 10.0, 30.0, 60.0, 120.0)

# ---------------------------------------------------------------------------
# Fetch metrics (one per remote page)
# ---------------------------------------------------------------------------

FETCH_CALLS_TOTAL = Counter(
    "wskstatus_fetch_calls_total",
    "Total number of activation page fetches",
    labelnames=["direction", "status"],
)

FETCH_DURATION = Histogram(
    "wskstatus_fetch_duration_seconds",
    "Duration of individual activation page fetches in seconds",
    labelnames=["direction"],
    buckets=FETCH_DURATION_BUCKETS,
)

# ---------------------------------------------------------------------------
# Store metrics
# ---------------------------------------------------------------------------

REFRESH_DURATION = Histogram(
    "wskstatus_refresh_duration_seconds",
    "Time taken by a full forward + backward refresh in seconds",
    buckets=REFRESH_DURATION_BUCKETS,
)

REFRESHES_TOTAL = Counter(
    "wskstatus_refreshes_total",
    "Total number of store refreshes",
    labelnames=["outcome"],
)

ACTIVATIONS_HELD = Gauge(
    "wskstatus_activations_held",
    "Number of activation records currently held in memory",
)

ACTIVATION_DUPLICATES = Gauge(
    "wskstatus_activation_duplicates",
    "Held activation records sharing an id with another held record",
)

# ---------------------------------------------------------------------------
# Web adapter metrics
# ---------------------------------------------------------------------------

REQUESTS_TOTAL = Counter(
    "wskstatus_requests_total",
    "Total number of web requests",
    labelnames=["endpoint", "status"],
)

APP_INFO = Info(
    "wskstatus",
    "wskstatus build information",
)

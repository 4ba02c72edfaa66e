"""Prometheus metrics shared by the app and its dependencies"""

from prometheus_client import Counter, Histogram

REQUEST_COUNT = Counter(
    "photoshare_http_requests_total",
    "Total HTTP requests",
    ["method", "path", "status"],
)
REQUEST_LATENCY = Histogram(
    "photoshare_http_request_duration_seconds",
    "HTTP request duration in seconds",
    ["method", "path"],
)
AUTH_EVENTS = Counter(
    "photoshare_auth_events_total",
    "Authentication events",
    ["event"],
)
RATE_LIMITED = Counter(
    "photoshare_rate_limited_total",
    "API key requests rejected by the rate limiter",
    ["window"],
)

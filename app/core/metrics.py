"""
Prometheus metrics, exposed at /metrics.
"""
from prometheus_client import Counter, Histogram

PROXY_REQUESTS = Counter(
    "portal_proxy_requests_total",
    "Requests forwarded to the audit backend",
    ["form", "outcome"],
)

BACKEND_LATENCY = Histogram(
    "portal_backend_request_duration_seconds",
    "Audit backend round-trip time",
    ["method"],
)

TASK_MERGES = Counter(
    "portal_task_merges_total",
    "Task cache merges by level",
    ["level"],
)

NEW_TASK_NOTIFICATIONS = Counter(
    "portal_new_task_notifications_total",
    "Notifications raised for newly polled tasks",
    ["level"],
)

"""Prometheus metric definitions for LiveClass.

Single source of truth for all custom metrics. Import from here in API and Celery code.
"""

from prometheus_client import Counter, Histogram

# --- Celery task metrics ---

celery_task_total = Counter(
    "liveclass_celery_task_total",
    "Total Celery tasks executed",
    ["task_name", "status"],
)

celery_task_duration_seconds = Histogram(
    "liveclass_celery_task_duration_seconds",
    "Celery task execution duration in seconds",
    ["task_name"],
    buckets=(0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0, 60.0, 120.0, 300.0),
)

# --- Push metrics ---

push_notifications_total = Counter(
    "liveclass_push_notifications_total",
    "Live Activity pushes by event and outcome",
    ["event", "outcome"],
)

push_fanout_duration_seconds = Histogram(
    "liveclass_push_fanout_duration_seconds",
    "Wall time of one fan-out batch",
    ["event"],
    buckets=(0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0, 60.0),
)

# --- Registry metrics ---

tokens_registered_total = Counter(
    "liveclass_tokens_registered_total",
    "Token registrations (including refreshes) by kind",
    ["kind"],
)

tokens_swept_total = Counter(
    "liveclass_tokens_swept_total",
    "Tokens removed by the expiry sweep",
)

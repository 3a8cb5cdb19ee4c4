"""Celery application configuration."""

import time

from celery import Celery
from celery.schedules import crontab
from celery.signals import task_failure, task_postrun, task_prerun, task_retry

from liveclass.config import get_settings
from liveclass.metrics import celery_task_duration_seconds, celery_task_total

settings = get_settings()

celery_app = Celery(
    "liveclass",
    broker=settings.celery_broker_url,
    backend=settings.celery_result_backend,
)

# Bell times are school-local, so beat runs in the school's time zone.
celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone=settings.school_timezone,
    enable_utc=True,
    task_acks_late=True,
    task_reject_on_worker_lost=True,
    worker_prefetch_multiplier=1,
    task_default_queue="default",
    task_routes={
        "liveclass.tasks.live_activity_tasks.*": {"queue": "live_activity"},
    },
    beat_schedule={
        # Start activities before the first bell
        "live-activity-start": {
            "task": "liveclass.tasks.live_activity_tasks.start_live_activities",
            "schedule": crontab(hour=8, minute=0, day_of_week="mon-fri"),
        },
        # Refresh class status through the school day
        "live-activity-update": {
            "task": "liveclass.tasks.live_activity_tasks.update_live_activities",
            "schedule": crontab(
                minute=f"*/{settings.live_activity_update_minutes}",
                hour="8-16",
                day_of_week="mon-fri",
            ),
        },
        # Dismissal
        "live-activity-end": {
            "task": "liveclass.tasks.live_activity_tasks.end_live_activities",
            "schedule": crontab(hour=16, minute=30, day_of_week="mon-fri"),
        },
        # Drop tokens not refreshed within TOKEN_TTL_DAYS: daily at 3 AM
        "cleanup-expired-tokens": {
            "task": "liveclass.tasks.live_activity_tasks.cleanup_expired_tokens",
            "schedule": crontab(hour=3, minute=0),
        },
    },
)

celery_app.autodiscover_tasks(["liveclass.tasks"], related_name="live_activity_tasks")

# task_id -> monotonic start time
_task_start_times: dict[str, float] = {}


def _setup_task_signals() -> None:
    """Record per-task outcome counts and durations."""

    @task_prerun.connect(weak=False)
    def on_task_prerun(task_id=None, task=None, **kwargs):
        _task_start_times[task_id] = time.monotonic()

    @task_postrun.connect(weak=False)
    def on_task_postrun(task_id=None, task=None, state=None, **kwargs):
        started = _task_start_times.pop(task_id, None)
        if started is not None:
            celery_task_duration_seconds.labels(task_name=task.name).observe(time.monotonic() - started)
        if state == "SUCCESS":
            celery_task_total.labels(task_name=task.name, status="success").inc()

    @task_failure.connect(weak=False)
    def on_task_failure(task_id=None, sender=None, **kwargs):
        celery_task_total.labels(task_name=sender.name, status="failure").inc()

    @task_retry.connect(weak=False)
    def on_task_retry(sender=None, **kwargs):
        celery_task_total.labels(task_name=sender.name, status="retry").inc()


_setup_task_signals()

"""Celery tasks driving the daily Live Activity lifecycle."""

import asyncio
import logging
from dataclasses import asdict
from datetime import timedelta

from celery import shared_task

from liveclass.config import Settings, get_settings
from liveclass.services.notification_dispatcher import FanOutResult, get_live_activity_dispatcher
from liveclass.services.token_registry import TokenRegistry
from liveclass.services.token_store import create_token_store

logger = logging.getLogger(__name__)


def _open_registry(settings: Settings) -> TokenRegistry:
    if settings.token_store_backend == "memory":
        logger.warning(
            "Worker is using the in-memory token store; it cannot see tokens registered through the API. "
            "Set TOKEN_STORE_BACKEND=redis."
        )
    return TokenRegistry(create_token_store(settings))


async def _run_fan_out(event: str) -> FanOutResult:
    settings = get_settings()
    registry = _open_registry(settings)
    dispatcher = get_live_activity_dispatcher(settings, registry)
    try:
        if event == "start":
            return await dispatcher.fan_out_start()
        if event == "update":
            return await dispatcher.fan_out_update()
        return await dispatcher.fan_out_end()
    finally:
        await registry.store.close()


def _summary(result: FanOutResult) -> dict:
    summary = asdict(result)
    summary["failures"] = [{"status": f["status"], "reason": f["reason"]} for f in summary["failures"]]
    return summary


@shared_task(name="liveclass.tasks.live_activity_tasks.start_live_activities")
def start_live_activities() -> dict:
    """Start the class-status activity on every push-to-start device."""
    result = asyncio.run(_run_fan_out("start"))
    logger.info("Scheduled start: sent=%d failed=%d total=%d", result.sent, result.failed, result.total)
    return _summary(result)


@shared_task(name="liveclass.tasks.live_activity_tasks.update_live_activities")
def update_live_activities() -> dict:
    result = asyncio.run(_run_fan_out("update"))
    logger.info("Scheduled update: sent=%d failed=%d total=%d", result.sent, result.failed, result.total)
    return _summary(result)


@shared_task(name="liveclass.tasks.live_activity_tasks.end_live_activities")
def end_live_activities() -> dict:
    result = asyncio.run(_run_fan_out("end"))
    logger.info("Scheduled end: sent=%d failed=%d total=%d", result.sent, result.failed, result.total)
    return _summary(result)


@shared_task(name="liveclass.tasks.live_activity_tasks.cleanup_expired_tokens")
def cleanup_expired_tokens() -> dict:
    """Remove tokens not refreshed within TOKEN_TTL_DAYS."""

    async def _cleanup() -> int:
        settings = get_settings()
        registry = _open_registry(settings)
        try:
            return await registry.cleanup_expired(timedelta(days=settings.token_ttl_days))
        finally:
            await registry.store.close()

    removed = asyncio.run(_cleanup())
    logger.info("Token cleanup removed %d expired tokens", removed)
    return {"removed": removed}

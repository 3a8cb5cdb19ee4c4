"""Tests for the scheduled Live Activity tasks."""

from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from celery.schedules import crontab

from liveclass.services.notification_dispatcher import FailedDelivery, FanOutResult
from liveclass.tasks import live_activity_tasks


@pytest.fixture
def dispatcher():
    mock = MagicMock()
    mock.fan_out_start = AsyncMock(return_value=FanOutResult("start", sent=2, failed=0, total=2))
    mock.fan_out_update = AsyncMock(
        return_value=FanOutResult(
            "update",
            sent=1,
            failed=1,
            total=2,
            failures=[FailedDelivery("a1b2c3d4e5", 410, "Unregistered")],
        )
    )
    mock.fan_out_end = AsyncMock(return_value=FanOutResult("end"))
    return mock


@pytest.fixture
def patched(settings, dispatcher):
    with patch.object(live_activity_tasks, "get_settings", return_value=settings), patch.object(
        live_activity_tasks, "get_live_activity_dispatcher", return_value=dispatcher
    ):
        yield dispatcher


class TestFanOutTasks:
    def test_start(self, patched):
        result = live_activity_tasks.start_live_activities()
        patched.fan_out_start.assert_awaited_once()
        assert result["sent"] == 2

    def test_update_summary_omits_tokens(self, patched):
        result = live_activity_tasks.update_live_activities()

        patched.fan_out_update.assert_awaited_once()
        assert result["failures"] == [{"status": 410, "reason": "Unregistered"}]

    def test_end(self, patched):
        result = live_activity_tasks.end_live_activities()
        patched.fan_out_end.assert_awaited_once()
        assert result == {"event": "end", "sent": 0, "failed": 0, "total": 0, "failures": []}


class TestCleanupTask:
    def test_cleanup_uses_configured_ttl(self, settings):
        registry = MagicMock()
        registry.cleanup_expired = AsyncMock(return_value=3)
        registry.store.close = AsyncMock()

        with patch.object(live_activity_tasks, "get_settings", return_value=settings), patch.object(
            live_activity_tasks, "_open_registry", return_value=registry
        ):
            assert live_activity_tasks.cleanup_expired_tokens() == {"removed": 3}

        ttl = registry.cleanup_expired.await_args.args[0]
        assert ttl.days == settings.token_ttl_days
        registry.store.close.assert_awaited_once()


class TestBeatSchedule:
    def test_schedule_in_school_time(self):
        from liveclass.tasks.celery_app import celery_app

        schedule = celery_app.conf.beat_schedule
        assert celery_app.conf.timezone == "Asia/Seoul"

        start = schedule["live-activity-start"]["schedule"]
        assert isinstance(start, crontab)
        assert start.hour == {8} and start.minute == {0}
        assert start.day_of_week == {1, 2, 3, 4, 5}

        update = schedule["live-activity-update"]["schedule"]
        assert update.hour == set(range(8, 17))
        assert update.minute == set(range(0, 60, 10))

        end = schedule["live-activity-end"]["schedule"]
        assert (end.hour, end.minute) == ({16}, {30})

        cleanup = schedule["cleanup-expired-tokens"]["schedule"]
        assert (cleanup.hour, cleanup.minute) == ({3}, {0})

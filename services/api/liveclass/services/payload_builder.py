"""Builds the start / update / end Live Activity payloads."""

import logging
from datetime import datetime
from typing import Any

import jsonschema

from liveclass.models.token import utcnow
from liveclass.schemas.payload import (
    ApsAlert,
    ClassInfo,
    ContentState,
    PushEvent,
    PushPayload,
)
from liveclass.services.payload_schemas import PAYLOAD_SCHEMAS
from liveclass.services.period_clock import PeriodClock, PeriodState, PeriodStatus, format_hhmm
from liveclass.services.schedule_resolver import ScheduleResolver

logger = logging.getLogger(__name__)

ACTIVITY_ATTRIBUTES_TYPE = "ClassActivityAttributes"


def _validated(payload: PushPayload) -> PushPayload:
    """Check the encoded payload against its wire schema."""
    try:
        jsonschema.validate(instance=payload.to_wire(), schema=PAYLOAD_SCHEMAS[payload.event.value])
    except jsonschema.ValidationError as e:
        logger.error("Built %s payload does not match wire schema: %s", payload.event.value, e.message)
        raise ValueError(f"invalid {payload.event.value} payload: {e.message}") from e
    return payload


class PayloadBuilder:
    """Turns the current timeline state and a class's timetable into APNs payloads."""

    def __init__(
        self,
        clock: PeriodClock,
        resolver: ScheduleResolver,
        school_id: str = "yangcheon",
    ) -> None:
        self._clock = clock
        self._resolver = resolver
        self._school_id = school_id

    def build_start(
        self,
        attributes: dict[str, Any] | None = None,
        now: datetime | None = None,
    ) -> PushPayload:
        """Start payload. Carries no content-state: the device computes its own
        initial state, so a freshly minted activity token cannot race with it."""
        now = now or utcnow()
        payload = PushPayload(
            event=PushEvent.START,
            timestamp=int(now.timestamp()),
            attributes_type=ACTIVITY_ATTRIBUTES_TYPE,
            attributes={"schoolId": self._school_id, **(attributes or {})},
            alert=ApsAlert(title="Class started", body="Your live class status is starting."),
            input_push_token=1,
        )
        return _validated(payload)

    async def build_update(
        self,
        grade: int | None = None,
        class_number: int | None = None,
        now: datetime | None = None,
    ) -> PushPayload:
        """Update payload for one device's class.

        Never fails on missing timetable data: unknown classes get a
        ``Period N`` placeholder with an empty classroom.
        """
        now = now or utcnow()
        state = self._clock.status(now)
        weekday = self._clock.weekday_index(now)
        start_epoch, end_epoch = self._clock.window(state, now)

        current_class = None
        next_class = None
        if state.status == PeriodStatus.IN_CLASS:
            current_class = await self._class_info(grade, class_number, weekday, state.period)
            next_class = await self._class_info(grade, class_number, weekday, state.period + 1)
        elif state.status in (PeriodStatus.PRE_CLASS, PeriodStatus.BREAK_TIME):
            next_class = await self._class_info(grade, class_number, weekday, state.period)

        epoch = int(now.timestamp())
        payload = PushPayload(
            event=PushEvent.UPDATE,
            timestamp=epoch,
            content_state=ContentState(
                status=state.status,
                current_class=current_class,
                next_class=next_class,
                start_epoch=start_epoch,
                end_epoch=end_epoch,
                last_updated_epoch=epoch,
            ),
            alert=ApsAlert(
                title="Class update",
                body=self._alert_body(state, weekday, current_class, next_class),
            ),
        )
        return _validated(payload)

    def build_end(
        self,
        start_epoch: int | None = None,
        dismissal_epoch: int | None = None,
        alert_title: str | None = None,
        alert_body: str | None = None,
        now: datetime | None = None,
    ) -> PushPayload:
        """End payload: terminal after-school snapshot plus a dismissal time."""
        now = now or utcnow()
        epoch = int(now.timestamp())
        payload = PushPayload(
            event=PushEvent.END,
            timestamp=epoch,
            content_state=ContentState(
                status=PeriodStatus.AFTER_SCHOOL,
                start_epoch=start_epoch or epoch,
                end_epoch=epoch,
                last_updated_epoch=epoch,
            ),
            dismissal_date=dismissal_epoch or epoch,
            alert=ApsAlert(
                title=alert_title or "Classes over",
                body=alert_body or "Your live class status has ended.",
            ),
        )
        return _validated(payload)

    async def _class_info(
        self,
        grade: int | None,
        class_number: int | None,
        weekday: int,
        period: int | None,
    ) -> ClassInfo | None:
        window = self._clock.schedule.get(period or 0)
        if window is None:
            return None

        entry = None
        if grade and class_number:
            try:
                entry = await self._resolver.find(grade, class_number, weekday, window.period)
            except Exception as e:
                logger.warning(
                    "Timetable lookup failed for %s-%s period %d: %s",
                    grade,
                    class_number,
                    window.period,
                    e,
                )

        # A blank subject is as good as no entry at all.
        if entry is not None and not entry.subject.strip():
            entry = None

        return ClassInfo(
            period=window.period,
            subject=entry.subject.strip() if entry else f"Period {window.period}",
            classroom=entry.classroom if entry else "",
            start_time=format_hhmm(window.start),
            end_time=format_hhmm(window.end),
        )

    @staticmethod
    def _alert_body(
        state: PeriodState,
        weekday: int,
        current_class: ClassInfo | None,
        next_class: ClassInfo | None,
    ) -> str:
        if state.status == PeriodStatus.IN_CLASS and current_class:
            return f"Period {current_class.period}: {current_class.subject} is in progress."
        if state.status == PeriodStatus.PRE_CLASS and next_class:
            return f"Period {next_class.period}: {next_class.subject} starts soon."
        if state.status == PeriodStatus.BREAK_TIME:
            return "Break time."
        if state.status == PeriodStatus.LUNCH_TIME:
            return "Lunch time."
        if state.status == PeriodStatus.BEFORE_SCHOOL:
            return "School starts soon."
        if weekday >= 5:
            return "No classes today."
        return "Classes are over for today."

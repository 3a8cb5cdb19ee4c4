"""Concurrent start / update / end fan-out to every registered device."""

import asyncio
import logging
import time
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable

import httpx

from liveclass.config import Settings
from liveclass.exceptions import DeliveryError
from liveclass.metrics import push_fanout_duration_seconds, push_notifications_total
from liveclass.models.token import ActivityToken, utcnow
from liveclass.schemas.payload import PushEvent
from liveclass.services.payload_builder import PayloadBuilder
from liveclass.services.period_clock import DEFAULT_BELL_SCHEDULE, PeriodClock
from liveclass.services.push_service import PushService, get_push_service, short_token
from liveclass.services.schedule_resolver import get_schedule_resolver
from liveclass.services.token_registry import TokenRegistry

logger = logging.getLogger(__name__)

DEADLINE_EXCEEDED = "deadline exceeded"


@dataclass
class FailedDelivery:
    token: str
    status: int
    reason: str


@dataclass
class FanOutResult:
    """Outcome of one batch. ``sent + failed == total`` always holds."""

    event: str
    sent: int = 0
    failed: int = 0
    total: int = 0
    failures: list[FailedDelivery] = field(default_factory=list)


@dataclass
class _Delivery:
    token: str
    bundle_id: str
    payload: dict[str, Any]


class LiveActivityDispatcher:
    """Sends one payload per registered token, bounded by a semaphore.

    Each batch opens a single HTTP/2 client, so all requests share one
    multiplexed gateway connection. Failures are isolated per token and never
    retried.
    """

    def __init__(
        self,
        registry: TokenRegistry,
        builder: PayloadBuilder,
        push_service: PushService,
        concurrency_limit: int = 50,
        request_timeout: float = 10.0,
        batch_deadline: float | None = None,
        client_factory: Callable[[], httpx.AsyncClient] | None = None,
    ) -> None:
        self._registry = registry
        self._builder = builder
        self._push = push_service
        self._limit = concurrency_limit
        self._request_timeout = request_timeout
        self._batch_deadline = batch_deadline
        self._client_factory = client_factory or self._default_client

    def _default_client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(http2=True, timeout=self._request_timeout)

    @property
    def push_service(self) -> PushService:
        return self._push

    async def fan_out_start(self, deadline: float | None = None) -> FanOutResult:
        """Start a Live Activity on every device with a push-to-start token."""
        self._require_ready()
        tokens = await self._registry.all_push_to_start_tokens()
        if not tokens:
            logger.info("No push-to-start tokens registered")
            return FanOutResult(event=PushEvent.START.value)

        payload = self._builder.build_start().to_wire()
        deliveries = [_Delivery(t.token, t.bundle_id, payload) for t in tokens]
        return await self._fan_out(PushEvent.START, deliveries, deadline)

    async def fan_out_update(
        self,
        deadline: float | None = None,
        now: datetime | None = None,
    ) -> FanOutResult:
        """Push the current class status to every running activity.

        One payload is built per (grade, class) so devices in the same class
        share a single timetable lookup. Payloads are built concurrently and
        the build phase counts against the batch deadline. A group whose
        payload cannot be built fails for its own devices only.
        """
        self._require_ready()
        snapshot = await self._registry.all_tokens()
        if not snapshot.activity_tokens:
            logger.info("No activity tokens registered")
            return FanOutResult(event=PushEvent.UPDATE.value)

        now = now or utcnow()
        deadline = deadline if deadline is not None else self._batch_deadline
        started = time.monotonic()

        groups: dict[tuple[int | None, int | None], list[ActivityToken]] = {}
        for t in snapshot.activity_tokens:
            groups.setdefault((t.grade, t.class_number), []).append(t)

        semaphore = asyncio.Semaphore(self._limit)

        async def build(grade: int | None, class_number: int | None) -> dict[str, Any]:
            async with semaphore:
                payload = await self._builder.build_update(grade, class_number, now=now)
            return payload.to_wire()

        builds = {group: asyncio.create_task(build(*group)) for group in groups}
        _, pending = await asyncio.wait(list(builds.values()), timeout=deadline)
        for task in pending:
            task.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)
            logger.warning("Update payload build exceeded deadline of %ss for %d classes", deadline, len(pending))

        deliveries = []
        failures = []
        for group, task in builds.items():
            members = groups[group]
            if task in pending:
                failures.extend(FailedDelivery(t.token, 0, DEADLINE_EXCEEDED) for t in members)
                continue
            error = task.exception()
            if error is not None:
                logger.error("Could not build update for class %s-%s: %s", group[0], group[1], error)
                failures.extend(FailedDelivery(t.token, 0, str(error)) for t in members)
                continue
            deliveries.extend(_Delivery(t.token, t.bundle_id, task.result()) for t in members)

        if deadline is not None:
            deadline = max(deadline - (time.monotonic() - started), 0.0)
        return await self._fan_out(PushEvent.UPDATE, deliveries, deadline, failures=failures)

    async def fan_out_end(
        self,
        start_epoch: int | None = None,
        dismissal_epoch: int | None = None,
        alert_title: str | None = None,
        alert_body: str | None = None,
        deadline: float | None = None,
    ) -> FanOutResult:
        """End every running activity with an after-school snapshot."""
        self._require_ready()
        snapshot = await self._registry.all_tokens()
        if not snapshot.activity_tokens:
            logger.info("No activity tokens registered")
            return FanOutResult(event=PushEvent.END.value)

        payload = self._builder.build_end(
            start_epoch=start_epoch,
            dismissal_epoch=dismissal_epoch,
            alert_title=alert_title,
            alert_body=alert_body,
        ).to_wire()
        deliveries = [_Delivery(t.token, t.bundle_id, payload) for t in snapshot.activity_tokens]
        return await self._fan_out(PushEvent.END, deliveries, deadline)

    def _require_ready(self) -> None:
        # Signs (or reuses) the provider token; raises ConfigurationError when not ready.
        self._push.authenticator.issue_token()

    async def _fan_out(
        self,
        event: PushEvent,
        deliveries: list[_Delivery],
        deadline: float | None,
        failures: list[FailedDelivery] | None = None,
    ) -> FanOutResult:
        deadline = deadline if deadline is not None else self._batch_deadline
        semaphore = asyncio.Semaphore(self._limit)
        started = time.perf_counter()
        tasks: list[asyncio.Task] = []
        pending: set[asyncio.Task] = set()

        if deliveries:
            async with self._client_factory() as client:

                async def deliver(delivery: _Delivery) -> None:
                    async with semaphore:
                        await self._push.send_one(client, delivery.token, delivery.payload, delivery.bundle_id)

                tasks = [asyncio.create_task(deliver(d)) for d in deliveries]
                _, pending = await asyncio.wait(tasks, timeout=deadline)
                for task in pending:
                    task.cancel()
                if pending:
                    await asyncio.gather(*pending, return_exceptions=True)
                    logger.warning(
                        "%s fan-out deadline of %ss exceeded, cancelled %d sends",
                        event.value,
                        deadline,
                        len(pending),
                    )

        # Deliveries that never reached the gateway are already settled in ``failures``.
        result = FanOutResult(
            event=event.value,
            total=len(deliveries) + len(failures or []),
            failures=list(failures or []),
        )
        for delivery, task in zip(deliveries, tasks):
            if task in pending:
                result.failures.append(FailedDelivery(delivery.token, 0, DEADLINE_EXCEEDED))
                continue
            error = task.exception()
            if error is None:
                result.sent += 1
            elif isinstance(error, DeliveryError):
                result.failures.append(FailedDelivery(delivery.token, error.status, error.reason))
            else:
                logger.error("Unexpected error sending %s to token=%s: %s", event.value, short_token(delivery.token), error)
                result.failures.append(FailedDelivery(delivery.token, 0, str(error)))
        result.failed = len(result.failures)

        push_notifications_total.labels(event=event.value, outcome="sent").inc(result.sent)
        push_notifications_total.labels(event=event.value, outcome="failed").inc(result.failed)
        push_fanout_duration_seconds.labels(event=event.value).observe(time.perf_counter() - started)
        logger.info(
            "Live Activity %s sent to %d devices, %d failed (total %d)",
            event.value,
            result.sent,
            result.failed,
            result.total,
        )
        return result


def get_live_activity_dispatcher(settings: Settings, registry: TokenRegistry) -> LiveActivityDispatcher:
    """Factory that wires up a LiveActivityDispatcher with its dependencies."""
    clock = PeriodClock(DEFAULT_BELL_SCHEDULE, timezone_name=settings.school_timezone)
    builder = PayloadBuilder(clock, get_schedule_resolver(settings), school_id=settings.school_id)
    return LiveActivityDispatcher(
        registry=registry,
        builder=builder,
        push_service=get_push_service(settings),
        concurrency_limit=settings.push_concurrency_limit,
        request_timeout=settings.push_request_timeout_seconds,
        batch_deadline=settings.push_batch_deadline_seconds,
    )

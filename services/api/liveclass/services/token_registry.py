"""Registry of device push tokens for the whole school."""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Callable

from liveclass.metrics import tokens_registered_total, tokens_swept_total
from liveclass.models.token import (
    ActivityToken,
    APNsToken,
    PushToStartToken,
    TokenKind,
    utcnow,
)
from liveclass.schemas.live_activity import RecentRegistration, SchoolStats, TokenStatsResponse
from liveclass.services.token_cleanup import DEFAULT_TOKEN_TTL, sweep_expired_tokens
from liveclass.services.token_store import TokenStore

logger = logging.getLogger(__name__)

RECENT_REGISTRATIONS_LIMIT = 10


@dataclass
class TokenSnapshot:
    push_to_start_tokens: list[PushToStartToken]
    activity_tokens: list[ActivityToken]

    @property
    def total_devices(self) -> int:
        return len(self.push_to_start_tokens)


def _from_epoch(timestamp: float) -> datetime:
    return datetime.fromtimestamp(timestamp, tz=timezone.utc)


class TokenRegistry:
    """Upserts, lists and removes tokens on top of an injected ``TokenStore``."""

    def __init__(self, store: TokenStore, now: Callable[[], datetime] = utcnow) -> None:
        self._store = store
        self._now = now

    @property
    def store(self) -> TokenStore:
        return self._store

    async def register_push_to_start(
        self,
        token: str,
        device_id: str,
        bundle_id: str,
        timestamp: float,
        grade: int | None = None,
        class_number: int | None = None,
    ) -> PushToStartToken:
        record = PushToStartToken(
            token=token,
            device_id=device_id,
            bundle_id=bundle_id,
            grade=grade,
            class_number=class_number,
            registered_at=_from_epoch(timestamp),
            last_updated=self._now(),
        )
        previous = await self._store.put(record)
        tokens_registered_total.labels(kind=TokenKind.PUSH_TO_START.value).inc()
        logger.info(
            "Push-to-start token %s for device=%s grade=%s class=%s tokenId=%s",
            "refreshed" if previous else "registered",
            device_id,
            grade,
            class_number,
            record.id,
        )
        return record

    async def register_activity(
        self,
        token: str,
        activity_id: str,
        device_id: str,
        bundle_id: str,
        timestamp: float,
        grade: int | None = None,
        class_number: int | None = None,
    ) -> ActivityToken:
        record = ActivityToken(
            token=token,
            activity_id=activity_id,
            device_id=device_id,
            bundle_id=bundle_id,
            grade=grade,
            class_number=class_number,
            registered_at=_from_epoch(timestamp),
            last_updated=self._now(),
        )
        await self._store.put(record)
        tokens_registered_total.labels(kind=TokenKind.ACTIVITY.value).inc()
        logger.info(
            "Activity token registered activity=%s device=%s grade=%s class=%s tokenId=%s",
            activity_id,
            device_id,
            grade,
            class_number,
            record.id,
        )
        return record

    async def register_apns(
        self,
        token: str,
        device_id: str,
        bundle_id: str,
        timestamp: float,
    ) -> APNsToken:
        record = APNsToken(
            token=token,
            device_id=device_id,
            bundle_id=bundle_id,
            registered_at=_from_epoch(timestamp),
            last_updated=self._now(),
        )
        await self._store.put(record)
        tokens_registered_total.labels(kind=TokenKind.APNS.value).inc()
        logger.info("APNs token registered device=%s tokenId=%s", device_id, record.id)
        return record

    async def all_push_to_start_tokens(self) -> list[PushToStartToken]:
        return await self._store.values(TokenKind.PUSH_TO_START)

    async def all_tokens(self) -> TokenSnapshot:
        return TokenSnapshot(
            push_to_start_tokens=await self._store.values(TokenKind.PUSH_TO_START),
            activity_tokens=await self._store.values(TokenKind.ACTIVITY),
        )

    async def remove_device_tokens(self, device_id: str) -> bool:
        """Drop a device's push-to-start, APNs and activity tokens."""
        removed = await self._store.delete(TokenKind.PUSH_TO_START, device_id)
        removed = await self._store.delete(TokenKind.APNS, device_id) or removed

        for activity in await self._store.values(TokenKind.ACTIVITY):
            if activity.device_id == device_id:
                removed = await self._store.delete(TokenKind.ACTIVITY, activity.key) or removed

        if removed:
            logger.info("Removed all tokens for device: %s", device_id)
        return removed

    async def stats(self) -> TokenStatsResponse:
        push_to_start = await self._store.values(TokenKind.PUSH_TO_START)
        total_activity = await self._store.count(TokenKind.ACTIVITY)
        total_apns = await self._store.count(TokenKind.APNS)

        recent = sorted(push_to_start, key=lambda t: t.registered_at, reverse=True)
        recent = recent[:RECENT_REGISTRATIONS_LIMIT]

        return TokenStatsResponse(
            total_push_to_start_tokens=len(push_to_start),
            total_activity_tokens=total_activity,
            total_apns_tokens=total_apns,
            school_stats=SchoolStats(
                total_registered_devices=len(push_to_start),
                total_active_activities=total_activity,
            ),
            recent_registrations=[
                RecentRegistration(
                    device_id=t.device_id,
                    grade=t.grade,
                    class_number=t.class_number,
                    registered_at=t.registered_at,
                )
                for t in recent
            ],
            last_updated=self._now(),
        )

    async def cleanup_expired(self, ttl: timedelta = DEFAULT_TOKEN_TTL) -> int:
        removed = await sweep_expired_tokens(self._store, ttl=ttl, now=self._now())
        tokens_swept_total.inc(removed)
        return removed

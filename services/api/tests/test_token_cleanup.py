"""Tests for the expired-token sweep."""

from dataclasses import replace
from datetime import datetime, timedelta, timezone

import pytest

from liveclass.models.token import ActivityToken, APNsToken, PushToStartToken, TokenKind
from liveclass.services.token_cleanup import sweep_expired_tokens
from liveclass.services.token_store import InMemoryTokenStore

NOW = datetime(2024, 4, 1, tzinfo=timezone.utc)
TTL = timedelta(days=30)


def push_to_start(device_id: str, age: timedelta) -> PushToStartToken:
    stamp = NOW - age
    return PushToStartToken("tok", device_id, "com.example", registered_at=stamp, last_updated=stamp)


class TestSweep:
    @pytest.mark.asyncio
    async def test_removes_only_entries_older_than_ttl(self, store):
        await store.put(push_to_start("stale", TTL + timedelta(seconds=1)))
        await store.put(push_to_start("boundary", TTL))
        await store.put(push_to_start("fresh", timedelta(hours=1)))

        removed = await sweep_expired_tokens(store, ttl=TTL, now=NOW)

        assert removed == 1
        assert sorted(t.device_id for t in await store.values(TokenKind.PUSH_TO_START)) == ["boundary", "fresh"]

    @pytest.mark.asyncio
    async def test_sweeps_every_kind(self, store):
        stamp = NOW - timedelta(days=40)
        await store.put(push_to_start("device-1", timedelta(days=40)))
        await store.put(ActivityToken("a", "activity-1", "device-1", "com.example", stamp, stamp))
        await store.put(APNsToken("n", "device-1", "com.example", stamp, stamp))

        assert await sweep_expired_tokens(store, ttl=TTL, now=NOW) == 3
        for kind in TokenKind:
            assert await store.count(kind) == 0

    @pytest.mark.asyncio
    async def test_empty_store(self, store):
        assert await sweep_expired_tokens(store, ttl=TTL, now=NOW) == 0

    @pytest.mark.asyncio
    async def test_entry_refreshed_during_sweep_is_kept(self):
        """A re-registration between snapshot and delete wins over the sweep."""

        class RefreshingStore(InMemoryTokenStore):
            async def values(self, kind):
                snapshot = await super().values(kind)
                for token in snapshot:
                    await self.put(replace(token, last_updated=NOW))
                return snapshot

        store = RefreshingStore()
        await store.put(push_to_start("device-1", timedelta(days=40)))

        assert await sweep_expired_tokens(store, ttl=TTL, now=NOW) == 0
        kept = await store.get(TokenKind.PUSH_TO_START, "device-1")
        assert kept.last_updated >= NOW

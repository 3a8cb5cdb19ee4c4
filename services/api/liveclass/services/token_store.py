"""Key-value storage behind the token registry.

Two backends share the ``TokenStore`` interface:

- ``InMemoryTokenStore``: per-process dicts guarded by an ``asyncio.Lock``.
- ``RedisTokenStore``: one Redis hash per token kind, for deployments where the
  API and the Celery workers must see the same registry.

Both keep ``last_updated`` strictly increasing per key and support a
compare-and-delete used by the expiry sweep.
"""

import asyncio
import copy
import json
import logging
from abc import ABC, abstractmethod
from contextlib import contextmanager
from datetime import timedelta

import redis.asyncio as aioredis
from redis.exceptions import RedisError, WatchError

from liveclass.config import Settings
from liveclass.exceptions import StorageError
from liveclass.models.token import StoredToken, TokenKind, token_from_dict, token_to_dict

logger = logging.getLogger(__name__)

_TICK = timedelta(microseconds=1)


def _advance(token: StoredToken, previous: StoredToken | None) -> StoredToken:
    if previous is not None and token.last_updated <= previous.last_updated:
        token.last_updated = previous.last_updated + _TICK
    return token


class TokenStore(ABC):
    """Abstract token storage, one map per ``TokenKind``."""

    @abstractmethod
    async def put(self, token: StoredToken) -> StoredToken | None:
        """Insert or replace ``token`` under its key. Returns the replaced entry."""
        ...

    @abstractmethod
    async def get(self, kind: TokenKind, key: str) -> StoredToken | None:
        ...

    @abstractmethod
    async def values(self, kind: TokenKind) -> list[StoredToken]:
        """Snapshot of every entry of ``kind`` at call time."""
        ...

    @abstractmethod
    async def count(self, kind: TokenKind) -> int:
        ...

    @abstractmethod
    async def delete(self, kind: TokenKind, key: str) -> bool:
        ...

    @abstractmethod
    async def delete_if_unchanged(self, token: StoredToken) -> bool:
        """Delete the entry only if it still equals ``token``."""
        ...

    async def ping(self) -> bool:
        return True

    async def close(self) -> None:
        return None


class InMemoryTokenStore(TokenStore):
    def __init__(self) -> None:
        self._maps: dict[TokenKind, dict[str, StoredToken]] = {kind: {} for kind in TokenKind}
        self._lock = asyncio.Lock()

    async def put(self, token: StoredToken) -> StoredToken | None:
        async with self._lock:
            bucket = self._maps[token.kind]
            previous = bucket.get(token.key)
            bucket[token.key] = copy.copy(_advance(token, previous))
            return previous

    async def get(self, kind: TokenKind, key: str) -> StoredToken | None:
        async with self._lock:
            found = self._maps[kind].get(key)
            return copy.copy(found) if found is not None else None

    async def values(self, kind: TokenKind) -> list[StoredToken]:
        async with self._lock:
            return [copy.copy(t) for t in self._maps[kind].values()]

    async def count(self, kind: TokenKind) -> int:
        async with self._lock:
            return len(self._maps[kind])

    async def delete(self, kind: TokenKind, key: str) -> bool:
        async with self._lock:
            return self._maps[kind].pop(key, None) is not None

    async def delete_if_unchanged(self, token: StoredToken) -> bool:
        async with self._lock:
            bucket = self._maps[token.kind]
            if bucket.get(token.key) == token:
                del bucket[token.key]
                return True
            return False


# Deletes a hash field only when its value still matches the snapshot.
_COMPARE_AND_DELETE = """
if redis.call('HGET', KEYS[1], ARGV[1]) == ARGV[2] then
    return redis.call('HDEL', KEYS[1], ARGV[1])
end
return 0
"""


@contextmanager
def _storage_errors(operation: str):
    try:
        yield
    except RedisError as e:
        logger.error("Token store %s failed: %s", operation, e)
        raise StorageError(f"token store {operation} failed: {e}") from e


def _encode(token: StoredToken) -> str:
    return json.dumps(token_to_dict(token), sort_keys=True)


class RedisTokenStore(TokenStore):
    def __init__(self, client: aioredis.Redis, key_prefix: str = "liveclass") -> None:
        self._redis = client
        self._prefix = key_prefix
        self._compare_and_delete = client.register_script(_COMPARE_AND_DELETE)

    def _hash(self, kind: TokenKind) -> str:
        return f"{self._prefix}:tokens:{kind.value}"

    async def put(self, token: StoredToken) -> StoredToken | None:
        name = self._hash(token.kind)
        with _storage_errors("put"):
            async with self._redis.pipeline(transaction=True) as pipe:
                while True:
                    try:
                        await pipe.watch(name)
                        raw = await pipe.hget(name, token.key)
                        previous = token_from_dict(token.kind, json.loads(raw)) if raw else None
                        _advance(token, previous)
                        pipe.multi()
                        pipe.hset(name, token.key, _encode(token))
                        await pipe.execute()
                        return previous
                    except WatchError:
                        logger.debug("Concurrent write on %s/%s, retrying", name, token.key)
                        continue

    async def get(self, kind: TokenKind, key: str) -> StoredToken | None:
        with _storage_errors("get"):
            raw = await self._redis.hget(self._hash(kind), key)
        return token_from_dict(kind, json.loads(raw)) if raw else None

    async def values(self, kind: TokenKind) -> list[StoredToken]:
        with _storage_errors("values"):
            raw_values = await self._redis.hvals(self._hash(kind))
        return [token_from_dict(kind, json.loads(raw)) for raw in raw_values]

    async def count(self, kind: TokenKind) -> int:
        with _storage_errors("count"):
            return await self._redis.hlen(self._hash(kind))

    async def delete(self, kind: TokenKind, key: str) -> bool:
        with _storage_errors("delete"):
            return bool(await self._redis.hdel(self._hash(kind), key))

    async def delete_if_unchanged(self, token: StoredToken) -> bool:
        with _storage_errors("compare-and-delete"):
            removed = await self._compare_and_delete(
                keys=[self._hash(token.kind)],
                args=[token.key, _encode(token)],
            )
        return bool(removed)

    async def ping(self) -> bool:
        with _storage_errors("ping"):
            return bool(await self._redis.ping())

    async def close(self) -> None:
        await self._redis.aclose()


def create_token_store(settings: Settings) -> TokenStore:
    if settings.token_store_backend == "redis":
        client = aioredis.from_url(settings.redis_url, decode_responses=True)
        logger.info("Using Redis token store (prefix=%s)", settings.redis_key_prefix)
        return RedisTokenStore(client, key_prefix=settings.redis_key_prefix)
    logger.info("Using in-memory token store")
    return InMemoryTokenStore()

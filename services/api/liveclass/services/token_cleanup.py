"""Expiry sweep for registered push tokens."""

import logging
from datetime import datetime, timedelta

from liveclass.models.token import TokenKind, utcnow
from liveclass.services.token_store import TokenStore

logger = logging.getLogger(__name__)

DEFAULT_TOKEN_TTL = timedelta(days=30)

SWEPT_KINDS = (TokenKind.PUSH_TO_START, TokenKind.ACTIVITY, TokenKind.APNS)


async def sweep_expired_tokens(
    store: TokenStore,
    ttl: timedelta = DEFAULT_TOKEN_TTL,
    now: datetime | None = None,
) -> int:
    """Remove every token whose ``last_updated`` is older than ``ttl``.

    Works from a snapshot taken at the start of the sweep and deletes with
    compare-and-delete, so an entry refreshed while the sweep runs is kept.
    Returns the number of entries removed.
    """
    now = now or utcnow()
    removed = 0
    per_kind: dict[str, int] = {}

    for kind in SWEPT_KINDS:
        snapshot = await store.values(kind)
        kind_removed = 0
        for token in snapshot:
            if now - token.last_updated <= ttl:
                continue
            if await store.delete_if_unchanged(token):
                kind_removed += 1
            else:
                logger.debug("Token %s/%s refreshed during sweep; kept", kind.value, token.key)
        per_kind[kind.value] = kind_removed
        removed += kind_removed

    logger.info("Cleaned up %d expired tokens (ttl=%s, by kind=%s)", removed, ttl, per_kind)
    return removed

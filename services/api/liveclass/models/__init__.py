"""Token registry records."""

from liveclass.models.token import (
    ActivityToken,
    APNsToken,
    PushToStartToken,
    StoredToken,
    TokenKind,
)

__all__ = [
    "TokenKind",
    "PushToStartToken",
    "ActivityToken",
    "APNsToken",
    "StoredToken",
]

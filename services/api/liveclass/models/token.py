"""Push token records kept by the token registry."""

import uuid
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any


class TokenKind(str, Enum):
    PUSH_TO_START = "push_to_start"
    ACTIVITY = "activity_token"
    APNS = "apns_token"


def generate_token_id() -> str:
    return str(uuid.uuid4())


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class PushToStartToken:
    """Lets the server start a new Live Activity on a device. Keyed by device_id."""

    token: str
    device_id: str
    bundle_id: str
    registered_at: datetime
    last_updated: datetime
    grade: int | None = None
    class_number: int | None = None
    id: str = field(default_factory=generate_token_id)

    kind = TokenKind.PUSH_TO_START

    @property
    def key(self) -> str:
        return self.device_id


@dataclass
class ActivityToken:
    """Lets the server update or end one running activity. Keyed by activity_id."""

    token: str
    activity_id: str
    device_id: str
    bundle_id: str
    registered_at: datetime
    last_updated: datetime
    grade: int | None = None
    class_number: int | None = None
    id: str = field(default_factory=generate_token_id)

    kind = TokenKind.ACTIVITY

    @property
    def key(self) -> str:
        return self.activity_id


@dataclass
class APNsToken:
    """Regular remote-notification token. Keyed by device_id."""

    token: str
    device_id: str
    bundle_id: str
    registered_at: datetime
    last_updated: datetime
    id: str = field(default_factory=generate_token_id)

    kind = TokenKind.APNS

    @property
    def key(self) -> str:
        return self.device_id


StoredToken = PushToStartToken | ActivityToken | APNsToken

TOKEN_CLASSES: dict[TokenKind, type] = {
    TokenKind.PUSH_TO_START: PushToStartToken,
    TokenKind.ACTIVITY: ActivityToken,
    TokenKind.APNS: APNsToken,
}


def token_to_dict(token: StoredToken) -> dict[str, Any]:
    """JSON-safe dict of a token record (datetimes as ISO8601)."""
    data = asdict(token)
    for name in ("registered_at", "last_updated"):
        data[name] = data[name].isoformat()
    return data


def token_from_dict(kind: TokenKind, data: dict[str, Any]) -> StoredToken:
    values = dict(data)
    for name in ("registered_at", "last_updated"):
        values[name] = datetime.fromisoformat(values[name])
    return TOKEN_CLASSES[kind](**values)

"""APNs provider authentication tokens (ES256-signed JWT)."""

import logging
import os
import time
from typing import Callable

from jose import jwt
from jose.exceptions import JOSEError

from liveclass.config import Settings
from liveclass.exceptions import ConfigurationError

logger = logging.getLogger(__name__)

# APNs rejects provider tokens older than one hour and throttles refreshes
# more frequent than every 20 minutes.
TOKEN_LIFETIME_SECONDS = 3600
TOKEN_REFRESH_SECONDS = 55 * 60


def _mask(value: str) -> str | None:
    return value[:4] + "..." if value else None


class PushAuthenticator:
    """Builds and caches the provider token used in every APNs request."""

    def __init__(
        self,
        private_key: str,
        key_id: str,
        team_id: str,
        clock: Callable[[], float] = time.time,
        refresh_after: int = TOKEN_REFRESH_SECONDS,
    ) -> None:
        self._private_key = private_key
        self._key_id = key_id
        self._team_id = team_id
        self._clock = clock
        self._refresh_after = refresh_after
        self._cached: str | None = None
        self._issued_at: int = 0

    @property
    def is_ready(self) -> bool:
        return bool(self._private_key and self._key_id and self._team_id)

    def missing_fields(self) -> list[str]:
        missing = []
        if not self._private_key:
            missing.append("private key")
        if not self._key_id:
            missing.append("key id")
        if not self._team_id:
            missing.append("team id")
        return missing

    def issue_token(self) -> str:
        """Return a valid provider token, signing a new one when the cached one is stale."""
        if not self.is_ready:
            raise ConfigurationError(
                "APNs credentials not properly configured (missing: %s)" % ", ".join(self.missing_fields())
            )

        now = int(self._clock())
        if self._cached and now - self._issued_at < self._refresh_after:
            return self._cached

        claims = {"iss": self._team_id, "iat": now, "exp": now + TOKEN_LIFETIME_SECONDS}
        try:
            token = jwt.encode(
                claims,
                self._private_key,
                algorithm="ES256",
                headers={"kid": self._key_id},
            )
        except JOSEError as e:
            raise ConfigurationError(f"APNs signing key is unusable: {e}") from e

        self._cached = token
        self._issued_at = now
        logger.debug("Issued new APNs provider token (kid=%s)", _mask(self._key_id))
        return token

    def invalidate(self) -> None:
        self._cached = None
        self._issued_at = 0

    def info(self) -> dict:
        return {
            "ready": self.is_ready,
            "keyId": _mask(self._key_id),
            "teamId": _mask(self._team_id),
        }

    @classmethod
    def from_settings(cls, settings: Settings) -> "PushAuthenticator":
        """Load credentials; a missing key leaves the authenticator not ready instead of failing."""
        private_key = settings.apns_private_key.get_secret_value()
        if not private_key and settings.apns_key_path:
            if os.path.exists(settings.apns_key_path):
                with open(settings.apns_key_path, encoding="utf-8") as f:
                    private_key = f.read()
            else:
                logger.warning("APNs auth key file not found, push disabled: %s", settings.apns_key_path)

        authenticator = cls(
            private_key=private_key,
            key_id=settings.apns_key_id,
            team_id=settings.apns_team_id,
        )
        if authenticator.is_ready:
            logger.info(
                "APNs authenticator initialized (env=%s, keyId=%s)",
                settings.app_env,
                _mask(settings.apns_key_id),
            )
        else:
            logger.warning(
                "APNs credentials missing (%s); live activity push disabled",
                ", ".join(authenticator.missing_fields()),
            )
        return authenticator

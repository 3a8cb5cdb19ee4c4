"""APNs Live Activity delivery over HTTP/2."""

import logging
from typing import Any

import httpx

from liveclass.config import Settings
from liveclass.exceptions import DeliveryError
from liveclass.services.push_auth import PushAuthenticator

logger = logging.getLogger(__name__)

LIVE_ACTIVITY_TOPIC_SUFFIX = ".push-type.liveactivity"


def short_token(token: str) -> str:
    return token[:8] + "..."


class PushService:
    """Send one Live Activity payload to one device token."""

    def __init__(self, authenticator: PushAuthenticator, base_url: str) -> None:
        self._auth = authenticator
        self._base_url = base_url.rstrip("/")

    @property
    def authenticator(self) -> PushAuthenticator:
        return self._auth

    @property
    def base_url(self) -> str:
        return self._base_url

    @property
    def is_ready(self) -> bool:
        return self._auth.is_ready

    def headers(self, bundle_id: str) -> dict[str, str]:
        """Request headers; raises ConfigurationError when credentials are missing."""
        return {
            "authorization": f"Bearer {self._auth.issue_token()}",
            "apns-topic": f"{bundle_id}{LIVE_ACTIVITY_TOPIC_SUFFIX}",
            "apns-push-type": "liveactivity",
            "apns-priority": "10",
            "apns-expiration": "0",
        }

    async def send_one(
        self,
        client: httpx.AsyncClient,
        token: str,
        payload: dict[str, Any],
        bundle_id: str,
    ) -> None:
        """POST the payload to ``/3/device/{token}``.

        Returns on any 2xx. Non-2xx responses and transport failures raise
        ``DeliveryError``; the latter carry status 0.
        """
        headers = self.headers(bundle_id)
        url = f"{self._base_url}/3/device/{token}"
        try:
            response = await client.post(url, json=payload, headers=headers)
        except httpx.HTTPError as e:
            logger.warning("APNs transport error for token=%s: %s", short_token(token), e)
            raise DeliveryError(0, str(e) or e.__class__.__name__, token=token) from e

        if response.is_success:
            logger.debug("APNs sent to token=%s (apns-id=%s)", short_token(token), response.headers.get("apns-id"))
            return

        error = DeliveryError(response.status_code, response.text, token=token)
        if response.status_code == 403:
            # Provider token rejected; sign a fresh one for the next request.
            self._auth.invalidate()
        logger.error("APNs failed for token=%s: %s %s", short_token(token), response.status_code, error.reason)
        raise error


def get_push_service(settings: Settings) -> PushService:
    return PushService(
        authenticator=PushAuthenticator.from_settings(settings),
        base_url=settings.apns_base_url,
    )

"""Domain exceptions for the live-activity push subsystem."""

import json


class LiveClassError(Exception):
    """Base class for all subsystem errors."""


class ConfigurationError(LiveClassError):
    """Push credentials are missing or unusable; the subsystem is not ready."""


class DeliveryError(LiveClassError):
    """The push gateway rejected a request, or it never completed.

    ``status`` is the gateway HTTP status, or 0 when no response was received.
    """

    def __init__(self, status: int, body: str = "", token: str = "") -> None:
        self.status = status
        self.body = body
        self.token = token
        super().__init__(f"APNs send failed: {status} - {body}")

    @property
    def reason(self) -> str:
        """Gateway ``reason`` field when the body is APNs JSON, else the raw body."""
        try:
            return json.loads(self.body).get("reason", self.body)
        except (ValueError, AttributeError):
            return self.body


class StorageError(LiveClassError):
    """The token store could not be read or written."""

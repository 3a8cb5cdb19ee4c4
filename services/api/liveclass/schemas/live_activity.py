"""Live Activity registration, control and reporting schemas.

Field names are camelCase on the wire to match the iOS client.
"""

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# --- Registration ---


class PushToStartRegisterRequest(CamelModel):
    type: Literal["push_to_start"] | None = None
    token: str = Field(..., min_length=1, max_length=512)
    device_id: str = Field(..., min_length=1, max_length=255)
    bundle_id: str = Field(..., min_length=1, max_length=255)
    timestamp: float
    grade: int | None = Field(None, ge=1, le=3)
    class_number: int | None = Field(None, ge=1, le=11)


class ActivityTokenRegisterRequest(CamelModel):
    type: Literal["activity_token"] | None = None
    token: str = Field(..., min_length=1, max_length=512)
    activity_id: str = Field(..., min_length=1, max_length=255)
    device_id: str = Field(..., min_length=1, max_length=255)
    bundle_id: str = Field(..., min_length=1, max_length=255)
    timestamp: float
    grade: int | None = Field(None, ge=1, le=3)
    class_number: int | None = Field(None, ge=1, le=11)


class APNsTokenRegisterRequest(CamelModel):
    type: Literal["apns_token"] | None = None
    token: str = Field(..., min_length=1, max_length=512)
    device_id: str = Field(..., min_length=1, max_length=255)
    bundle_id: str = Field(..., min_length=1, max_length=255)
    timestamp: float


class PushToStartRegisterResponse(CamelModel):
    token_id: str
    grade: int | None
    class_number: int | None
    registered_at: datetime


class ActivityTokenRegisterResponse(CamelModel):
    token_id: str
    activity_id: str
    grade: int | None
    class_number: int | None
    registered_at: datetime


class APNsTokenRegisterResponse(CamelModel):
    token_id: str
    registered_at: datetime


# --- Control ---


class EndActivityRequest(CamelModel):
    start_date: int | None = None
    dismissal_date: int | None = None
    alert_title: str | None = Field(None, max_length=100)
    alert_body: str | None = Field(None, max_length=500)


class DeliveryFailure(CamelModel):
    token: str
    status: int
    reason: str


class FanOutResponse(CamelModel):
    event: str
    sent: int
    failed: int
    total: int
    failures: list[DeliveryFailure] = []


# --- Reporting ---


class PushToStartTokenView(CamelModel):
    id: str
    device_id: str
    bundle_id: str
    grade: int | None
    class_number: int | None
    registered_at: datetime
    last_updated: datetime

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, from_attributes=True)


class ActivityTokenView(PushToStartTokenView):
    activity_id: str


class TokenListResponse(CamelModel):
    push_to_start_tokens: list[PushToStartTokenView]
    activity_tokens: list[ActivityTokenView]
    total_devices: int


class SchoolStats(CamelModel):
    total_registered_devices: int
    total_active_activities: int


class RecentRegistration(CamelModel):
    device_id: str
    grade: int | None
    class_number: int | None
    registered_at: datetime


class TokenStatsResponse(CamelModel):
    total_push_to_start_tokens: int
    total_activity_tokens: int
    total_apns_tokens: int = Field(alias="totalAPNsTokens")
    school_stats: SchoolStats
    recent_registrations: list[RecentRegistration]
    last_updated: datetime


class CleanupResponse(CamelModel):
    removed: int
    ttl_days: int


class DeviceRemovalResponse(CamelModel):
    device_id: str
    removed: bool


class ServiceStatusResponse(CamelModel):
    ready: bool
    environment: str
    gateway_url: str
    key_id: str | None
    team_id: str | None
    token_store: str

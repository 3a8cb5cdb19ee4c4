"""Live Activity token registration and push control."""

import logging
from datetime import timedelta

from fastapi import APIRouter, Body, Depends, HTTPException, status

from liveclass.config import Settings, get_settings
from liveclass.dependencies import get_dispatcher, get_registry, require_admin
from liveclass.exceptions import ConfigurationError, StorageError
from liveclass.schemas.live_activity import (
    ActivityTokenRegisterRequest,
    ActivityTokenRegisterResponse,
    ActivityTokenView,
    APNsTokenRegisterRequest,
    APNsTokenRegisterResponse,
    CleanupResponse,
    DeliveryFailure,
    DeviceRemovalResponse,
    EndActivityRequest,
    FanOutResponse,
    PushToStartRegisterRequest,
    PushToStartRegisterResponse,
    PushToStartTokenView,
    ServiceStatusResponse,
    TokenListResponse,
    TokenStatsResponse,
)
from liveclass.services.notification_dispatcher import FanOutResult, LiveActivityDispatcher
from liveclass.services.push_service import short_token
from liveclass.services.token_registry import TokenRegistry

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/live-activity", tags=["live-activity"])


def _fan_out_response(result: FanOutResult) -> FanOutResponse:
    return FanOutResponse(
        event=result.event,
        sent=result.sent,
        failed=result.failed,
        total=result.total,
        failures=[DeliveryFailure(token=short_token(f.token), status=f.status, reason=f.reason) for f in result.failures],
    )


def _not_ready(e: ConfigurationError) -> HTTPException:
    logger.warning("Live Activity push unavailable: %s", e)
    return HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(e))


def _store_unavailable(e: StorageError) -> HTTPException:
    logger.error("Token store error: %s", e)
    return HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="Token store unavailable")


# --- Registration ---


@router.post("/push-to-start", response_model=PushToStartRegisterResponse)
async def register_push_to_start(
    body: PushToStartRegisterRequest,
    registry: TokenRegistry = Depends(get_registry),
):
    """Register (or refresh) a device's push-to-start token."""
    try:
        record = await registry.register_push_to_start(
            token=body.token,
            device_id=body.device_id,
            bundle_id=body.bundle_id,
            timestamp=body.timestamp,
            grade=body.grade,
            class_number=body.class_number,
        )
    except StorageError as e:
        raise _store_unavailable(e) from e
    return PushToStartRegisterResponse(
        token_id=record.id,
        grade=record.grade,
        class_number=record.class_number,
        registered_at=record.registered_at,
    )


@router.post("/activity-token", response_model=ActivityTokenRegisterResponse)
async def register_activity_token(
    body: ActivityTokenRegisterRequest,
    registry: TokenRegistry = Depends(get_registry),
):
    """Register the update token of a running Live Activity."""
    try:
        record = await registry.register_activity(
            token=body.token,
            activity_id=body.activity_id,
            device_id=body.device_id,
            bundle_id=body.bundle_id,
            timestamp=body.timestamp,
            grade=body.grade,
            class_number=body.class_number,
        )
    except StorageError as e:
        raise _store_unavailable(e) from e
    return ActivityTokenRegisterResponse(
        token_id=record.id,
        activity_id=record.activity_id,
        grade=record.grade,
        class_number=record.class_number,
        registered_at=record.registered_at,
    )


@router.post("/apns-token", response_model=APNsTokenRegisterResponse)
async def register_apns_token(
    body: APNsTokenRegisterRequest,
    registry: TokenRegistry = Depends(get_registry),
):
    try:
        record = await registry.register_apns(
            token=body.token,
            device_id=body.device_id,
            bundle_id=body.bundle_id,
            timestamp=body.timestamp,
        )
    except StorageError as e:
        raise _store_unavailable(e) from e
    return APNsTokenRegisterResponse(token_id=record.id, registered_at=record.registered_at)


@router.delete("/devices/{device_id}", response_model=DeviceRemovalResponse)
async def remove_device(
    device_id: str,
    registry: TokenRegistry = Depends(get_registry),
):
    """Forget every token a device has registered."""
    try:
        removed = await registry.remove_device_tokens(device_id)
    except StorageError as e:
        raise _store_unavailable(e) from e
    if not removed:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Device not registered")
    return DeviceRemovalResponse(device_id=device_id, removed=True)


# --- Push control (admin) ---


@router.post("/start", response_model=FanOutResponse, dependencies=[Depends(require_admin)])
async def start_activities(dispatcher: LiveActivityDispatcher = Depends(get_dispatcher)):
    try:
        result = await dispatcher.fan_out_start()
    except ConfigurationError as e:
        raise _not_ready(e) from e
    except StorageError as e:
        raise _store_unavailable(e) from e
    return _fan_out_response(result)


@router.post("/update", response_model=FanOutResponse, dependencies=[Depends(require_admin)])
async def update_activities(dispatcher: LiveActivityDispatcher = Depends(get_dispatcher)):
    try:
        result = await dispatcher.fan_out_update()
    except ConfigurationError as e:
        raise _not_ready(e) from e
    except StorageError as e:
        raise _store_unavailable(e) from e
    return _fan_out_response(result)


@router.post("/end", response_model=FanOutResponse, dependencies=[Depends(require_admin)])
async def end_activities(
    body: EndActivityRequest | None = Body(None),
    dispatcher: LiveActivityDispatcher = Depends(get_dispatcher),
):
    """End every running activity. The body may override dates and the alert text."""
    options = body or EndActivityRequest()
    try:
        result = await dispatcher.fan_out_end(
            start_epoch=options.start_date,
            dismissal_epoch=options.dismissal_date,
            alert_title=options.alert_title,
            alert_body=options.alert_body,
        )
    except ConfigurationError as e:
        raise _not_ready(e) from e
    except StorageError as e:
        raise _store_unavailable(e) from e
    return _fan_out_response(result)


# --- Reporting (admin) ---


@router.get("/tokens", response_model=TokenListResponse, dependencies=[Depends(require_admin)])
async def list_tokens(registry: TokenRegistry = Depends(get_registry)):
    try:
        snapshot = await registry.all_tokens()
    except StorageError as e:
        raise _store_unavailable(e) from e
    return TokenListResponse(
        push_to_start_tokens=[PushToStartTokenView.model_validate(t) for t in snapshot.push_to_start_tokens],
        activity_tokens=[ActivityTokenView.model_validate(t) for t in snapshot.activity_tokens],
        total_devices=snapshot.total_devices,
    )


@router.get("/stats", response_model=TokenStatsResponse, dependencies=[Depends(require_admin)])
async def token_stats(registry: TokenRegistry = Depends(get_registry)):
    try:
        return await registry.stats()
    except StorageError as e:
        raise _store_unavailable(e) from e


@router.post("/cleanup", response_model=CleanupResponse, dependencies=[Depends(require_admin)])
async def cleanup_tokens(
    registry: TokenRegistry = Depends(get_registry),
    settings: Settings = Depends(get_settings),
):
    """Remove tokens not refreshed within ``TOKEN_TTL_DAYS``."""
    try:
        removed = await registry.cleanup_expired(timedelta(days=settings.token_ttl_days))
    except StorageError as e:
        raise _store_unavailable(e) from e
    return CleanupResponse(removed=removed, ttl_days=settings.token_ttl_days)


@router.get("/status", response_model=ServiceStatusResponse)
async def service_status(
    dispatcher: LiveActivityDispatcher = Depends(get_dispatcher),
    settings: Settings = Depends(get_settings),
):
    push = dispatcher.push_service
    info = push.authenticator.info()
    return ServiceStatusResponse(
        ready=info["ready"],
        environment=settings.app_env,
        gateway_url=push.base_url,
        key_id=info["keyId"],
        team_id=info["teamId"],
        token_store=settings.token_store_backend,
    )

"""FastAPI dependency injection."""

import logging
import secrets

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from liveclass.config import Settings, get_settings
from liveclass.services.notification_dispatcher import LiveActivityDispatcher, get_live_activity_dispatcher
from liveclass.services.token_registry import TokenRegistry
from liveclass.services.token_store import TokenStore, create_token_store

logger = logging.getLogger(__name__)

# Token store, registry and dispatcher (initialized in lifespan)
_store: TokenStore | None = None
_registry: TokenRegistry | None = None
_dispatcher: LiveActivityDispatcher | None = None

security = HTTPBearer(auto_error=False)


def init_registry(settings: Settings) -> TokenRegistry:
    """Create the token store, registry and dispatcher. Called from lifespan."""
    global _store, _registry, _dispatcher
    _store = create_token_store(settings)
    _registry = TokenRegistry(_store)
    _dispatcher = get_live_activity_dispatcher(settings, _registry)
    return _registry


async def shutdown_registry() -> None:
    """Close the token store. Called from lifespan."""
    global _store, _registry, _dispatcher
    if _store:
        await _store.close()
    _store = _registry = _dispatcher = None


def get_registry(settings: Settings = Depends(get_settings)) -> TokenRegistry:
    if _registry is None:
        init_registry(settings)
    return _registry


def get_dispatcher(settings: Settings = Depends(get_settings)) -> LiveActivityDispatcher:
    if _dispatcher is None:
        init_registry(settings)
    return _dispatcher


async def require_admin(
    credentials: HTTPAuthorizationCredentials | None = Depends(security),
    settings: Settings = Depends(get_settings),
) -> None:
    """Guard operational endpoints with the admin API key, if one is configured."""
    expected = settings.admin_api_key.get_secret_value()
    if not expected:
        return
    if credentials is None or not secrets.compare_digest(credentials.credentials, expected):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid admin credentials",
            headers={"WWW-Authenticate": "Bearer"},
        )

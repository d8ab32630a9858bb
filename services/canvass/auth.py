"""
Permission-based API key authentication for the Canvass Service.

The API key identifies the calling client and its permissions; the gateway
forwards the signed-in canvasser in X-User-Id, which is resolved to a User
row whose role governs what that person may change.
"""

from typing import Any, Callable, Dict, List

from fastapi import Depends, Request
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from services.canvass.database import get_async_session
from services.canvass.models.user import User
from services.canvass.settings import get_settings
from services.common.api_key_auth import (
    APIKeyConfig,
    get_current_user_from_gateway_headers,
    make_service_permission_required,
)
from services.common.http_errors import AuthError, StoreError
from services.common.logging_config import get_logger

logger = get_logger(__name__)

# API Key configurations mapped by settings key names
API_KEY_CONFIGS: Dict[str, APIKeyConfig] = {
    "api_frontend_canvass_key": APIKeyConfig(
        client="frontend",
        service="canvass-service-access",
        permissions=[
            "read_contacts",
            "search_contacts",
            "write_contacts",
            "read_audit",
            "undo_audit",
        ],
        settings_key="api_frontend_canvass_key",
    ),
    "api_admin_canvass_key": APIKeyConfig(
        client="admin-console",
        service="canvass-service-access",
        permissions=[
            "read_contacts",
            "search_contacts",
            "read_audit",
            "undo_audit",
        ],  # Review and undo only; no direct edits
        settings_key="api_admin_canvass_key",
    ),
}


def service_permission_required(
    required_permissions: List[str],
) -> Callable[[Request], Any]:
    """Require specific permissions for API key authentication."""
    return make_service_permission_required(
        required_permissions,
        API_KEY_CONFIGS,
        get_settings,
    )


async def get_acting_user(
    request: Request,
    session: AsyncSession = Depends(get_async_session),
) -> User:
    """
    Resolve the canvasser making the request.

    Raises:
        AuthError: header missing, or no active user with that id
    """
    user_id = await get_current_user_from_gateway_headers(request)
    if not user_id:
        raise AuthError("Acting user required (X-User-Id header)")

    try:
        user = await session.get(User, user_id)
    except SQLAlchemyError as e:
        logger.error("Failed to load acting user", user_id=user_id, error=str(e))
        raise StoreError("Failed to load acting user", operation="load_user")

    if user is None or not user.is_active:
        logger.warning("Unknown or inactive acting user", user_id=user_id)
        raise AuthError("Unknown or inactive user")
    return user

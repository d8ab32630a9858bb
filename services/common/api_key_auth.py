"""
Shared API key authentication and authorization helpers for the Canvass services.

Each service defines its own API_KEY_CONFIGS and get_settings function and
passes them to these helpers. Requests arrive through the gateway, which
authenticates the canvasser and forwards their id in X-User-Id; the API key
identifies the calling client and what it may do.
"""

from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional

from fastapi import Request

from services.common.http_errors import AuthError, ErrorCode, ServiceError
from services.common.logging_config import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class APIKeyConfig:
    client: str
    service: str
    permissions: List[str]
    settings_key: str  # The key name in settings to look up the actual API key value


def build_api_key_mapping(
    api_key_configs: Dict[str, APIKeyConfig], get_settings: Callable[[], Any]
) -> Dict[str, APIKeyConfig]:
    """
    Build a mapping from actual API key values to their configurations.
    """
    settings = get_settings()
    api_key_mapping = {}
    for config in api_key_configs.values():
        actual_key_value = getattr(settings, config.settings_key, None)
        if actual_key_value:
            api_key_mapping[actual_key_value] = config
        else:
            logger.debug("API key not configured", settings_key=config.settings_key)
    return api_key_mapping


def get_api_key_from_request(request: Request) -> Optional[str]:
    """
    Extract API key from request headers (X-API-Key or Authorization: Bearer).
    """
    api_key = request.headers.get("X-API-Key")
    if api_key:
        return api_key
    authorization = request.headers.get("Authorization")
    if authorization and authorization.startswith("Bearer "):
        return authorization[7:]
    return None


def get_permissions_from_api_key(
    api_key: str, api_key_mapping: Dict[str, APIKeyConfig]
) -> List[str]:
    key_config = api_key_mapping.get(api_key)
    return key_config.permissions if key_config else []


def has_permissions(
    api_key: str,
    required_permissions: Optional[List[str]],
    api_key_mapping: Dict[str, APIKeyConfig],
) -> bool:
    if not required_permissions:
        return True
    key_permissions = get_permissions_from_api_key(api_key, api_key_mapping)
    return all(perm in key_permissions for perm in required_permissions)


async def get_current_user_from_gateway_headers(request: Request) -> Optional[str]:
    """
    Extract the acting user id forwarded by the gateway (X-User-Id).

    Returns:
        User ID from gateway headers or None if not present
    """
    user_id = request.headers.get("X-User-Id")
    if user_id:
        logger.debug("User identified via gateway headers", user_id=user_id)
        return user_id.strip() or None
    return None


# FastAPI dependencies (parameterized)
def make_verify_service_authentication(
    api_key_configs: Dict[str, APIKeyConfig], get_settings: Callable[[], Any]
) -> Callable[[Request], str]:
    def verify_service_authentication(request: Request) -> str:
        """Verify the API key from the request and return the service name."""
        api_key = get_api_key_from_request(request)
        if not api_key:
            logger.warning("Missing API key in request headers")
            raise AuthError(message="API key required", status_code=401)
        api_key_mapping = build_api_key_mapping(api_key_configs, get_settings)
        key_config = api_key_mapping.get(api_key)
        if not key_config:
            logger.warning("Invalid API key", api_key_prefix=api_key[:4])
            raise AuthError(message="Invalid API key", status_code=401)
        request.state.api_key = api_key
        request.state.service_name = key_config.service
        request.state.client_name = key_config.client
        logger.debug(
            "Service authenticated",
            service=key_config.service,
            client=key_config.client,
        )
        return key_config.service

    return verify_service_authentication


def make_service_permission_required(
    required_permissions: List[str],
    api_key_configs: Dict[str, APIKeyConfig],
    get_settings: Callable[[], Any],
) -> Callable[[Request], Any]:
    verify_service_authentication = make_verify_service_authentication(
        api_key_configs, get_settings
    )

    async def dependency(request: Request) -> str:
        service_name = verify_service_authentication(request)
        api_key = getattr(request.state, "api_key", None)
        if not api_key:
            raise ServiceError(
                message="API key not found in request state", status_code=500
            )
        api_key_mapping = build_api_key_mapping(api_key_configs, get_settings)
        if not has_permissions(api_key, required_permissions, api_key_mapping):
            client_name = getattr(request.state, "client_name", "unknown")
            logger.warning(
                "Permission denied for API client",
                service=service_name,
                client=client_name,
                required_permissions=required_permissions,
            )
            raise AuthError(
                message=f"Insufficient permissions. Required: {required_permissions}",
                code=ErrorCode.INSUFFICIENT_PERMISSIONS,
                status_code=403,
            )
        return service_name

    return dependency

"""API key authentication and caller identity.

Keys are validated against a comma-separated list from environment
variables. A verified key also becomes the caller's stable identity
(``request.state.user_id``), which identity-keyed rate limit policies use
instead of the network address.

Design principles:
- Single Responsibility: Only handles API key validation and identity
- Dependency Injection: Used via FastAPI Depends() for loose coupling
- Configuration-driven: Keys managed via env vars, not hardcoded
"""

from __future__ import annotations

import hashlib
import logging
from typing import Annotated

from fastapi import Header, HTTPException, Request, status

from app.core.config import AppSettings, get_request_settings, settings
from app.core.errors import AuthenticationAppError

logger = logging.getLogger(__name__)


def parse_api_keys(keys_string: str | None) -> set[str]:
    """Parse comma-separated API keys into a set.

    Args:
        keys_string: Comma-separated string of API keys, or None.

    Returns:
        Set of trimmed, non-empty API keys.

    Examples:
        >>> parse_api_keys("key1, key2 , key3 ")
        {'key1', 'key2', 'key3'}
        >>> parse_api_keys(None)
        set()
    """
    if not keys_string:
        return set()

    return {key.strip() for key in keys_string.split(",") if key.strip()}


def derive_user_id(api_key: str) -> str:
    """Stable, non-reversible identity derived from an API key."""
    return hashlib.sha256(api_key.encode()).hexdigest()[:16]


def validate_api_key(provided_key: str, app_settings: AppSettings | None = None) -> None:
    """Validate that provided API key matches configured keys.

    Pure validation logic without FastAPI dependencies for easy testing.

    Args:
        provided_key: API key to validate.
        app_settings: Settings to validate against; defaults to the global
            settings.

    Raises:
        AuthenticationAppError: If key is invalid or authentication is required
            but no keys are configured.
    """
    cfg = app_settings or settings.app
    if not cfg.api_key_required:
        return

    valid_keys = parse_api_keys(cfg.api_keys)

    if not valid_keys:
        logger.error(
            "api_key_validation_failed",
            extra={
                "reason": "api_keys_not_configured",
                "auth_required": cfg.api_key_required,
            },
        )
        raise AuthenticationAppError(
            code="api_keys_not_configured",
            message="API key authentication is enabled but no valid keys are configured",
            details={"hint": "Set APP_API_KEYS or disable auth with APP_API_KEY_REQUIRED=false"},
        )

    if provided_key not in valid_keys:
        logger.warning(
            "api_key_validation_failed",
            extra={
                "reason": "invalid_api_key",
                "api_key_hash": derive_user_id(provided_key),
                "auth_required": cfg.api_key_required,
            },
        )
        raise AuthenticationAppError(
            code="invalid_api_key",
            message="Invalid or missing API key",
        )


async def verify_api_key(
    request: Request,
    x_api_key: Annotated[str | None, Header(alias="X-API-Key")] = None,
) -> None:
    """FastAPI dependency for API key authentication.

    Declare it before any identity-keyed rate limit dependency so the
    limiter sees the authenticated identity:

        @router.post(
            "/payments",
            dependencies=[Depends(verify_api_key), Depends(rate_limit("payment"))],
        )

    With authentication disabled the request always passes, but a key that
    matches the configured keys still becomes the caller's identity.

    Args:
        request: Current request; receives ``state.user_id`` on success.
        x_api_key: API key from X-API-Key header (injected by FastAPI).

    Raises:
        HTTPException: 403 Forbidden if authentication fails.
    """
    cfg = get_request_settings(request).app

    if not cfg.api_key_required:
        if x_api_key and x_api_key in parse_api_keys(cfg.api_keys):
            request.state.user_id = derive_user_id(x_api_key)
        logger.debug(
            "auth.skipped",
            extra={
                "reason": "auth_required_false",
                "identified": hasattr(request.state, "user_id"),
            },
        )
        return

    if not x_api_key:
        logger.warning(
            "auth.missing_key",
            extra={
                "auth_required": True,
                "api_key_present": False,
            },
        )
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Missing API key. Provide X-API-Key header.",
        )

    try:
        validate_api_key(x_api_key, cfg)
    except AuthenticationAppError as exc:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail=exc.message,
        ) from exc

    request.state.user_id = derive_user_id(x_api_key)
    logger.info(
        "auth.success",
        extra={
            "auth_required": True,
            "api_key_present": True,
            "api_key_hash": request.state.user_id,
        },
    )

"""
FastAPI dependency injection module for the TPHub Alerts backend.

Key Dependencies Provided:
- get_settings_dependency / SettingsDep: the cached Settings singleton
- require_cron_secret / CronAuthDep: scheduler bearer secret check
- require_staff_user / StaffUserDep: session token check for staff users

Dependencies run before the endpoint body, so a rejected credential stops
the request before any query, body parsing or dispatch takes place.

Usage:
    @router.post("/daily")
    async def daily(settings: SettingsDep, _: CronAuthDep) -> dict:
        ...

In tests, settings are swapped through FastAPI's override mechanism:

    app.dependency_overrides[get_settings_dependency] = lambda: test_settings
"""

import logging
from typing import Annotated, Optional

from fastapi import Depends, Header, HTTPException, status

from tphub_alerts.core.config import Settings, get_settings
from tphub_alerts.core.security import (
    InvalidSessionError,
    decode_session_token,
    extract_bearer_token,
    is_organization_email,
    verify_cron_secret,
)
from tphub_alerts.models import SessionUser


logger = logging.getLogger(__name__)


# =============================================================================
# Settings Dependency
# =============================================================================

def get_settings_dependency() -> Settings:
    """
    Return the Settings singleton instance.

    Thin wrapper around get_settings() so tests can override it through
    app.dependency_overrides.
    """
    return get_settings()


SettingsDep = Annotated[Settings, Depends(get_settings_dependency)]


# =============================================================================
# Authentication Dependencies
# =============================================================================

def require_cron_secret(
    settings: SettingsDep,
    authorization: Annotated[Optional[str], Header()] = None,
) -> None:
    """
    Accept only 'Authorization: Bearer <CRON_SECRET>'.

    Raises:
        HTTPException 401: On any mismatch, including an unset CRON_SECRET.
    """
    if not verify_cron_secret(authorization, settings.cron_secret):
        logger.info("Unauthorized cron request")
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail='Unauthorized')


def require_staff_user(
    settings: SettingsDep,
    authorization: Annotated[Optional[str], Header()] = None,
) -> SessionUser:
    """
    Resolve the staff user behind a session bearer token.

    Checks, in order: header present, token validation configured, token
    valid, email within the organization's domain.

    Raises:
        HTTPException 401: Missing header or invalid token.
        HTTPException 500: SUPABASE_JWT_SECRET not configured.
        HTTPException 403: User outside the organization's email domain.
    """
    token = extract_bearer_token(authorization)
    if token is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail='Missing authorization')

    if not settings.supabase_jwt_secret:
        logger.error("SUPABASE_JWT_SECRET is not configured")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail='Missing Supabase configuration',
        )

    try:
        user = decode_session_token(token, settings)
    except InvalidSessionError as e:
        logger.info(f"Rejected session token: {e}")
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail='Invalid token')

    if not is_organization_email(user.email, settings.organization_email_domain):
        logger.info(f"Forbidden test alert request from user {user.id}")
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail='Forbidden')

    return user


CronAuthDep = Annotated[None, Depends(require_cron_secret)]
StaffUserDep = Annotated[SessionUser, Depends(require_staff_user)]

"""
Request authentication helpers.

Two credentials are accepted by the alert endpoints:

- Cron secret: `Authorization: Bearer <CRON_SECRET>`, compared in constant
  time. An unset CRON_SECRET rejects every request.
- Session token: a Supabase access token (JWT) validated locally with
  python-jose against SUPABASE_JWT_SECRET (HS256 secret or PEM public key)
  and the expected audience. The resolved email must belong to the
  organization's domain.
"""

import hmac
from typing import Optional

from jose import JWTError, jwt

from tphub_alerts.core.config import Settings
from tphub_alerts.models import SessionUser


BEARER_PREFIX = 'Bearer '


class InvalidSessionError(Exception):
    """The session token is malformed, expired, or signed with another key."""


def extract_bearer_token(authorization: Optional[str]) -> Optional[str]:
    """Return the token of a 'Bearer <token>' header, or None."""
    if not authorization or not authorization.startswith(BEARER_PREFIX):
        return None
    token = authorization[len(BEARER_PREFIX):].strip()
    return token or None


def verify_cron_secret(authorization: Optional[str], cron_secret: Optional[str]) -> bool:
    """Exact match of the header against 'Bearer <cron_secret>'."""
    if not cron_secret or authorization is None:
        return False
    expected = f"{BEARER_PREFIX}{cron_secret}"
    return hmac.compare_digest(authorization.encode('utf-8'), expected.encode('utf-8'))


def decode_session_token(token: str, settings: Settings) -> SessionUser:
    """
    Validate a session JWT and resolve its user.

    Raises:
        InvalidSessionError: If the signature, expiry or audience check fails,
            or the token carries no subject.
    """
    try:
        payload = jwt.decode(
            token,
            settings.supabase_jwt_secret,
            algorithms=[settings.supabase_jwt_algorithm],
            audience=settings.supabase_jwt_audience,
        )
    except JWTError as e:
        raise InvalidSessionError(str(e)) from e

    user_id = payload.get('sub')
    if not user_id:
        raise InvalidSessionError('Token has no subject')

    return SessionUser(id=str(user_id), email=payload.get('email'))


def is_organization_email(email: Optional[str], domain: str) -> bool:
    """True when the email ends with '@<domain>' (case-insensitive)."""
    if not email:
        return False
    return email.lower().endswith(f"@{domain.lower().lstrip('@')}")

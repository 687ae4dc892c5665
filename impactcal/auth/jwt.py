"""
JWT Token Management.

HS256 signing for access tokens.
"""

import uuid
from datetime import datetime, timedelta, timezone

from jose import JWTError, jwt

from impactcal.config import settings

REQUIRED_CLAIMS = ("user_id", "tenant_id")


class TokenError(Exception):
    """Raised when token creation or validation fails."""

    pass


def create_access_token(
    user_id: str,
    tenant_id: str,
    email: str,
    role: str = "viewer",
    expires_delta: timedelta | None = None,
) -> str:
    """Create a JWT access token."""
    if expires_delta is None:
        expires_delta = timedelta(minutes=settings.jwt_access_token_expire_minutes)

    now = datetime.now(timezone.utc)
    payload = {
        "user_id": str(user_id),
        "tenant_id": str(tenant_id),
        "email": email,
        "role": role,
        "iat": now,
        "exp": now + expires_delta,
    }
    return jwt.encode(payload, settings.jwt_secret, algorithm=settings.jwt_algorithm)


def decode_token(token: str) -> dict:
    """
    Decode and validate a JWT access token.

    Returns the payload dict with user_id, tenant_id (canonical UUID string),
    email, role.
    Raises TokenError on any failure.
    """
    try:
        payload = jwt.decode(
            token,
            settings.jwt_secret,
            algorithms=[settings.jwt_algorithm],
        )
    except JWTError as e:
        raise TokenError(f"Invalid token: {e}") from e

    if any(not payload.get(claim) for claim in REQUIRED_CLAIMS):
        raise TokenError("Token missing required claims")

    # Every calibration table is keyed by a UUID tenant
    try:
        payload["tenant_id"] = str(uuid.UUID(str(payload["tenant_id"])))
    except ValueError as e:
        raise TokenError("tenant_id claim is not a UUID") from e
    return payload

"""Bearer tokens for admin access and order tracking."""

from datetime import datetime, timedelta, timezone
from typing import Any

import jwt
from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from fulfillment.config import get_settings
from fulfillment.errors import AuthenticationFailed, PermissionDenied

ADMIN_ROLE = "admin"
TRACKING_SCOPE = "order:track"

bearer_scheme = HTTPBearer(auto_error=False)


def _encode(claims: dict[str, Any], expires_minutes: int) -> str:
    settings = get_settings()
    now = datetime.now(timezone.utc)
    payload = {**claims, "iat": now, "exp": now + timedelta(minutes=expires_minutes)}
    return jwt.encode(payload, settings.secret_key, algorithm=settings.token_algorithm)


def create_access_token(subject: str, role: str, expires_minutes: int = 60) -> str:
    """Issue a user token. Normally done by the auth service sharing our key."""
    return _encode({"sub": subject, "role": role}, expires_minutes)


def create_tracking_token(order_id: str) -> str:
    """Token that lets its holder follow one order's realtime updates."""
    settings = get_settings()
    return _encode(
        {"sub": order_id, "scope": TRACKING_SCOPE},
        settings.tracking_token_expire_minutes,
    )


def decode_token(token: str | None) -> dict[str, Any]:
    if not token:
        raise AuthenticationFailed("Authentication required")

    settings = get_settings()
    try:
        return jwt.decode(token, settings.secret_key, algorithms=[settings.token_algorithm])
    except jwt.ExpiredSignatureError:
        raise AuthenticationFailed("Token expired") from None
    except jwt.PyJWTError:
        raise AuthenticationFailed("Invalid token") from None


def verify_admin_token(token: str | None) -> dict[str, Any]:
    claims = decode_token(token)
    if claims.get("role") != ADMIN_ROLE:
        raise PermissionDenied("Admin required")
    return claims


def verify_tracking_token(token: str | None, order_id: str) -> dict[str, Any]:
    claims = decode_token(token)
    if claims.get("scope") != TRACKING_SCOPE or claims.get("sub") != order_id:
        raise PermissionDenied("Token does not grant access to this order")
    return claims


async def require_admin(
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
) -> dict[str, Any]:
    """FastAPI dependency guarding admin routes."""
    return verify_admin_token(credentials.credentials if credentials else None)

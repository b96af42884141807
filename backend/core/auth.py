"""
Auth utilities for the GymBro API.

The external identity provider issues signed JWTs; the verified `sub` claim is the
user id. Outside production the X-User-Id header is accepted for tests and local
development.
"""
from fastapi import Header, HTTPException, Request
from typing import Optional
import hmac
import jwt
import logging

from backend.core.config import settings

logger = logging.getLogger("gymbro.auth")


def verify_identity_token(token: str) -> Optional[str]:
    """
    Verify a bearer JWT and extract the subject id.

    Returns:
        user_id from the 'sub' claim, or None when no secret is configured

    Raises:
        HTTPException 401: Invalid or expired token
    """
    if not settings.AUTH_JWT_SECRET:
        logger.debug("No AUTH_JWT_SECRET configured, skipping JWT validation")
        return None

    options = {"verify_signature": True, "verify_exp": True, "verify_aud": bool(settings.AUTH_JWT_AUDIENCE)}
    try:
        payload = jwt.decode(
            token,
            settings.AUTH_JWT_SECRET,
            algorithms=["HS256"],
            audience=settings.AUTH_JWT_AUDIENCE,
            issuer=settings.AUTH_JWT_ISSUER,
            options=options,
        )
    except jwt.ExpiredSignatureError:
        raise HTTPException(status_code=401, detail="Token expired")
    except jwt.InvalidTokenError as e:
        logger.debug(f"Invalid token: {e}")
        raise HTTPException(status_code=401, detail="Invalid token")

    user_id = payload.get("sub")
    if not user_id:
        raise HTTPException(status_code=401, detail="Token has no subject")
    return str(user_id)


def _upsert_user(user_id: str) -> None:
    try:
        from backend.features.users.service import get_or_create_user
        get_or_create_user(user_id)
    except Exception as e:
        # Don't block auth if the upsert fails; the request may not need the users table.
        logger.warning(f"Failed to upsert user {user_id}: {e}")


async def get_current_user_id(
    request: Request,
    x_user_id: Optional[str] = Header(None, description="Development/test user ID"),
) -> str:
    """
    Extract current user ID from request context.

    Priority:
    1. Bearer JWT from Authorization header
    2. X-User-Id header (not in production)
    3. Raise 401 Unauthorized
    """
    auth_header = request.headers.get("Authorization", "")
    if auth_header.startswith("Bearer "):
        user_id = verify_identity_token(auth_header[7:].strip())
        if user_id:
            _upsert_user(user_id)
            return user_id

    if x_user_id and settings.ENV.lower() != "production":
        _upsert_user(x_user_id)
        return x_user_id

    raise HTTPException(
        status_code=401,
        detail="Missing Authorization (Bearer JWT) or X-User-Id header",
    )


def require_cron_key(request: Request) -> None:
    """Guard for scheduler-triggered endpoints (X-Cron-Key must match CRON_SECRET)."""
    expected = settings.CRON_SECRET
    provided = request.headers.get("X-Cron-Key", "").strip()
    if not expected or not provided or not hmac.compare_digest(provided.encode("utf-8"), expected.encode("utf-8")):
        raise HTTPException(status_code=401, detail="Invalid or missing cron key")

from dataclasses import dataclass
from uuid import UUID

import jwt
from fastapi import Depends, HTTPException, Request

from app.core.config import settings

ADMIN_ROLE = "admin"


@dataclass
class CurrentUser:
    user_id: UUID
    role: str


def decode_access_token(token: str) -> CurrentUser:
    """Decode a bearer token issued by the auth service.

    Raises jwt.ExpiredSignatureError or jwt.InvalidTokenError on failure.
    """
    payload = jwt.decode(token, settings.JWT_SECRET, algorithms=[settings.JWT_ALGORITHM])
    return CurrentUser(user_id=UUID(str(payload["sub"])), role=str(payload.get("role", "user")))


def get_current_user(request: Request) -> CurrentUser:
    """Extract the caller from the ``Authorization: Bearer`` header."""
    auth_header = request.headers.get("Authorization")
    if not auth_header:
        raise HTTPException(status_code=401, detail="Missing bearer token")

    if not auth_header.startswith("Bearer "):
        raise HTTPException(status_code=401, detail="Invalid authorization header format")

    token = auth_header[7:]
    if not token:
        raise HTTPException(status_code=401, detail="Bearer token is required")

    try:
        return decode_access_token(token)
    except jwt.ExpiredSignatureError:
        raise HTTPException(status_code=401, detail="Token has expired") from None
    except (jwt.InvalidTokenError, KeyError, ValueError):
        raise HTTPException(status_code=401, detail="Invalid token") from None


def require_admin(current_user: CurrentUser = Depends(get_current_user)) -> CurrentUser:
    if current_user.role != ADMIN_ROLE:
        raise HTTPException(status_code=403, detail="Admin only")
    return current_user

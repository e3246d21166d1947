from __future__ import annotations

import hmac
from dataclasses import dataclass

from fastapi import Depends, Header, HTTPException, status
from fastapi.security import OAuth2PasswordBearer

from app.core.config import settings
from app.core.security import TokenError, decode_token

oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/auth/login")

STAFF_ROLES = ("admin", "staff")


@dataclass(frozen=True)
class Actor:
    """Authenticated caller. tenant_id always comes from the token, never from the request body."""

    user_id: str
    tenant_id: str
    role: str


async def get_current_actor(token: str = Depends(oauth2_scheme)) -> Actor:
    if not token:
        raise HTTPException(status_code=401, detail="Missing bearer token")

    try:
        payload = decode_token(token)
    except TokenError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired token",
        )

    user_id = payload.get("sub")
    tenant_id = payload.get("tenant_id")
    role = payload.get("role")
    if not user_id or not tenant_id:
        raise HTTPException(status_code=401, detail="Token missing sub/tenant_id")
    if role not in STAFF_ROLES:
        raise HTTPException(status_code=403, detail="Unknown role")

    return Actor(user_id=str(user_id), tenant_id=str(tenant_id), role=role)


def require_admin(actor: Actor = Depends(get_current_actor)) -> Actor:
    if actor.role != "admin":
        raise HTTPException(status_code=403, detail="Admin only")
    return actor


def require_staff(actor: Actor = Depends(get_current_actor)) -> Actor:
    # admins can work the register too
    if actor.role not in STAFF_ROLES:
        raise HTTPException(status_code=403, detail="Staff only")
    return actor


def require_service_key(x_service_key: str | None = Header(default=None)) -> None:
    if not x_service_key or not hmac.compare_digest(x_service_key, settings.SERVICE_API_KEY):
        raise HTTPException(status_code=401, detail="Invalid service key")

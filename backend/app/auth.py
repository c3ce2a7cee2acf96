from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Optional

import jwt
from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from backend.app.models import Designation, UserRecord
from backend.app.settings import Settings

security = HTTPBearer(auto_error=False)

DEV_ACTOR_HEADER = "X-User-Id"


@dataclass(frozen=True)
class AuthContext:
    user_id: str
    via_token: bool = False


def get_settings(request: Request) -> Settings:
    return request.app.state.settings


def _developer_context(request: Request, settings: Settings) -> AuthContext:
    header_value = request.headers.get(DEV_ACTOR_HEADER, "").strip()
    return AuthContext(user_id=header_value or settings.bootstrap_admin_id)


def get_auth_context(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
) -> AuthContext:
    settings = get_settings(request)
    if not settings.auth_enabled:
        return _developer_context(request, settings)

    if not credentials or credentials.scheme.lower() != "bearer":
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="missing bearer token",
        )

    try:
        payload = jwt.decode(
            credentials.credentials,
            settings.jwt_secret,
            algorithms=[settings.jwt_algorithm],
        )
    except jwt.InvalidTokenError as exc:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="invalid auth token",
        ) from exc

    subject = payload.get("sub")
    if not isinstance(subject, str) or not subject.strip():
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="token missing subject",
        )
    return AuthContext(user_id=subject.strip(), via_token=True)


def get_actor(
    request: Request,
    context: AuthContext = Depends(get_auth_context),
) -> UserRecord:
    """Resolve the caller to a roster entry. Roles never come from the token."""
    actor = request.app.state.store.users.get(context.user_id)
    if actor is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=f"unknown user: {context.user_id}",
        )
    return actor


def require_roles(*designations: Designation) -> Callable[[UserRecord], UserRecord]:
    required = set(designations)

    def dependency(actor: UserRecord = Depends(get_actor)) -> UserRecord:
        if not required:
            return actor
        if actor.designation in required:
            return actor
        if Designation.admin in required and actor.is_admin_tier:
            return actor
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail=f"insufficient role. required any of: {sorted(item.value for item in required)}",
        )

    return dependency

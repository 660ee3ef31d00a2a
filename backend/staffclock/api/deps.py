from __future__ import annotations

from typing import Callable

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.orm import Session

from staffclock.core.clock import Clock, utcnow
from staffclock.core.errors import Forbidden, InvalidCredentials
from staffclock.core.logging import bind_request_context, get_logger
from staffclock.core.security import TokenError, decode_access_token
from staffclock.db.session import get_session
from staffclock.models.user import User, role_at_least

logger = get_logger(__name__)

bearer_scheme = HTTPBearer(auto_error=False)

MANAGER_ROLES = ("admin", "manager")


def get_clock() -> Clock:
    return utcnow


def get_current_user(
    request: Request,
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
    db: Session = Depends(get_session),
) -> User:
    if credentials is None or not credentials.credentials:
        raise InvalidCredentials("Authentication required")

    try:
        payload = decode_access_token(credentials.credentials)
    except TokenError as exc:
        logger.info("token_rejected", reason=str(exc))
        raise InvalidCredentials("Invalid token") from exc

    user = db.get(User, payload["sub"])
    if user is None or not user.is_active or user.tenant_id != payload["tenant_id"]:
        logger.warning("authentication_failed", user_id=payload["sub"], tenant_id=payload["tenant_id"])
        raise InvalidCredentials("Invalid authentication")

    requested_tenant = request.headers.get("X-Tenant-ID")
    if requested_tenant and requested_tenant != user.tenant_id:
        logger.warning("tenant_mismatch", user_id=user.id, requested_tenant=requested_tenant)
        raise Forbidden("Access denied - tenant mismatch")

    if not user.tenant.is_active:
        raise Forbidden("Organization is suspended")

    bind_request_context(user_id=user.id, tenant_id=user.tenant_id, role=user.role)
    return user


def require_roles(*roles: str) -> Callable[..., User]:
    allowed = set(roles)

    def dependency(user: User = Depends(get_current_user)) -> User:
        if user.role not in allowed:
            raise Forbidden("Insufficient permissions")
        return user

    return dependency


def is_manager(user: User) -> bool:
    return role_at_least(user.role, "manager")

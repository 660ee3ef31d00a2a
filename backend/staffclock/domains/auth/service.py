"""PIN authentication.

Every candidate PIN hash in scope is checked, without stopping at the first match,
so response latency depends on the size of the scope and not on where (or whether)
the PIN matches.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable

from sqlalchemy import func
from sqlalchemy.orm import Session

from staffclock.core.clock import Clock, utcnow
from staffclock.core.errors import InvalidCredentials, ValidationError
from staffclock.core.logging import get_logger
from staffclock.core.observability import login_attempts
from staffclock.core.security import burn_pin_check, create_access_token, hash_pin, verify_pin
from staffclock.domains.audit.service import AuditLogger
from staffclock.models.tenant import Tenant
from staffclock.models.user import User

logger = get_logger(__name__)


@dataclass
class AuthResult:
    user: User
    tenant: Tenant
    token: str


def _match_exactly_one(candidates: Iterable[User], pin: str) -> User | None:
    matches = [user for user in candidates if verify_pin(pin, user.pin_hash)]
    if len(matches) != 1:
        return None
    return matches[0]


def _active_users(db: Session, tenant_id: str | None):
    query = db.query(User).join(Tenant).filter(User.is_active.is_(True), Tenant.is_active.is_(True))
    if tenant_id:
        query = query.filter(User.tenant_id == tenant_id)
    return query


def authenticate(
    db: Session,
    pin: str,
    *,
    email: str | None = None,
    tenant_id: str | None = None,
    clock: Clock = utcnow,
) -> AuthResult:
    """Resolve a PIN (optionally with an email) to exactly one active user.

    Raises InvalidCredentials without saying which part was wrong.
    """
    if email:
        candidates = (
            _active_users(db, tenant_id)
            .filter(func.lower(User.email) == email.strip().lower())
            .all()
        )
        if not candidates:
            burn_pin_check(pin)
        failure_message = "Invalid credentials"
    else:
        candidates = _active_users(db, tenant_id).all()
        failure_message = "Invalid PIN"

    user = _match_exactly_one(candidates, pin)
    if user is None:
        login_attempts.add(1, {"outcome": "failure"})
        logger.warning("login_failed", method="email" if email else "pin", tenant_id=tenant_id)
        raise InvalidCredentials(failure_message)

    user.last_login = clock()
    AuditLogger(db).log(
        tenant_id=user.tenant_id,
        user_id=user.id,
        action="login",
        resource="user",
        resource_id=user.id,
        details={"method": "email" if email else "pin"},
    )
    db.commit()
    db.refresh(user)

    login_attempts.add(1, {"outcome": "success"})
    logger.info("login_success", user_id=user.id, role=user.role, tenant_id=user.tenant_id)
    token = create_access_token(user.id, role=user.role, tenant_id=user.tenant_id)
    return AuthResult(user=user, tenant=user.tenant, token=token)


def ensure_pin_available(db: Session, tenant_id: str, pin: str, *, exclude_user_id: str | None = None) -> None:
    """Reject a PIN already held by another user of the tenant.

    Quick login resolves a bare PIN, so PINs must stay unique inside a tenant.
    Deactivated users keep their PIN reserved so reactivating them cannot
    create a duplicate.
    """
    query = db.query(User).filter(User.tenant_id == tenant_id)
    if exclude_user_id:
        query = query.filter(User.id != exclude_user_id)
    if any(verify_pin(pin, other.pin_hash) for other in query.all()):
        raise ValidationError("PIN is not available")


def change_pin(db: Session, user: User, current_pin: str, new_pin: str) -> None:
    if not verify_pin(current_pin, user.pin_hash):
        logger.warning("pin_change_rejected", user_id=user.id)
        raise ValidationError("Current PIN is incorrect")
    if current_pin == new_pin:
        raise ValidationError("New PIN must differ from the current PIN")
    ensure_pin_available(db, user.tenant_id, new_pin, exclude_user_id=user.id)

    user.pin_hash = hash_pin(new_pin)
    AuditLogger(db).log(
        tenant_id=user.tenant_id,
        user_id=user.id,
        action="pin_changed",
        resource="user",
        resource_id=user.id,
    )
    db.commit()
    logger.info("pin_changed", user_id=user.id)

from __future__ import annotations

from typing import Any

from sqlalchemy import func
from sqlalchemy.orm import Session

from staffclock.core.errors import Forbidden, NotFound, ValidationError
from staffclock.core.logging import get_logger
from staffclock.core.security import hash_pin
from staffclock.domains.audit.service import AuditLogger
from staffclock.domains.auth.service import ensure_pin_available
from staffclock.models.user import User, role_at_least

logger = get_logger(__name__)


class UserDirectory:
    """Tenant-scoped user administration. Users are deactivated, never deleted."""

    def __init__(self, session: Session):
        self.session = session
        self.audit = AuditLogger(session)

    def list_users(
        self,
        actor: User,
        *,
        role: str | None = None,
        department: str | None = None,
        is_active: bool | None = None,
    ) -> list[User]:
        query = self.session.query(User).filter(User.tenant_id == actor.tenant_id)
        if role:
            query = query.filter(User.role == role)
        if department:
            query = query.filter(User.department == department)
        if is_active is not None:
            query = query.filter(User.is_active.is_(is_active))
        return query.order_by(func.lower(User.name), User.id).all()

    def get_user(self, actor: User, user_id: str) -> User:
        user = self.session.get(User, user_id)
        if user is None or user.tenant_id != actor.tenant_id:
            raise NotFound("User not found")
        if user.id != actor.id and not role_at_least(actor.role, "manager"):
            raise Forbidden("Access denied")
        return user

    def create_user(self, actor: User, *, pin: str, **fields: Any) -> User:
        self._check_role_grant(actor, fields.get("role", "staff"))
        email = fields.get("email")
        if email and self._email_taken(actor.tenant_id, email):
            raise ValidationError("User already exists")
        ensure_pin_available(self.session, actor.tenant_id, pin)

        user = User(tenant_id=actor.tenant_id, pin_hash=hash_pin(pin), **fields)
        self.session.add(user)
        self.session.flush()
        self.audit.log(
            tenant_id=actor.tenant_id,
            user_id=actor.id,
            action="user_created",
            resource="user",
            resource_id=user.id,
            details={"role": user.role},
        )
        self.session.commit()
        self.session.refresh(user)
        logger.info("user_created", user_id=user.id, role=user.role, tenant_id=user.tenant_id)
        return user

    def update_user(self, actor: User, user_id: str, changes: dict[str, Any]) -> User:
        user = self._manageable(actor, user_id)
        if "role" in changes:
            self._check_role_grant(actor, changes["role"])
            if user.id == actor.id and changes["role"] != user.role:
                raise ValidationError("You cannot change your own role")
        if changes.get("email") and self._email_taken(actor.tenant_id, changes["email"], exclude_id=user.id):
            raise ValidationError("Email already in use")
        if changes.get("is_active") is False and user.id == actor.id:
            raise ValidationError("You cannot deactivate your own account")
        if "is_active" in changes and changes["is_active"] != user.is_active and actor.role != "admin":
            raise Forbidden("Only administrators can activate or deactivate users")

        for field, value in changes.items():
            setattr(user, field, value)
        self.audit.log(
            tenant_id=actor.tenant_id,
            user_id=actor.id,
            action="user_updated",
            resource="user",
            resource_id=user.id,
            details={"fields": sorted(changes)},
        )
        self.session.commit()
        self.session.refresh(user)
        logger.info("user_updated", user_id=user.id, fields=sorted(changes))
        return user

    def deactivate_user(self, actor: User, user_id: str) -> User:
        user = self._manageable(actor, user_id)
        if user.id == actor.id:
            raise ValidationError("You cannot deactivate your own account")
        user.is_active = False
        self.audit.log(
            tenant_id=actor.tenant_id,
            user_id=actor.id,
            action="user_deactivated",
            resource="user",
            resource_id=user.id,
        )
        self.session.commit()
        self.session.refresh(user)
        logger.info("user_deactivated", user_id=user.id)
        return user

    def reset_pin(self, actor: User, user_id: str, new_pin: str) -> User:
        user = self._manageable(actor, user_id)
        ensure_pin_available(self.session, actor.tenant_id, new_pin, exclude_user_id=user.id)
        user.pin_hash = hash_pin(new_pin)
        self.audit.log(
            tenant_id=actor.tenant_id,
            user_id=actor.id,
            action="pin_reset",
            resource="user",
            resource_id=user.id,
        )
        self.session.commit()
        logger.info("pin_reset", user_id=user.id, actor_id=actor.id)
        return user

    def _manageable(self, actor: User, user_id: str) -> User:
        if not role_at_least(actor.role, "manager"):
            raise Forbidden("Insufficient permissions")
        user = self.get_user(actor, user_id)
        # Managers administer staff and contractors only.
        if actor.role != "admin" and user.id != actor.id and role_at_least(user.role, "manager"):
            raise Forbidden("Only administrators can manage managers and administrators")
        return user

    @staticmethod
    def _check_role_grant(actor: User, role: str) -> None:
        if role_at_least(role, "manager") and actor.role != "admin":
            raise Forbidden("Only administrators can assign the manager or admin role")

    def _email_taken(self, tenant_id: str, email: str, *, exclude_id: str | None = None) -> bool:
        query = self.session.query(User).filter(
            User.tenant_id == tenant_id,
            func.lower(User.email) == email.lower(),
        )
        if exclude_id:
            query = query.filter(User.id != exclude_id)
        return query.first() is not None

from __future__ import annotations

from typing import Any

from sqlalchemy.orm import Session

from staffclock.core.logging import get_logger
from staffclock.models.audit_log import AuditLog

logger = get_logger(__name__)


class AuditLogger:
    """Writes audit rows into the caller's session; they commit with the mutation they describe."""

    def __init__(self, session: Session):
        self.session = session

    def log(
        self,
        *,
        tenant_id: str,
        user_id: str | None,
        action: str,
        resource: str,
        resource_id: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> AuditLog:
        record = AuditLog(
            tenant_id=tenant_id,
            user_id=user_id,
            action=action,
            resource=resource,
            resource_id=resource_id,
            details=details or {},
        )
        self.session.add(record)
        logger.info("audit", action=action, resource=resource, resource_id=resource_id, tenant_id=tenant_id)
        return record

    def read(self, tenant_id: str, *, limit: int = 100, action: str | None = None) -> list[AuditLog]:
        query = self.session.query(AuditLog).filter(AuditLog.tenant_id == tenant_id)
        if action:
            query = query.filter(AuditLog.action == action)
        return query.order_by(AuditLog.created_at.desc(), AuditLog.id.desc()).limit(limit).all()

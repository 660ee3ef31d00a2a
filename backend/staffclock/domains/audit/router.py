from __future__ import annotations

from datetime import datetime
from typing import Any

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from staffclock.api.deps import require_roles
from staffclock.api.schemas import CamelModel
from staffclock.core.clock import ensure_utc
from staffclock.db.session import get_session
from staffclock.domains.audit.service import AuditLogger
from staffclock.models.user import User

router = APIRouter(prefix="/audit-logs", tags=["audit"])


class AuditLogOut(CamelModel):
    id: int
    user_id: str | None = None
    action: str
    resource: str
    resource_id: str | None = None
    details: dict[str, Any] = {}
    created_at: datetime | None = None


@router.get("")
def list_audit_logs(
    action: str | None = None,
    limit: int = Query(default=100, ge=1, le=500),
    user: User = Depends(require_roles("admin")),
    db: Session = Depends(get_session),
) -> dict[str, Any]:
    records = AuditLogger(db).read(user.tenant_id, limit=limit, action=action)
    logs = [
        AuditLogOut(
            id=record.id,
            user_id=record.user_id,
            action=record.action,
            resource=record.resource,
            resource_id=record.resource_id,
            details=record.details or {},
            created_at=ensure_utc(record.created_at),
        ).model_dump(mode="json", by_alias=True)
        for record in records
    ]
    return {"success": True, "logs": logs}

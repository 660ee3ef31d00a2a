from .audit_log import AuditLog
from .tenant import Tenant
from .time_entry import BreakPeriod, TimeEntry
from .user import User

__all__ = ["Tenant", "User", "TimeEntry", "BreakPeriod", "AuditLog"]

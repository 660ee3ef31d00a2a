"""Per-organization policy, validated and defaulted.

Tenants store their settings as a JSON document; everything that reads policy goes
through :func:`load_settings`, which parses the document once per
``settings_version`` and serves later reads from an in-process cache.
"""

from __future__ import annotations

from copy import deepcopy
from threading import Lock
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from staffclock.models.tenant import Tenant

BusinessType = Literal["retail", "restaurant", "office", "healthcare", "manufacturing", "contractors"]
BUSINESS_TYPES: tuple[str, ...] = ("retail", "restaurant", "office", "healthcare", "manufacturing", "contractors")


class _Policy(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")


class WorkHoursPolicy(_Policy):
    standard_daily: float = Field(default=8, ge=1, le=24)
    standard_weekly: float = Field(default=40, ge=1, le=168)
    overtime_threshold: float = Field(default=8, ge=1, le=24)
    double_time_threshold: float | None = Field(default=None, ge=1, le=24)
    workweek_start: Literal["monday", "sunday"] = "monday"


class BreakPolicy(_Policy):
    enabled: bool = True
    require_breaks: bool = True
    minimum_shift_for_break: float = Field(default=4, ge=1)
    break_duration: int = Field(default=15, ge=5)
    lunch_threshold: float = Field(default=6, ge=1)
    lunch_duration: int = Field(default=30, ge=15)
    max_breaks_per_day: int | None = Field(default=None, ge=1)


class AllowedLocation(_Policy):
    name: str
    type: Literal["wifi", "gps", "ip", "manual"]
    value: str
    radius: float | None = Field(default=None, gt=0)  # meters, gps only
    is_active: bool = True


class LocationPolicy(_Policy):
    enforce_geofencing: bool = False
    allow_mobile_clocking: bool = True
    require_location_for_clocking: bool = False
    allowed_locations: list[AllowedLocation] = Field(default_factory=list)


class ApprovalPolicy(_Policy):
    require_manager_approval: bool = False
    auto_approval_threshold: float | None = Field(default=None, ge=0)
    allow_self_edit: bool = True


class OvertimePolicy(_Policy):
    daily_overtime_rule: bool = True
    weekly_overtime_rule: bool = True
    double_time_enabled: bool = False
    overtime_rate: float = Field(default=1.5, ge=1)
    double_time_rate: float = Field(default=2.0, ge=1)


class TenantSettings(_Policy):
    work_hours: WorkHoursPolicy = Field(default_factory=WorkHoursPolicy)
    breaks: BreakPolicy = Field(default_factory=BreakPolicy)
    location: LocationPolicy = Field(default_factory=LocationPolicy)
    approvals: ApprovalPolicy = Field(default_factory=ApprovalPolicy)
    overtime: OvertimePolicy = Field(default_factory=OvertimePolicy)

    def to_document(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True)


BUSINESS_TYPE_DEFAULTS: dict[str, dict[str, Any]] = {
    "retail": {
        "workHours": {"standardDaily": 8, "overtimeThreshold": 8},
        "breaks": {"requireBreaks": True, "minimumShiftForBreak": 4},
    },
    "restaurant": {
        "workHours": {"standardDaily": 8, "overtimeThreshold": 8},
        "breaks": {"requireBreaks": True, "minimumShiftForBreak": 6},
    },
    "contractors": {
        "workHours": {"standardDaily": 8, "overtimeThreshold": 8},
        "approvals": {"requireManagerApproval": True},
    },
    "office": {
        "workHours": {"standardDaily": 8, "standardWeekly": 40},
        "breaks": {"requireBreaks": False},
    },
    "healthcare": {
        "workHours": {"standardDaily": 12, "overtimeThreshold": 12},
        "breaks": {"requireBreaks": True, "minimumShiftForBreak": 6},
    },
    "manufacturing": {
        "workHours": {"standardDaily": 8, "overtimeThreshold": 8},
        "breaks": {"requireBreaks": True, "minimumShiftForBreak": 4},
    },
}


def deep_merge(base: dict[str, Any], updates: dict[str, Any]) -> dict[str, Any]:
    merged = deepcopy(base)
    for key, value in updates.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = deep_merge(merged[key], value)
        else:
            merged[key] = deepcopy(value)
    return merged


def defaults_for(business_type: str) -> TenantSettings:
    document = BUSINESS_TYPE_DEFAULTS.get(business_type, BUSINESS_TYPE_DEFAULTS["office"])
    return TenantSettings.model_validate(document)


def merge_settings(current: TenantSettings, updates: dict[str, Any]) -> TenantSettings:
    """Apply a partial camelCase or snake_case update on top of ``current``."""
    normalized = TenantSettings.model_validate(deep_merge(current.to_document(), _camelize(updates)))
    return normalized


def _camelize(document: dict[str, Any]) -> dict[str, Any]:
    result: dict[str, Any] = {}
    for key, value in document.items():
        camel = to_camel(key) if "_" in key else key
        result[camel] = _camelize(value) if isinstance(value, dict) else value
    return result


class SettingsCache:
    def __init__(self) -> None:
        self._entries: dict[str, tuple[int, TenantSettings]] = {}
        self._lock = Lock()

    def get(self, tenant: Tenant) -> TenantSettings:
        version = tenant.settings_version or 0
        with self._lock:
            cached = self._entries.get(tenant.id)
            if cached and cached[0] == version:
                return cached[1]
        parsed = TenantSettings.model_validate(tenant.settings or {})
        with self._lock:
            self._entries[tenant.id] = (version, parsed)
        return parsed

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()


settings_cache = SettingsCache()


def load_settings(tenant: Tenant) -> TenantSettings:
    return settings_cache.get(tenant)

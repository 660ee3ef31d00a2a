from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from typing import Dict, Iterable, List, Protocol, Tuple

from staffclock.core.clock import ensure_utc
from staffclock.domains.tenants.settings import TenantSettings

DEFAULT_DOUBLE_TIME_THRESHOLD = 12.0


class WorkedEntry(Protocol):
    id: str
    user_id: str
    work_date: date
    clock_in: datetime
    total_hours: float | None
    status: str


@dataclass
class OvertimeBucket:
    regular_hours: float = 0.0
    overtime_hours: float = 0.0
    doubletime_hours: float = 0.0

    @property
    def total_hours(self) -> float:
        return self.regular_hours + self.overtime_hours + self.doubletime_hours

    def add(self, other: "OvertimeBucket") -> None:
        self.regular_hours += other.regular_hours
        self.overtime_hours += other.overtime_hours
        self.doubletime_hours += other.doubletime_hours

    def rounded(self) -> "OvertimeBucket":
        return OvertimeBucket(
            regular_hours=round(self.regular_hours, 2),
            overtime_hours=round(self.overtime_hours, 2),
            doubletime_hours=round(self.doubletime_hours, 2),
        )


@dataclass
class DailyThresholdRule:
    """Splits one entry's hours given what was already worked that day."""

    threshold: float = 8.0
    double_time_threshold: float | None = None

    def classify(self, worked_before: float, hours: float) -> OvertimeBucket:
        bucket = OvertimeBucket()
        start, end = worked_before, worked_before + hours
        bucket.regular_hours = _overlap(start, end, 0.0, self.threshold)
        if self.double_time_threshold is not None and self.double_time_threshold > self.threshold:
            bucket.overtime_hours = _overlap(start, end, self.threshold, self.double_time_threshold)
            bucket.doubletime_hours = _overlap(start, end, self.double_time_threshold, float("inf"))
        else:
            bucket.overtime_hours = _overlap(start, end, self.threshold, float("inf"))
        return bucket


@dataclass
class WeeklyThresholdRule:
    threshold: float = 40.0

    def reclassify(self, regular_before: float, bucket: OvertimeBucket) -> OvertimeBucket:
        """Move regular hours that cross the weekly threshold into overtime."""
        allowed = max(self.threshold - regular_before, 0.0)
        if bucket.regular_hours <= allowed:
            return bucket
        excess = bucket.regular_hours - allowed
        return OvertimeBucket(
            regular_hours=allowed,
            overtime_hours=bucket.overtime_hours + excess,
            doubletime_hours=bucket.doubletime_hours,
        )


def _overlap(start: float, end: float, low: float, high: float) -> float:
    return max(min(end, high) - max(start, low), 0.0)


class OvertimeEngine:
    def __init__(
        self,
        daily_rule: DailyThresholdRule | None,
        weekly_rule: WeeklyThresholdRule | None,
        workweek_start: str = "monday",
    ) -> None:
        self.daily_rule = daily_rule
        self.weekly_rule = weekly_rule
        self.workweek_start = workweek_start

    @classmethod
    def for_policy(cls, policy: TenantSettings) -> "OvertimeEngine":
        hours, overtime = policy.work_hours, policy.overtime
        daily_rule = None
        if overtime.daily_overtime_rule:
            daily_rule = DailyThresholdRule(
                threshold=hours.overtime_threshold,
                double_time_threshold=(hours.double_time_threshold or DEFAULT_DOUBLE_TIME_THRESHOLD)
                if overtime.double_time_enabled
                else None,
            )
        weekly_rule = WeeklyThresholdRule(threshold=hours.standard_weekly) if overtime.weekly_overtime_rule else None
        return cls(daily_rule, weekly_rule, hours.workweek_start)

    def classify_entries(self, entries: Iterable[WorkedEntry]) -> Dict[str, OvertimeBucket]:
        """Classify each entry's hours, keyed by entry id.

        Cancelled and open entries are skipped. The rest are walked per user and work
        week in clock-in order, so the same set of entries always produces the same
        split regardless of input order.
        """
        weeks: Dict[Tuple[str, date], List[WorkedEntry]] = defaultdict(list)
        for entry in entries:
            if not entry.total_hours or entry.status == "cancelled":
                continue
            week_start, _ = week_bounds(entry.work_date, self.workweek_start)
            weeks[(entry.user_id, week_start)].append(entry)

        result: Dict[str, OvertimeBucket] = {}
        for key in sorted(weeks):
            daily_worked: Dict[date, float] = defaultdict(float)
            week_regular = 0.0
            for entry in sorted(weeks[key], key=lambda item: (ensure_utc(item.clock_in), item.id)):
                hours = float(entry.total_hours or 0.0)
                if self.daily_rule:
                    bucket = self.daily_rule.classify(daily_worked[entry.work_date], hours)
                else:
                    bucket = OvertimeBucket(regular_hours=hours)
                if self.weekly_rule:
                    bucket = self.weekly_rule.reclassify(week_regular, bucket)
                daily_worked[entry.work_date] += hours
                week_regular += bucket.regular_hours
                result[entry.id] = bucket.rounded()
        return result


def week_bounds(anchor: date, workweek_start: str = "monday") -> Tuple[date, date]:
    offset = anchor.weekday() if workweek_start == "monday" else (anchor.weekday() + 1) % 7
    start = anchor - timedelta(days=offset)
    end = start + timedelta(days=6)
    return start, end

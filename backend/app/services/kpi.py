"""
KPI aggregation over attendance records.

Scope is decided from the caller's role (``resolve_scope``) and is a security
boundary: only admins may widen or redirect it. ``compute_kpi`` is pure: given
a range, the scoped records and a grace period it returns the summary and a
daily series with one point per calendar day. Rates are kept at full precision
until the result is built and rounded to 2 decimals.
"""

import logging
import math
import uuid
from collections import defaultdict
from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from datetime import date, datetime
from enum import Enum
from typing import Any

from app.schemas.kpi import (
    DateRangeOut,
    KpiMetrics,
    KpiResponse,
    KpiSummary,
    KpiTrends,
    TimeseriesPoint,
    Trend,
)
from app.services.periods import (
    DateRange,
    Period,
    count_business_days,
    previous_range,
    resolve_range,
)
from app.services.record_store import RecordFilter, RecordStore

logger = logging.getLogger(__name__)


class Role(str, Enum):
    ADMIN = "admin"
    MANAGER = "manager"
    USER = "user"


class Scope(str, Enum):
    ORG = "org"
    DEPARTMENT = "department"
    USER = "user"


def resolve_scope(role: Role, requested: Scope | None = None) -> Scope:
    if role == Role.ADMIN:
        return requested or Scope.ORG
    if role == Role.MANAGER:
        return Scope.DEPARTMENT
    return Scope.USER


def build_record_filter(
    caller: Any,
    scope: Scope,
    date_range: DateRange,
    department: str | None = None,
    user_id: uuid.UUID | None = None,
) -> RecordFilter:
    """
    Translate an effective scope into a store filter.

    Non-admin callers are pinned to their own department / own id; the
    ``department`` and ``user_id`` overrides are honoured for admins only.
    An org-wide or department scope without a department sees everyone.
    """
    is_admin = Role(caller.role) == Role.ADMIN
    if scope == Scope.USER:
        target = user_id if (is_admin and user_id is not None) else caller.id
        return RecordFilter(date_range.start, date_range.end, user_id=target)
    if scope == Scope.DEPARTMENT:
        dept = (department or caller.department) if is_admin else caller.department
        return RecordFilter(date_range.start, date_range.end, department=dept)
    return RecordFilter(date_range.start, date_range.end)


@dataclass
class _Aggregate:
    attendance_rate: float
    on_time_rate: float
    avg_work_hours: float
    total_overtime: float
    late_count: int
    absent_count: int
    timeseries: list[tuple[date, float, float]]


def _record_day(record: Any) -> date:
    day = record.date
    return day.date() if isinstance(day, datetime) else day


def _aggregate(
    date_range: DateRange, records: Sequence[Any], grace_period_minutes: int
) -> _Aggregate:
    distinct_users = {r.user_id for r in records}
    denominator = max(1, count_business_days(date_range) * max(1, len(distinct_users)))

    def is_on_time(r: Any) -> bool:
        return (r.late_minutes or 0) <= grace_period_minutes

    attended = [r for r in records if r.status != "absent"]
    late_count = sum(1 for r in records if r.status == "late")
    absent_count = sum(1 for r in records if r.status == "absent")
    total_overtime = sum(float(r.overtime_hours or 0) for r in records)

    work_hours = [float(r.work_hours) for r in records if r.work_hours is not None]
    avg_work_hours = sum(work_hours) / len(work_hours) if work_hours else 0.0

    on_time = sum(1 for r in attended if is_on_time(r))
    attendance_rate = len(attended) / denominator
    on_time_rate = on_time / len(attended) if attended else 0.0

    by_day: dict[date, list[Any]] = defaultdict(list)
    for r in records:
        by_day[_record_day(r)].append(r)

    series: list[tuple[date, float, float]] = []
    for day in date_range.days():
        day_records = by_day.get(day, [])
        day_users = {r.user_id for r in day_records} or distinct_users
        day_attended = [r for r in day_records if r.status != "absent"]
        day_on_time = sum(1 for r in day_attended if is_on_time(r))
        series.append(
            (
                day,
                len(day_attended) / max(1, len(day_users)),
                day_on_time / len(day_attended) if day_attended else 0.0,
            )
        )

    return _Aggregate(
        attendance_rate=attendance_rate,
        on_time_rate=on_time_rate,
        avg_work_hours=avg_work_hours,
        total_overtime=total_overtime,
        late_count=late_count,
        absent_count=absent_count,
        timeseries=series,
    )


def _round_half_up(value: float, digits: int = 0) -> float:
    # Exact halves go up: 0.125 -> 0.13
    scale = 10 ** digits
    return math.floor(value * scale + 0.5) / scale


def _to_metrics(agg: _Aggregate) -> KpiMetrics:
    return KpiMetrics(
        metrics=KpiSummary(
            attendance_rate=_round_half_up(agg.attendance_rate, 2),
            on_time_rate=_round_half_up(agg.on_time_rate, 2),
            avg_work_hours=_round_half_up(agg.avg_work_hours, 2),
            total_overtime=_round_half_up(agg.total_overtime, 2),
            late_count=agg.late_count,
            absent_count=agg.absent_count,
        ),
        timeseries=[
            TimeseriesPoint(
                date=day.isoformat(),
                attendance_rate=_round_half_up(rate, 2),
                on_time_rate=_round_half_up(on_time, 2),
            )
            for day, rate, on_time in agg.timeseries
        ],
    )


def compute_kpi(
    date_range: DateRange, records: Iterable[Any], grace_period_minutes: int
) -> KpiMetrics:
    """Summary metrics and daily series. Never raises on empty input."""
    return _to_metrics(_aggregate(date_range, list(records), grace_period_minutes))


def trend(current: float, previous: float) -> Trend:
    """
    Direction of change plus its size: percentage points when both values
    look like 0–1 rates, otherwise percent change relative to ``previous``.
    """
    diff = current - previous
    if 0 <= current <= 1 and 0 <= previous <= 1:
        change = int(_round_half_up(abs(diff) * 100))
    elif previous == 0:
        change = 0 if current == 0 else 100
    else:
        change = int(_round_half_up(abs(diff / previous) * 100))

    direction = "up" if diff > 0 else "down" if diff < 0 else "neutral"
    return Trend(direction=direction, change=change)


def compute_trends(current: _Aggregate, previous: _Aggregate) -> KpiTrends:
    return KpiTrends(
        attendance_rate=trend(current.attendance_rate, previous.attendance_rate),
        on_time_rate=trend(current.on_time_rate, previous.on_time_rate),
        avg_work_hours=trend(current.avg_work_hours, previous.avg_work_hours),
        total_overtime=trend(current.total_overtime, previous.total_overtime),
        late_count=trend(current.late_count, previous.late_count),
        absent_count=trend(current.absent_count, previous.absent_count),
    )


async def get_kpi_report(
    store: RecordStore,
    caller: Any,
    period: Period,
    today: date,
    grace_period_minutes: int,
    *,
    scope: Scope | None = None,
    department: str | None = None,
    user_id: uuid.UUID | None = None,
    start: date | None = None,
    end: date | None = None,
) -> KpiResponse:
    effective_scope = resolve_scope(Role(caller.role), scope)
    date_range = resolve_range(period, today, start, end)

    record_filter = build_record_filter(caller, effective_scope, date_range, department, user_id)
    records = await store.find_many(record_filter)
    current = _aggregate(date_range, records, grace_period_minutes)

    prev = previous_range(date_range)
    prev_filter = RecordFilter(
        prev.start, prev.end, user_id=record_filter.user_id, department=record_filter.department
    )
    prev_records = await store.find_many(prev_filter)
    previous = _aggregate(prev, prev_records, grace_period_minutes)

    logger.info(
        "KPI %s scope=%s range=%s..%s records=%d caller=%s",
        Period(period).value, effective_scope.value, date_range.start, date_range.end,
        len(records), caller.id,
    )

    metrics = _to_metrics(current)
    return KpiResponse(
        period=Period(period).value,
        range=DateRangeOut(start=date_range.start.isoformat(), end=date_range.end.isoformat()),
        scope=effective_scope.value,
        metrics=metrics.metrics,
        timeseries=metrics.timeseries,
        trends=compute_trends(current, previous),
    )

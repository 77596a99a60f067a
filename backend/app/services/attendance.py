"""
Check-in / check-out state machine for one user-day.

    NoRecord --check_in--> CheckedIn --check_out--> CheckedOut

``CheckedOut`` is terminal for the day. Location fixes are validated before
the store is touched, and every entry point takes ``now`` explicitly so the
day boundary and derived hours are deterministic.
"""

import logging
import math
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any

from app.core.clock import local_date
from app.core.config import settings
from app.core.errors import (
    AlreadyCheckedIn,
    AlreadyCheckedOut,
    CheckInPersistenceFailed,
    CheckoutBeforeCheckIn,
    CheckoutPersistenceFailed,
    InvalidLocation,
    LocationInaccurate,
    MissingCheckIn,
    NotCheckedIn,
    OutsideGeofence,
)
from app.db.models import AttendanceRecord
from app.services.activity_log import ActivityLogSink, record_activity
from app.services.geo import check_pin_adjustment, coordinates, within_geofence
from app.services.record_store import RecordConflict, RecordStore, RecordStoreError

logger = logging.getLogger(__name__)

RESOURCE_TYPE = "attendance_record"


@dataclass(frozen=True)
class LocationFix:
    latitude: Any
    longitude: Any
    accuracy: Any
    address: str | None = None
    # Raw GPS position when the user dragged the pin before submitting
    gps_latitude: Any = None
    gps_longitude: Any = None

    def as_details(self) -> dict[str, Any]:
        return {
            "latitude": self.latitude,
            "longitude": self.longitude,
            "address": self.address,
            "accuracy": self.accuracy,
        }


@dataclass(frozen=True)
class AttendancePolicy:
    max_accuracy_meters: float = 5000.0
    pin_adjustment_max_meters: float = 100.0
    geofence_enforced: bool = False
    office_latitude: float | None = None
    office_longitude: float | None = None
    geofence_radius_meters: float = 100.0
    geofence_accuracy_tolerance_meters: float = 5000.0
    overtime_enabled: bool = False
    standard_work_hours: float = 8.0
    activity_log_best_effort: bool = True

    @classmethod
    def from_settings(cls) -> "AttendancePolicy":
        return cls(
            max_accuracy_meters=settings.MAX_LOCATION_ACCURACY_METERS,
            pin_adjustment_max_meters=settings.PIN_ADJUSTMENT_MAX_METERS,
            geofence_enforced=settings.GEOFENCE_ENFORCED,
            office_latitude=settings.OFFICE_LATITUDE,
            office_longitude=settings.OFFICE_LONGITUDE,
            geofence_radius_meters=settings.GEOFENCE_RADIUS_METERS,
            geofence_accuracy_tolerance_meters=settings.GEOFENCE_ACCURACY_TOLERANCE_METERS,
            overtime_enabled=settings.OVERTIME_ENABLED,
            standard_work_hours=settings.STANDARD_WORK_HOURS,
            activity_log_best_effort=settings.ACTIVITY_LOG_BEST_EFFORT,
        )


def _accuracy(value: Any) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise InvalidLocation("Location data is required")
    value = float(value)
    if not math.isfinite(value) or value < 0:
        raise InvalidLocation(f"Invalid accuracy: {value!r}")
    return value


def validate_fix(fix: LocationFix, policy: AttendancePolicy) -> tuple[float, float, float]:
    """
    Check a submitted fix and return ``(latitude, longitude, accuracy)``.

    Raises ``InvalidLocation`` for missing/malformed fields,
    ``LocationInaccurate`` above the accuracy ceiling, and the geo errors for
    an over-dragged pin or (when enforced) a fix outside the office geofence.
    """
    if fix.latitude is None or fix.longitude is None or fix.accuracy is None:
        raise InvalidLocation("Location data is required")

    lat, lon = coordinates(fix)
    accuracy = _accuracy(fix.accuracy)
    if accuracy > policy.max_accuracy_meters:
        raise LocationInaccurate()

    if fix.gps_latitude is not None or fix.gps_longitude is not None:
        original = {"latitude": fix.gps_latitude, "longitude": fix.gps_longitude}
        check_pin_adjustment(original, fix, policy.pin_adjustment_max_meters)

    if (
        policy.geofence_enforced
        and policy.office_latitude is not None
        and policy.office_longitude is not None
    ):
        office = {"latitude": policy.office_latitude, "longitude": policy.office_longitude}
        if not within_geofence(
            fix,
            office,
            policy.geofence_radius_meters,
            accuracy,
            policy.geofence_accuracy_tolerance_meters,
        ):
            raise OutsideGeofence()

    return lat, lon, accuracy


def _as_utc(value: datetime) -> datetime:
    # Some backends hand timestamps back without tzinfo; they are stored as UTC
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def compute_overtime(work_hours: float, policy: AttendancePolicy) -> float:
    if not policy.overtime_enabled:
        return 0.0
    return max(0.0, work_hours - policy.standard_work_hours)


async def check_in(
    store: RecordStore,
    log_sink: ActivityLogSink,
    user_id: uuid.UUID,
    fix: LocationFix,
    now: datetime,
    policy: AttendancePolicy,
) -> AttendanceRecord:
    lat, lon, accuracy = validate_fix(fix, policy)
    today = local_date(now)

    existing = await store.find_by_user_and_date(user_id, today)
    if existing is not None and existing.check_in_time is not None:
        raise AlreadyCheckedIn()

    fields = {
        "check_in_time": now,
        "check_in_latitude": lat,
        "check_in_longitude": lon,
        "check_in_accuracy": accuracy,
        "check_in_address": fix.address,
        # Lateness against business hours is not evaluated at check-in
        "late_minutes": 0,
        "status": "present",
    }

    try:
        if existing is not None:
            record = await store.update(existing.id, fields)
        else:
            record = await store.create(user_id, today, fields)
    except RecordConflict as exc:
        # Lost a race with a concurrent check-in for the same day
        raise AlreadyCheckedIn() from exc
    except RecordStoreError as exc:
        logger.error("Check-in persistence failed: user=%s date=%s: %s", user_id, today, exc)
        raise CheckInPersistenceFailed() from exc

    logger.info("Check-in: user=%s date=%s record=%s", user_id, today, record.id)

    await record_activity(
        log_sink,
        user_id,
        "check_in",
        RESOURCE_TYPE,
        str(record.id),
        {"location": fix.as_details(), "status": record.status},
        best_effort=policy.activity_log_best_effort,
    )
    return record


async def check_out(
    store: RecordStore,
    log_sink: ActivityLogSink,
    user_id: uuid.UUID,
    fix: LocationFix,
    now: datetime,
    policy: AttendancePolicy,
) -> AttendanceRecord:
    lat, lon, accuracy = validate_fix(fix, policy)
    today = local_date(now)

    record = await store.find_by_user_and_date(user_id, today)
    if record is None:
        raise NotCheckedIn()
    if record.check_out_time is not None:
        raise AlreadyCheckedOut()
    if record.check_in_time is None:
        raise MissingCheckIn()

    checked_in_at = _as_utc(record.check_in_time)
    checked_out_at = _as_utc(now)
    if checked_out_at <= checked_in_at:
        raise CheckoutBeforeCheckIn()

    work_hours = (checked_out_at - checked_in_at).total_seconds() / 3600
    fields = {
        "check_out_time": now,
        "check_out_latitude": lat,
        "check_out_longitude": lon,
        "check_out_accuracy": accuracy,
        "check_out_address": fix.address,
        "work_hours": work_hours,
        "overtime_hours": compute_overtime(work_hours, policy),
        "status": "present",
    }

    try:
        updated = await store.update(record.id, fields)
    except RecordStoreError as exc:
        logger.error("Check-out persistence failed: user=%s record=%s: %s", user_id, record.id, exc)
        raise CheckoutPersistenceFailed() from exc

    logger.info(
        "Check-out: user=%s date=%s record=%s work_hours=%.2f",
        user_id, today, updated.id, work_hours,
    )

    await record_activity(
        log_sink,
        user_id,
        "check_out",
        RESOURCE_TYPE,
        str(updated.id),
        {"location": fix.as_details(), "finalStatus": updated.status},
        best_effort=policy.activity_log_best_effort,
    )
    return updated


async def get_today(
    store: RecordStore, user_id: uuid.UUID, now: datetime
) -> AttendanceRecord | None:
    return await store.find_by_user_and_date(user_id, local_date(now))


async def get_history(
    store: RecordStore, user_id: uuid.UUID, limit: int = 30, offset: int = 0
) -> list[AttendanceRecord]:
    return await store.list_for_user(user_id, limit, offset)

"""
Phase 2 — Attendance State Machine Tests (service level, in-memory store).

Tests:
  - TestCheckIn           : first check-in, duplicate, concurrent race, placeholder row,
                            retryable write failures
  - TestLocationValidation: malformed fixes rejected before the store is touched
  - TestCheckOut          : work hours, state conflicts, persistence failure
  - TestOvertime          : overtime only when the policy enables it
  - TestActivityLogging   : best-effort audit trail vs. strict mode
  - TestTodayAndHistory   : day lookup and newest-first history
"""

from __future__ import annotations

import asyncio
import uuid
from datetime import date, datetime, timedelta, timezone

import pytest

from app.core.errors import (
    AlreadyCheckedIn,
    AlreadyCheckedOut,
    CheckInPersistenceFailed,
    CheckoutBeforeCheckIn,
    CheckoutPersistenceFailed,
    InvalidLocation,
    LocationAdjustmentTooFar,
    LocationInaccurate,
    MissingCheckIn,
    NotCheckedIn,
    OutsideGeofence,
)
from app.services.attendance import (
    AttendancePolicy,
    LocationFix,
    check_in,
    check_out,
    compute_overtime,
    get_history,
    get_today,
)
from tests.fakes import FakeActivityLog, InMemoryRecordStore

DAY = date(2025, 1, 8)
MORNING = datetime(2025, 1, 8, 8, 0, tzinfo=timezone.utc)
EVENING = datetime(2025, 1, 8, 17, 30, tzinfo=timezone.utc)

OFFICE_FIX = LocationFix(latitude=-6.2088, longitude=106.8456, accuracy=12.0, address="Jl. Sudirman 1")
POLICY = AttendancePolicy()


@pytest.fixture
def store() -> InMemoryRecordStore:
    return InMemoryRecordStore()


@pytest.fixture
def log_sink() -> FakeActivityLog:
    return FakeActivityLog()


@pytest.fixture
def user_id() -> uuid.UUID:
    return uuid.uuid4()


class TestCheckIn:
    async def test_first_check_in_creates_record(self, store, log_sink, user_id) -> None:
        record = await check_in(store, log_sink, user_id, OFFICE_FIX, MORNING, POLICY)

        assert record.date == DAY
        assert record.check_in_time == MORNING
        assert record.check_in_latitude == -6.2088
        assert record.check_in_longitude == 106.8456
        assert record.check_in_accuracy == 12.0
        assert record.check_in_address == "Jl. Sudirman 1"
        assert record.status == "present"
        assert record.late_minutes == 0
        assert record.check_out_time is None

    async def test_second_check_in_same_day_rejected(self, store, log_sink, user_id) -> None:
        await check_in(store, log_sink, user_id, OFFICE_FIX, MORNING, POLICY)
        with pytest.raises(AlreadyCheckedIn):
            await check_in(store, log_sink, user_id, OFFICE_FIX, MORNING + timedelta(minutes=5), POLICY)
        assert len(store.records) == 1

    async def test_concurrent_check_ins_yield_exactly_one_record(
        self, store, log_sink, user_id
    ) -> None:
        """Both callers see no record; the loser's insert conflicts → AlreadyCheckedIn."""
        results = await asyncio.gather(
            check_in(store, log_sink, user_id, OFFICE_FIX, MORNING, POLICY),
            check_in(store, log_sink, user_id, OFFICE_FIX, MORNING, POLICY),
            return_exceptions=True,
        )
        errors = [r for r in results if isinstance(r, Exception)]
        assert len(store.records) == 1, f"Expected one record, got {len(store.records)}"
        assert len(errors) == 1
        assert isinstance(errors[0], AlreadyCheckedIn), f"Unexpected error: {errors[0]!r}"

    async def test_check_in_next_day_is_allowed(self, store, log_sink, user_id) -> None:
        await check_in(store, log_sink, user_id, OFFICE_FIX, MORNING, POLICY)
        record = await check_in(store, log_sink, user_id, OFFICE_FIX, MORNING + timedelta(days=1), POLICY)
        assert record.date == date(2025, 1, 9)
        assert len(store.records) == 2

    async def test_check_in_fills_placeholder_record(self, store, log_sink, user_id) -> None:
        """A pre-existing row without check-in (e.g. marked absent) is updated in place."""
        placeholder = store.add(user_id, DAY, status="absent")
        record = await check_in(store, log_sink, user_id, OFFICE_FIX, MORNING, POLICY)
        assert record.id == placeholder.id
        assert record.status == "present"
        assert record.check_in_time == MORNING
        assert len(store.records) == 1

    async def test_create_failure_is_retryable(self, store, log_sink, user_id) -> None:
        store.fail_creates = True
        with pytest.raises(CheckInPersistenceFailed) as exc_info:
            await check_in(store, log_sink, user_id, OFFICE_FIX, MORNING, POLICY)
        assert exc_info.value.status_code == 503
        assert exc_info.value.retryable is True
        assert store.records == {}
        assert log_sink.entries == []

    async def test_placeholder_update_failure_is_retryable(self, store, log_sink, user_id) -> None:
        """A failed write on the placeholder row surfaces as a domain error, not a bare 500."""
        placeholder = store.add(user_id, DAY, status="absent")
        store.fail_updates = True

        with pytest.raises(CheckInPersistenceFailed):
            await check_in(store, log_sink, user_id, OFFICE_FIX, MORNING, POLICY)
        assert placeholder.check_in_time is None
        assert placeholder.status == "absent"

        store.fail_updates = False
        record = await check_in(store, log_sink, user_id, OFFICE_FIX, MORNING, POLICY)
        assert record.check_in_time == MORNING


class TestLocationValidation:
    @pytest.mark.parametrize(
        "fix",
        [
            LocationFix(latitude=None, longitude=106.8, accuracy=10),
            LocationFix(latitude=-6.2, longitude=None, accuracy=10),
            LocationFix(latitude=-6.2, longitude=106.8, accuracy=None),
            LocationFix(latitude="abc", longitude=106.8, accuracy=10),
            LocationFix(latitude=-6.2, longitude=106.8, accuracy="10"),
            LocationFix(latitude=float("nan"), longitude=106.8, accuracy=10),
            LocationFix(latitude=-91, longitude=106.8, accuracy=10),
            LocationFix(latitude=-6.2, longitude=106.8, accuracy=-1),
        ],
    )
    async def test_invalid_fix_rejected_before_store_access(
        self, store, log_sink, user_id, fix
    ) -> None:
        with pytest.raises(InvalidLocation):
            await check_in(store, log_sink, user_id, fix, MORNING, POLICY)
        assert store.calls == [], f"Store must not be touched, got {store.calls}"

    async def test_inaccurate_fix_rejected(self, store, log_sink, user_id) -> None:
        fix = LocationFix(latitude=-6.2088, longitude=106.8456, accuracy=5001)
        with pytest.raises(LocationInaccurate):
            await check_in(store, log_sink, user_id, fix, MORNING, POLICY)
        assert store.calls == []

    async def test_accuracy_ceiling_is_configurable(self, store, log_sink, user_id) -> None:
        fix = LocationFix(latitude=-6.2088, longitude=106.8456, accuracy=1500)
        with pytest.raises(LocationInaccurate):
            await check_in(store, log_sink, user_id, fix, MORNING, AttendancePolicy(max_accuracy_meters=1000))

    async def test_accuracy_at_ceiling_is_accepted(self, store, log_sink, user_id) -> None:
        fix = LocationFix(latitude=-6.2088, longitude=106.8456, accuracy=5000)
        record = await check_in(store, log_sink, user_id, fix, MORNING, POLICY)
        assert record.check_in_accuracy == 5000

    async def test_pin_dragged_too_far_rejected(self, store, log_sink, user_id) -> None:
        fix = LocationFix(
            latitude=-6.2088,
            longitude=106.8456,
            accuracy=10,
            gps_latitude=-6.2108,  # ~222 m south
            gps_longitude=106.8456,
        )
        with pytest.raises(LocationAdjustmentTooFar):
            await check_in(store, log_sink, user_id, fix, MORNING, POLICY)

    async def test_small_pin_adjustment_accepted(self, store, log_sink, user_id) -> None:
        fix = LocationFix(
            latitude=-6.2088,
            longitude=106.8456,
            accuracy=10,
            gps_latitude=-6.2092,  # ~44 m south
            gps_longitude=106.8456,
        )
        record = await check_in(store, log_sink, user_id, fix, MORNING, POLICY)
        assert record.check_in_latitude == -6.2088

    async def test_geofence_enforced_outside_rejected(self, store, log_sink, user_id) -> None:
        policy = AttendancePolicy(
            geofence_enforced=True, office_latitude=-6.2000, office_longitude=106.8456
        )
        with pytest.raises(OutsideGeofence):
            await check_in(store, log_sink, user_id, OFFICE_FIX, MORNING, policy)

    async def test_geofence_enforced_inside_accepted(self, store, log_sink, user_id) -> None:
        policy = AttendancePolicy(
            geofence_enforced=True, office_latitude=-6.2088, office_longitude=106.8457
        )
        record = await check_in(store, log_sink, user_id, OFFICE_FIX, MORNING, policy)
        assert record.check_in_time == MORNING

    async def test_geofence_not_enforced_by_default(self, store, log_sink, user_id) -> None:
        far_away = LocationFix(latitude=51.5007, longitude=-0.1246, accuracy=8)
        record = await check_in(store, log_sink, user_id, far_away, MORNING, POLICY)
        assert record.check_in_latitude == 51.5007


class TestCheckOut:
    async def test_work_hours_from_check_in_to_check_out(self, store, log_sink, user_id) -> None:
        await check_in(store, log_sink, user_id, OFFICE_FIX, MORNING, POLICY)
        record = await check_out(store, log_sink, user_id, OFFICE_FIX, EVENING, POLICY)

        assert record.work_hours == pytest.approx(9.5)
        assert record.check_out_time == EVENING
        assert record.check_out_accuracy == 12.0
        assert record.overtime_hours == 0.0
        assert record.status == "present"

    async def test_check_out_without_check_in(self, store, log_sink, user_id) -> None:
        with pytest.raises(NotCheckedIn):
            await check_out(store, log_sink, user_id, OFFICE_FIX, EVENING, POLICY)
        assert store.records == {}

    async def test_check_out_twice_rejected(self, store, log_sink, user_id) -> None:
        await check_in(store, log_sink, user_id, OFFICE_FIX, MORNING, POLICY)
        first = await check_out(store, log_sink, user_id, OFFICE_FIX, EVENING, POLICY)
        with pytest.raises(AlreadyCheckedOut):
            await check_out(store, log_sink, user_id, OFFICE_FIX, EVENING + timedelta(hours=1), POLICY)
        assert first.check_out_time == EVENING, "Terminal state must not change"

    async def test_check_in_after_check_out_rejected(self, store, log_sink, user_id) -> None:
        await check_in(store, log_sink, user_id, OFFICE_FIX, MORNING, POLICY)
        await check_out(store, log_sink, user_id, OFFICE_FIX, EVENING, POLICY)
        with pytest.raises(AlreadyCheckedIn):
            await check_in(store, log_sink, user_id, OFFICE_FIX, EVENING + timedelta(minutes=1), POLICY)

    async def test_record_without_check_in_time(self, store, log_sink, user_id) -> None:
        store.add(user_id, DAY, status="absent")
        with pytest.raises(MissingCheckIn):
            await check_out(store, log_sink, user_id, OFFICE_FIX, EVENING, POLICY)

    async def test_check_out_not_after_check_in(self, store, log_sink, user_id) -> None:
        await check_in(store, log_sink, user_id, OFFICE_FIX, MORNING, POLICY)
        with pytest.raises(CheckoutBeforeCheckIn):
            await check_out(store, log_sink, user_id, OFFICE_FIX, MORNING, POLICY)

    async def test_naive_stored_check_in_treated_as_utc(self, store, log_sink, user_id) -> None:
        store.add(user_id, DAY, check_in_time=datetime(2025, 1, 8, 9, 0))
        record = await check_out(store, log_sink, user_id, OFFICE_FIX, EVENING, POLICY)
        assert record.work_hours == pytest.approx(8.5)

    async def test_persistence_failure_is_retryable(self, store, log_sink, user_id) -> None:
        await check_in(store, log_sink, user_id, OFFICE_FIX, MORNING, POLICY)
        store.fail_updates = True

        with pytest.raises(CheckoutPersistenceFailed) as exc_info:
            await check_out(store, log_sink, user_id, OFFICE_FIX, EVENING, POLICY)
        assert exc_info.value.retryable is True
        assert exc_info.value.status_code == 503

        (record,) = store.records.values()
        assert record.check_out_time is None, "No partial check-out may be visible"
        assert record.work_hours is None

        store.fail_updates = False
        retried = await check_out(store, log_sink, user_id, OFFICE_FIX, EVENING, POLICY)
        assert retried.work_hours == pytest.approx(9.5)

    async def test_invalid_location_on_check_out(self, store, log_sink, user_id) -> None:
        await check_in(store, log_sink, user_id, OFFICE_FIX, MORNING, POLICY)
        store.calls.clear()
        bad = LocationFix(latitude=None, longitude=None, accuracy=None)
        with pytest.raises(InvalidLocation):
            await check_out(store, log_sink, user_id, bad, EVENING, POLICY)
        assert store.calls == []


class TestOvertime:
    def test_disabled_by_default(self) -> None:
        assert compute_overtime(11.0, AttendancePolicy()) == 0.0

    def test_hours_beyond_standard_day(self) -> None:
        policy = AttendancePolicy(overtime_enabled=True, standard_work_hours=8.0)
        assert compute_overtime(9.5, policy) == pytest.approx(1.5)

    def test_short_day_has_no_overtime(self) -> None:
        policy = AttendancePolicy(overtime_enabled=True)
        assert compute_overtime(6.0, policy) == 0.0

    async def test_check_out_records_overtime_when_enabled(self, store, log_sink, user_id) -> None:
        policy = AttendancePolicy(overtime_enabled=True)
        await check_in(store, log_sink, user_id, OFFICE_FIX, MORNING, policy)
        record = await check_out(store, log_sink, user_id, OFFICE_FIX, EVENING, policy)
        assert record.overtime_hours == pytest.approx(1.5)


class TestActivityLogging:
    async def test_check_in_and_out_are_logged(self, store, log_sink, user_id) -> None:
        record = await check_in(store, log_sink, user_id, OFFICE_FIX, MORNING, POLICY)
        await check_out(store, log_sink, user_id, OFFICE_FIX, EVENING, POLICY)

        assert [e["action"] for e in log_sink.entries] == ["check_in", "check_out"]
        entry = log_sink.entries[0]
        assert entry["user_id"] == user_id
        assert entry["resource_type"] == "attendance_record"
        assert entry["resource_id"] == str(record.id)
        assert entry["details"]["location"]["address"] == "Jl. Sudirman 1"
        assert entry["details"]["status"] == "present"
        assert log_sink.entries[1]["details"]["finalStatus"] == "present"

    async def test_rejected_operations_are_not_logged(self, store, log_sink, user_id) -> None:
        with pytest.raises(NotCheckedIn):
            await check_out(store, log_sink, user_id, OFFICE_FIX, EVENING, POLICY)
        assert log_sink.entries == []

    async def test_log_failure_does_not_fail_check_in(self, store, user_id, caplog) -> None:
        broken = FakeActivityLog(fail=True)
        record = await check_in(store, broken, user_id, OFFICE_FIX, MORNING, POLICY)
        assert record.check_in_time == MORNING
        assert len(store.records) == 1
        assert "activity" in caplog.text.lower()

    async def test_strict_logging_propagates_failure(self, store, user_id) -> None:
        broken = FakeActivityLog(fail=True)
        policy = AttendancePolicy(activity_log_best_effort=False)
        with pytest.raises(RuntimeError):
            await check_in(store, broken, user_id, OFFICE_FIX, MORNING, policy)


class TestTodayAndHistory:
    async def test_today_none_before_check_in(self, store, user_id) -> None:
        assert await get_today(store, user_id, MORNING) is None

    async def test_today_after_check_in(self, store, log_sink, user_id) -> None:
        created = await check_in(store, log_sink, user_id, OFFICE_FIX, MORNING, POLICY)
        assert await get_today(store, user_id, EVENING) is created

    async def test_history_newest_first_with_paging(self, store, user_id) -> None:
        for offset in range(5):
            store.add(user_id, DAY - timedelta(days=offset))
        store.add(uuid.uuid4(), DAY)

        page = await get_history(store, user_id, limit=2, offset=1)
        assert [r.date for r in page] == [date(2025, 1, 7), date(2025, 1, 6)]

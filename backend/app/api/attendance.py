from datetime import datetime

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.clock import get_now
from app.core.middleware import Caller, get_current_caller
from app.db.session import get_db
from app.schemas.attendance import (
    AttendanceRecordOut,
    CheckInResponse,
    CheckInResult,
    CheckOutResponse,
    CheckOutResult,
    LocationRequest,
    TodayResponse,
)
from app.services import attendance as attendance_service
from app.services.activity_log import SqlAlchemyActivityLog
from app.services.attendance import AttendancePolicy, LocationFix
from app.services.record_store import SqlAlchemyRecordStore

router = APIRouter()


def get_policy() -> AttendancePolicy:
    return AttendancePolicy.from_settings()


def _fix(body: LocationRequest) -> LocationFix:
    return LocationFix(
        latitude=body.latitude,
        longitude=body.longitude,
        accuracy=body.accuracy,
        address=body.address,
        gps_latitude=body.gps_latitude,
        gps_longitude=body.gps_longitude,
    )


@router.post(
    "/checkin",
    response_model=CheckInResponse,
    summary="Check in for today with the current GPS fix",
)
async def check_in(
    body: LocationRequest,
    db: AsyncSession = Depends(get_db),
    caller: Caller = Depends(get_current_caller),
    now: datetime = Depends(get_now),
    policy: AttendancePolicy = Depends(get_policy),
) -> CheckInResponse:
    record = await attendance_service.check_in(
        SqlAlchemyRecordStore(db),
        SqlAlchemyActivityLog(db),
        caller.id,
        _fix(body),
        now,
        policy,
    )
    return CheckInResponse(
        attendance=CheckInResult(
            id=record.id, check_in_time=record.check_in_time, status=record.status
        )
    )


@router.post(
    "/checkout",
    response_model=CheckOutResponse,
    summary="Check out for today with the current GPS fix",
)
async def check_out(
    body: LocationRequest,
    db: AsyncSession = Depends(get_db),
    caller: Caller = Depends(get_current_caller),
    now: datetime = Depends(get_now),
    policy: AttendancePolicy = Depends(get_policy),
) -> CheckOutResponse:
    record = await attendance_service.check_out(
        SqlAlchemyRecordStore(db),
        SqlAlchemyActivityLog(db),
        caller.id,
        _fix(body),
        now,
        policy,
    )
    return CheckOutResponse(
        attendance=CheckOutResult(
            id=record.id, check_out_time=record.check_out_time, status=record.status
        )
    )


@router.get(
    "/today",
    response_model=TodayResponse,
    summary="Today's attendance record and check-in state for the caller",
)
async def get_today(
    db: AsyncSession = Depends(get_db),
    caller: Caller = Depends(get_current_caller),
    now: datetime = Depends(get_now),
) -> TodayResponse:
    record = await attendance_service.get_today(SqlAlchemyRecordStore(db), caller.id, now)
    if record is None or record.check_in_time is None:
        state = "not_checked_in"
    elif record.check_out_time is None:
        state = "checked_in"
    else:
        state = "checked_out"
    return TodayResponse(
        state=state,
        attendance=AttendanceRecordOut.model_validate(record) if record is not None else None,
    )


@router.get(
    "/history",
    response_model=list[AttendanceRecordOut],
    summary="Caller's attendance records, newest first",
)
async def get_history(
    limit: int = Query(default=30, ge=1, le=100),
    offset: int = Query(default=0, ge=0),
    db: AsyncSession = Depends(get_db),
    caller: Caller = Depends(get_current_caller),
) -> list[AttendanceRecordOut]:
    records = await attendance_service.get_history(
        SqlAlchemyRecordStore(db), caller.id, limit, offset
    )
    return [AttendanceRecordOut.model_validate(r) for r in records]

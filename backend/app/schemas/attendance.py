from datetime import date, datetime
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, field_validator
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class LocationRequest(CamelModel):
    latitude: float | None = None
    longitude: float | None = None
    accuracy: float | None = None
    address: str | None = None
    gps_latitude: float | None = None
    gps_longitude: float | None = None

    @field_validator(
        "latitude", "longitude", "accuracy", "gps_latitude", "gps_longitude", mode="before"
    )
    @classmethod
    def numeric_or_none(cls, v: Any) -> Any:
        # Non-numeric input is rejected later as InvalidLocation, not as a 422
        if isinstance(v, bool):
            return None
        if isinstance(v, (int, float)) or v is None:
            return v
        if isinstance(v, str):
            try:
                return float(v)
            except ValueError:
                return None
        return None

    @field_validator("address")
    @classmethod
    def strip_address(cls, v: str | None) -> str | None:
        if v is None:
            return None
        return v.strip() or None


class CheckInResult(CamelModel):
    id: int
    check_in_time: datetime
    status: str


class CheckOutResult(CamelModel):
    id: int
    check_out_time: datetime
    status: str


class CheckInResponse(BaseModel):
    success: bool = True
    message: str = "Check-in successful"
    attendance: CheckInResult


class CheckOutResponse(BaseModel):
    success: bool = True
    message: str = "Check-out successful"
    attendance: CheckOutResult


class AttendanceRecordOut(CamelModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, from_attributes=True)

    id: int
    date: date
    check_in_time: datetime | None
    check_out_time: datetime | None
    check_in_latitude: float | None
    check_in_longitude: float | None
    check_in_address: str | None
    check_out_latitude: float | None
    check_out_longitude: float | None
    check_out_address: str | None
    work_hours: float | None
    overtime_hours: float
    late_minutes: int
    status: Literal["present", "late", "absent", "half_day"]


class TodayResponse(BaseModel):
    state: Literal["not_checked_in", "checked_in", "checked_out"]
    attendance: AttendanceRecordOut | None

from typing import Literal

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class KpiSummary(CamelModel):
    attendance_rate: float
    on_time_rate: float
    avg_work_hours: float
    total_overtime: float
    late_count: int
    absent_count: int


class TimeseriesPoint(CamelModel):
    date: str
    attendance_rate: float
    on_time_rate: float


class KpiMetrics(CamelModel):
    metrics: KpiSummary
    timeseries: list[TimeseriesPoint]


class Trend(BaseModel):
    direction: Literal["up", "down", "neutral"]
    change: int


class KpiTrends(CamelModel):
    attendance_rate: Trend
    on_time_rate: Trend
    avg_work_hours: Trend
    total_overtime: Trend
    late_count: Trend
    absent_count: Trend


class DateRangeOut(BaseModel):
    start: str
    end: str


class KpiResponse(CamelModel):
    period: Literal["weekly", "monthly"]
    range: DateRangeOut
    scope: Literal["org", "department", "user"]
    metrics: KpiSummary
    timeseries: list[TimeseriesPoint]
    trends: KpiTrends

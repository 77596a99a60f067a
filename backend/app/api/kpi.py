"""
KPI API route.

The effective scope is derived from the caller's role; ``scope``,
``department`` and ``userId`` query overrides only take effect for admins.
"""

import uuid
from datetime import datetime

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.clock import get_now, local_date
from app.core.middleware import Caller, get_current_caller
from app.db.session import get_db
from app.schemas.kpi import KpiResponse
from app.services.kpi import Scope, get_kpi_report
from app.services.periods import parse_date_param, parse_period
from app.services.record_store import SqlAlchemyRecordStore
from app.services.settings_source import get_grace_period_minutes

router = APIRouter()


@router.get(
    "/{period}",
    response_model=KpiResponse,
    summary="Attendance KPIs for a weekly or monthly window",
)
async def get_kpi(
    period: str,
    scope: Scope | None = Query(default=None),
    department: str | None = Query(default=None),
    user_id: uuid.UUID | None = Query(default=None, alias="userId"),
    start: str | None = Query(default=None, description="YYYY-MM-DD or ISO datetime"),
    end: str | None = Query(default=None, description="YYYY-MM-DD or ISO datetime"),
    db: AsyncSession = Depends(get_db),
    caller: Caller = Depends(get_current_caller),
    now: datetime = Depends(get_now),
) -> KpiResponse:
    grace = await get_grace_period_minutes(db)
    return await get_kpi_report(
        SqlAlchemyRecordStore(db),
        caller,
        parse_period(period),
        local_date(now),
        grace,
        scope=scope,
        department=department,
        user_id=user_id,
        start=parse_date_param(start),
        end=parse_date_param(end),
    )

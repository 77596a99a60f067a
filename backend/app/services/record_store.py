"""
Attendance record store.

``RecordStore`` is the boundary the attendance state machine and the KPI
engine talk to. ``SqlAlchemyRecordStore`` implements it on an AsyncSession;
each write commits on its own and rolls back on failure so no caller ever
sees a half-written record.
"""

import logging
import uuid
from dataclasses import dataclass
from datetime import date
from typing import Any, Protocol

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.db.models import AttendanceRecord, User

logger = logging.getLogger(__name__)


class RecordStoreError(Exception):
    """A write could not be persisted."""


class RecordConflict(RecordStoreError):
    """A record already exists for this (user, date)."""


@dataclass(frozen=True)
class RecordFilter:
    start: date
    end: date
    user_id: uuid.UUID | None = None
    department: str | None = None


class RecordStore(Protocol):
    async def find_by_user_and_date(
        self, user_id: uuid.UUID, day: date
    ) -> AttendanceRecord | None: ...

    async def create(
        self, user_id: uuid.UUID, day: date, fields: dict[str, Any]
    ) -> AttendanceRecord: ...

    async def update(self, record_id: int, fields: dict[str, Any]) -> AttendanceRecord: ...

    async def find_many(self, record_filter: RecordFilter) -> list[AttendanceRecord]: ...

    async def list_for_user(
        self, user_id: uuid.UUID, limit: int, offset: int
    ) -> list[AttendanceRecord]: ...


class SqlAlchemyRecordStore:
    def __init__(self, db: AsyncSession) -> None:
        self._db = db

    async def find_by_user_and_date(
        self, user_id: uuid.UUID, day: date
    ) -> AttendanceRecord | None:
        result = await self._db.execute(
            select(AttendanceRecord).where(
                AttendanceRecord.user_id == user_id,
                AttendanceRecord.date == day,
            )
        )
        return result.scalar_one_or_none()

    async def create(
        self, user_id: uuid.UUID, day: date, fields: dict[str, Any]
    ) -> AttendanceRecord:
        record = AttendanceRecord(user_id=user_id, date=day, **fields)
        self._db.add(record)
        try:
            await self._db.commit()
        except IntegrityError as exc:
            await self._db.rollback()
            logger.info("Duplicate attendance record for user=%s date=%s", user_id, day)
            raise RecordConflict(f"Attendance for {user_id} on {day} already exists") from exc
        except SQLAlchemyError as exc:
            await self._db.rollback()
            raise RecordStoreError(str(exc)) from exc
        await self._db.refresh(record)
        return record

    async def update(self, record_id: int, fields: dict[str, Any]) -> AttendanceRecord:
        try:
            record = await self._db.get(AttendanceRecord, record_id)
            if record is None:
                raise RecordStoreError(f"Attendance record {record_id} not found")
            for key, value in fields.items():
                setattr(record, key, value)
            await self._db.commit()
            await self._db.refresh(record)
        except SQLAlchemyError as exc:
            await self._db.rollback()
            raise RecordStoreError(str(exc)) from exc
        return record

    async def find_many(self, record_filter: RecordFilter) -> list[AttendanceRecord]:
        stmt = select(AttendanceRecord).where(
            AttendanceRecord.date.between(record_filter.start, record_filter.end)
        )
        if record_filter.user_id is not None:
            stmt = stmt.where(AttendanceRecord.user_id == record_filter.user_id)
        if record_filter.department is not None:
            stmt = stmt.join(User, AttendanceRecord.user_id == User.id).where(
                User.department == record_filter.department
            )
        stmt = stmt.order_by(AttendanceRecord.date, AttendanceRecord.id)
        result = await self._db.execute(stmt)
        return list(result.scalars().all())

    async def list_for_user(
        self, user_id: uuid.UUID, limit: int, offset: int
    ) -> list[AttendanceRecord]:
        result = await self._db.execute(
            select(AttendanceRecord)
            .where(AttendanceRecord.user_id == user_id)
            .order_by(AttendanceRecord.date.desc())
            .limit(limit)
            .offset(offset)
        )
        return list(result.scalars().all())

import logging
import uuid
from typing import Any, Protocol

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.db.models import ActivityLog

logger = logging.getLogger(__name__)


class ActivityLogSink(Protocol):
    async def record(
        self,
        user_id: uuid.UUID,
        action: str,
        resource_type: str,
        resource_id: str | None,
        details: dict[str, Any] | None,
    ) -> None: ...


class SqlAlchemyActivityLog:
    """
    Writes each entry in its own session on the caller's engine. A failed
    insert is rolled back there and never expires the caller's objects.
    """

    def __init__(self, db: AsyncSession) -> None:
        self._bind = db.bind

    async def record(
        self,
        user_id: uuid.UUID,
        action: str,
        resource_type: str,
        resource_id: str | None,
        details: dict[str, Any] | None,
    ) -> None:
        async with AsyncSession(self._bind, expire_on_commit=False) as session:
            session.add(
                ActivityLog(
                    user_id=user_id,
                    action=action,
                    resource_type=resource_type,
                    resource_id=resource_id,
                    details=details,
                )
            )
            try:
                await session.commit()
            except SQLAlchemyError:
                await session.rollback()
                raise


async def record_activity(
    sink: ActivityLogSink,
    user_id: uuid.UUID,
    action: str,
    resource_type: str,
    resource_id: str | None,
    details: dict[str, Any] | None,
    *,
    best_effort: bool = True,
) -> None:
    """Write an activity-log entry; in best-effort mode a failure is logged and dropped."""
    try:
        await sink.record(user_id, action, resource_type, resource_id, details)
    except Exception:
        if not best_effort:
            raise
        logger.exception(
            "Activity log write failed (user=%s, action=%s, resource=%s/%s)",
            user_id, action, resource_type, resource_id,
        )

import logging
from typing import Any

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.db.models import SystemSettings

logger = logging.getLogger(__name__)


def parse_grace_period(raw: Any, default: int) -> int:
    """Non-negative integer minutes from a settings value, else ``default``."""
    if isinstance(raw, bool) or raw is None:
        return default
    if isinstance(raw, int):
        value = raw
    elif isinstance(raw, float):
        if not raw.is_integer():
            return default
        value = int(raw)
    elif isinstance(raw, str):
        try:
            value = int(raw.strip())
        except ValueError:
            return default
    else:
        return default
    return value if value >= 0 else default


async def get_grace_period_minutes(db: AsyncSession) -> int:
    """
    Grace period from ``system_settings.business_hours.gracePeriodMinutes``.

    Falls back to ``settings.GRACE_PERIOD_MINUTES`` when the row is missing,
    the value is malformed, or the read itself fails.
    """
    default = settings.GRACE_PERIOD_MINUTES
    try:
        result = await db.execute(select(SystemSettings).order_by(SystemSettings.id).limit(1))
        row = result.scalar_one_or_none()
    except SQLAlchemyError:
        await db.rollback()
        logger.warning("Could not read system settings, using grace period %d", default, exc_info=True)
        return default

    if row is None or not isinstance(row.business_hours, dict):
        return default
    return parse_grace_period(row.business_hours.get("gracePeriodMinutes"), default)

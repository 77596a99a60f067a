from datetime import date, datetime, timezone
from zoneinfo import ZoneInfo

from app.core.config import settings


def get_now() -> datetime:
    """Current instant as a tz-aware UTC datetime. Overridden in tests."""
    return datetime.now(timezone.utc)


def local_date(now: datetime) -> date:
    """Calendar day of ``now`` in the configured attendance timezone."""
    if now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)
    return now.astimezone(ZoneInfo(settings.TIMEZONE)).date()

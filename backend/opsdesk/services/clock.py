"""Local wall clock for "today" and due-time comparisons."""
import os
from datetime import date, datetime
from zoneinfo import ZoneInfo

WORKDAY_TIMEZONE: str = os.getenv("WORKDAY_TIMEZONE", "UTC")


def local_now() -> datetime:
    """Timezone-aware now in the configured workday timezone."""
    return datetime.now(ZoneInfo(WORKDAY_TIMEZONE))


def local_today() -> date:
    return local_now().date()

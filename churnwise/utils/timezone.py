import zoneinfo
from datetime import date, datetime

from churnwise.config import settings


def get_today(tz_name: str | None = None) -> date:
    """Get today's date in the given timezone, falling back to the configured one."""
    for name in (tz_name, settings.timezone):
        if not name:
            continue
        try:
            tz = zoneinfo.ZoneInfo(name)
            return datetime.now(tz).date()
        except (KeyError, ValueError, zoneinfo.ZoneInfoNotFoundError):
            continue

    return date.today()

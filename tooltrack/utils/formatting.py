from datetime import datetime, timezone
from typing import Optional
from zoneinfo import ZoneInfo
from tooltrack.config import get_settings

def local_time(dt: datetime, tz_name: Optional[str] = None) -> datetime:
    # SQLite hands back naive datetimes; everything is stored in UTC
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(ZoneInfo(tz_name or get_settings().DISPLAY_TIMEZONE))

def since(dt: datetime, now: Optional[datetime] = None, tz_name: Optional[str] = None) -> str:
    """'9:15 AM' for today, 'Mar 3, 9:15 AM' otherwise."""
    local = local_time(dt, tz_name)
    today = local_time(now or datetime.now(timezone.utc), tz_name).date()
    clock = local.strftime("%I:%M %p").lstrip("0")
    if local.date() == today:
        return clock
    return f"{local.strftime('%b')} {local.day}, {clock}"

def first_name(name: str) -> str:
    parts = (name or "").split()
    return parts[0] if parts else ""

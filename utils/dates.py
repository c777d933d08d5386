from datetime import date, datetime, timedelta, timezone
from flask import current_app, has_app_context


def _display_tz():
    hours = 8
    if has_app_context():
        hours = current_app.config.get("DISPLAY_UTC_OFFSET_HOURS", 8)
    return timezone(timedelta(hours=hours))


def parse_date(value):
    """
    Accept a date, a datetime or an ISO string and return the calendar day.

    Values carrying a UTC offset are read at the display offset first, so
    "2025-05-31T16:00:00Z" and "2025-06-01T00:00:00+08:00" name the same day.
    Naive values are taken as already local.
    """
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        if value.tzinfo is not None:
            value = value.astimezone(_display_tz())
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        text = value.strip()
        if len(text) <= 10:
            return date.fromisoformat(text)
        return parse_date(datetime.fromisoformat(text.replace("Z", "+00:00")))
    raise ValueError(f"Unsupported date value: {value!r}")


def format_display(ts):
    """Naive UTC timestamp -> ISO string at the fixed display offset."""
    if ts is None:
        return None
    if isinstance(ts, datetime):
        aware = ts if ts.tzinfo else ts.replace(tzinfo=timezone.utc)
        return aware.astimezone(_display_tz()).isoformat(timespec="milliseconds")
    return ts.isoformat()

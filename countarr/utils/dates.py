"""
Zeit-Helfer.

Alle Zeitstempel in der Datenbank sind naive UTC-Werte.
"""
import calendar
import re
from datetime import datetime, timezone
from typing import Optional

_FRACTION_RE = re.compile(r"\.(\d+)")


def utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


def parse_datetime(value) -> Optional[datetime]:
    """
    Parse an upstream ISO-8601 timestamp into naive UTC.

    Handles a trailing "Z" and fractions of any length (.NET sends 7 digits).
    Returns None for empty or unparseable input.
    """
    if value is None:
        return None
    if isinstance(value, datetime):
        parsed = value
    else:
        raw = str(value).strip()
        if not raw:
            return None
        if raw.endswith("Z"):
            raw = raw[:-1] + "+00:00"
        raw = _FRACTION_RE.sub(lambda m: "." + m.group(1)[:6].ljust(6, "0"), raw, count=1)
        try:
            parsed = datetime.fromisoformat(raw)
        except ValueError:
            return None

    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
    return parsed


def months_ago(months: int, now: Optional[datetime] = None) -> datetime:
    """Same wall-clock time N calendar months back, day clamped to month end."""
    now = now or utcnow()
    total = now.year * 12 + (now.month - 1) - months
    year, month = divmod(total, 12)
    month += 1
    day = min(now.day, calendar.monthrange(year, month)[1])
    return now.replace(year=year, month=month, day=day)


def isoformat(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None



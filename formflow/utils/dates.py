from datetime import date, datetime, time, timezone
from typing import Optional


def parse_date(value) -> Optional[date]:
    """
    Accepts YYYY-MM-DD or a full ISO-8601 timestamp (trailing 'Z' allowed).
    Returns None when the value is empty or unparseable.
    """
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if not isinstance(value, str):
        return None
    s = value.strip()
    if not s:
        return None
    if s.endswith("Z"):
        s = s[:-1] + "+00:00"
    try:
        return datetime.fromisoformat(s).date()
    except ValueError:
        pass
    try:
        return date.fromisoformat(s[:10])
    except ValueError:
        return None


def to_date_only(value) -> str:
    """Reduce a backend timestamp to the YYYY-MM-DD form the forms work with."""
    d = parse_date(value)
    return d.isoformat() if d else (value or "")


def to_backend_datetime(value) -> str:
    """YYYY-MM-DD -> midnight UTC ISO-8601, as the remote service stores dates."""
    d = parse_date(value)
    if d is None:
        return value or ""
    return datetime.combine(d, time(0, 0), tzinfo=timezone.utc).isoformat().replace("+00:00", "Z")


def is_at_least_age(born: date, years: int, today: date) -> bool:
    """Calendar-aware: the birthday in the target year must already have passed."""
    age = today.year - born.year
    if (today.month, today.day) < (born.month, born.day):
        age -= 1
    return age >= years

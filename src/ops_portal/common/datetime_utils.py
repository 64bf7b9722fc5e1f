from __future__ import annotations

import re
from datetime import date, datetime, timezone
from typing import Optional, Union

from ..core.exceptions import ValidationError

_OFFSET_RE = re.compile(r"[+-]\d{2}(:?\d{2})?$")


def parse_iso_date(value: str) -> date:
    """Parse YYYY-MM-DD string into date."""
    try:
        return datetime.strptime((value or "").strip(), "%Y-%m-%d").date()
    except ValueError:
        raise ValidationError(f"Invalid date: {value!r} (expected YYYY-MM-DD)")


def parse_optional_date(value: Optional[str]) -> Optional[date]:
    v = (value or "").strip()
    return parse_iso_date(v) if v else None


def now_utc() -> datetime:
    """Current aware UTC time.

    Note: Wrapped so tests can patch it.
    """
    return datetime.now(timezone.utc)


def parse_timestamp(value: Union[str, datetime, None]) -> Optional[datetime]:
    """Parse a stored timestamp into an aware UTC datetime.

    Strings without a ``Z`` suffix or an explicit offset are UTC: a ``Z`` is
    appended before parsing. Naive datetimes are treated the same way.
    """
    if value is None:
        return None

    if isinstance(value, datetime):
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)

    s = str(value).strip()
    if not s:
        return None

    if not re.search(r"[T ]", s):
        return datetime.combine(parse_iso_date(s), datetime.min.time(), tzinfo=timezone.utc)

    time_part = re.split(r"[T ]", s, maxsplit=1)[-1]
    if not s.endswith("Z") and not _OFFSET_RE.search(time_part):
        s = s + "Z"
    s = s[:-1] + "+00:00" if s.endswith("Z") else s

    try:
        parsed = datetime.fromisoformat(s)
    except ValueError:
        raise ValidationError(f"Invalid timestamp: {value!r}")
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def to_iso(value: Optional[datetime]) -> Optional[str]:
    if value is None:
        return None
    if isinstance(value, datetime):
        return parse_timestamp(value).isoformat()
    return value.isoformat()

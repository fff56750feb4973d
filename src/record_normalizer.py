"""
Record normalizer for toll and trip sources.

Both scrapers hand us free-form strings: the toll portal renders dates as
MM/DD/YYYY or ISO, the hosting platform mixes ISO timestamps with plain
dates. Everything is normalized to a naive datetime (UTC wall-clock when the
input carried an offset) so that values from both sources can be compared.

Nothing in here raises for malformed input; ``None`` means "unparseable" and
callers must handle it explicitly.
"""

import re
from datetime import datetime, time, timezone
from decimal import Decimal, InvalidOperation
from typing import Optional, Union


_SLASH_MDY = re.compile(r"^(\d{1,2})/(\d{1,2})/(\d{4})$")
_DASH_YMD = re.compile(r"^(\d{4})-(\d{1,2})-(\d{1,2})$")
_DASH_DMY = re.compile(r"^(\d{1,2})-(\d{1,2})-(\d{4})$")

_TIME_FORMATS = ("%H:%M:%S", "%H:%M", "%I:%M:%S %p", "%I:%M %p", "%I:%M%p")


def _from_iso(text: str) -> Optional[datetime]:
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        return None
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
    return parsed


def _from_patterns(text: str) -> Optional[datetime]:
    m = _SLASH_MDY.match(text)
    if m:
        month, day, year = m.groups()
    else:
        m = _DASH_YMD.match(text)
        if m:
            year, month, day = m.groups()
        else:
            m = _DASH_DMY.match(text)
            if not m:
                return None
            day, month, year = m.groups()
    try:
        return datetime(int(year), int(month), int(day))
    except ValueError:
        return None


def parse_time_of_day(raw: Optional[str]) -> Optional[time]:
    if not raw or not isinstance(raw, str):
        return None
    text = raw.strip().upper()
    for fmt in _TIME_FORMATS:
        try:
            return datetime.strptime(text, fmt).time()
        except ValueError:
            continue
    return None


def parse_timestamp(raw: Optional[str], time_of_day: Optional[str] = None) -> Optional[datetime]:
    """Parse a date/time string into a naive datetime, or ``None``.

    Accepted shapes: ISO 8601 (with or without offset), MM/DD/YYYY, YYYY-MM-DD
    (unpadded too) and DD-MM-YYYY. When the date carries no time-of-day, an
    optional separate ``time_of_day`` string ("14:30", "2:30 PM") is applied.
    """
    if not raw or not isinstance(raw, str):
        return None
    text = raw.strip()
    if not text:
        return None

    date_only = _from_patterns(text)
    if date_only is None:
        # an explicit time, midnight included, is never overridden
        return _from_iso(text)

    if time_of_day:
        tod = parse_time_of_day(time_of_day)
        if tod is not None:
            return datetime.combine(date_only.date(), tod)
    return date_only


def parse_amount(raw: Union[str, int, float, Decimal, None]) -> Optional[Decimal]:
    """Normalize an amount to a non-negative Decimal, or ``None`` if unparseable.

    Upstream scrapers already strip currency symbols, so only plain numbers
    (or numeric strings) are accepted here.
    """
    if raw is None or isinstance(raw, bool):
        return None
    try:
        if isinstance(raw, float):
            value = Decimal(str(raw))
        elif isinstance(raw, str):
            text = raw.strip()
            if not text:
                return None
            value = Decimal(text)
        else:
            value = Decimal(raw)
    except (InvalidOperation, ValueError, TypeError):
        return None
    # refunds and reversals come through negative and are not claimable
    if not value.is_finite() or value < 0:
        return None
    return value

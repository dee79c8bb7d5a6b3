"""Visit date parsing and slot computation.

Two input shapes are accepted for ``preferred_dt_local``:

1. ISO-8601 (``2026-03-15T10:00``, ``2026-03-15 10:00-06:00``, ``...Z``).
   Naive values are read as wall-clock time in the configured zone.
2. A short local form, ``15/3 10am``, ``15-03-2026 4:30 pm``,
   ``15/3/26 a las 17``. It is read in the configured fixed UTC offset.
   ``day_first`` switches between day/month and month/day, two-digit years
   are added to ``century_base``, and a missing year means the next
   occurrence of that date.
"""

from __future__ import annotations

import re
from datetime import datetime, timedelta, timezone
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from kb_concierge.config import SchedulingConfig
from kb_concierge.errors import ConfigError, InvalidDateTime

_LOCAL_PATTERN = re.compile(
    r"""
    ^\s*
    (?P<first>\d{1,2})\s*[/.\-]\s*(?P<second>\d{1,2})
    (?:\s*[/.\-]\s*(?P<year>\d{4}|\d{2}))?
    [\s,]+
    (?:(?:at|a\s+las|a\s+la|@)\s*)?
    (?P<hour>\d{1,2})
    (?::(?P<minute>\d{2}))?
    \s*
    (?P<meridiem>[ap]\.?\s?m\.?)?
    \s*$
    """,
    re.IGNORECASE | re.VERBOSE,
)
_YEAR_LOOKAHEAD = 9


def parse_preferred_datetime(
    text: str,
    config: SchedulingConfig,
    *,
    now: datetime | None = None,
) -> datetime:
    """Parse a visit request time into an aware ``datetime``."""

    raw = (text or "").strip()
    if not raw:
        raise InvalidDateTime("preferred_dt_local is empty")

    parsed = _parse_iso(raw, config)
    if parsed is not None:
        return parsed

    parsed = _parse_local(raw, config, now=now)
    if parsed is not None:
        return parsed

    raise InvalidDateTime(f"Could not understand date/time: {raw!r}")


def visit_slot(start: datetime, config: SchedulingConfig) -> tuple[datetime, datetime]:
    """Return the ``[start, end)`` slot expressed in the configured zone."""

    zone = resolve_zone(config)
    local_start = start.astimezone(zone)
    return local_start, local_start + timedelta(minutes=config.duration_minutes)


def resolve_zone(config: SchedulingConfig) -> ZoneInfo:
    try:
        return ZoneInfo(config.timezone)
    except (ZoneInfoNotFoundError, ValueError) as exc:
        raise ConfigError(f"Unknown time zone: {config.timezone!r}") from exc


def fixed_offset(config: SchedulingConfig) -> timezone:
    return timezone(timedelta(hours=config.utc_offset_hours))


def _parse_iso(raw: str, config: SchedulingConfig) -> datetime | None:
    candidate = raw[:-1] + "+00:00" if raw.endswith(("Z", "z")) else raw
    try:
        value = datetime.fromisoformat(candidate)
    except ValueError:
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=resolve_zone(config))
    return value


def _parse_local(
    raw: str, config: SchedulingConfig, *, now: datetime | None
) -> datetime | None:
    match = _LOCAL_PATTERN.match(raw)
    if match is None:
        return None

    first, second = int(match.group("first")), int(match.group("second"))
    day, month = (first, second) if config.day_first else (second, first)
    hour = int(match.group("hour"))
    minute = int(match.group("minute") or 0)
    hour = _apply_meridiem(hour, match.group("meridiem"), raw)
    if minute > 59:
        raise InvalidDateTime(f"Minute out of range in {raw!r}")

    offset = fixed_offset(config)
    year_text = match.group("year")
    reference = (now or datetime.now(offset)).astimezone(offset)

    if year_text is not None:
        year = int(year_text)
        if len(year_text) == 2:
            year += config.century_base
        try:
            return datetime(year, month, day, hour, minute, tzinfo=offset)
        except ValueError as exc:
            raise InvalidDateTime(f"Invalid calendar date in {raw!r}: {exc}") from exc

    # 29/2 only exists in leap years, so look a few years ahead.
    for year in range(reference.year, reference.year + _YEAR_LOOKAHEAD):
        try:
            value = datetime(year, month, day, hour, minute, tzinfo=offset)
        except ValueError:
            continue
        if value >= reference:
            return value
    raise InvalidDateTime(f"Invalid calendar date in {raw!r}")


def _apply_meridiem(hour: int, meridiem: str | None, raw: str) -> int:
    if meridiem is None:
        if hour > 23:
            raise InvalidDateTime(f"Hour out of range in {raw!r}")
        return hour

    if not 1 <= hour <= 12:
        raise InvalidDateTime(f"Hour must be 1-12 with am/pm in {raw!r}")
    is_pm = meridiem.lower().startswith("p")
    if hour == 12:
        return 12 if is_pm else 0
    return hour + 12 if is_pm else hour

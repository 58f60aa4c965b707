"""
Reward period identifiers.

Formats:
- weekly: "YYYY-Www" (ISO week, e.g. "2025-W04")
- daily: "YYYY-Dddd" (day of year, e.g. "2025-D028")
- 6hour: "YYYY-Dddd-Pn" (n = 0..3, UTC hours 00, 06, 12, 18)
"""
import re
from datetime import date, datetime, timedelta, timezone
from typing import Optional, Tuple

WEEKLY = "weekly"
DAILY = "daily"
SIX_HOUR = "6hour"

_WEEK_RE = re.compile(r"^(\d{4})-W(\d{2})$")
_DAY_RE = re.compile(r"^(\d{4})-D(\d{3})$")
_SIX_HOUR_RE = re.compile(r"^(\d{4})-D(\d{3})-P([0-3])$")


def week_id(day: date) -> str:
    year, week, _ = day.isocalendar()
    return f"{year}-W{week:02d}"


def day_id(day: date) -> str:
    return f"{day.year}-D{day.timetuple().tm_yday:03d}"


def six_hour_id(moment: datetime) -> str:
    return f"{day_id(moment.date())}-P{moment.hour // 6}"


def parse_week_id(period_id: str) -> Tuple[int, int]:
    match = _WEEK_RE.match(period_id)
    if not match:
        raise ValueError(f"Invalid week ID format: {period_id}. Expected format: YYYY-Www")
    return int(match.group(1)), int(match.group(2))


def parse_day_id(period_id: str) -> Tuple[int, int]:
    match = _DAY_RE.match(period_id)
    if not match:
        raise ValueError(f"Invalid day ID format: {period_id}. Expected format: YYYY-Dddd")
    return int(match.group(1)), int(match.group(2))


def parse_six_hour_id(period_id: str) -> Tuple[int, int, int]:
    match = _SIX_HOUR_RE.match(period_id)
    if not match:
        raise ValueError(f"Invalid 6-hour period ID format: {period_id}. Expected format: YYYY-Dddd-Pn")
    return int(match.group(1)), int(match.group(2)), int(match.group(3))


def week_start(period_id: str) -> date:
    """Monday of the ISO week"""
    year, week = parse_week_id(period_id)
    return date.fromisocalendar(year, week, 1)


def _day_from_id(year: int, day_of_year: int) -> date:
    return date(year, 1, 1) + timedelta(days=day_of_year - 1)


def current_period_id(mode: str = WEEKLY, now: Optional[datetime] = None) -> str:
    """Period containing `now` (UTC) for the given cycle mode"""
    now = now or datetime.now(timezone.utc)
    if mode == DAILY:
        return day_id(now.date())
    if mode == SIX_HOUR:
        return six_hour_id(now)
    if mode == WEEKLY:
        return week_id(now.date())
    raise ValueError(f"Unknown cycle mode: {mode}")


def previous_period_id(period_id: str) -> str:
    """Period immediately before period_id, in the same format"""
    if _SIX_HOUR_RE.match(period_id):
        year, day_of_year, period = parse_six_hour_id(period_id)
        if period > 0:
            return f"{year}-D{day_of_year:03d}-P{period - 1}"
        return f"{day_id(_day_from_id(year, day_of_year) - timedelta(days=1))}-P3"

    if _DAY_RE.match(period_id):
        year, day_of_year = parse_day_id(period_id)
        return day_id(_day_from_id(year, day_of_year) - timedelta(days=1))

    return week_id(week_start(period_id) - timedelta(days=7))


def next_period_id(period_id: str) -> str:
    """Period immediately after period_id, in the same format"""
    if _SIX_HOUR_RE.match(period_id):
        year, day_of_year, period = parse_six_hour_id(period_id)
        if period < 3:
            return f"{year}-D{day_of_year:03d}-P{period + 1}"
        return f"{day_id(_day_from_id(year, day_of_year) + timedelta(days=1))}-P0"

    if _DAY_RE.match(period_id):
        year, day_of_year = parse_day_id(period_id)
        return day_id(_day_from_id(year, day_of_year) + timedelta(days=1))

    return week_id(week_start(period_id) + timedelta(days=7))

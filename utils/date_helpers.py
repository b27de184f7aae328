from datetime import date, datetime, time, timedelta
import calendar
from utils.constants import DATE_FORMAT


def today() -> date:
    return date.today()


def parse_date(date_str: str) -> date | None:
    """Parse a date string in YYYY-MM-DD format, returning None on failure."""
    if not date_str:
        return None
    for fmt in ("%Y-%m-%d", "%Y/%m/%d", "%Y.%m.%d"):
        try:
            return datetime.strptime(date_str, fmt).date()
        except ValueError:
            continue
    return None


def coerce_date(value) -> date | None:
    """Accept a date, a datetime or a YYYY-MM-DD string; None on failure.

    Datetimes are truncated to their calendar date so time-of-day never
    takes part in a comparison.
    """
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        return parse_date(value.strip())
    return None


def format_date(d: date) -> str:
    return d.strftime(DATE_FORMAT)


def clamp_day_to_month(year: int, month: int, day: int) -> int:
    """Clamp day to valid range for the given year/month."""
    max_day = calendar.monthrange(year, month)[1]
    return min(day, max_day)


def add_months(d: date, n: int) -> date:
    """Add n months to date d, clamping day to month end."""
    month = d.month - 1 + n
    year = d.year + month // 12
    month = month % 12 + 1
    day = clamp_day_to_month(year, month, d.day)
    return d.replace(year=year, month=month, day=day)


def add_years(d: date, n: int) -> date:
    """Add n years to date d; Feb 29 lands on Feb 28 in a non-leap year."""
    year = d.year + n
    day = clamp_day_to_month(year, d.month, d.day)
    return d.replace(year=year, day=day)


def parse_time_of_day(value: str) -> time | None:
    """Parse an HH:MM string, returning None on failure."""
    if not value:
        return None
    try:
        return datetime.strptime(value.strip(), "%H:%M").time()
    except ValueError:
        return None


def seconds_until(run_at: time, now: datetime) -> float:
    """Seconds from `now` to the next wall-clock occurrence of `run_at`.

    A run_at equal to now counts as the next day, so a tick that finishes
    within the same second never fires twice.
    """
    target = datetime.combine(now.date(), run_at)
    if target <= now:
        target += timedelta(days=1)
    return (target - now).total_seconds()

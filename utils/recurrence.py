"""Occurrence date arithmetic for recurring templates.

Everything here is pure: the output depends only on the arguments.
"""
from datetime import date, timedelta
from typing import Iterator
from utils.date_helpers import add_months, add_years
from utils.errors import InvalidFrequency


def next_date(current: date, frequency: str) -> date:
    """Return the occurrence that follows `current` for the given frequency.

    Monthly and yearly steps clamp to the last valid day of the target month
    (Jan 31 -> Feb 28/29, Feb 29 -> Feb 28). The step is always taken from
    `current`, never from the template's anchor, so a clamped day sticks:
    Jan 31 -> Feb 28 -> Mar 28.
    """
    if frequency == "daily":
        return current + timedelta(days=1)
    if frequency == "weekly":
        return current + timedelta(days=7)
    if frequency == "monthly":
        return add_months(current, 1)
    if frequency == "yearly":
        return add_years(current, 1)
    raise InvalidFrequency(frequency)


def iter_occurrences(
    start: date,
    frequency: str,
    until: date,
    expiry: date | None = None,
) -> Iterator[date]:
    """Yield start and each following occurrence up to `until` (inclusive).

    Stops early at `expiry` when given; an occurrence landing exactly on the
    expiry date is still yielded.
    """
    last = min(until, expiry) if expiry else until
    current = start
    while current <= last:
        yield current
        current = next_date(current, frequency)

"""Static holiday calendar."""

from __future__ import annotations

from collections.abc import Iterable
from datetime import date

DEFAULT_HOLIDAYS = (
    "01-01",  # New Year's Day
    "02-14",
    "04-06",  # Chakri Day
    "04-13",  # Songkran
    "04-14",
    "04-15",
    "05-01",  # Labour Day
    "05-04",  # Coronation Day
    "07-28",  # King's Birthday
    "08-12",  # Mother's Day
    "10-13",  # King Bhumibol Memorial Day
    "10-23",  # Chulalongkorn Day
    "12-05",  # Father's Day
    "12-10",  # Constitution Day
    "12-31",  # New Year's Eve
)


class HolidayCalendar:
    """Recurring holidays keyed by month and day."""

    def __init__(self, month_days: Iterable[str] = DEFAULT_HOLIDAYS) -> None:
        self._days: frozenset[tuple[int, int]] = frozenset(
            (int(md[:2]), int(md[3:])) for md in month_days
        )

    def is_holiday(self, value: date) -> bool:
        return (value.month, value.day) in self._days

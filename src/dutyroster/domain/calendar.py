"""Calendar generation for a roster month."""

from typing import Iterable, Optional

from dutyroster.domain.models import CalendarPeriod, DayDescriptor, PeriodKey


class CalendarGenerator:
    """Produces one day descriptor per day of a month.

    Weekends are non-working days; so are any day numbers listed as holidays.

    Example:
        >>> period = CalendarGenerator().generate(PeriodKey(1, 2026), holidays=[1, 6])
        >>> len(period.working_days())
        20
    """

    def generate(
        self,
        key: PeriodKey,
        holidays: Optional[Iterable[int]] = None,
    ) -> CalendarPeriod:
        """Build the calendar for a month.

        Args:
            key: Month and year to generate.
            holidays: Day numbers that are non-working regardless of weekday.

        Returns:
            CalendarPeriod with days in ascending order and zero planned counts.
        """
        holiday_set = frozenset(holidays or ())
        days = []
        for day in range(1, key.days_in_month + 1):
            weekday = key.date_of(day).weekday()
            is_working = weekday < 5 and day not in holiday_set
            days.append(DayDescriptor(day=day, period=key, is_working_day=is_working))
        return CalendarPeriod(key=key, days=days, holidays=holiday_set)

import re
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta
from typing import Optional
from zoneinfo import ZoneInfo

MONTH_PATTERN = re.compile(r"^[0-9]{4}-[0-9]{2}$")

# Last representable millisecond of a day.
_END_OF_DAY = time(23, 59, 59, 999000)


class InvalidMonthFormat(ValueError):
    def __init__(self, month: object) -> None:
        super().__init__(f"Please provide month in YYYY-MM format (got {month!r})")
        self.month = month


@dataclass(frozen=True)
class MonthRange:
    month: str
    start: datetime
    end: datetime

    @property
    def first_day(self) -> date:
        return self.start.date()

    @property
    def last_day(self) -> date:
        return self.end.date()

    @property
    def days(self) -> int:
        return self.last_day.day

    def contains(self, value: date) -> bool:
        if isinstance(value, datetime):
            return self.start <= value <= self.end
        return self.first_day <= value <= self.last_day


def parse_month(month: Optional[str]) -> tuple[int, int]:
    """Split a ``YYYY-MM`` string into ``(year, month)``.

    Only the exact four-digit/two-digit shape is accepted; ``"2024-3"`` and
    ``"24-03"`` are rejected, as is a month number outside 01-12.
    """
    if not isinstance(month, str) or not MONTH_PATTERN.fullmatch(month):
        raise InvalidMonthFormat(month)
    year_str, month_str = month.split("-")
    year, month_num = int(year_str), int(month_str)
    if not 1 <= month_num <= 12 or year < 1:
        raise InvalidMonthFormat(month)
    return year, month_num


def _first_of_next_month(year: int, month: int) -> date:
    if month == 12:
        return date(year + 1, 1, 1)
    return date(year, month + 1, 1)


def resolve_month_range(month: Optional[str]) -> MonthRange:
    year, month_num = parse_month(month)
    first = date(year, month_num, 1)
    # day 0 of next month
    last = _first_of_next_month(year, month_num) - timedelta(days=1)
    return MonthRange(
        month=month,
        start=datetime.combine(first, time.min),
        end=datetime.combine(last, _END_OF_DAY),
    )


def days_in_month(month: Optional[str]) -> int:
    return resolve_month_range(month).days


def month_of(value: date) -> str:
    return f"{value.year:04d}-{value.month:02d}"


def today_in(timezone: str) -> date:
    return datetime.now(ZoneInfo(timezone)).date()

import calendar
import re
from dataclasses import dataclass
from datetime import date, datetime


_LABEL_PATTERN = re.compile(r"^(\d{4})-(\d{2})$")


@dataclass(frozen=True, order=True)
class Period:
    """A calendar month bucket. Balances are kept per physician per period."""

    year: int
    month: int

    def __post_init__(self):
        if not 1 <= self.month <= 12:
            raise ValueError(f"Month must be between 1 and 12, got {self.month}")
        if not 1 <= self.year <= 9999:
            raise ValueError(f"Year must be between 1 and 9999, got {self.year}")

    @classmethod
    def from_datetime(cls, value: datetime) -> "Period":
        return cls(value.year, value.month)

    @classmethod
    def parse(cls, label: str) -> "Period":
        match = _LABEL_PATTERN.match(label or "")
        if not match:
            raise ValueError(f"Invalid period label {label!r}, expected YYYY-MM")
        return cls(int(match.group(1)), int(match.group(2)))

    @property
    def label(self) -> str:
        return f"{self.year:04d}-{self.month:02d}"

    def __str__(self) -> str:
        return self.label

    def next(self) -> "Period":
        if self.month == 12:
            return Period(self.year + 1, 1)
        return Period(self.year, self.month + 1)

    def previous(self) -> "Period":
        if self.month == 1:
            return Period(self.year - 1, 12)
        return Period(self.year, self.month - 1)

    def first_day(self) -> date:
        return date(self.year, self.month, 1)

    def last_day(self) -> date:
        return date(self.year, self.month, calendar.monthrange(self.year, self.month)[1])

    def contains(self, day: date) -> bool:
        return day.year == self.year and day.month == self.month

    def days_remaining(self, today: date) -> int:
        """Days left in this period after ``today``; 0 once the period is over."""
        if today > self.last_day():
            return 0
        if today < self.first_day():
            return (self.last_day() - self.first_day()).days + 1
        return (self.last_day() - today).days

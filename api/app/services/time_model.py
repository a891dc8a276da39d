"""Time primitives shared by the availability pipeline.

A day is 1440 integer minutes since midnight. Everything is scheduled in
30-minute blocks. Day of week follows the rule store: 0=Sunday..6=Saturday.
"""

from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal

GRANULARITY_MINUTES = 30
MINUTES_PER_DAY = 1440


@dataclass(frozen=True, order=True)
class TimeBlock:
    """Half-open interval [start_minute, end_minute) within one day."""

    start_minute: int
    end_minute: int
    price_override: Decimal | None = field(default=None, compare=False)

    def __post_init__(self):
        if not (0 <= self.start_minute < self.end_minute <= MINUTES_PER_DAY):
            raise ValueError(f"Invalid block {self.start_minute}-{self.end_minute}")

    @property
    def duration(self) -> int:
        return self.end_minute - self.start_minute

    def with_range(self, start_minute: int, end_minute: int) -> "TimeBlock":
        return TimeBlock(start_minute, end_minute, self.price_override)


def is_aligned(minute: int) -> bool:
    return minute % GRANULARITY_MINUTES == 0


def is_full_block(block: TimeBlock) -> bool:
    """A whole grid cell: starts on the grid and lasts exactly one granule."""
    return is_aligned(block.start_minute) and block.duration == GRANULARITY_MINUTES


def is_valid_minute(value) -> bool:
    """True for an integer in [0, 1440). Booleans and floats are rejected."""
    return isinstance(value, int) and not isinstance(value, bool) and 0 <= value < MINUTES_PER_DAY


def is_valid_end_minute(value) -> bool:
    """True for an integer in (0, 1440]: a range may end at midnight."""
    return isinstance(value, int) and not isinstance(value, bool) and 0 < value <= MINUTES_PER_DAY


def day_of_week(d: date) -> int:
    """0=Sunday..6=Saturday (Python's weekday() is 0=Monday)."""
    return (d.weekday() + 1) % 7


def minutes_since_midnight(dt: datetime) -> int:
    return dt.hour * 60 + dt.minute


def format_minutes(minute: int) -> str:
    """540 -> "09:00", 1440 -> "24:00"."""
    return f"{minute // 60:02d}:{minute % 60:02d}"


def parse_hhmm(value: str) -> int:
    """"09:30" -> 570. "24:00" is accepted as end of day."""
    hours, _, minutes = value.partition(":")
    total = int(hours) * 60 + int(minutes or 0)
    if not 0 <= total <= MINUTES_PER_DAY or not 0 <= int(minutes or 0) < 60:
        raise ValueError(f"Invalid time {value!r}")
    return total

"""Slot composition: free 30-minute blocks -> bookable ranges of a given length.

Every start offset is tried, so a free morning of 09:00-12:00 yields
09:00, 09:30 and 10:00 starts for a 90-minute booking, not just the first.
"""

from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from decimal import Decimal

from app.services.errors import BookingError, DurationOutOfRange, InvalidDuration
from app.services.time_model import GRANULARITY_MINUTES, TimeBlock, is_full_block


@dataclass(frozen=True, order=True)
class BookingOption:
    start_minute: int
    end_minute: int
    price_override: Decimal | None = field(default=None, compare=False)
    price: Decimal | None = field(default=None, compare=False)

    @property
    def duration(self) -> int:
        return self.end_minute - self.start_minute


@dataclass
class DurationOptions:
    """Options grouped per requested duration, with per-duration failures."""

    options: dict[int, list[BookingOption]] = field(default_factory=dict)
    errors: dict[int, BookingError] = field(default_factory=dict)


def validate_duration(duration_minutes, *, min_duration: int, max_duration: int) -> None:
    if (
        not isinstance(duration_minutes, int)
        or isinstance(duration_minutes, bool)
        or duration_minutes <= 0
        or duration_minutes % GRANULARITY_MINUTES
    ):
        raise InvalidDuration(
            f"Duration must be a positive multiple of {GRANULARITY_MINUTES} minutes, got {duration_minutes!r}"
        )
    if not min_duration <= duration_minutes <= max_duration:
        raise DurationOutOfRange(
            f"Duration must be between {min_duration} and {max_duration} minutes",
            min_minutes=min_duration,
            max_minutes=max_duration,
        )


def _contiguous_runs(blocks: Sequence[TimeBlock], duration_minutes: int) -> list[BookingOption]:
    """Every run of adjacent whole blocks spanning exactly duration_minutes."""
    required = duration_minutes // GRANULARITY_MINUTES
    found = []
    for i in range(len(blocks) - required + 1):
        run_end = i
        while run_end - i + 1 < required and blocks[run_end + 1].start_minute == blocks[run_end].end_minute:
            run_end += 1
        if run_end - i + 1 == required and blocks[run_end].end_minute - blocks[i].start_minute == duration_minutes:
            found.append(BookingOption(blocks[i].start_minute, blocks[run_end].end_minute, blocks[i].price_override))
    return found


def compose_booking_options(
    free_blocks: Iterable[TimeBlock],
    duration_minutes: int,
    *,
    min_duration: int,
    max_duration: int,
) -> list[BookingOption]:
    validate_duration(duration_minutes, min_duration=min_duration, max_duration=max_duration)

    blocks = sorted((b for b in free_blocks if is_full_block(b)), key=lambda b: (b.start_minute, b.end_minute))
    if not blocks:
        return []

    seen = set()
    options = []
    for option in _contiguous_runs(blocks, duration_minutes):
        key = (option.start_minute, option.end_minute)
        if key in seen:
            continue
        seen.add(key)
        options.append(option)
    options.sort()
    return options


def compose_for_durations(
    free_blocks: Iterable[TimeBlock],
    durations: Iterable[int],
    *,
    min_duration: int,
    max_duration: int,
) -> DurationOptions:
    blocks = list(free_blocks)
    result = DurationOptions()
    for duration in durations:
        try:
            result.options[duration] = compose_booking_options(
                blocks, duration, min_duration=min_duration, max_duration=max_duration
            )
        except (InvalidDuration, DurationOutOfRange) as exc:
            result.errors[duration] = exc
    return result

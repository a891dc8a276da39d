"""Base availability generation.

Expands a court's weekly availability rules for one date into an ordered list
of 30-minute TimeBlocks. Blocks from different rules are never merged: the
slot composer works on the individual atomic blocks.
"""

import logging
from dataclasses import dataclass
from datetime import date, timedelta

from app.services.errors import AdvanceWindowExceeded, CourtInactive, CourtNotFound, PastDate
from app.services.policy import BookingPolicy
from app.services.stores import CourtStore, PolicyStore, RuleStore
from app.services.time_model import (
    GRANULARITY_MINUTES,
    MINUTES_PER_DAY,
    TimeBlock,
    day_of_week,
    is_aligned,
    is_valid_minute,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class BaseAvailability:
    court_id: int
    query_date: date
    day_of_week: int
    blocks: list[TimeBlock]
    policy: BookingPolicy


def rule_segments(rule) -> list[tuple[int, int]]:
    """Normalise a rule into same-day [start, end) segments.

    A rule with start > end crosses midnight and becomes [start, 1440) plus
    [0, end). Malformed rules are logged and yield no segments.
    """
    start, end = rule.start_minute, rule.end_minute
    rule_id = getattr(rule, "id", None)

    if not is_valid_minute(start) or not is_valid_minute(end):
        logger.warning("Skipping availability rule %s: bounds %r-%r outside [0, 1440)", rule_id, start, end)
        return []
    if start == end:
        logger.warning("Skipping availability rule %s: empty range at minute %d", rule_id, start)
        return []
    if not is_aligned(start) or not is_aligned(end):
        logger.warning(
            "Skipping availability rule %s: %d-%d not aligned to %d minutes", rule_id, start, end, GRANULARITY_MINUTES
        )
        return []

    if start < end:
        return [(start, end)]
    segments = [(start, MINUTES_PER_DAY)]
    if end > 0:
        segments.append((0, end))
    return segments


def blocks_from_rule(rule) -> list[TimeBlock]:
    """Emit consecutive 30-minute blocks covering the rule's range."""
    price = getattr(rule, "price_per_hour_override", None)
    blocks = []
    for seg_start, seg_end in rule_segments(rule):
        current = seg_start
        while current + GRANULARITY_MINUTES <= seg_end:
            blocks.append(TimeBlock(current, current + GRANULARITY_MINUTES, price))
            current += GRANULARITY_MINUTES
    return blocks


def blocks_from_rules(rules) -> list[TimeBlock]:
    blocks: list[TimeBlock] = []
    for rule in rules:
        if not getattr(rule, "is_active", True):
            continue
        blocks.extend(blocks_from_rule(rule))
    blocks.sort(key=lambda b: (b.start_minute, b.end_minute))
    return blocks


def check_booking_window(query_date: date, today: date, policy: BookingPolicy) -> None:
    """Reject dates in the past or beyond the advance booking window."""
    if query_date < today:
        raise PastDate(f"{query_date.isoformat()} is in the past")
    latest = today + timedelta(days=policy.max_advance_booking_days)
    if query_date > latest:
        raise AdvanceWindowExceeded(
            f"Bookings open at most {policy.max_advance_booking_days} days ahead (latest {latest.isoformat()})",
            max_days=policy.max_advance_booking_days,
        )


async def generate_base_availability(
    *,
    courts: CourtStore,
    rules: RuleStore,
    policies: PolicyStore,
    court_id: int,
    query_date: date,
    today: date,
) -> BaseAvailability:
    court = await courts.get_court(court_id)
    if court is None:
        raise CourtNotFound(f"Court {court_id} not found")
    if not court.is_active:
        raise CourtInactive(f"Court {court_id} is not accepting bookings")

    policy = await policies.get_resolved_policy(court_id)
    check_booking_window(query_date, today, policy)

    dow = day_of_week(query_date)
    active_rules = await rules.get_active_rules(court_id, dow)
    blocks = blocks_from_rules(active_rules)
    logger.debug("Court %d on %s: %d rules -> %d blocks", court_id, query_date, len(active_rules), len(blocks))
    return BaseAvailability(court_id=court_id, query_date=query_date, day_of_week=dow, blocks=blocks, policy=policy)

"""Batch sweeps that persist time-based status changes.

Correctness never depends on these running: availability queries already
ignore pending bookings past expires_at. The sweeps only make the stored
status match reality. Both are idempotent and lock the rows they flip.
"""

import logging
from datetime import datetime

from app.services.stores import ReservationStore, TransactionManager
from app.services.time_model import minutes_since_midnight

logger = logging.getLogger(__name__)


async def expire_pending(
    reservations: ReservationStore,
    transactions: TransactionManager,
    now: datetime,
    batch_size: int = 100,
) -> list[int]:
    """Flip up to batch_size pending bookings with expires_at <= now to expired."""
    async with transactions.begin() as tx:
        rows = await reservations.lock_expired(tx, now, batch_size)
        ids = [row.id for row in rows]
        if ids:
            await reservations.mark_expired(tx, ids)

    if ids:
        logger.info("Expired %d pending bookings: %s", len(ids), ids)
    return ids


async def complete_elapsed(
    reservations: ReservationStore,
    transactions: TransactionManager,
    now: datetime,
    batch_size: int = 100,
) -> list[int]:
    """Flip up to batch_size confirmed bookings whose end has passed to completed."""
    async with transactions.begin() as tx:
        rows = await reservations.lock_elapsed(tx, now.date(), minutes_since_midnight(now), batch_size)
        ids = [row.id for row in rows]
        if ids:
            await reservations.mark_completed(tx, ids)

    if ids:
        logger.info("Completed %d elapsed bookings", len(ids))
    return ids

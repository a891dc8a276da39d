"""Celery worker and beat schedule.

The sweeps only persist status changes the engine already applies lazily,
so a stopped worker never causes double bookings.
"""

import asyncio
import logging

from celery import Celery

from app.core.config import settings
from app.core.database import engine as db_engine
from app.core.dependencies import build_booking_engine

logger = logging.getLogger(__name__)

celery_app = Celery(
    "courthub",
    broker=settings.redis_url,
    backend=settings.redis_url,
)

celery_app.conf.update(
    task_serializer="json",
    result_serializer="json",
    accept_content=["json"],
    timezone=settings.timezone,
    enable_utc=True,
    beat_schedule={
        "expire-pending-bookings": {
            "task": "app.worker.expire_pending_bookings",
            "schedule": settings.expiration_sweep_seconds,
        },
        "complete-elapsed-bookings": {
            "task": "app.worker.complete_elapsed_bookings",
            "schedule": settings.expiration_sweep_seconds,
        },
    },
)


async def _sweep(method: str, batch_size: int) -> list[int]:
    # asyncio.run gives every task a new event loop; pooled connections are bound to the old one
    await db_engine.dispose()
    try:
        return await getattr(build_booking_engine(), method)(batch_size)
    finally:
        await db_engine.dispose()


@celery_app.task(name="app.worker.expire_pending_bookings")
def expire_pending_bookings(batch_size: int | None = None) -> list[int]:
    ids = asyncio.run(_sweep("expire_pending", batch_size or settings.expiration_batch_size))
    logger.info("Expiration sweep flipped %d bookings", len(ids))
    return ids


@celery_app.task(name="app.worker.complete_elapsed_bookings")
def complete_elapsed_bookings(batch_size: int | None = None) -> list[int]:
    ids = asyncio.run(_sweep("complete_elapsed", batch_size or settings.expiration_batch_size))
    logger.info("Completion sweep flipped %d bookings", len(ids))
    return ids

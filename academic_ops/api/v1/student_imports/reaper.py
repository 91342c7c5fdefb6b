"""Periodic expiry sweep for staged import batches."""

import asyncio
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from academic_ops.core.logging import get_logger

from .service import expire_stale_batches

logger = get_logger(__name__)


async def run_batch_reaper(session_factory: async_sessionmaker[AsyncSession], interval_seconds: float) -> None:
    """Expire stale batches every `interval_seconds` until cancelled. A failed sweep is logged and retried next tick."""
    logger.info("Import batch reaper started (every %ss)", interval_seconds)
    while True:
        await asyncio.sleep(interval_seconds)
        try:
            async with session_factory() as db:
                await expire_stale_batches(db)
        except Exception:
            # Connection errors surface as OSError and friends, not only SQLAlchemyError
            logger.exception("Import batch expiry sweep failed")


def start_batch_reaper(
    session_factory: async_sessionmaker[AsyncSession],
    interval_seconds: float,
) -> Optional["asyncio.Task[None]"]:
    """Start the sweep as a background task; None when disabled (interval <= 0)."""
    if interval_seconds <= 0:
        return None
    return asyncio.create_task(run_batch_reaper(session_factory, interval_seconds), name="import-batch-reaper")


async def stop_batch_reaper(task: Optional["asyncio.Task[None]"]) -> None:
    """Cancel the sweep. Never raises, so application shutdown always completes."""
    if task is None:
        return
    if task.done():
        if not task.cancelled() and task.exception() is not None:
            logger.error("Import batch reaper had stopped: %r", task.exception())
        return
    task.cancel()
    try:
        await task
    except asyncio.CancelledError:
        logger.info("Import batch reaper stopped")
    except Exception:
        logger.exception("Import batch reaper failed while stopping")

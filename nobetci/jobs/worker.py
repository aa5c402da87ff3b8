"""Long-running ingestion worker: resolves provinces, starts the scheduler, waits for a signal."""

from __future__ import annotations

import asyncio
import logging
import signal

from nobetci.config import Settings, get_settings
from nobetci.db.session import SessionLocal, check_db_connection
from nobetci.jobs.scheduler import JobScheduler
from nobetci.services.metrics import WorkerMetrics
from nobetci.services.source_repository import SourceRepository

logger = logging.getLogger(__name__)

PILOT_PROVINCES = ["adana", "istanbul"]


def resolve_province_slugs(configured: list[str], session_factory=SessionLocal) -> list[str]:
    """Configured slugs, or every province with enabled endpoints when set to ``all``.

    Falls back to the pilot provinces when the DB has none or cannot be read.
    """
    if configured and configured != ["all"]:
        return list(dict.fromkeys(configured))

    db = session_factory()
    try:
        from_db = SourceRepository(db).list_active_province_slugs()
    except Exception as exc:
        logger.warning("Could not load active provinces from DB; using pilot list: %s", exc)
        from_db = []
    finally:
        db.close()

    if from_db:
        return from_db
    logger.warning("No active province found in DB, falling back to %s", ",".join(PILOT_PROVINCES))
    return list(PILOT_PROVINCES)


async def run_worker(settings: Settings | None = None) -> None:
    """Run the scheduler until SIGINT or SIGTERM."""
    settings = settings or get_settings()
    await asyncio.to_thread(check_db_connection)
    provinces = await asyncio.to_thread(resolve_province_slugs, settings.province_slugs)

    metrics = WorkerMetrics()
    scheduler = JobScheduler(provinces, metrics=metrics, settings=settings)

    stop_event = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, stop_event.set)

    await scheduler.start()
    logger.info("Worker started: provinces=%s", ",".join(provinces))
    try:
        await stop_event.wait()
        logger.info("Shutting down worker...")
    finally:
        await scheduler.stop()

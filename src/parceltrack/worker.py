"""Queue worker loop and process entry point."""

from __future__ import annotations

import asyncio
import contextlib
import logging
import signal

from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine

from parceltrack.config import TrackingConfig
from parceltrack.contrib.sqlalchemy.models import Base
from parceltrack.contrib.sqlalchemy.queue_store import SQLAlchemyEventQueue
from parceltrack.contrib.sqlalchemy.repository import (
    SQLAlchemyFacilityDirectory,
)
from parceltrack.logging_config import setup_logging
from parceltrack.normalizer import EventNormalizer
from parceltrack.processor import EventProcessor
from parceltrack.protocols import EventQueue
from parceltrack.retry import process_due_events

logger = logging.getLogger(__name__)


async def run_worker(
    *,
    queue: EventQueue,
    processor: EventProcessor,
    config: TrackingConfig,
    stop: asyncio.Event,
) -> None:
    """Drain the queue until ``stop`` is set.

    Sleeps ``poll_interval_seconds`` only when a pass found nothing due.
    """
    logger.info("Event worker started")
    while not stop.is_set():
        try:
            handled = await process_due_events(
                queue=queue, processor=processor, config=config
            )
        except Exception:
            logger.exception("Event worker pass failed")
            handled = 0
        if handled:
            continue
        with contextlib.suppress(TimeoutError):
            await asyncio.wait_for(
                stop.wait(), timeout=config.poll_interval_seconds
            )
    logger.info("Event worker stopped")


async def _serve(config: TrackingConfig) -> None:
    engine = create_async_engine(config.database_url)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    session_factory = async_sessionmaker(engine, expire_on_commit=False)

    normalizer = EventNormalizer(
        directory=SQLAlchemyFacilityDirectory(session_factory),
        config=config,
    )
    processor = EventProcessor(
        session_factory=session_factory,
        normalizer=normalizer,
        config=config,
    )
    queue = SQLAlchemyEventQueue(
        session_factory,
        lease_seconds=int(config.attempt_timeout_seconds) + 60,
    )

    stop = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        with contextlib.suppress(NotImplementedError):
            loop.add_signal_handler(sig, stop.set)

    try:
        await run_worker(
            queue=queue, processor=processor, config=config, stop=stop
        )
    finally:
        await engine.dispose()


def main() -> None:
    config = TrackingConfig()
    setup_logging(config.log_level, config.log_file)
    asyncio.run(_serve(config))


if __name__ == "__main__":
    main()

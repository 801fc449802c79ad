"""Worker loop tests."""

import asyncio
from unittest.mock import AsyncMock

from conftest import make_queued
from parceltrack.config import TrackingConfig
from parceltrack.worker import run_worker


async def test_worker_drains_queue_until_stopped(queue) -> None:
    config = TrackingConfig(poll_interval_seconds=0.01)
    stop = asyncio.Event()
    processed = []

    async def process(event):
        processed.append(event.event_id)
        if len(processed) == 2:
            stop.set()
        return object()

    processor = AsyncMock()
    processor.process = AsyncMock(side_effect=process)
    await queue.enqueue(make_queued(event_id="evt-1"))
    await queue.enqueue(make_queued(event_id="evt-2"))

    await asyncio.wait_for(
        run_worker(
            queue=queue, processor=processor, config=config, stop=stop
        ),
        timeout=5,
    )

    assert processed == ["evt-1", "evt-2"]
    assert all(j["status"] == "succeeded" for j in queue.jobs.values())


async def test_worker_survives_queue_errors() -> None:
    config = TrackingConfig(poll_interval_seconds=0.01)
    stop = asyncio.Event()
    calls = 0

    async def get_due_jobs(limit: int = 10):
        nonlocal calls
        calls += 1
        if calls == 1:
            raise ConnectionError("db gone")
        stop.set()
        return []

    queue = AsyncMock()
    queue.get_due_jobs = AsyncMock(side_effect=get_due_jobs)

    await asyncio.wait_for(
        run_worker(
            queue=queue, processor=AsyncMock(), config=config, stop=stop
        ),
        timeout=5,
    )

    assert calls == 2


async def test_worker_exits_when_already_stopped(queue) -> None:
    stop = asyncio.Event()
    stop.set()
    processor = AsyncMock()

    await run_worker(
        queue=queue, processor=processor, config=TrackingConfig(), stop=stop
    )

    processor.process.assert_not_awaited()

"""Queue retry mechanism tests."""

import asyncio
import logging
from datetime import UTC, datetime, timedelta
from unittest.mock import AsyncMock

import pytest

from conftest import InMemoryQueue, make_queued
from parceltrack.config import TrackingConfig
from parceltrack.exceptions import (
    PermanentProcessingError,
    TransientProcessingError,
)
from parceltrack.retry import compute_next_attempt_at, process_due_events


class TestComputeNextAttemptAt:
    @pytest.mark.parametrize(
        ("attempt", "delay"),
        [(1, 10), (2, 30), (3, 60), (7, 60)],
    )
    def test_follows_schedule(self, attempt, delay) -> None:
        before = datetime.now(tz=UTC)
        result = compute_next_attempt_at(attempt, [10, 30, 60])
        after = datetime.now(tz=UTC)

        assert (
            before + timedelta(seconds=delay)
            <= result
            <= after + timedelta(seconds=delay)
        )

    def test_empty_schedule_retries_immediately(self) -> None:
        before = datetime.now(tz=UTC)
        assert compute_next_attempt_at(1, []) >= before


class TestProcessDueEvents:
    @pytest.fixture()
    def config(self) -> TrackingConfig:
        return TrackingConfig(
            retry_max_attempts=3,
            retry_backoff_seconds=[10, 30, 60],
            attempt_timeout_seconds=0.2,
        )

    @pytest.fixture()
    def processor(self) -> AsyncMock:
        processor = AsyncMock()
        processor.process = AsyncMock(return_value=object())
        return processor

    async def _enqueue(self, queue: InMemoryQueue, **overrides) -> str:
        return await queue.enqueue(make_queued(**overrides))

    async def test_no_jobs(self, queue, processor, config) -> None:
        count = await process_due_events(
            queue=queue, processor=processor, config=config
        )
        assert count == 0
        processor.process.assert_not_awaited()

    async def test_success_marks_job_succeeded(
        self, queue, processor, config
    ) -> None:
        job_id = await self._enqueue(queue)

        count = await process_due_events(
            queue=queue, processor=processor, config=config
        )

        assert count == 1
        assert queue.jobs[job_id]["status"] == "succeeded"
        (event,), _ = processor.process.await_args
        assert event.tracking_number == "TH12345678"
        assert event.source == "webhook"

    async def test_duplicate_at_processing_time_succeeds(
        self, queue, processor, config
    ) -> None:
        processor.process = AsyncMock(return_value=None)
        job_id = await self._enqueue(queue)

        await process_due_events(
            queue=queue, processor=processor, config=config
        )

        assert queue.jobs[job_id]["status"] == "succeeded"

    async def test_failure_schedules_retry(
        self, queue, processor, config
    ) -> None:
        processor.process = AsyncMock(
            side_effect=TransientProcessingError("db busy")
        )
        job_id = await self._enqueue(queue)
        before = datetime.now(tz=UTC)

        await process_due_events(
            queue=queue, processor=processor, config=config
        )

        job = queue.jobs[job_id]
        assert job["status"] == "pending"
        assert job["attempts"] == 1
        assert job["last_error"] == "db busy"
        assert job["next_attempt_at"] >= before + timedelta(seconds=10)

    async def test_third_failure_exhausts(
        self, queue, processor, config, caplog
    ) -> None:
        processor.process = AsyncMock(side_effect=RuntimeError("broken"))
        job_id = await self._enqueue(queue)

        with caplog.at_level(logging.ERROR, logger="parceltrack.retry"):
            for _ in range(3):
                await process_due_events(
                    queue=queue, processor=processor, config=config
                )

        job = queue.jobs[job_id]
        assert job["status"] == "exhausted"
        assert job["attempts"] == 3
        assert processor.process.await_count == 3
        assert job["last_error"] == "broken (gave up after attempt 3)"
        assert "TH12345678" in caplog.text
        assert "PICKED_UP" in caplog.text
        assert "webhook" in caplog.text
        assert job["idempotency_key"] in caplog.text

    async def test_timeout_counts_as_failure(
        self, queue, processor, config
    ) -> None:
        async def slow(event):
            await asyncio.sleep(5)

        processor.process = AsyncMock(side_effect=slow)
        job_id = await self._enqueue(queue)

        await process_due_events(
            queue=queue, processor=processor, config=config
        )

        job = queue.jobs[job_id]
        assert job["attempts"] == 1
        assert job["last_error"] == "TimeoutError"

    async def test_permanent_error_exhausts_immediately(
        self, queue, processor, config
    ) -> None:
        processor.process = AsyncMock(
            side_effect=PermanentProcessingError("bad data")
        )
        job_id = await self._enqueue(queue)

        await process_due_events(
            queue=queue, processor=processor, config=config
        )

        assert queue.jobs[job_id]["status"] == "exhausted"
        assert queue.jobs[job_id]["last_error"] == "bad data"

    async def test_unreadable_payload_is_exhausted(
        self, queue, processor, config
    ) -> None:
        job_id = await self._enqueue(queue)
        queue.jobs[job_id]["payload"] = {"tracking_number": "TH12345678"}

        await process_due_events(
            queue=queue, processor=processor, config=config
        )

        assert queue.jobs[job_id]["status"] == "exhausted"
        processor.process.assert_not_awaited()
        assert queue.jobs[job_id]["last_error"].startswith(
            "Unreadable payload"
        )

    async def test_batch_size_limits_claimed_jobs(
        self, queue, processor
    ) -> None:
        config = TrackingConfig(queue_batch_size=2)
        for n in range(3):
            await self._enqueue(queue, event_id=f"evt-{n}")

        count = await process_due_events(
            queue=queue, processor=processor, config=config
        )

        assert count == 2
        statuses = [j["status"] for j in queue.jobs.values()]
        assert statuses == ["succeeded", "succeeded", "pending"]

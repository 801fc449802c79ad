"""Queue draining with bounded retries and fixed backoff schedule."""

import asyncio
import logging
from collections.abc import Sequence
from datetime import UTC, datetime, timedelta

from pydantic import ValidationError

from parceltrack.config import TrackingConfig
from parceltrack.exceptions import PermanentProcessingError
from parceltrack.processor import EventProcessor
from parceltrack.protocols import EventQueue
from parceltrack.schemas import QueuedEvent

logger = logging.getLogger(__name__)


def compute_next_attempt_at(
    attempt: int,
    schedule: Sequence[int],
) -> datetime:
    """Compute when to retry after ``attempt`` failed attempts.

    The schedule is indexed by attempt number; its last value is reused
    once attempts run past its end.
    """
    if schedule:
        delay = schedule[min(max(attempt, 1), len(schedule)) - 1]
    else:
        delay = 0
    return datetime.now(tz=UTC) + timedelta(seconds=delay)


async def process_due_events(
    *,
    queue: EventQueue,
    processor: EventProcessor,
    config: TrackingConfig,
) -> int:
    """Process all due queue jobs.

    Returns the number of jobs handled.
    """
    jobs = await queue.get_due_jobs(limit=config.queue_batch_size)
    processed = 0

    for job in jobs:
        job_id = job["id"]
        attempts = job["attempts"]

        try:
            event = QueuedEvent.model_validate(job["payload"])
        except ValidationError as exc:
            error = PermanentProcessingError(f"Unreadable payload: {exc}")
            logger.error(
                "Job %s (%s, key %s) dropped: %s",
                job_id,
                job.get("tracking_number"),
                job.get("idempotency_key"),
                error,
            )
            await queue.mark_exhausted(job_id, error=str(error))
            processed += 1
            continue

        try:
            result = await asyncio.wait_for(
                processor.process(event),
                timeout=config.attempt_timeout_seconds,
            )
        except PermanentProcessingError as exc:
            await _exhaust(queue, job_id, event, attempts + 1, exc)
        except Exception as exc:
            new_attempts = attempts + 1
            if new_attempts >= config.retry_max_attempts:
                await _exhaust(queue, job_id, event, new_attempts, exc)
            else:
                await queue.mark_failed(
                    job_id,
                    error=_describe(exc),
                    next_attempt_at=compute_next_attempt_at(
                        new_attempts, config.retry_backoff_seconds
                    ),
                )
                logger.info(
                    "Job %s: attempt %d for %s failed: %s",
                    job_id,
                    new_attempts,
                    event.tracking_number,
                    _describe(exc),
                )
        else:
            await queue.mark_succeeded(job_id)
            if result is None:
                logger.info(
                    "Job %s: %s event %s already recorded, nothing to do",
                    job_id,
                    event.tracking_number,
                    event.event_id,
                )

        processed += 1

    return processed


async def _exhaust(
    queue: EventQueue,
    job_id: str,
    event: QueuedEvent,
    attempts: int,
    exc: Exception,
) -> None:
    error = _as_permanent(exc, attempts)
    logger.error(
        "Giving up on %s event %s for %s from %s after %d attempts "
        "(key %s): %s",
        event.event_code,
        event.event_id,
        event.tracking_number,
        event.source,
        attempts,
        event.idempotency_key,
        error,
    )
    await queue.mark_exhausted(job_id, error=str(error))


def _as_permanent(
    exc: Exception, attempts: int
) -> PermanentProcessingError:
    if isinstance(exc, PermanentProcessingError):
        return exc
    error = PermanentProcessingError(
        f"{_describe(exc)} (gave up after attempt {attempts})"
    )
    error.__cause__ = exc
    return error


def _describe(exc: BaseException) -> str:
    return str(exc) or type(exc).__name__

"""SQLAlchemy-backed event processing queue."""

from __future__ import annotations

from datetime import UTC, datetime, timedelta

from sqlalchemy import or_, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from parceltrack.contrib.sqlalchemy.models import EventQueueModel
from parceltrack.schemas import QueuedEvent


class SQLAlchemyEventQueue:
    """Persist queued events in a SQLAlchemy table.

    Claimed jobs are leased: their next attempt is pushed ``lease_seconds``
    ahead so a second worker polling the table does not pick them up
    while the first is still processing.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        lease_seconds: int = 180,
    ) -> None:
        self.session_factory = session_factory
        self.lease_seconds = lease_seconds

    async def enqueue(self, event: QueuedEvent) -> str:
        job = EventQueueModel(
            idempotency_key=event.idempotency_key,
            tracking_number=event.tracking_number,
            payload=event.model_dump(mode="json"),
            next_attempt_at=datetime.now(tz=UTC),
        )
        async with self.session_factory() as session:
            session.add(job)
            await session.flush()
            job_id = job.id
            await session.commit()
        return job_id

    async def get_due_jobs(self, limit: int = 10) -> list[dict]:
        now = datetime.now(tz=UTC)
        async with self.session_factory() as session:
            stmt = (
                select(EventQueueModel)
                .where(
                    EventQueueModel.status == "pending",
                    or_(
                        EventQueueModel.next_attempt_at.is_(None),
                        EventQueueModel.next_attempt_at <= now,
                    ),
                )
                .order_by(EventQueueModel.created_at)
                .limit(limit)
                .with_for_update(skip_locked=True)
            )
            jobs = list((await session.execute(stmt)).scalars().all())
            lease_until = now + timedelta(seconds=self.lease_seconds)
            for job in jobs:
                job.next_attempt_at = lease_until
            due = [
                {
                    "id": job.id,
                    "payload": job.payload,
                    "attempts": job.attempts,
                    "idempotency_key": job.idempotency_key,
                    "tracking_number": job.tracking_number,
                }
                for job in jobs
            ]
            await session.commit()
        return due

    async def mark_succeeded(self, job_id: str) -> None:
        async with self.session_factory() as session:
            job = await session.get(EventQueueModel, job_id)
            if job is not None:
                job.status = "succeeded"
                job.next_attempt_at = None
                await session.commit()

    async def mark_failed(
        self,
        job_id: str,
        error: str,
        next_attempt_at: datetime,
    ) -> None:
        async with self.session_factory() as session:
            job = await session.get(EventQueueModel, job_id)
            if job is not None:
                job.attempts += 1
                job.last_error = error
                job.next_attempt_at = next_attempt_at
                await session.commit()

    async def mark_exhausted(self, job_id: str, error: str) -> None:
        async with self.session_factory() as session:
            job = await session.get(EventQueueModel, job_id)
            if job is not None:
                job.attempts += 1
                job.last_error = error
                job.status = "exhausted"
                job.next_attempt_at = None
                await session.commit()

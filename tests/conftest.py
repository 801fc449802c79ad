"""Shared fixtures for parceltrack tests."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from typing import Any

import pytest

from parceltrack.config import TrackingConfig
from parceltrack.eta.lanes import Lane
from parceltrack.eta.rules import Rule
from parceltrack.idempotency import envelope_key
from parceltrack.protocols import FacilityRecord
from parceltrack.schemas import EventEnvelope, QueuedEvent

BANGKOK_HUB = FacilityRecord(
    id="fac-bkk",
    code="BKK01",
    name="Bangkok Hub",
    facility_type="hub",
)
CHIANG_MAI_DEPOT = FacilityRecord(
    id="fac-cnx",
    code="CNX01",
    name="Chiang Mai Depot",
    facility_type="depot",
)


def hours_ago(hours: float) -> datetime:
    return datetime.now(UTC).replace(microsecond=0) - timedelta(hours=hours)


def make_raw(**overrides: Any) -> dict:
    raw: dict[str, Any] = {
        "event_id": "evt-1",
        "tracking_number": "TH12345678",
        "event_code": "PICKED_UP",
        "event_time": hours_ago(1).isoformat(),
    }
    raw.update(overrides)
    return raw


def make_queued(source: str = "webhook", **overrides: Any) -> QueuedEvent:
    raw = make_raw(**overrides)
    envelope = EventEnvelope.model_validate(raw)
    return QueuedEvent(
        **envelope.model_dump(exclude={"source_system"}),
        source_system=envelope.source_system or source,
        idempotency_key=envelope_key(envelope),
        source=source,
        raw_payload=raw,
    )


class FakeDirectory:
    def __init__(self, *facilities: FacilityRecord) -> None:
        self.facilities = {f.code: f for f in facilities}
        self.calls: list[str] = []

    async def get_by_code(self, code: str) -> FacilityRecord | None:
        self.calls.append(code)
        return self.facilities.get(code)


class FakeLookup:
    def __init__(self) -> None:
        self.events: dict[str, str] = {}

    async def get_event_id_by_key(self, idempotency_key: str) -> str | None:
        return self.events.get(idempotency_key)


class InMemoryQueue:
    def __init__(self) -> None:
        self.jobs: dict[str, dict] = {}
        self._counter = 0

    async def enqueue(self, event: QueuedEvent) -> str:
        self._counter += 1
        job_id = f"job-{self._counter}"
        self.jobs[job_id] = {
            "id": job_id,
            "payload": event.model_dump(mode="json"),
            "attempts": 0,
            "idempotency_key": event.idempotency_key,
            "tracking_number": event.tracking_number,
            "status": "pending",
            "last_error": None,
            "next_attempt_at": None,
        }
        return job_id

    async def get_due_jobs(self, limit: int = 10) -> list[dict]:
        due = [j for j in self.jobs.values() if j["status"] == "pending"]
        return [dict(j) for j in due[:limit]]

    async def mark_succeeded(self, job_id: str) -> None:
        self.jobs[job_id]["status"] = "succeeded"

    async def mark_failed(
        self, job_id: str, error: str, next_attempt_at: datetime
    ) -> None:
        job = self.jobs[job_id]
        job["attempts"] += 1
        job["last_error"] = error
        job["next_attempt_at"] = next_attempt_at

    async def mark_exhausted(self, job_id: str, error: str) -> None:
        job = self.jobs[job_id]
        job["attempts"] += 1
        job["last_error"] = error
        job["status"] = "exhausted"


@dataclass
class FakeEvent:
    id: str
    event_code: str
    event_time: datetime
    created_at: datetime | None = None
    location: str | None = None
    facility_id: str | None = None


@dataclass
class FakeShipment:
    id: str = "ship-1"
    tracking_number: str = "TH12345678"
    service_type: str = "standard"
    current_status: str = "CREATED"
    current_location: str | None = None
    current_location_id: str | None = None
    origin_facility_id: str | None = "fac-bkk"
    destination_facility_id: str | None = "fac-cnx"
    estimated_delivery: datetime | None = None
    updated_at: datetime | None = None


@dataclass
class FakeEtaSource:
    pickup_time: datetime | None = None
    lane: Lane | None = None
    rules: list[Rule] = field(default_factory=list)
    event_codes: set[str] = field(default_factory=set)
    facility_types: dict[str, str] = field(
        default_factory=lambda: {"fac-bkk": "hub", "fac-cnx": "depot"}
    )

    async def earliest_event_time(
        self, shipment_id: str, event_codes: frozenset[str]
    ) -> datetime | None:
        return self.pickup_time

    async def has_event_code(self, shipment_id: str, event_code: str) -> bool:
        return event_code in self.event_codes

    async def find_lane(
        self,
        origin_facility_id: str,
        destination_facility_id: str,
        service_type: str,
    ) -> Lane | None:
        lane = self.lane
        if lane is None:
            return None
        if (
            lane.origin_facility_id,
            lane.destination_facility_id,
            lane.service_type,
        ) != (origin_facility_id, destination_facility_id, service_type):
            return None
        return lane

    async def active_rules(self) -> list[Rule]:
        return list(self.rules)

    async def facility_type(self, facility_id: str | None) -> str | None:
        if facility_id is None:
            return None
        return self.facility_types.get(facility_id)


@pytest.fixture()
def config() -> TrackingConfig:
    return TrackingConfig()


@pytest.fixture()
def directory() -> FakeDirectory:
    return FakeDirectory(BANGKOK_HUB, CHIANG_MAI_DEPOT)


@pytest.fixture()
def lookup() -> FakeLookup:
    return FakeLookup()


@pytest.fixture()
def queue() -> InMemoryQueue:
    return InMemoryQueue()


@pytest.fixture()
async def async_engine():
    """Create an in-memory aiosqlite async engine."""
    from sqlalchemy.ext.asyncio import create_async_engine

    from parceltrack.contrib.sqlalchemy.models import Base

    engine = create_async_engine("sqlite+aiosqlite://", echo=False)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


@pytest.fixture()
async def async_session_factory(async_engine):
    """Create an async session factory bound to the in-memory engine."""
    from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

    factory = async_sessionmaker(
        async_engine, class_=AsyncSession, expire_on_commit=False
    )
    yield factory


@pytest.fixture()
async def seeded_facilities(async_session_factory):
    """Insert the Bangkok hub and Chiang Mai depot."""
    from parceltrack.contrib.sqlalchemy.models import FacilityModel

    async with async_session_factory() as session:
        for facility in (BANGKOK_HUB, CHIANG_MAI_DEPOT):
            session.add(
                FacilityModel(
                    id=facility.id,
                    code=facility.code,
                    name=facility.name,
                    facility_type=facility.facility_type,
                )
            )
        await session.commit()
    return (BANGKOK_HUB, CHIANG_MAI_DEPOT)

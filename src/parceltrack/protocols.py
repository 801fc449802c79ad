"""Collaborator protocols consumed by the tracking pipeline."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import TYPE_CHECKING, Protocol, runtime_checkable

if TYPE_CHECKING:
    from parceltrack.eta.lanes import Lane
    from parceltrack.eta.rules import Rule
    from parceltrack.processor import ProcessingResult
    from parceltrack.schemas import QueuedEvent


@dataclass(frozen=True)
class FacilityRecord:
    """Detached facility snapshot, safe to keep in a cache."""

    id: str
    code: str
    name: str
    facility_type: str
    latitude: float | None = None
    longitude: float | None = None
    active: bool = True


@runtime_checkable
class FacilityDirectory(Protocol):
    """Read-only facility lookup."""

    async def get_by_code(self, code: str) -> FacilityRecord | None: ...


@runtime_checkable
class EventLookup(Protocol):
    """Resolves idempotency keys to already recorded events."""

    async def get_event_id_by_key(
        self, idempotency_key: str
    ) -> str | None: ...


@runtime_checkable
class EventQueue(Protocol):
    """Storage abstraction for the asynchronous processing queue."""

    async def enqueue(self, event: QueuedEvent) -> str: ...

    async def get_due_jobs(self, limit: int = 10) -> list[dict]: ...

    async def mark_succeeded(self, job_id: str) -> None: ...

    async def mark_failed(
        self,
        job_id: str,
        error: str,
        next_attempt_at: datetime,
    ) -> None: ...

    async def mark_exhausted(self, job_id: str, error: str) -> None: ...


@runtime_checkable
class EtaDataSource(Protocol):
    """Shipment history and lane/rule configuration used by the ETA engine."""

    async def earliest_event_time(
        self, shipment_id: str, event_codes: frozenset[str]
    ) -> datetime | None: ...

    async def has_event_code(
        self, shipment_id: str, event_code: str
    ) -> bool: ...

    async def find_lane(
        self,
        origin_facility_id: str,
        destination_facility_id: str,
        service_type: str,
    ) -> Lane | None: ...

    async def active_rules(self) -> list[Rule]: ...

    async def facility_type(self, facility_id: str | None) -> str | None: ...


@runtime_checkable
class ProcessingResultHandler(Protocol):
    """Receives processed events, e.g. to pick subscribers to notify."""

    async def handle(self, result: ProcessingResult) -> None: ...


@runtime_checkable
class CacheInvalidator(Protocol):
    """Signalled whenever a shipment's status, location or ETA changes."""

    async def invalidate(self, tracking_number: str) -> None: ...

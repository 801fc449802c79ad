"""Asynchronous event processing: persist, order and re-estimate."""

from __future__ import annotations

import asyncio
import logging
import re
from collections import Counter
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass
from datetime import datetime

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from parceltrack import codes
from parceltrack.config import TrackingConfig
from parceltrack.contrib.sqlalchemy.eta_source import SQLAlchemyEtaSource
from parceltrack.contrib.sqlalchemy.repository import TrackingRepository
from parceltrack.eta.calendar import HolidayCalendar
from parceltrack.eta.engine import EtaEngine
from parceltrack.exceptions import (
    DuplicateEventError,
    RuleConfigurationError,
    TransientProcessingError,
)
from parceltrack.normalizer import EventNormalizer
from parceltrack.ordering import OrderingEngine
from parceltrack.protocols import CacheInvalidator, ProcessingResultHandler
from parceltrack.schemas import CanonicalEvent, OrderingResult, QueuedEvent
from parceltrack.timeutils import ensure_utc

logger = logging.getLogger(__name__)

SERVICE_TYPE_PREFIXES = {
    "TH": "standard",
    "EX": "express",
    "EC": "economy",
}
DEFAULT_SERVICE_TYPE = "standard"
_SERVICE_PREFIX = re.compile(r"^(TH|EX|EC)\d")


def infer_service_type(tracking_number: str) -> str:
    """Guess the service level from the tracking number prefix."""
    match = _SERVICE_PREFIX.match(tracking_number.upper())
    if match is None:
        return DEFAULT_SERVICE_TYPE
    return SERVICE_TYPE_PREFIXES[match.group(1)]


class KeyedLocks:
    """One asyncio lock per key, dropped once nobody holds or waits on it."""

    def __init__(self) -> None:
        self._locks: dict[str, asyncio.Lock] = {}
        self._users: Counter[str] = Counter()

    @asynccontextmanager
    async def hold(self, key: str) -> AsyncIterator[None]:
        lock = self._locks.setdefault(key, asyncio.Lock())
        self._users[key] += 1
        try:
            async with lock:
                yield
        finally:
            self._users[key] -= 1
            if not self._users[key]:
                del self._users[key]
                del self._locks[key]

    def __len__(self) -> int:
        return len(self._locks)


@dataclass
class ProcessingResult:
    """Detached outcome of one processed event."""

    shipment_id: str
    tracking_number: str
    event_record_id: str
    event: CanonicalEvent
    ordering: OrderingResult
    current_status: str
    current_location: str | None
    old_estimated_delivery: datetime | None = None
    estimated_delivery: datetime | None = None

    @property
    def eta_changed(self) -> bool:
        return self.estimated_delivery != self.old_estimated_delivery

    @property
    def shipment_changed(self) -> bool:
        return self.ordering.status_changed or self.eta_changed


class EventProcessor:
    """Applies queued events to shipments, one unit of work per event.

    Events for the same tracking number are serialized; everything else
    runs concurrently.
    """

    def __init__(
        self,
        *,
        session_factory: async_sessionmaker[AsyncSession],
        normalizer: EventNormalizer,
        config: TrackingConfig,
        ordering: OrderingEngine | None = None,
        calendar: HolidayCalendar | None = None,
        result_handler: ProcessingResultHandler | None = None,
        cache_invalidator: CacheInvalidator | None = None,
        locks: KeyedLocks | None = None,
    ) -> None:
        self.session_factory = session_factory
        self.normalizer = normalizer
        self.config = config
        self.ordering = (
            ordering if ordering is not None else OrderingEngine(config)
        )
        self.calendar = (
            calendar if calendar is not None else HolidayCalendar()
        )
        self.result_handler = result_handler
        self.cache_invalidator = cache_invalidator
        self.locks = locks if locks is not None else KeyedLocks()

    async def process(self, event: QueuedEvent) -> ProcessingResult | None:
        """Process one queued event.

        Returns None when the event turns out to be already recorded.
        Any error rolls the unit of work back and propagates.
        """
        async with self.locks.hold(event.tracking_number):
            async with self.session_factory() as session:
                try:
                    result = await self._process(session, event)
                except Exception:
                    await session.rollback()
                    raise
                if result is None:
                    await session.rollback()
                    return None
                await session.commit()

        logger.info(
            "Processed %s event %s for %s (status %s)",
            event.source,
            result.event.event_code,
            event.tracking_number,
            result.current_status,
        )
        await self._after_commit(result)
        return result

    async def _process(
        self, session: AsyncSession, event: QueuedEvent
    ) -> ProcessingResult | None:
        repository = TrackingRepository(session)

        if await repository.get_event_by_key(event.idempotency_key):
            logger.warning(
                "Duplicate %s event %s for %s at processing time (key %s)",
                event.source,
                event.event_code,
                event.tracking_number,
                event.idempotency_key,
            )
            return None

        canonical = await self.normalizer.normalize(event)

        shipment = await repository.get_shipment_for_update(
            canonical.tracking_number
        )
        if shipment is None:
            try:
                shipment = await repository.create_shipment(
                    canonical.tracking_number,
                    infer_service_type(canonical.tracking_number),
                )
            except IntegrityError as exc:
                raise TransientProcessingError(
                    f"Shipment {canonical.tracking_number} was created "
                    "concurrently"
                ) from exc
            logger.info(
                "Created shipment %s (%s)",
                shipment.tracking_number,
                shipment.service_type,
            )

        try:
            record = await repository.add_event(shipment, canonical)
        except DuplicateEventError:
            logger.warning(
                "Event %s for %s already recorded by another worker",
                canonical.event_id,
                canonical.tracking_number,
            )
            return None

        events = await repository.list_events(shipment.id)
        ordering = self.ordering.process_ordering(shipment, record, events)

        old_eta = _as_utc(shipment.estimated_delivery)
        if canonical.event_code in codes.ETA_TRIGGER_CODES:
            engine = EtaEngine(
                SQLAlchemyEtaSource(session), calendar=self.calendar
            )
            try:
                await engine.recalculate_eta(shipment)
            except RuleConfigurationError as exc:
                logger.error(
                    "ETA for %s left unchanged: rule %r is invalid (%s)",
                    shipment.tracking_number,
                    exc.rule_name,
                    exc.reason,
                )

        for anomaly in ordering.sequence_analysis.anomalies:
            logger.warning(
                "Anomaly %s on %s: %s",
                anomaly.type,
                shipment.tracking_number,
                anomaly.description,
            )

        return ProcessingResult(
            shipment_id=shipment.id,
            tracking_number=shipment.tracking_number,
            event_record_id=record.id,
            event=canonical,
            ordering=ordering,
            current_status=shipment.current_status,
            current_location=shipment.current_location,
            old_estimated_delivery=old_eta,
            estimated_delivery=_as_utc(shipment.estimated_delivery),
        )

    async def _after_commit(self, result: ProcessingResult) -> None:
        # The event is already committed; hand-off failures must not
        # send it back to the queue.
        if self.result_handler is not None:
            try:
                await self.result_handler.handle(result)
            except Exception:
                logger.exception(
                    "Result handler failed for %s event %s",
                    result.tracking_number,
                    result.event.event_id,
                )
        if self.cache_invalidator is not None and result.shipment_changed:
            try:
                await self.cache_invalidator.invalidate(result.tracking_number)
            except Exception:
                logger.exception(
                    "Cache invalidation failed for %s",
                    result.tracking_number,
                )


def _as_utc(value: datetime | None) -> datetime | None:
    return ensure_utc(value) if value is not None else None

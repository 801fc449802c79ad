"""SQLAlchemy repositories for shipments, events and facilities."""

from __future__ import annotations

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from parceltrack.contrib.sqlalchemy.models import (
    EventModel,
    FacilityModel,
    ShipmentModel,
)
from parceltrack.exceptions import (
    DuplicateEventError,
    ShipmentNotFoundError,
)
from parceltrack.protocols import FacilityRecord
from parceltrack.schemas import CanonicalEvent


class TrackingRepository:
    """Shipment and event access bound to one unit-of-work session."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def get_event_by_key(
        self, idempotency_key: str
    ) -> EventModel | None:
        result = await self.session.execute(
            select(EventModel).where(
                EventModel.idempotency_key == idempotency_key
            )
        )
        return result.scalar_one_or_none()

    async def get_shipment(self, shipment_id: str) -> ShipmentModel:
        shipment = await self.session.get(ShipmentModel, shipment_id)
        if shipment is None:
            raise ShipmentNotFoundError(shipment_id)
        return shipment

    async def get_shipment_for_update(
        self, tracking_number: str
    ) -> ShipmentModel | None:
        """Load a shipment row locked for the rest of the transaction."""
        result = await self.session.execute(
            select(ShipmentModel)
            .where(ShipmentModel.tracking_number == tracking_number)
            .with_for_update()
        )
        return result.scalar_one_or_none()

    async def create_shipment(
        self, tracking_number: str, service_type: str
    ) -> ShipmentModel:
        shipment = ShipmentModel(
            tracking_number=tracking_number,
            service_type=service_type,
            current_status="CREATED",
        )
        self.session.add(shipment)
        await self.session.flush()
        return shipment

    async def add_event(
        self, shipment: ShipmentModel, event: CanonicalEvent
    ) -> EventModel:
        record = EventModel(
            shipment_id=shipment.id,
            event_id=event.event_id,
            event_code=event.event_code,
            event_time=event.event_time,
            facility_id=event.facility_id,
            location=event.location,
            description=event.description,
            remarks=event.remarks,
            partner_reference=event.partner_reference,
            source=event.source,
            raw_payload=event.raw_payload,
            idempotency_key=event.idempotency_key,
        )
        self.session.add(record)
        try:
            await self.session.flush()
        except IntegrityError as exc:
            raise DuplicateEventError(event.idempotency_key) from exc
        return record

    async def list_events(self, shipment_id: str) -> list[EventModel]:
        result = await self.session.execute(
            select(EventModel)
            .where(EventModel.shipment_id == shipment_id)
            .order_by(
                EventModel.event_time.desc(), EventModel.created_at.desc()
            )
        )
        return list(result.scalars().all())


class SQLAlchemyEventLookup:
    """Idempotency key lookup for the ingestion gateway."""

    def __init__(
        self, session_factory: async_sessionmaker[AsyncSession]
    ) -> None:
        self.session_factory = session_factory

    async def get_event_id_by_key(self, idempotency_key: str) -> str | None:
        async with self.session_factory() as session:
            result = await session.execute(
                select(EventModel.id).where(
                    EventModel.idempotency_key == idempotency_key
                )
            )
            return result.scalar_one_or_none()


class SQLAlchemyFacilityDirectory:
    """Active facilities by code."""

    def __init__(
        self, session_factory: async_sessionmaker[AsyncSession]
    ) -> None:
        self.session_factory = session_factory

    async def get_by_code(self, code: str) -> FacilityRecord | None:
        async with self.session_factory() as session:
            result = await session.execute(
                select(FacilityModel).where(
                    FacilityModel.code == code.upper(),
                    FacilityModel.active.is_(True),
                )
            )
            facility = result.scalar_one_or_none()
            if facility is None:
                return None
            return FacilityRecord(
                id=facility.id,
                code=facility.code,
                name=facility.name,
                facility_type=facility.facility_type,
                latitude=facility.latitude,
                longitude=facility.longitude,
                active=facility.active,
            )

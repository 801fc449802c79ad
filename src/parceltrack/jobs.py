"""Scheduled jobs."""

from __future__ import annotations

import logging
from datetime import datetime

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from parceltrack.contrib.sqlalchemy.eta_source import SQLAlchemyEtaSource
from parceltrack.contrib.sqlalchemy.repository import TrackingRepository
from parceltrack.eta.calendar import HolidayCalendar
from parceltrack.eta.engine import EtaEngine
from parceltrack.exceptions import ShipmentNotFoundError
from parceltrack.timeutils import ensure_utc

logger = logging.getLogger(__name__)


async def recalculate_shipment_eta(
    session_factory: async_sessionmaker[AsyncSession],
    shipment_id: str,
    reason: str | None = None,
    calendar: HolidayCalendar | None = None,
) -> datetime | None:
    """Recompute and store one shipment's estimated delivery.

    Returns the stored estimate, or None when the shipment is missing or
    no estimate can be made.
    """
    async with session_factory() as session:
        repository = TrackingRepository(session)
        try:
            shipment = await repository.get_shipment(shipment_id)
        except ShipmentNotFoundError:
            logger.warning(
                "ETA recalculation skipped: shipment %s not found",
                shipment_id,
            )
            return None

        tracking_number = shipment.tracking_number
        old_eta = shipment.estimated_delivery
        engine = EtaEngine(SQLAlchemyEtaSource(session), calendar=calendar)
        new_eta = await engine.recalculate_eta(shipment)
        await session.commit()

    logger.info(
        "Recalculated ETA for %s (%s): %s -> %s",
        tracking_number,
        reason or "scheduled",
        ensure_utc(old_eta).isoformat() if old_eta else None,
        new_eta.isoformat() if new_eta else None,
    )
    return new_eta

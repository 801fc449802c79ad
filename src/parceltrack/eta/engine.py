"""Delivery estimate computation: lane base time plus ordered rules."""

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import UTC, datetime
from typing import Any

from parceltrack import codes
from parceltrack.eta.calendar import HolidayCalendar
from parceltrack.eta.lanes import Lane
from parceltrack.eta.rules import Rule
from parceltrack.protocols import EtaDataSource
from parceltrack.timeutils import ensure_utc

logger = logging.getLogger(__name__)


def _day_of_week(value: datetime) -> int:
    # 0 = Sunday, 6 = Saturday
    return value.isoweekday() % 7


class EtaEngine:
    """Computes and persists delivery estimates.

    A missing pickup event or lane yields None; the engine never
    guesses a default transit time.
    """

    def __init__(
        self,
        source: EtaDataSource,
        calendar: HolidayCalendar | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self.source = source
        self.calendar = (
            calendar if calendar is not None else HolidayCalendar()
        )
        self.clock = clock or (lambda: datetime.now(UTC))

    async def calculate_eta(
        self, shipment: Any, pickup_time: datetime | None = None
    ) -> datetime | None:
        pickup_time = await self._resolve_pickup_time(shipment, pickup_time)
        if pickup_time is None:
            logger.debug(
                "No pickup event for %s, cannot estimate",
                shipment.tracking_number,
            )
            return None

        lane = await self._find_lane(shipment)
        if lane is None:
            logger.info(
                "No lane configured for %s (%s -> %s, %s)",
                shipment.tracking_number,
                shipment.origin_facility_id,
                shipment.destination_facility_id,
                shipment.service_type,
            )
            return None

        eta = lane.calculate_eta(pickup_time)
        return await self._apply_rules(eta, shipment, pickup_time)

    async def recalculate_eta(self, shipment: Any) -> datetime | None:
        """Recompute and store the estimate; keep the old one on None."""
        eta = await self.calculate_eta(shipment)
        if eta is not None:
            shipment.estimated_delivery = eta
        return eta

    async def applicable_rules(
        self, shipment: Any, pickup_time: datetime | None = None
    ) -> list[Rule]:
        """Rules whose conditions hold against the unadjusted estimate."""
        pickup_time = await self._resolve_pickup_time(shipment, pickup_time)
        if pickup_time is None:
            return []
        lane = await self._find_lane(shipment)
        if lane is None:
            return []
        context = await self.build_context(
            shipment, pickup_time, lane.calculate_eta(pickup_time)
        )
        return [r for r in await self._rules() if r.applies_to(context)]

    async def build_context(
        self, shipment: Any, pickup_time: datetime, eta: datetime
    ) -> dict[str, Any]:
        context: dict[str, Any] = {
            "service_type": shipment.service_type,
            "current_status": shipment.current_status,
            "pickup_day_of_week": _day_of_week(pickup_time),
            "pickup_hour": pickup_time.hour,
            "is_weekend_pickup": pickup_time.weekday() >= 5,
            "is_holiday_pickup": self.calendar.is_holiday(pickup_time),
            "has_exceptions": await self.source.has_event_code(
                shipment.id, codes.EXCEPTION
            ),
            "origin_facility_type": await self.source.facility_type(
                shipment.origin_facility_id
            ),
            "destination_facility_type": await self.source.facility_type(
                shipment.destination_facility_id
            ),
            "pickup_time": pickup_time,
            "current_time": self.clock(),
        }
        context.update(self._eta_context(eta))
        return context

    def _eta_context(self, eta: datetime) -> dict[str, Any]:
        return {
            "eta": eta,
            "eta_day_of_week": _day_of_week(eta),
            "eta_hour": eta.hour,
            "is_weekend_delivery": eta.weekday() >= 5,
            "is_holiday_delivery": self.calendar.is_holiday(eta),
        }

    async def _apply_rules(
        self, eta: datetime, shipment: Any, pickup_time: datetime
    ) -> datetime:
        context = await self.build_context(shipment, pickup_time, eta)
        for rule in await self._rules():
            if not rule.applies_to(context):
                continue
            adjusted = rule.apply(eta, context)
            logger.debug(
                "Rule %r moved %s estimate %s -> %s",
                rule.name,
                shipment.tracking_number,
                eta.isoformat(),
                adjusted.isoformat(),
            )
            eta = adjusted
            # Later rules see the adjusted estimate.
            context.update(self._eta_context(eta))
        return eta

    async def _rules(self) -> list[Rule]:
        rules = [r for r in await self.source.active_rules() if r.active]
        return sorted(rules, key=lambda r: r.priority, reverse=True)

    async def _resolve_pickup_time(
        self, shipment: Any, pickup_time: datetime | None
    ) -> datetime | None:
        if pickup_time is None:
            pickup_time = await self.source.earliest_event_time(
                shipment.id, codes.PICKUP_EVENT_CODES
            )
        return ensure_utc(pickup_time) if pickup_time is not None else None

    async def _find_lane(self, shipment: Any) -> Lane | None:
        if not (
            shipment.origin_facility_id
            and shipment.destination_facility_id
            and shipment.service_type
        ):
            return None
        return await self.source.find_lane(
            shipment.origin_facility_id,
            shipment.destination_facility_id,
            shipment.service_type,
        )

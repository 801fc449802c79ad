"""SQLAlchemy data source for the ETA engine."""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from parceltrack.contrib.sqlalchemy.models import (
    EtaLaneModel,
    EtaRuleModel,
    EventModel,
    FacilityModel,
)
from parceltrack.eta.lanes import Lane
from parceltrack.eta.rules import Rule, build_rule
from parceltrack.timeutils import ensure_utc


class SQLAlchemyEtaSource:
    """Reads lanes, rules and shipment history within a session."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def earliest_event_time(
        self, shipment_id: str, event_codes: frozenset[str]
    ) -> datetime | None:
        result = await self.session.execute(
            select(func.min(EventModel.event_time)).where(
                EventModel.shipment_id == shipment_id,
                EventModel.event_code.in_(event_codes),
            )
        )
        value = result.scalar_one_or_none()
        return ensure_utc(value) if value is not None else None

    async def has_event_code(self, shipment_id: str, event_code: str) -> bool:
        result = await self.session.execute(
            select(EventModel.id)
            .where(
                EventModel.shipment_id == shipment_id,
                EventModel.event_code == event_code,
            )
            .limit(1)
        )
        return result.first() is not None

    async def find_lane(
        self,
        origin_facility_id: str,
        destination_facility_id: str,
        service_type: str,
    ) -> Lane | None:
        result = await self.session.execute(
            select(EtaLaneModel).where(
                EtaLaneModel.origin_facility_id == origin_facility_id,
                EtaLaneModel.destination_facility_id
                == destination_facility_id,
                EtaLaneModel.service_type == service_type,
                EtaLaneModel.active.is_(True),
            )
        )
        lane = result.scalar_one_or_none()
        if lane is None:
            return None
        return Lane(
            origin_facility_id=lane.origin_facility_id,
            destination_facility_id=lane.destination_facility_id,
            service_type=lane.service_type,
            base_hours=lane.base_hours,
            min_hours=lane.min_hours,
            max_hours=lane.max_hours,
            day_adjustments={
                k.lower(): v for k, v in (lane.day_adjustments or {}).items()
            },
        )

    async def active_rules(self) -> list[Rule]:
        """Active rules, highest priority first.

        Raises RuleConfigurationError for rules with unknown operators.
        """
        result = await self.session.execute(
            select(EtaRuleModel)
            .where(EtaRuleModel.active.is_(True))
            .order_by(EtaRuleModel.priority.desc(), EtaRuleModel.name)
        )
        return [
            build_rule(
                row.name,
                row.conditions,
                row.adjustments,
                priority=row.priority,
                active=row.active,
                rule_type=row.rule_type,
                description=row.description or "",
            )
            for row in result.scalars().all()
        ]

    async def facility_type(self, facility_id: str | None) -> str | None:
        if facility_id is None:
            return None
        result = await self.session.execute(
            select(FacilityModel.facility_type).where(
                FacilityModel.id == facility_id
            )
        )
        return result.scalar_one_or_none()

"""Lane transit-time configuration."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import datetime, timedelta

WEEKDAY_NAMES = (
    "monday",
    "tuesday",
    "wednesday",
    "thursday",
    "friday",
    "saturday",
    "sunday",
)


@dataclass(frozen=True)
class Lane:
    """Transit time for an (origin, destination, service type) triple."""

    origin_facility_id: str
    destination_facility_id: str
    service_type: str
    base_hours: int
    min_hours: int | None = None
    max_hours: int | None = None
    day_adjustments: Mapping[str, int] = field(default_factory=dict)

    def adjusted_base_hours(self, pickup_time: datetime) -> int:
        """Base hours plus the delta configured for the pickup weekday."""
        day = WEEKDAY_NAMES[pickup_time.weekday()]
        return self.base_hours + int(self.day_adjustments.get(day, 0))

    def calculate_eta(self, pickup_time: datetime) -> datetime:
        eta = pickup_time + timedelta(
            hours=self.adjusted_base_hours(pickup_time)
        )
        if self.min_hours is not None:
            eta = max(eta, pickup_time + timedelta(hours=self.min_hours))
        if self.max_hours is not None:
            eta = min(eta, pickup_time + timedelta(hours=self.max_hours))
        return eta

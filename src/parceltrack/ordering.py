"""Chronological ordering, status derivation and sequence anomalies."""

from __future__ import annotations

import logging
from collections import defaultdict
from collections.abc import Sequence
from datetime import UTC, datetime, timedelta
from typing import Any, Protocol

from parceltrack import codes
from parceltrack.config import TrackingConfig
from parceltrack.schemas import Anomaly, OrderingResult, SequenceAnalysis
from parceltrack.timeutils import ensure_utc

logger = logging.getLogger(__name__)

EVENT_STATUS_MAP = {
    codes.CREATED: codes.STATUS_CREATED,
    codes.PICKUP_SCHEDULED: codes.STATUS_PICKUP_SCHEDULED,
    codes.PICKUP: codes.STATUS_IN_TRANSIT,
    codes.PICKED_UP: codes.STATUS_IN_TRANSIT,
    codes.IN_TRANSIT: codes.STATUS_IN_TRANSIT,
    codes.ARRIVED_AT_HUB: codes.STATUS_AT_HUB,
    codes.DEPARTED_FROM_HUB: codes.STATUS_IN_TRANSIT,
    codes.CUSTOMS_CLEARANCE: codes.STATUS_CUSTOMS,
    codes.OUT_FOR_DELIVERY: codes.STATUS_OUT_FOR_DELIVERY,
    codes.DELIVERY_ATTEMPTED: codes.STATUS_DELIVERY_ATTEMPTED,
    codes.DELIVERED: codes.STATUS_DELIVERED,
    codes.EXCEPTION: codes.STATUS_EXCEPTION,
    codes.RETURNED: codes.STATUS_RETURNED,
}

EVENT_SIGNIFICANCE = {
    codes.CREATED: 1,
    codes.PICKUP_SCHEDULED: 2,
    codes.PICKUP: 3,
    codes.PICKED_UP: 3,
    codes.IN_TRANSIT: 4,
    codes.ARRIVED_AT_HUB: 5,
    codes.DEPARTED_FROM_HUB: 6,
    codes.CUSTOMS_CLEARANCE: 7,
    codes.OUT_FOR_DELIVERY: 8,
    codes.DELIVERY_ATTEMPTED: 9,
    codes.DELIVERED: 10,
    # Exceptions can happen at any stage.
    codes.EXCEPTION: 5,
    codes.RETURNED: 10,
}

_PRE_DELIVERY_CODES = frozenset(
    {
        codes.PICKUP_SCHEDULED,
        codes.PICKUP,
        codes.PICKED_UP,
        codes.IN_TRANSIT,
        codes.ARRIVED_AT_HUB,
        codes.DEPARTED_FROM_HUB,
        codes.CUSTOMS_CLEARANCE,
        codes.OUT_FOR_DELIVERY,
    }
)

# Codes that may never directly follow the key code.
IMPOSSIBLE_AFTER = {
    codes.DELIVERED: _PRE_DELIVERY_CODES,
    codes.RETURNED: _PRE_DELIVERY_CODES,
}

EXPECTED_SEQUENCES = {
    "normal_delivery": (
        codes.CREATED,
        codes.PICKUP_SCHEDULED,
        codes.PICKED_UP,
        codes.IN_TRANSIT,
        codes.ARRIVED_AT_HUB,
        codes.DEPARTED_FROM_HUB,
        codes.OUT_FOR_DELIVERY,
        codes.DELIVERED,
    ),
    "with_customs": (
        codes.CREATED,
        codes.PICKUP_SCHEDULED,
        codes.PICKED_UP,
        codes.IN_TRANSIT,
        codes.CUSTOMS_CLEARANCE,
        codes.ARRIVED_AT_HUB,
        codes.DEPARTED_FROM_HUB,
        codes.OUT_FOR_DELIVERY,
        codes.DELIVERED,
    ),
    "with_exception": (
        codes.CREATED,
        codes.PICKUP_SCHEDULED,
        codes.PICKED_UP,
        codes.IN_TRANSIT,
        codes.EXCEPTION,
        codes.ARRIVED_AT_HUB,
        codes.DEPARTED_FROM_HUB,
        codes.OUT_FOR_DELIVERY,
        codes.DELIVERED,
    ),
}


class ScanEvent(Protocol):
    id: Any
    event_code: str
    event_time: datetime
    created_at: datetime | None
    location: str | None
    facility_id: str | None


def map_event_code_to_status(event_code: str) -> str:
    return EVENT_STATUS_MAP.get(event_code, codes.STATUS_IN_TRANSIT)


def event_significance(event_code: str) -> int:
    return EVENT_SIGNIFICANCE.get(event_code, 0)


def _sort_key(event: ScanEvent) -> tuple[datetime, datetime]:
    created = event.created_at or datetime.min.replace(tzinfo=UTC)
    return ensure_utc(event.event_time), ensure_utc(created)


def order_latest_first(events: Sequence[ScanEvent]) -> list[ScanEvent]:
    """Sort by event time desc, record creation time desc on ties."""
    return sorted(events, key=_sort_key, reverse=True)


def sequence_score(
    actual: Sequence[str],
    expected_sequences: dict[str, Sequence[str]] = EXPECTED_SEQUENCES,
) -> int:
    """Best greedy match percentage of ``actual`` against the templates."""
    best = 0
    for expected in expected_sequences.values():
        best = max(best, _compare_sequences(actual, expected))
    return best


def _compare_sequences(actual: Sequence[str], expected: Sequence[str]) -> int:
    if not actual:
        return 0
    matches = 0
    index = 0
    for code in expected:
        if index < len(actual) and actual[index] == code:
            matches += 1
            index += 1
    return int(matches / len(expected) * 100)


class OrderingEngine:
    """Decides whether a new event is authoritative for its shipment.

    Only the chronologically latest event may move the shipment status.
    Late arrivals are compared by significance and reported, never
    applied, so a stale RETURNED scan cannot undo a newer DELIVERED one.
    """

    def __init__(self, config: TrackingConfig | None = None) -> None:
        self.config = config if config is not None else TrackingConfig()

    def process_ordering(
        self,
        shipment: Any,
        new_event: ScanEvent,
        events: Sequence[ScanEvent],
        now: datetime | None = None,
    ) -> OrderingResult:
        now = now or datetime.now(UTC)
        ordered = order_latest_first(events)
        head = ordered[0] if ordered else None
        is_latest = head is not None and head.id == new_event.id

        old_status = shipment.current_status
        new_status = old_status
        status_changed = False
        conflicts: list[Anomaly] = []

        if is_latest:
            new_status = map_event_code_to_status(new_event.event_code)
            status_changed = new_status != old_status
            if status_changed:
                shipment.current_status = new_status
                shipment.current_location = new_event.location
                shipment.current_location_id = new_event.facility_id
                shipment.updated_at = now
        elif head is not None:
            conflict = self._check_out_of_order(shipment, new_event, head)
            if conflict is not None:
                conflicts.append(conflict)

        analysis = self.analyze_sequence(ordered, now)
        analysis.anomalies[:0] = conflicts

        logger.info(
            "Ordering for %s: latest=%s, status %s -> %s, %d anomalies",
            shipment.tracking_number,
            is_latest,
            old_status,
            new_status,
            len(analysis.anomalies),
        )
        return OrderingResult(
            status_changed=status_changed,
            old_status=old_status,
            new_status=new_status,
            is_latest_event=is_latest,
            sequence_analysis=analysis,
        )

    def _check_out_of_order(
        self, shipment: Any, event: ScanEvent, head: ScanEvent
    ) -> Anomaly | None:
        late = event_significance(event.event_code)
        current = event_significance(head.event_code)
        gap = abs(ensure_utc(event.event_time) - ensure_utc(head.event_time))
        window = timedelta(hours=self.config.out_of_order_window_hours)

        if late <= current or gap > window:
            return None

        gap_hours = round(gap.total_seconds() / 3600, 2)
        logger.warning(
            "Out-of-order %s event %s (significance %d) outranks current "
            "%s (significance %d), %.2fh apart; status left unchanged",
            shipment.tracking_number,
            event.event_code,
            late,
            head.event_code,
            current,
            gap_hours,
        )
        return Anomaly(
            type="out_of_order_significance",
            description=(
                f"Late {event.event_code} event is more significant than "
                f"current {head.event_code}"
            ),
            details={
                "event_id": str(event.id),
                "event_code": event.event_code,
                "significance": late,
                "current_event_code": head.event_code,
                "current_significance": current,
                "time_difference_hours": gap_hours,
            },
        )

    def analyze_sequence(
        self,
        events: Sequence[ScanEvent],
        now: datetime | None = None,
    ) -> SequenceAnalysis:
        """Advisory analysis over the full event history."""
        now = now or datetime.now(UTC)
        chronological = list(reversed(order_latest_first(events)))
        event_codes = [e.event_code for e in chronological]

        anomalies = [
            *self._sequence_violations(event_codes),
            *self._time_anomalies(chronological, now),
            *self._duplicate_clusters(chronological),
        ]
        return SequenceAnalysis(
            total_events=len(chronological),
            anomalies=anomalies,
            sequence_score=sequence_score(event_codes),
        )

    def _sequence_violations(self, event_codes: list[str]) -> list[Anomaly]:
        violations = []
        for current, following in zip(event_codes, event_codes[1:]):
            if following in IMPOSSIBLE_AFTER.get(current, ()):
                violations.append(
                    Anomaly(
                        type="impossible_sequence",
                        description=(
                            f"Event {following} cannot occur after {current}"
                        ),
                        details={
                            "current_event": current,
                            "next_event": following,
                        },
                    )
                )
        return violations

    def _time_anomalies(
        self, events: Sequence[ScanEvent], now: datetime
    ) -> list[Anomaly]:
        anomalies = []
        future_limit = now + timedelta(hours=self.config.future_event_hours)
        past_limit = now - timedelta(days=self.config.very_old_event_days)
        for event in events:
            event_time = ensure_utc(event.event_time)
            if event_time > future_limit:
                anomalies.append(
                    Anomaly(
                        type="future_event",
                        description="Event time is too far in the future",
                        details={
                            "event_id": str(event.id),
                            "event_time": event_time.isoformat(),
                            "hours_in_future": int(
                                (event_time - now).total_seconds() // 3600
                            ),
                        },
                    )
                )
            if event_time < past_limit:
                anomalies.append(
                    Anomaly(
                        type="very_old_event",
                        description="Event time is more than 1 year old",
                        details={
                            "event_id": str(event.id),
                            "event_time": event_time.isoformat(),
                            "days_old": (now - event_time).days,
                        },
                    )
                )
        return anomalies

    def _duplicate_clusters(
        self, events: Sequence[ScanEvent]
    ) -> list[Anomaly]:
        window = timedelta(minutes=self.config.duplicate_window_minutes)
        groups: dict[str, list[ScanEvent]] = defaultdict(list)
        for event in events:
            groups[event.event_code].append(event)

        duplicates = []
        for event_code, grouped in groups.items():
            grouped.sort(key=lambda e: ensure_utc(e.event_time))
            for current, following in zip(grouped, grouped[1:]):
                gap = ensure_utc(following.event_time) - ensure_utc(
                    current.event_time
                )
                if gap <= window:
                    duplicates.append(
                        Anomaly(
                            type="potential_duplicate",
                            description=(
                                f"Multiple {event_code} events within "
                                f"{self.config.duplicate_window_minutes} "
                                "minutes"
                            ),
                            details={
                                "event_code": event_code,
                                "event_ids": [
                                    str(current.id),
                                    str(following.id),
                                ],
                                "time_difference_minutes": int(
                                    gap.total_seconds() // 60
                                ),
                            },
                        )
                    )
        return duplicates

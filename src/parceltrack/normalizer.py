"""Translate partner vocabularies and clean up event text."""

from __future__ import annotations

import logging
import re

from parceltrack import codes
from parceltrack.cache import ReadThroughCache
from parceltrack.config import TrackingConfig
from parceltrack.protocols import FacilityDirectory, FacilityRecord
from parceltrack.schemas import CanonicalEvent, QueuedEvent

logger = logging.getLogger(__name__)

DEFAULT_EVENT_CODE_MAPPINGS: dict[str, dict[str, str]] = {
    "webhook": {
        "PU": codes.PICKED_UP,
        "IT": codes.IN_TRANSIT,
        "AH": codes.ARRIVED_AT_HUB,
        "DH": codes.DEPARTED_FROM_HUB,
        "OFD": codes.OUT_FOR_DELIVERY,
        "DEL": codes.DELIVERED,
        "EXC": codes.EXCEPTION,
        "RET": codes.RETURNED,
        "CUS": codes.CUSTOMS_CLEARANCE,
    },
    "batch": {
        "PICKUP": codes.PICKED_UP,
        "TRANSIT": codes.IN_TRANSIT,
        "HUB_IN": codes.ARRIVED_AT_HUB,
        "HUB_OUT": codes.DEPARTED_FROM_HUB,
        "DELIVERY": codes.OUT_FOR_DELIVERY,
        "COMPLETE": codes.DELIVERED,
        "PROBLEM": codes.EXCEPTION,
        "RETURN": codes.RETURNED,
        "CUSTOMS": codes.CUSTOMS_CLEARANCE,
    },
    "handheld": {
        "SCAN_PICKUP": codes.PICKED_UP,
        "SCAN_TRANSIT": codes.IN_TRANSIT,
        "SCAN_HUB_ARRIVAL": codes.ARRIVED_AT_HUB,
        "SCAN_HUB_DEPARTURE": codes.DEPARTED_FROM_HUB,
        "SCAN_DELIVERY": codes.OUT_FOR_DELIVERY,
        "SCAN_DELIVERED": codes.DELIVERED,
        "SCAN_EXCEPTION": codes.EXCEPTION,
        "SCAN_RETURN": codes.RETURNED,
    },
    "partner_api": {
        "COLLECTED": codes.PICKED_UP,
        "MOVING": codes.IN_TRANSIT,
        "AT_DEPOT": codes.ARRIVED_AT_HUB,
        "LEFT_DEPOT": codes.DEPARTED_FROM_HUB,
        "DELIVERING": codes.OUT_FOR_DELIVERY,
        "DELIVERED": codes.DELIVERED,
        "FAILED": codes.EXCEPTION,
        "RETURNED": codes.RETURNED,
    },
}

DEFAULT_DESCRIPTIONS = {
    codes.PICKUP: "Package picked up from sender",
    codes.PICKED_UP: "Package picked up from sender",
    codes.IN_TRANSIT: "Package in transit",
    codes.ARRIVED_AT_HUB: "Package arrived at sorting facility",
    codes.DEPARTED_FROM_HUB: "Package departed from sorting facility",
    codes.OUT_FOR_DELIVERY: "Package out for delivery",
    codes.DELIVERED: "Package delivered successfully",
    codes.EXCEPTION: "Delivery exception occurred",
    codes.RETURNED: "Package returned to sender",
    codes.CUSTOMS_CLEARANCE: "Package undergoing customs clearance",
}
FALLBACK_DESCRIPTION = "Package status updated"

LOCATION_ABBREVIATIONS = {
    "Bkk": "Bangkok",
    "Cnx": "Chiang Mai",
    "Hkt": "Phuket",
    "Utp": "Udon Thani",
    "Nma": "Nakhon Ratchasima",
}

_WHITESPACE = re.compile(r"\s+")
_ABBREVIATION = re.compile(
    r"\b(" + "|".join(LOCATION_ABBREVIATIONS) + r")\b"
)


def normalize_location(location: str | None) -> str:
    """Collapse whitespace, title-case and expand known abbreviations."""
    if not location:
        return ""
    location = _WHITESPACE.sub(" ", location.strip())
    location = " ".join(word.capitalize() for word in location.split(" "))
    return _ABBREVIATION.sub(
        lambda m: LOCATION_ABBREVIATIONS[m.group(1)], location
    )


def normalize_description(description: str | None, event_code: str) -> str:
    if description and description.strip():
        return description.strip()
    return DEFAULT_DESCRIPTIONS.get(event_code, FALLBACK_DESCRIPTION)


class EventNormalizer:
    """Maps queued envelopes onto the canonical event vocabulary.

    Lookups go through injected read-through caches; nothing here
    touches shipment state.
    """

    def __init__(
        self,
        *,
        directory: FacilityDirectory,
        config: TrackingConfig,
        facility_cache: ReadThroughCache | None = None,
        mapping_cache: ReadThroughCache | None = None,
    ) -> None:
        self.directory = directory
        self.config = config
        if facility_cache is None:
            # Facilities added to the directory resolve on the next event.
            facility_cache = ReadThroughCache(
                config.facility_cache_ttl,
                config.cache_max_entries,
                cache_none=False,
            )
        if mapping_cache is None:
            mapping_cache = ReadThroughCache(
                config.code_mapping_cache_ttl, config.cache_max_entries
            )
        self.facility_cache = facility_cache
        self.mapping_cache = mapping_cache

    async def normalize(self, event: QueuedEvent) -> CanonicalEvent:
        event_code = await self.normalize_event_code(
            event.event_code, event.source
        )

        facility: FacilityRecord | None = None
        if event.facility_code:
            facility = await self.resolve_facility(event.facility_code)

        location = event.location
        if facility is not None and not location:
            location = facility.name

        canonical = CanonicalEvent(
            **event.model_dump(
                exclude={
                    "event_code",
                    "location",
                    "description",
                    "facility_id",
                }
            ),
            event_code=event_code,
            facility_id=facility.id if facility else None,
            location=normalize_location(location),
            description=normalize_description(event.description, event_code),
        )

        logger.debug(
            "Normalized %s event %s -> %s (facility resolved: %s)",
            event.tracking_number,
            event.event_code,
            event_code,
            facility is not None,
        )
        return canonical

    async def normalize_event_code(self, event_code: str, source: str) -> str:
        """Translate a source-specific code; unknown codes pass through."""
        mapping = await self.mapping_cache.get_or_load(
            ("event_code_mapping", source),
            lambda: self._load_mapping(source),
        )
        code = event_code.strip().upper()
        return mapping.get(code, code).upper()

    async def resolve_facility(
        self, facility_code: str
    ) -> FacilityRecord | None:
        code = facility_code.strip().upper()
        facility = await self.facility_cache.get_or_load(
            ("facility", code),
            lambda: self.directory.get_by_code(code),
        )
        if facility is None:
            logger.info("Facility %s not found in directory", code)
        return facility

    async def _load_mapping(self, source: str) -> dict[str, str]:
        mapping = dict(DEFAULT_EVENT_CODE_MAPPINGS.get(source, {}))
        extra = self.config.event_code_mappings.get(source, {})
        mapping.update({k.upper(): v.upper() for k, v in extra.items()})
        return mapping

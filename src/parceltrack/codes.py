"""Canonical scan-event vocabulary and shipment statuses."""

CREATED = "CREATED"
PICKUP_SCHEDULED = "PICKUP_SCHEDULED"
PICKUP = "PICKUP"
PICKED_UP = "PICKED_UP"
IN_TRANSIT = "IN_TRANSIT"
ARRIVED_AT_HUB = "ARRIVED_AT_HUB"
DEPARTED_FROM_HUB = "DEPARTED_FROM_HUB"
CUSTOMS_CLEARANCE = "CUSTOMS_CLEARANCE"
OUT_FOR_DELIVERY = "OUT_FOR_DELIVERY"
DELIVERY_ATTEMPTED = "DELIVERY_ATTEMPTED"
DELIVERED = "DELIVERED"
EXCEPTION = "EXCEPTION"
RETURNED = "RETURNED"

CANONICAL_EVENT_CODES = frozenset(
    {
        CREATED,
        PICKUP_SCHEDULED,
        PICKUP,
        PICKED_UP,
        IN_TRANSIT,
        ARRIVED_AT_HUB,
        DEPARTED_FROM_HUB,
        CUSTOMS_CLEARANCE,
        OUT_FOR_DELIVERY,
        DELIVERY_ATTEMPTED,
        DELIVERED,
        EXCEPTION,
        RETURNED,
    }
)

# Both spellings mark the start of the transit clock.
PICKUP_EVENT_CODES = frozenset({PICKUP, PICKED_UP})

ETA_TRIGGER_CODES = frozenset(
    {
        PICKUP,
        PICKED_UP,
        ARRIVED_AT_HUB,
        OUT_FOR_DELIVERY,
        EXCEPTION,
        CUSTOMS_CLEARANCE,
    }
)

# Shipment statuses
STATUS_CREATED = "CREATED"
STATUS_PICKUP_SCHEDULED = "PICKUP_SCHEDULED"
STATUS_IN_TRANSIT = "IN_TRANSIT"
STATUS_AT_HUB = "AT_HUB"
STATUS_CUSTOMS = "CUSTOMS"
STATUS_OUT_FOR_DELIVERY = "OUT_FOR_DELIVERY"
STATUS_DELIVERY_ATTEMPTED = "DELIVERY_ATTEMPTED"
STATUS_DELIVERED = "DELIVERED"
STATUS_EXCEPTION = "EXCEPTION"
STATUS_RETURNED = "RETURNED"


def is_canonical_event_code(event_code: str) -> bool:
    return event_code in CANONICAL_EVENT_CODES

"""Idempotency keys and envelope validation."""

from __future__ import annotations

import hashlib
import re
from collections.abc import Mapping
from datetime import UTC, datetime, timedelta
from typing import Any

from pydantic import ValidationError

from parceltrack.config import TrackingConfig
from parceltrack.schemas import EventEnvelope


def compute_idempotency_key(
    event_id: str,
    tracking_number: str,
    event_time: datetime,
    event_code: str,
) -> str:
    """Compute the deduplication key of an event.

    sha256("event_id|TRACKING_NUMBER|epoch_seconds|EVENT_CODE")

    Inputs are expected to be minimally normalized already (see
    :class:`~parceltrack.schemas.EventEnvelope`); the uppercasing here only
    guards callers that build keys by hand.
    """
    epoch = int(event_time.timestamp())
    material = "|".join(
        [event_id, tracking_number.upper(), str(epoch), event_code.upper()]
    )
    return hashlib.sha256(material.encode("utf-8")).hexdigest()


def envelope_key(envelope: EventEnvelope) -> str:
    return compute_idempotency_key(
        envelope.event_id,
        envelope.tracking_number,
        envelope.event_time,
        envelope.event_code,
    )


def parse_envelope(
    raw: Mapping[str, Any],
) -> tuple[EventEnvelope | None, list[dict[str, str]]]:
    """Parse and minimally normalize a raw event.

    Returns the envelope, or None with field-level errors.
    """
    try:
        return EventEnvelope.model_validate(raw), []
    except ValidationError as exc:
        errors = []
        for error in exc.errors():
            field = ".".join(str(part) for part in error["loc"]) or "envelope"
            if error["type"] == "missing":
                message = f"Missing required field: {field}"
            else:
                message = error["msg"]
            errors.append({"field": field, "message": message})
        return None, errors


def validate_envelope(
    envelope: EventEnvelope,
    config: TrackingConfig,
    now: datetime | None = None,
) -> list[dict[str, str]]:
    """Check domain formats and the acceptable event time window."""
    now = now or datetime.now(UTC)
    errors: list[dict[str, str]] = []

    if not re.fullmatch(
        config.tracking_number_pattern, envelope.tracking_number
    ):
        errors.append(
            {
                "field": "tracking_number",
                "message": "Invalid tracking number format",
            }
        )

    if not re.fullmatch(config.event_code_pattern, envelope.event_code):
        errors.append(
            {"field": "event_code", "message": "Invalid event code format"}
        )

    oldest = now - timedelta(days=config.max_event_age_days)
    latest = now + timedelta(minutes=config.max_future_minutes)
    if envelope.event_time < oldest or envelope.event_time > latest:
        errors.append(
            {
                "field": "event_time",
                "message": "Event time is outside acceptable range",
            }
        )

    return errors

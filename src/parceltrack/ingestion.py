"""Ingestion queue gateway: validate, deduplicate and enqueue events."""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping
from datetime import UTC, datetime
from typing import Any

from parceltrack.config import TrackingConfig
from parceltrack.idempotency import (
    envelope_key,
    parse_envelope,
    validate_envelope,
)
from parceltrack.protocols import EventLookup, EventQueue
from parceltrack.schemas import BatchSummary, QueuedEvent, SubmitResult

logger = logging.getLogger(__name__)


class IngestionGateway:
    """Accepts raw events and hands valid ones to the processing queue.

    ``submit`` never raises: every outcome, including unexpected
    failures, is reported as a :class:`SubmitResult`.
    """

    def __init__(
        self,
        *,
        lookup: EventLookup,
        queue: EventQueue,
        config: TrackingConfig,
    ) -> None:
        self.lookup = lookup
        self.queue = queue
        self.config = config

    async def submit(
        self, raw: Mapping[str, Any], source: str
    ) -> SubmitResult:
        try:
            return await self._submit(raw, source)
        except Exception:
            logger.exception(
                "Failed to queue event %s for %s from %s",
                _safe_get(raw, "event_id"),
                _safe_get(raw, "tracking_number"),
                source,
            )
            return SubmitResult(
                status="error",
                message="Failed to queue event",
                tracking_number=_safe_get(raw, "tracking_number"),
            )

    async def submit_many(
        self, raws: Iterable[Mapping[str, Any]], source: str
    ) -> BatchSummary:
        results = [await self.submit(raw, source) for raw in raws]
        summary = BatchSummary.from_results(results)
        logger.info(
            "Batch from %s: %d processed, %d failed",
            source,
            summary.processed_count,
            summary.failed_count,
        )
        return summary

    async def _submit(
        self, raw: Mapping[str, Any], source: str
    ) -> SubmitResult:
        envelope, errors = parse_envelope(raw)
        if envelope is None:
            logger.warning(
                "Event from %s rejected: %s",
                source,
                "; ".join(e["message"] for e in errors),
            )
            return SubmitResult(
                status="validation_failed",
                message="Event validation failed",
                tracking_number=_safe_get(raw, "tracking_number"),
                errors=errors,
            )

        key = envelope_key(envelope)
        existing_id = await self.lookup.get_event_id_by_key(key)
        if existing_id is not None:
            logger.info(
                "Duplicate event %s for %s, skipping (existing event %s)",
                envelope.event_id,
                envelope.tracking_number,
                existing_id,
            )
            return SubmitResult(
                status="duplicate",
                message="Event already processed",
                event_id=existing_id,
                idempotency_key=key,
                tracking_number=envelope.tracking_number,
            )

        errors = validate_envelope(envelope, self.config)
        if errors:
            logger.warning(
                "Event %s for %s failed validation: %s",
                envelope.event_id,
                envelope.tracking_number,
                "; ".join(e["message"] for e in errors),
            )
            return SubmitResult(
                status="validation_failed",
                message="Event validation failed",
                idempotency_key=key,
                tracking_number=envelope.tracking_number,
                errors=errors,
            )

        queued = QueuedEvent(
            **envelope.model_dump(exclude={"source_system"}),
            source_system=envelope.source_system or source,
            idempotency_key=key,
            source=source,
            raw_payload=dict(raw),
            received_at=datetime.now(UTC),
        )
        await self.queue.enqueue(queued)

        logger.info(
            "Event %s queued for %s (%s from %s)",
            envelope.event_id,
            envelope.tracking_number,
            envelope.event_code,
            source,
        )
        return SubmitResult(
            status="queued",
            message="Event queued for processing",
            idempotency_key=key,
            tracking_number=envelope.tracking_number,
        )


def _safe_get(raw: Any, field: str) -> str | None:
    if isinstance(raw, Mapping):
        value = raw.get(field)
        return str(value) if value is not None else None
    return None

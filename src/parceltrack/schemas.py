"""Pydantic schemas for event envelopes and pipeline results."""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator

SubmitStatus = Literal["queued", "duplicate", "validation_failed", "error"]


class EventEnvelope(BaseModel):
    """Inbound scan event after minimal normalization.

    Tracking number, event code and facility code are uppercased and the
    event time is converted to UTC so that retransmissions differing only
    in casing or timezone notation produce the same idempotency key.
    """

    model_config = ConfigDict(extra="ignore", str_strip_whitespace=True)

    event_id: str = Field(min_length=1, max_length=100)
    tracking_number: str = Field(min_length=1, max_length=50)
    event_code: str = Field(min_length=1, max_length=50)
    event_time: datetime
    facility_code: str | None = Field(default=None, max_length=20)
    location: str | None = Field(default=None, max_length=200)
    description: str | None = Field(default=None, max_length=500)
    remarks: str | None = Field(default=None, max_length=1000)
    partner_reference: str | None = Field(default=None, max_length=100)
    source_system: str | None = Field(default=None, max_length=50)

    @field_validator("event_id", mode="before")
    @classmethod
    def _coerce_event_id(cls, value: Any) -> Any:
        if isinstance(value, int) and not isinstance(value, bool):
            return str(value)
        return value

    @field_validator("tracking_number", "event_code")
    @classmethod
    def _uppercase(cls, value: str) -> str:
        return value.upper()

    @field_validator("facility_code")
    @classmethod
    def _uppercase_optional(cls, value: str | None) -> str | None:
        if not value:
            return None
        return value.upper()

    @field_validator("event_time")
    @classmethod
    def _to_utc(cls, value: datetime) -> datetime:
        if value.tzinfo is None:
            return value.replace(tzinfo=UTC)
        return value.astimezone(UTC)


class QueuedEvent(EventEnvelope):
    """Envelope handed from the gateway to the asynchronous processor."""

    idempotency_key: str
    source: str
    raw_payload: dict[str, Any] = Field(default_factory=dict)
    received_at: datetime = Field(default_factory=lambda: datetime.now(UTC))


class CanonicalEvent(QueuedEvent):
    """Fully normalized event ready to be persisted."""

    facility_id: str | None = None


class SubmitResult(BaseModel):
    """Immediate per-event outcome returned by the ingestion gateway."""

    status: SubmitStatus
    message: str | None = None
    event_id: str | None = None
    idempotency_key: str | None = None
    tracking_number: str | None = None
    errors: list[dict[str, str]] = Field(default_factory=list)


class BatchSummary(BaseModel):
    """Aggregated outcome of a multi-event submission."""

    processed_count: int
    failed_count: int
    results: list[SubmitResult]

    @classmethod
    def from_results(cls, results: list[SubmitResult]) -> BatchSummary:
        processed = sum(
            1 for r in results if r.status in ("queued", "duplicate")
        )
        return cls(
            processed_count=processed,
            failed_count=len(results) - processed,
            results=results,
        )


class Anomaly(BaseModel):
    """Advisory finding attached to an ordering result."""

    type: str
    description: str
    details: dict[str, Any] = Field(default_factory=dict)


class SequenceAnalysis(BaseModel):
    total_events: int
    anomalies: list[Anomaly] = Field(default_factory=list)
    sequence_score: int = 0


class OrderingResult(BaseModel):
    status_changed: bool
    old_status: str
    new_status: str
    is_latest_event: bool
    sequence_analysis: SequenceAnalysis

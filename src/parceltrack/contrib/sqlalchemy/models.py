"""SQLAlchemy tracking models."""

from __future__ import annotations

import uuid
from datetime import UTC, datetime

from sqlalchemy import (
    JSON,
    Boolean,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


def _uuid() -> str:
    return str(uuid.uuid4())


def _now() -> datetime:
    return datetime.now(UTC)


class Base(DeclarativeBase):
    """SQLAlchemy declarative base."""


class FacilityModel(Base):
    """Facility directory entry; administrator managed."""

    __tablename__ = "parceltrack_facilities"

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=_uuid
    )
    code: Mapped[str] = mapped_column(String(20), unique=True, index=True)
    name: Mapped[str] = mapped_column(String(200))
    facility_type: Mapped[str] = mapped_column(String(50), index=True)
    latitude: Mapped[float | None] = mapped_column(Float, nullable=True)
    longitude: Mapped[float | None] = mapped_column(Float, nullable=True)
    address: Mapped[str | None] = mapped_column(Text, nullable=True)
    timezone: Mapped[str] = mapped_column(String(50), default="Asia/Bangkok")
    active: Mapped[bool] = mapped_column(Boolean, default=True)


class ShipmentModel(Base):
    """Shipment state derived from its scan events."""

    __tablename__ = "parceltrack_shipments"

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=_uuid
    )
    tracking_number: Mapped[str] = mapped_column(
        String(50), unique=True, index=True
    )
    reference_number: Mapped[str | None] = mapped_column(
        String(100), nullable=True, index=True
    )
    service_type: Mapped[str] = mapped_column(String(50), default="standard")
    origin_facility_id: Mapped[str | None] = mapped_column(
        ForeignKey("parceltrack_facilities.id"), nullable=True
    )
    destination_facility_id: Mapped[str | None] = mapped_column(
        ForeignKey("parceltrack_facilities.id"), nullable=True
    )
    current_status: Mapped[str] = mapped_column(
        String(50), default="CREATED", index=True
    )
    current_location: Mapped[str | None] = mapped_column(
        String(200), nullable=True
    )
    current_location_id: Mapped[str | None] = mapped_column(
        ForeignKey("parceltrack_facilities.id"), nullable=True
    )
    estimated_delivery: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_now
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_now, onupdate=_now
    )


class EventModel(Base):
    """Append-only scan event."""

    __tablename__ = "parceltrack_events"
    __table_args__ = (
        UniqueConstraint(
            "shipment_id", "event_id", "event_time", name="uq_event"
        ),
        Index("ix_event_shipment_time", "shipment_id", "event_time"),
    )

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=_uuid
    )
    shipment_id: Mapped[str] = mapped_column(
        ForeignKey("parceltrack_shipments.id", ondelete="CASCADE")
    )
    event_id: Mapped[str] = mapped_column(String(100))
    event_code: Mapped[str] = mapped_column(String(50), index=True)
    event_time: Mapped[datetime] = mapped_column(DateTime(timezone=True))
    facility_id: Mapped[str | None] = mapped_column(
        ForeignKey("parceltrack_facilities.id"), nullable=True
    )
    location: Mapped[str | None] = mapped_column(String(200), nullable=True)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    remarks: Mapped[str | None] = mapped_column(Text, nullable=True)
    partner_reference: Mapped[str | None] = mapped_column(
        String(100), nullable=True
    )
    source: Mapped[str] = mapped_column(String(50))
    raw_payload: Mapped[dict] = mapped_column(JSON, default=dict)
    idempotency_key: Mapped[str] = mapped_column(String(64), unique=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_now
    )


class EtaLaneModel(Base):
    __tablename__ = "parceltrack_eta_lanes"
    __table_args__ = (
        UniqueConstraint(
            "origin_facility_id",
            "destination_facility_id",
            "service_type",
            name="uq_lane_service",
        ),
    )

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=_uuid
    )
    origin_facility_id: Mapped[str] = mapped_column(
        ForeignKey("parceltrack_facilities.id", ondelete="CASCADE")
    )
    destination_facility_id: Mapped[str] = mapped_column(
        ForeignKey("parceltrack_facilities.id", ondelete="CASCADE")
    )
    service_type: Mapped[str] = mapped_column(String(50))
    base_hours: Mapped[int] = mapped_column(Integer)
    min_hours: Mapped[int | None] = mapped_column(Integer, nullable=True)
    max_hours: Mapped[int | None] = mapped_column(Integer, nullable=True)
    day_adjustments: Mapped[dict | None] = mapped_column(JSON, nullable=True)
    active: Mapped[bool] = mapped_column(Boolean, default=True)


class EtaRuleModel(Base):
    __tablename__ = "parceltrack_eta_rules"

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=_uuid
    )
    name: Mapped[str] = mapped_column(String(200), unique=True)
    rule_type: Mapped[str] = mapped_column(String(50), default="")
    conditions: Mapped[dict] = mapped_column(JSON, default=dict)
    adjustments: Mapped[dict] = mapped_column(JSON, default=dict)
    priority: Mapped[int] = mapped_column(Integer, default=0, index=True)
    active: Mapped[bool] = mapped_column(Boolean, default=True)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)


class EventQueueModel(Base):
    """Queued event awaiting asynchronous processing."""

    __tablename__ = "parceltrack_event_queue"

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=_uuid
    )
    idempotency_key: Mapped[str] = mapped_column(String(64), index=True)
    tracking_number: Mapped[str] = mapped_column(String(50), index=True)
    payload: Mapped[dict] = mapped_column(JSON)
    attempts: Mapped[int] = mapped_column(Integer, default=0)
    next_attempt_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    last_error: Mapped[str | None] = mapped_column(Text, nullable=True)
    status: Mapped[str] = mapped_column(String(16), default="pending")
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_now
    )

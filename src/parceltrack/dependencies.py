"""Dependency providers for request handlers."""

from __future__ import annotations

from fastapi import Request

from parceltrack.config import TrackingConfig
from parceltrack.ingestion import IngestionGateway


def get_config(request: Request) -> TrackingConfig:
    """Read config from FastAPI app state."""
    return request.app.state.parceltrack_config


def get_gateway(request: Request) -> IngestionGateway:
    """Read ingestion gateway from FastAPI app state."""
    return request.app.state.parceltrack_gateway

"""Router factory for parceltrack ingestion."""

from __future__ import annotations

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import APIRouter, FastAPI

from parceltrack.config import TrackingConfig
from parceltrack.exceptions import register_exception_handlers
from parceltrack.ingestion import IngestionGateway
from parceltrack.routes.events import router as events_router


def create_ingestion_router(
    *,
    config: TrackingConfig,
    gateway: IngestionGateway,
) -> APIRouter:
    """Create a configured API router."""

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None]:
        app.state.parceltrack_config = config
        app.state.parceltrack_gateway = gateway
        register_exception_handlers(app)
        yield

    router = APIRouter(lifespan=lifespan)
    router.include_router(events_router)
    return router

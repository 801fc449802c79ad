"""Parcel scan-event ingestion, ordering and ETA pipeline."""

from typing import TYPE_CHECKING

__version__ = "0.1.0"

__all__ = [
    "EtaEngine",
    "EventNormalizer",
    "EventProcessor",
    "IngestionGateway",
    "OrderingEngine",
    "ParcelTrackError",
    "TrackingConfig",
    "__version__",
    "compute_idempotency_key",
    "create_ingestion_router",
    "register_exception_handlers",
]

if TYPE_CHECKING:
    from parceltrack.config import TrackingConfig
    from parceltrack.eta.engine import EtaEngine
    from parceltrack.exceptions import (
        ParcelTrackError,
        register_exception_handlers,
    )
    from parceltrack.idempotency import compute_idempotency_key
    from parceltrack.ingestion import IngestionGateway
    from parceltrack.normalizer import EventNormalizer
    from parceltrack.ordering import OrderingEngine
    from parceltrack.processor import EventProcessor
    from parceltrack.router import create_ingestion_router


def __getattr__(name: str):
    # Lazy imports: submodules load on first attribute access.
    if name == "TrackingConfig":
        from parceltrack.config import TrackingConfig

        return TrackingConfig
    if name == "create_ingestion_router":
        from parceltrack.router import create_ingestion_router

        return create_ingestion_router
    if name in ("ParcelTrackError", "register_exception_handlers"):
        from parceltrack import exceptions

        return getattr(exceptions, name)
    if name == "compute_idempotency_key":
        from parceltrack.idempotency import compute_idempotency_key

        return compute_idempotency_key
    if name == "IngestionGateway":
        from parceltrack.ingestion import IngestionGateway

        return IngestionGateway
    if name == "EventNormalizer":
        from parceltrack.normalizer import EventNormalizer

        return EventNormalizer
    if name == "EventProcessor":
        from parceltrack.processor import EventProcessor

        return EventProcessor
    if name == "OrderingEngine":
        from parceltrack.ordering import OrderingEngine

        return OrderingEngine
    if name == "EtaEngine":
        from parceltrack.eta.engine import EtaEngine

        return EtaEngine
    raise AttributeError(f"module 'parceltrack' has no attribute {name!r}")

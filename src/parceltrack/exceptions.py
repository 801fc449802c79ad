"""Error taxonomy and HTTP exception handlers."""

from __future__ import annotations

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse


class ParcelTrackError(Exception):
    """Base class for all pipeline errors."""


class EventValidationError(ParcelTrackError):
    """Raised when an event envelope is malformed or out of range."""

    def __init__(self, errors: list[dict[str, str]]) -> None:
        self.errors = errors
        fields = ", ".join(sorted({e["field"] for e in errors}))
        super().__init__(f"Event validation failed: {fields}")


class DuplicateEventError(ParcelTrackError):
    """Raised when an event with the same idempotency key is recorded."""

    def __init__(self, idempotency_key: str) -> None:
        self.idempotency_key = idempotency_key
        super().__init__(f"Event already recorded: {idempotency_key}")


class TransientProcessingError(ParcelTrackError):
    """Recoverable processing failure; the queue retries the unit of work."""


class PermanentProcessingError(ParcelTrackError):
    """Processing cannot succeed; the queue stops retrying the event."""


class RuleConfigurationError(ParcelTrackError):
    """Raised when an ETA rule cannot be loaded from its configuration."""

    def __init__(self, rule_name: str, reason: str) -> None:
        self.rule_name = rule_name
        self.reason = reason
        super().__init__(f"Invalid ETA rule {rule_name!r}: {reason}")


class ShipmentNotFoundError(ParcelTrackError):
    """Raised when a shipment cannot be found."""

    def __init__(self, shipment_id: str) -> None:
        self.shipment_id = shipment_id
        super().__init__(f"Shipment not found: {shipment_id}")


def register_exception_handlers(app: FastAPI) -> None:
    """Register parceltrack exception handlers on a FastAPI app.

    More specific handlers must be registered first so FastAPI
    matches them before the generic ParcelTrackError handler.

    Handler order (most specific first):
    1. ShipmentNotFoundError → 404
    2. DuplicateEventError → 409
    3. EventValidationError → 422
    4. ParcelTrackError → 400 (catch-all)
    """

    @app.exception_handler(ShipmentNotFoundError)
    async def _not_found(
        request: Request,
        exc: ShipmentNotFoundError,
    ) -> JSONResponse:
        return JSONResponse(
            status_code=404,
            content={
                "detail": str(exc),
                "code": "shipment_not_found",
            },
        )

    @app.exception_handler(DuplicateEventError)
    async def _duplicate(
        request: Request,
        exc: DuplicateEventError,
    ) -> JSONResponse:
        return JSONResponse(
            status_code=409,
            content={
                "detail": str(exc),
                "code": "duplicate_event",
            },
        )

    @app.exception_handler(EventValidationError)
    async def _validation(
        request: Request,
        exc: EventValidationError,
    ) -> JSONResponse:
        return JSONResponse(
            status_code=422,
            content={
                "detail": str(exc),
                "code": "validation_failed",
                "errors": exc.errors,
            },
        )

    @app.exception_handler(ParcelTrackError)
    async def _tracking_error(
        request: Request,
        exc: ParcelTrackError,
    ) -> JSONResponse:
        return JSONResponse(
            status_code=400,
            content={
                "detail": "Event could not be processed",
                "code": "tracking_error",
            },
        )

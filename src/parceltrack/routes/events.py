"""Event ingestion endpoints."""

from __future__ import annotations

from json import JSONDecodeError
from typing import Any

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse

from parceltrack.config import TrackingConfig
from parceltrack.dependencies import get_config, get_gateway
from parceltrack.exceptions import EventValidationError
from parceltrack.ingestion import IngestionGateway

router = APIRouter()

EVENT_SOURCES = frozenset(
    {"webhook", "batch", "handheld", "partner_api", "manual"}
)

SUBMIT_STATUS_CODES = {
    "queued": 202,
    "duplicate": 200,
    "validation_failed": 422,
    "error": 503,
}


@router.get("/events/health")
async def events_health() -> dict[str, str]:
    """Healthcheck endpoint for ingestion routes."""
    return {"status": "ok"}


@router.post("/events/{source}")
async def submit_events(
    source: str,
    request: Request,
    gateway: IngestionGateway = Depends(get_gateway),
    config: TrackingConfig = Depends(get_config),
) -> JSONResponse:
    """Queue one envelope, or a batch under an ``events`` key."""
    if source not in EVENT_SOURCES:
        raise EventValidationError(
            [{"field": "source", "message": f"Unknown source: {source}"}]
        )

    try:
        body: Any = await request.json()
    except JSONDecodeError as exc:
        raise EventValidationError(
            [{"field": "body", "message": "Request body must be valid JSON"}]
        ) from exc
    if not isinstance(body, dict):
        raise EventValidationError(
            [{"field": "body", "message": "Request body must be an object"}]
        )

    if "events" not in body:
        result = await gateway.submit(body, source)
        return JSONResponse(
            status_code=SUBMIT_STATUS_CODES[result.status],
            content=result.model_dump(mode="json"),
        )

    events = body["events"]
    if not isinstance(events, list):
        raise EventValidationError(
            [{"field": "events", "message": "events must be a list"}]
        )
    if len(events) > config.max_batch_events:
        raise EventValidationError(
            [
                {
                    "field": "events",
                    "message": (
                        f"At most {config.max_batch_events} events "
                        "per request"
                    ),
                }
            ]
        )

    summary = await gateway.submit_many(events, source)
    return JSONResponse(
        status_code=202, content=summary.model_dump(mode="json")
    )

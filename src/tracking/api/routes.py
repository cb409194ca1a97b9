"""FastAPI routes for the Tracking domain.

Thin adapters over ``tracking.lifecycle``: every route calls one lifecycle
function and turns a failed result into an ``HTTPException``.
"""

from fastapi import APIRouter, HTTPException, Query

from tracking import lifecycle
from tracking.api.schemas import (
    AppendEventRequest,
    DeliveryAttemptRequest,
    RegisterShipmentRequest,
    ResumeRequest,
    ReturnRequest,
    ScanRequest,
    TransitionRequest,
)
from tracking.lifecycle import ErrorKind, Result
from tracking.shipment.shipment import EventOrder
from tracking.shipment.views import (
    DeliveryAttemptView,
    PublicTrackingEventView,
    ShipmentHistoryView,
    ShipmentView,
    TrackingEventView,
)

_STATUS_CODES = {
    ErrorKind.NOT_FOUND: 404,
    ErrorKind.INVALID_STATUS: 400,
    ErrorKind.VALIDATION: 400,
    ErrorKind.ILLEGAL_TRANSITION: 409,
    ErrorKind.CONFLICT: 409,
}


def _unwrap(result: Result):
    if result.ok:
        return result.value
    failure = result.error
    raise HTTPException(
        status_code=_STATUS_CODES[failure.kind],
        detail={"kind": failure.kind.value, "message": failure.message, "details": failure.details},
    )


# ---------------------------------------------------------------------------
# Shipment Router
# ---------------------------------------------------------------------------
shipment_router = APIRouter(prefix="/shipments", tags=["shipments"])


@shipment_router.post("", status_code=201, response_model=ShipmentView)
async def register_shipment(body: RegisterShipmentRequest) -> ShipmentView:
    """Register a shipment at its origin agency."""
    return _unwrap(
        lifecycle.register_shipment(
            origin_agency_id=body.origin_agency_id,
            destination_agency_id=body.destination_agency_id,
            actor_id=body.actor_id,
            tracking_number=body.tracking_number,
        )
    )


@shipment_router.get("/{shipment_ref}", response_model=ShipmentHistoryView)
async def get_shipment(shipment_ref: str) -> ShipmentHistoryView:
    """Current state of a shipment with its events and attempts, most recent first."""
    return _unwrap(lifecycle.get_shipment_with_history(shipment_ref))


@shipment_router.get("/{shipment_ref}/events", response_model=list[TrackingEventView])
async def list_events(shipment_ref: str, order: EventOrder = Query(EventOrder.DESCENDING)) -> list[TrackingEventView]:
    return _unwrap(lifecycle.list_events(shipment_ref, order))


@shipment_router.post("/{shipment_ref}/events", status_code=201, response_model=TrackingEventView)
async def append_event(shipment_ref: str, body: AppendEventRequest) -> TrackingEventView:
    """Append an entry to the tracking history without changing the status."""
    return _unwrap(
        lifecycle.append_event(
            shipment_ref,
            status=body.status,
            actor_id=body.actor_id,
            location_agency_id=body.location_agency_id,
            description=body.description,
            notes=body.notes,
        )
    )


@shipment_router.post("/{shipment_ref}/transitions", response_model=ShipmentView)
async def apply_transition(shipment_ref: str, body: TransitionRequest) -> ShipmentView:
    return _unwrap(
        lifecycle.apply_transition(
            shipment_ref,
            new_status=body.status,
            actor_id=body.actor_id,
            location_agency_id=body.location_agency_id,
            notes=body.notes,
        )
    )


@shipment_router.post("/{shipment_ref}/attempts", status_code=201, response_model=DeliveryAttemptView)
async def record_delivery_attempt(shipment_ref: str, body: DeliveryAttemptRequest) -> DeliveryAttemptView:
    """Record a delivery attempt; its outcome drives the shipment status."""
    details = body.model_dump(exclude={"outcome", "actor_id"}, exclude_none=True)
    return _unwrap(
        lifecycle.record_delivery_attempt(
            shipment_ref,
            outcome=body.outcome,
            details=details,
            actor_id=body.actor_id,
        )
    )


@shipment_router.post("/{shipment_ref}/return", response_model=ShipmentView)
async def mark_returned(shipment_ref: str, body: ReturnRequest) -> ShipmentView:
    return _unwrap(lifecycle.mark_returned(shipment_ref, actor_id=body.actor_id, notes=body.notes))


@shipment_router.post("/{shipment_ref}/resume", response_model=ShipmentView)
async def resume(shipment_ref: str, body: ResumeRequest) -> ShipmentView:
    """Release a hold, back to the status the shipment was held from."""
    return _unwrap(
        lifecycle.resume(
            shipment_ref,
            actor_id=body.actor_id,
            location_agency_id=body.location_agency_id,
            notes=body.notes,
        )
    )


# ---------------------------------------------------------------------------
# Scan Router
# ---------------------------------------------------------------------------
scan_router = APIRouter(prefix="/scans", tags=["scans"])


@scan_router.post("", response_model=ShipmentView)
async def scan(body: ScanRequest) -> ShipmentView:
    """Record a scan of a parcel at an agency, by its tracking number."""
    return _unwrap(
        lifecycle.scan(
            body.tracking_number,
            new_status=body.status,
            location_agency_id=body.location_agency_id,
            actor_id=body.actor_id,
            notes=body.notes,
        )
    )


# ---------------------------------------------------------------------------
# Public Tracking Router
# ---------------------------------------------------------------------------
public_router = APIRouter(prefix="/track", tags=["tracking"])


@public_router.get("/{tracking_number}", response_model=list[PublicTrackingEventView])
async def track(tracking_number: str) -> list[PublicTrackingEventView]:
    """Public tracking page: no actor identity, no internal notes."""
    return _unwrap(lifecycle.get_tracking_history(tracking_number, public=True))

"""Shipment lifecycle — the in-process contract used by the dashboard.

Every function here returns a ``Result``: either a value or a ``Failure``
naming one of the error kinds below. Nothing raised by the domain or by the
store crosses this boundary; callers only render ``result.error.message``.

Writes that hit a concurrent modification are retried once with a fresh read.
A second conflict is reported as ``ConflictError``.
"""

import json
from enum import Enum
from typing import Generic, TypeVar

from protean.exceptions import ExpectedVersionError, ObjectNotFoundError, ValidationError
from protean.utils.globals import current_domain
from pydantic import BaseModel

from tracking.shipment import queries
from tracking.shipment.delivery import RecordDeliveryAttempt
from tracking.shipment.errors import IllegalTransitionError, InvalidStatusError
from tracking.shipment.event_log import AppendTrackingEvent
from tracking.shipment.intake import RegisterShipment
from tracking.shipment.shipment import EventOrder, Shipment, check_proof_refs
from tracking.shipment.transition import ApplyTransition, MarkReturned, ResumeShipment, ScanShipment
from tracking.shipment.views import (
    DeliveryAttemptView,
    PublicTrackingEventView,
    ShipmentHistoryView,
    ShipmentView,
    TrackingEventView,
)
from tracking.utils.logging import add_context, clear_context, get_logger

logger = get_logger(__name__)

T = TypeVar("T")

REFRESH_AND_RETRY = "Shipment was modified concurrently, please refresh and retry"


class ErrorKind(Enum):
    NOT_FOUND = "NotFound"
    INVALID_STATUS = "InvalidStatus"
    ILLEGAL_TRANSITION = "IllegalTransition"
    VALIDATION = "ValidationError"
    CONFLICT = "ConflictError"


class Failure(BaseModel):
    kind: ErrorKind
    message: str
    details: dict = {}


class Result(BaseModel, Generic[T]):
    value: T | None = None
    error: Failure | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


# ---------------------------------------------------------------------------
# Error translation
# ---------------------------------------------------------------------------
def _flatten(messages) -> str:
    if not isinstance(messages, dict):
        return str(messages)
    flat = []
    for field_messages in messages.values():
        flat.extend(field_messages if isinstance(field_messages, list) else [field_messages])
    return "; ".join(str(msg) for msg in flat)


def _failure_for(exc: Exception) -> Failure:
    if isinstance(exc, IllegalTransitionError):
        return Failure(
            kind=ErrorKind.ILLEGAL_TRANSITION,
            message=f"Cannot move a shipment from {exc.current_status} to {exc.target_status}",
            details={"current_status": exc.current_status, "attempted_status": exc.target_status},
        )
    if isinstance(exc, InvalidStatusError):
        return Failure(
            kind=ErrorKind.INVALID_STATUS,
            message=f"Unknown shipment status: {exc.value}",
            details={"status": str(exc.value)},
        )
    if isinstance(exc, ObjectNotFoundError):
        # Protean's own ObjectNotFoundError carries its message in args only
        return Failure(kind=ErrorKind.NOT_FOUND, message=_flatten(exc.args[0] if exc.args else str(exc)))
    if isinstance(exc, ValidationError):
        return Failure(kind=ErrorKind.VALIDATION, message=_flatten(exc.messages), details=dict(exc.messages))
    if isinstance(exc, ExpectedVersionError):
        return Failure(kind=ErrorKind.CONFLICT, message=REFRESH_AND_RETRY)

    # Store or driver failure: never shown raw to the dashboard
    logger.exception("Unexpected failure in shipment lifecycle", error_type=type(exc).__name__)
    return Failure(kind=ErrorKind.CONFLICT, message=REFRESH_AND_RETRY)


def _process(command):
    """Process a command, retrying once on a concurrent modification."""
    try:
        return current_domain.process(command, asynchronous=False)
    except ExpectedVersionError as exc:
        logger.warning(
            "Concurrent shipment modification, retrying once",
            command=type(command).__name__,
            reason=str(exc),
        )
        return current_domain.process(command, asynchronous=False)


def _run(operation, **context) -> Result:
    add_context(**{key: str(value) for key, value in context.items() if value is not None})
    try:
        return Result(value=operation())
    except Exception as exc:  # noqa: BLE001 - translated into a structured failure
        failure = _failure_for(exc)
        if failure.kind != ErrorKind.CONFLICT or isinstance(exc, ExpectedVersionError):
            logger.info("Shipment lifecycle request rejected", kind=failure.kind.value, reason=failure.message)
        return Result(error=failure)
    finally:
        clear_context()


def _shipment_view(shipment_id: str) -> ShipmentView:
    shipment = current_domain.repository_for(Shipment).get(shipment_id)
    return ShipmentView.from_shipment(shipment)


# ---------------------------------------------------------------------------
# Intake
# ---------------------------------------------------------------------------
def register_shipment(
    origin_agency_id: str,
    destination_agency_id: str,
    actor_id: str,
    tracking_number: str | None = None,
) -> Result[ShipmentView]:
    def operation():
        shipment_id = _process(
            RegisterShipment(
                origin_agency_id=origin_agency_id,
                destination_agency_id=destination_agency_id,
                actor_id=actor_id,
                tracking_number=tracking_number,
            )
        )
        return _shipment_view(shipment_id)

    return _run(operation, actor_id=actor_id, tracking_number=tracking_number)


# ---------------------------------------------------------------------------
# Event log
# ---------------------------------------------------------------------------
def append_event(
    shipment_ref: str,
    status: str,
    actor_id: str,
    location_agency_id: str | None = None,
    description: str | None = None,
    notes: str | None = None,
) -> Result[TrackingEventView]:
    def operation():
        event_id = _process(
            AppendTrackingEvent(
                shipment_id=shipment_ref,
                status=status,
                actor_id=actor_id,
                location_agency_id=location_agency_id,
                description=description,
                notes=notes,
            )
        )
        events = queries.list_events(shipment_ref)
        return next(event for event in events if event.id == event_id)

    return _run(operation, shipment_ref=shipment_ref, actor_id=actor_id)


def list_events(shipment_ref: str, order: EventOrder = EventOrder.DESCENDING) -> Result[list[TrackingEventView]]:
    return _run(lambda: queries.list_events(shipment_ref, order), shipment_ref=shipment_ref)


# ---------------------------------------------------------------------------
# Status transitions
# ---------------------------------------------------------------------------
def apply_transition(
    shipment_ref: str,
    new_status: str,
    actor_id: str,
    location_agency_id: str | None = None,
    notes: str | None = None,
) -> Result[ShipmentView]:
    def operation():
        shipment_id = _process(
            ApplyTransition(
                shipment_id=shipment_ref,
                status=new_status,
                actor_id=actor_id,
                location_agency_id=location_agency_id,
                notes=notes,
            )
        )
        return _shipment_view(shipment_id)

    return _run(operation, shipment_ref=shipment_ref, actor_id=actor_id)


def scan(
    tracking_number: str,
    new_status: str,
    location_agency_id: str,
    actor_id: str,
    notes: str | None = None,
) -> Result[ShipmentView]:
    """Record a scan of a parcel at an agency."""

    def operation():
        shipment_id = _process(
            ScanShipment(
                tracking_number=tracking_number,
                status=new_status,
                location_agency_id=location_agency_id,
                actor_id=actor_id,
                notes=notes,
            )
        )
        return _shipment_view(shipment_id)

    return _run(operation, tracking_number=tracking_number, actor_id=actor_id)


def mark_returned(shipment_ref: str, actor_id: str, notes: str | None = None) -> Result[ShipmentView]:
    def operation():
        shipment_id = _process(MarkReturned(shipment_id=shipment_ref, actor_id=actor_id, notes=notes))
        return _shipment_view(shipment_id)

    return _run(operation, shipment_ref=shipment_ref, actor_id=actor_id)


def resume(
    shipment_ref: str,
    actor_id: str,
    location_agency_id: str | None = None,
    notes: str | None = None,
) -> Result[ShipmentView]:
    def operation():
        shipment_id = _process(
            ResumeShipment(
                shipment_id=shipment_ref,
                actor_id=actor_id,
                location_agency_id=location_agency_id,
                notes=notes,
            )
        )
        return _shipment_view(shipment_id)

    return _run(operation, shipment_ref=shipment_ref, actor_id=actor_id)


# ---------------------------------------------------------------------------
# Delivery attempts
# ---------------------------------------------------------------------------
def record_delivery_attempt(
    shipment_ref: str,
    outcome: str,
    details: dict,
    actor_id: str,
) -> Result[DeliveryAttemptView]:
    """Record a delivery attempt.

    ``details`` holds the outcome-dependent fields: ``failure_reason`` for a
    failed attempt; ``recipient_name`` (plus optional ``recipient_relationship``,
    ``recipient_id_type``, ``recipient_id_number``) for a successful one; and
    optionally ``latitude``, ``longitude``, ``proof_refs`` and ``notes``.
    """
    details = dict(details or {})
    proof_refs = details.pop("proof_refs", None)

    def operation():
        proofs = check_proof_refs(proof_refs)
        attempt_id = _process(
            RecordDeliveryAttempt(
                shipment_id=shipment_ref,
                outcome=outcome,
                actor_id=actor_id,
                proof_refs=json.dumps(proofs) if proofs else None,
                **details,
            )
        )
        history = queries.shipment_with_history(shipment_ref)
        return next(attempt for attempt in history.attempts if attempt.id == attempt_id)

    return _run(operation, shipment_ref=shipment_ref, actor_id=actor_id)


# ---------------------------------------------------------------------------
# Queries
# ---------------------------------------------------------------------------
def get_tracking_history(shipment_ref: str, public: bool = True) -> Result[list]:
    """Timeline of a shipment, most recent first.

    The public projection drops the actor and the internal notes; pass
    ``public=False`` for the full events.
    """
    if public:
        return _run(lambda: queries.public_tracking_history(shipment_ref), shipment_ref=shipment_ref)
    return _run(lambda: queries.list_events(shipment_ref), shipment_ref=shipment_ref)


def get_shipment_with_history(shipment_ref: str) -> Result[ShipmentHistoryView]:
    return _run(lambda: queries.shipment_with_history(shipment_ref), shipment_ref=shipment_ref)


__all__ = [
    "DeliveryAttemptView",
    "ErrorKind",
    "Failure",
    "PublicTrackingEventView",
    "Result",
    "ShipmentHistoryView",
    "ShipmentView",
    "TrackingEventView",
    "append_event",
    "apply_transition",
    "get_shipment_with_history",
    "get_tracking_history",
    "list_events",
    "mark_returned",
    "record_delivery_attempt",
    "register_shipment",
    "resume",
    "scan",
]

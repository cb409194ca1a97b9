"""Read models for the shipment timeline.

Plain pydantic models built from the Shipment aggregate. They are frozen so a
view handed to the UI layer cannot be mutated into an inconsistent state.
"""

from datetime import datetime

from pydantic import BaseModel, ConfigDict


class ShipmentView(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    tracking_number: str
    status: str
    current_location_id: str | None = None
    origin_agency_id: str
    destination_agency_id: str
    held_from_status: str | None = None
    attempt_count: int = 0
    actual_delivery_at: datetime | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @classmethod
    def from_shipment(cls, shipment) -> "ShipmentView":
        return cls(
            id=str(shipment.id),
            tracking_number=shipment.tracking_number,
            status=shipment.status,
            current_location_id=_str_or_none(shipment.current_location_id),
            origin_agency_id=str(shipment.origin_agency_id),
            destination_agency_id=str(shipment.destination_agency_id),
            held_from_status=shipment.held_from_status,
            attempt_count=shipment.attempt_count or 0,
            actual_delivery_at=shipment.actual_delivery_at,
            created_at=shipment.created_at,
            updated_at=shipment.updated_at,
        )


class TrackingEventView(BaseModel):
    """Full tracking event, including who recorded it and internal notes."""

    model_config = ConfigDict(frozen=True)

    id: str
    sequence: int
    status: str
    previous_status: str | None = None
    location_agency_id: str | None = None
    description: str | None = None
    notes: str | None = None
    actor_id: str
    occurred_at: datetime

    @classmethod
    def from_event(cls, event) -> "TrackingEventView":
        return cls(
            id=str(event.id),
            sequence=event.sequence,
            status=event.status,
            previous_status=event.previous_status,
            location_agency_id=_str_or_none(event.location_agency_id),
            description=event.description,
            notes=event.notes,
            actor_id=str(event.actor_id),
            occurred_at=event.occurred_at,
        )


class PublicTrackingEventView(BaseModel):
    """Tracking event as shown on the public tracking page."""

    model_config = ConfigDict(frozen=True)

    status: str
    description: str | None = None
    location_agency_id: str | None = None
    occurred_at: datetime

    @classmethod
    def from_event(cls, event) -> "PublicTrackingEventView":
        return cls(
            status=event.status,
            description=event.description,
            location_agency_id=_str_or_none(event.location_agency_id),
            occurred_at=event.occurred_at,
        )


class RecipientView(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str
    relationship: str | None = None
    id_type: str | None = None
    id_number: str | None = None


class DeliveryAttemptView(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    attempt_number: int
    outcome: str
    failure_reason: str | None = None
    recipient: RecipientView | None = None
    latitude: float | None = None
    longitude: float | None = None
    proof_refs: list[str] = []
    notes: str | None = None
    actor_id: str
    attempted_at: datetime

    @classmethod
    def from_attempt(cls, attempt) -> "DeliveryAttemptView":
        recipient = None
        if attempt.recipient:
            recipient = RecipientView(
                name=attempt.recipient.name,
                relationship=attempt.recipient.relationship,
                id_type=attempt.recipient.id_type,
                id_number=attempt.recipient.id_number,
            )
        geolocation = attempt.geolocation
        return cls(
            id=str(attempt.id),
            attempt_number=attempt.attempt_number,
            outcome=attempt.outcome,
            failure_reason=attempt.failure_reason,
            recipient=recipient,
            latitude=geolocation.latitude if geolocation else None,
            longitude=geolocation.longitude if geolocation else None,
            proof_refs=attempt.proof_references,
            notes=attempt.notes,
            actor_id=str(attempt.actor_id),
            attempted_at=attempt.attempted_at,
        )


class ShipmentHistoryView(BaseModel):
    """Current shipment state with its full timeline, most recent first."""

    model_config = ConfigDict(frozen=True)

    shipment: ShipmentView
    events: list[TrackingEventView]
    attempts: list[DeliveryAttemptView]


def _str_or_none(value) -> str | None:
    return str(value) if value is not None else None

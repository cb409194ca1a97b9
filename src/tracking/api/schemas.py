"""Pydantic API schemas for the Tracking domain.

These are the external API contracts — separate from domain commands.
Responses reuse the read models from ``tracking.shipment.views``.
"""

from pydantic import BaseModel, Field


# ---------------------------------------------------------------------------
# Request schemas
# ---------------------------------------------------------------------------
class RegisterShipmentRequest(BaseModel):
    origin_agency_id: str
    destination_agency_id: str
    actor_id: str
    tracking_number: str | None = None


class AppendEventRequest(BaseModel):
    status: str
    actor_id: str
    location_agency_id: str | None = None
    description: str | None = None
    notes: str | None = None


class TransitionRequest(BaseModel):
    status: str
    actor_id: str
    location_agency_id: str | None = None
    notes: str | None = None


class ScanRequest(BaseModel):
    tracking_number: str
    status: str
    location_agency_id: str
    actor_id: str
    notes: str | None = None


class DeliveryAttemptRequest(BaseModel):
    outcome: str
    actor_id: str
    failure_reason: str | None = None
    recipient_name: str | None = None
    recipient_relationship: str | None = None
    recipient_id_type: str | None = None
    recipient_id_number: str | None = None
    latitude: float | None = None
    longitude: float | None = None
    proof_refs: list[str] = Field(default_factory=list)
    notes: str | None = None


class ReturnRequest(BaseModel):
    actor_id: str
    notes: str | None = None


class ResumeRequest(BaseModel):
    actor_id: str
    location_agency_id: str | None = None
    notes: str | None = None

"""Shipment domain events — immutable facts about shipment lifecycle changes.

All events are past tense, versioned, and carry enough data for downstream
consumers (notifications, reporting) without reloading the shipment.
"""

from protean.fields import DateTime, Identifier, Integer, String, Text

from tracking.domain import tracking


@tracking.event(part_of="Shipment")
class ShipmentRegistered:
    """A shipment was taken in at its origin agency."""

    __version__ = 1

    shipment_id = Identifier(required=True)
    tracking_number = String(required=True)
    origin_agency_id = Identifier(required=True)
    destination_agency_id = Identifier(required=True)
    registered_by = Identifier(required=True)
    registered_at = DateTime(required=True)


@tracking.event(part_of="Shipment")
class TrackingEventAppended:
    """An entry was appended to the shipment's tracking history."""

    __version__ = 1

    shipment_id = Identifier(required=True)
    tracking_event_id = Identifier(required=True)
    sequence = Integer(required=True)
    status = String(required=True)
    previous_status = String()
    location_agency_id = Identifier()
    description = String()
    actor_id = Identifier(required=True)
    occurred_at = DateTime(required=True)


@tracking.event(part_of="Shipment")
class ShipmentStatusChanged:
    """The shipment moved from one lifecycle status to another."""

    __version__ = 1

    shipment_id = Identifier(required=True)
    tracking_number = String(required=True)
    previous_status = String(required=True)
    new_status = String(required=True)
    location_agency_id = Identifier()
    changed_by = Identifier(required=True)
    changed_at = DateTime(required=True)


@tracking.event(part_of="Shipment")
class DeliveryAttempted:
    """A courier made a physical delivery attempt."""

    __version__ = 1

    shipment_id = Identifier(required=True)
    attempt_id = Identifier(required=True)
    attempt_number = Integer(required=True)
    outcome = String(required=True)
    failure_reason = String()
    recipient_name = String()
    notes = Text()
    attempted_by = Identifier(required=True)
    attempted_at = DateTime(required=True)

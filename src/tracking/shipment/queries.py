"""Shipment query façade — read-only access to shipments and their history.

Everything is read from a single load of the Shipment aggregate, so the
status, the events and the attempts in a view always belong together. If any
part of the history cannot be read, the whole call fails.
"""

from protean.utils.globals import current_domain

from tracking.shipment.shipment import EventOrder, Shipment
from tracking.shipment.views import (
    DeliveryAttemptView,
    PublicTrackingEventView,
    ShipmentHistoryView,
    ShipmentView,
    TrackingEventView,
)


def load_shipment(reference: str) -> Shipment:
    """Load a shipment by identifier or tracking number."""
    return current_domain.repository_for(Shipment).load(reference)


def shipment_with_history(reference: str) -> ShipmentHistoryView:
    shipment = load_shipment(reference)
    return ShipmentHistoryView(
        shipment=ShipmentView.from_shipment(shipment),
        events=[TrackingEventView.from_event(e) for e in shipment.events_in_order(EventOrder.DESCENDING)],
        attempts=[DeliveryAttemptView.from_attempt(a) for a in shipment.attempts_in_order(EventOrder.DESCENDING)],
    )


def list_events(reference: str, order: EventOrder = EventOrder.DESCENDING) -> list[TrackingEventView]:
    """All events of a shipment; an empty list when nothing was recorded yet."""
    shipment = load_shipment(reference)
    return [TrackingEventView.from_event(e) for e in shipment.events_in_order(order)]


def public_tracking_history(reference: str) -> list[PublicTrackingEventView]:
    """Events without actor identity or internal notes, most recent first."""
    shipment = load_shipment(reference)
    return [PublicTrackingEventView.from_event(e) for e in shipment.events_in_order(EventOrder.DESCENDING)]

"""Event log — command and handler.

Appends a free-standing entry (a note, a location update) to a shipment's
tracking history. The shipment's current status is never changed here.
"""

from protean import handle
from protean.fields import Identifier, String, Text
from protean.utils.globals import current_domain

from tracking.domain import logger, tracking
from tracking.shipment.shipment import Shipment


@tracking.command(part_of="Shipment")
class AppendTrackingEvent:
    """Append an entry to the tracking history of a shipment."""

    shipment_id = Identifier(required=True)
    status = String(required=True, max_length=50)
    actor_id = Identifier(required=True)
    location_agency_id = Identifier()
    description = String(max_length=500)
    notes = Text()


@tracking.command_handler(part_of=Shipment)
class EventLogHandler:
    @handle(AppendTrackingEvent)
    def append_tracking_event(self, command):
        repo = current_domain.repository_for(Shipment)
        shipment = repo.load(command.shipment_id)

        event = shipment.append_event(
            command.status,
            actor_id=command.actor_id,
            location_agency_id=command.location_agency_id,
            description=command.description,
            notes=command.notes,
        )
        repo.add(shipment)
        logger.info(
            "Tracking event appended",
            shipment_id=str(shipment.id),
            sequence=event.sequence,
            status=event.status,
        )
        return str(event.id)

"""Status transitions — commands and handler.

Every change of a shipment's current status is processed here: generic
transitions, counter/hub scans, returns and hold releases. Each handler reads
the shipment, validates the move in-process, and writes it back with a
conditional write so that a concurrent change surfaces as a conflict.
"""

from protean import handle
from protean.fields import Identifier, String, Text
from protean.utils.globals import current_domain

from tracking.domain import logger, tracking
from tracking.shipment.errors import ShipmentNotFoundError
from tracking.shipment.shipment import Shipment, ShipmentStatus


@tracking.command(part_of="Shipment")
class ApplyTransition:
    """Move a shipment to a new status."""

    shipment_id = Identifier(required=True)
    status = String(required=True, max_length=50)
    actor_id = Identifier(required=True)
    location_agency_id = Identifier()
    description = String(max_length=500)
    notes = Text()


@tracking.command(part_of="Shipment")
class ScanShipment:
    """A scan at an agency, identified by the printed tracking number."""

    tracking_number = String(required=True, max_length=50)
    status = String(required=True, max_length=50)
    location_agency_id = Identifier(required=True)
    actor_id = Identifier(required=True)
    notes = Text()


@tracking.command(part_of="Shipment")
class MarkReturned:
    """Send a shipment back to its sender."""

    shipment_id = Identifier(required=True)
    actor_id = Identifier(required=True)
    location_agency_id = Identifier()
    notes = Text()


@tracking.command(part_of="Shipment")
class ResumeShipment:
    """Release a hold."""

    shipment_id = Identifier(required=True)
    actor_id = Identifier(required=True)
    location_agency_id = Identifier()
    notes = Text()


@tracking.command_handler(part_of=Shipment)
class TransitionHandler:
    @handle(ApplyTransition)
    def apply_transition(self, command):
        return self._transition(
            command.shipment_id,
            command.status,
            actor_id=command.actor_id,
            location_agency_id=command.location_agency_id,
            description=command.description,
            notes=command.notes,
        )

    @handle(ScanShipment)
    def scan(self, command):
        repo = current_domain.repository_for(Shipment)
        shipment = repo.find_by_tracking_number(command.tracking_number)
        if shipment is None:
            raise ShipmentNotFoundError(command.tracking_number)

        return self._transition(
            str(shipment.id),
            command.status,
            actor_id=command.actor_id,
            location_agency_id=command.location_agency_id,
            notes=command.notes,
        )

    @handle(MarkReturned)
    def mark_returned(self, command):
        return self._transition(
            command.shipment_id,
            ShipmentStatus.RETURNED,
            actor_id=command.actor_id,
            location_agency_id=command.location_agency_id,
            notes=command.notes,
        )

    @handle(ResumeShipment)
    def resume(self, command):
        repo = current_domain.repository_for(Shipment)
        shipment = repo.load(command.shipment_id)
        held_from = shipment.held_from_status

        shipment.resume(
            actor_id=command.actor_id,
            location_agency_id=command.location_agency_id,
            notes=command.notes,
        )
        repo.add(shipment)
        logger.info(
            "Shipment hold released",
            shipment_id=str(shipment.id),
            status=shipment.status,
            held_from=held_from,
        )
        return str(shipment.id)

    def _transition(self, reference, new_status, actor_id, location_agency_id=None, description=None, notes=None):
        repo = current_domain.repository_for(Shipment)
        shipment = repo.load(reference)
        previous_status = shipment.status

        shipment.apply_transition(
            new_status,
            actor_id=actor_id,
            location_agency_id=location_agency_id,
            description=description,
            notes=notes,
        )
        repo.add(shipment)
        logger.info(
            "Shipment status changed",
            shipment_id=str(shipment.id),
            tracking_number=shipment.tracking_number,
            previous_status=previous_status,
            status=shipment.status,
            actor_id=str(actor_id),
        )
        return str(shipment.id)

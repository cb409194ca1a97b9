"""Shipment intake — command and handler.

Registers a shipment at its origin agency in the CREATED status.
"""

import os

from protean import handle
from protean.exceptions import ValidationError
from protean.fields import Identifier, String
from protean.utils.globals import current_domain

from tracking.domain import logger, tracking
from tracking.shipment.shipment import Shipment, generate_tracking_number


@tracking.command(part_of="Shipment")
class RegisterShipment:
    """Register a new shipment. A tracking number is generated when omitted."""

    origin_agency_id = Identifier(required=True)
    destination_agency_id = Identifier(required=True)
    actor_id = Identifier(required=True)
    tracking_number = String(max_length=50)


@tracking.command_handler(part_of=Shipment)
class RegisterShipmentHandler:
    @handle(RegisterShipment)
    def register_shipment(self, command):
        repo = current_domain.repository_for(Shipment)

        tracking_number = command.tracking_number
        if tracking_number:
            if repo.find_by_tracking_number(tracking_number) is not None:
                raise ValidationError({"tracking_number": [f"Tracking number {tracking_number} is already in use"]})
        else:
            prefix = os.environ.get("TRACKING_NUMBER_PREFIX", "RDC")
            tracking_number = generate_tracking_number(prefix)
            while repo.find_by_tracking_number(tracking_number) is not None:
                tracking_number = generate_tracking_number(prefix)

        shipment = Shipment.register(
            tracking_number=tracking_number,
            origin_agency_id=command.origin_agency_id,
            destination_agency_id=command.destination_agency_id,
            registered_by=command.actor_id,
        )
        repo.add(shipment)
        logger.info(
            "Shipment registered",
            shipment_id=str(shipment.id),
            tracking_number=tracking_number,
            origin_agency_id=str(command.origin_agency_id),
        )
        return str(shipment.id)

"""Delivery attempts — command and handler.

Records a courier's delivery attempt. The attempt number, the derived status
and the tracking event are all written with the shipment in one conditional
write, so two couriers can never obtain the same attempt number.
"""

import json

from protean import handle
from protean.fields import Float, Identifier, String, Text
from protean.utils.globals import current_domain

from tracking.domain import logger, tracking
from tracking.shipment.shipment import Shipment


@tracking.command(part_of="Shipment")
class RecordDeliveryAttempt:
    """Record one physical delivery attempt."""

    shipment_id = Identifier(required=True)
    outcome = String(required=True, max_length=20)
    actor_id = Identifier(required=True)
    failure_reason = String(max_length=50)
    recipient_name = String(max_length=200)
    recipient_relationship = String(max_length=100)
    recipient_id_type = String(max_length=50)
    recipient_id_number = String(max_length=100)
    latitude = Float()
    longitude = Float()
    proof_refs = Text()  # JSON list of opaque file references
    notes = Text()


@tracking.command_handler(part_of=Shipment)
class DeliveryHandler:
    @handle(RecordDeliveryAttempt)
    def record_attempt(self, command):
        repo = current_domain.repository_for(Shipment)
        shipment = repo.load(command.shipment_id)

        attempt = shipment.record_attempt(
            command.outcome,
            actor_id=command.actor_id,
            failure_reason=command.failure_reason,
            recipient_name=command.recipient_name,
            recipient_relationship=command.recipient_relationship,
            recipient_id_type=command.recipient_id_type,
            recipient_id_number=command.recipient_id_number,
            latitude=command.latitude,
            longitude=command.longitude,
            proof_refs=json.loads(command.proof_refs) if command.proof_refs else None,
            notes=command.notes,
        )
        repo.add(shipment)
        logger.info(
            "Delivery attempt recorded",
            shipment_id=str(shipment.id),
            attempt_number=attempt.attempt_number,
            outcome=attempt.outcome,
            status=shipment.status,
        )
        return str(attempt.id)

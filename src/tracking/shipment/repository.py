"""Repository for the Shipment aggregate."""

from protean.exceptions import ObjectNotFoundError

from tracking.domain import tracking
from tracking.shipment.errors import ShipmentNotFoundError
from tracking.shipment.shipment import Shipment


@tracking.repository(part_of=Shipment)
class ShipmentRepository:
    """Shipment persistence with lookup by tracking number.

    Handlers write through the inherited ``add``. The aggregate's ``_version``
    makes every save conditional: the store refuses a stale copy with
    ``ExpectedVersionError``.
    """

    def find_by_tracking_number(self, tracking_number: str) -> Shipment | None:
        results = self._dao.query.filter(tracking_number=tracking_number).all()
        return results.items[0] if results.items else None

    def load(self, reference: str) -> Shipment:
        """Load a shipment by identifier, falling back to its tracking number."""
        try:
            return self.get(reference)
        except ObjectNotFoundError:
            shipment = self.find_by_tracking_number(reference)
            if shipment is None:
                raise ShipmentNotFoundError(reference) from None
            return shipment

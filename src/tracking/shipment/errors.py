"""Shipment lifecycle exceptions.

All of them derive from Protean's exception hierarchy so that anything raised
outside the lifecycle layer is still understood by Protean's FastAPI exception
handlers (400 for validation errors, 404 for missing objects).

Concurrent writes have no exception of their own: the aggregate's ``_version``
makes the store refuse a stale write with Protean's ``ExpectedVersionError``.
"""

from protean.exceptions import ObjectNotFoundError, ValidationError


class InvalidStatusError(ValidationError):
    """A status value outside the closed shipment status enumeration."""

    def __init__(self, value):
        self.value = value
        super().__init__({"status": [f"Unknown shipment status: {value}"]})


class IllegalTransitionError(ValidationError):
    """The requested status is not reachable from the current one."""

    def __init__(self, current_status: str, target_status: str):
        self.current_status = current_status
        self.target_status = target_status
        super().__init__({"status": [f"Cannot transition from {current_status} to {target_status}"]})


class ShipmentNotFoundError(ObjectNotFoundError):
    def __init__(self, reference: str):
        self.reference = reference
        self.messages = {"shipment": [f"Shipment {reference} does not exist"]}
        super().__init__(self.messages)

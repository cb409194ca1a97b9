"""Shipment aggregate (CQRS) — the core of the tracking domain.

The Shipment aggregate is the sole owner of a shipment's current status. Every
status change goes through ``apply_transition``, which checks the transition
table below and appends a tracking event in the same change. Tracking events
and delivery attempts are child entities: append-only, never edited.

State Machine:
    CREATED → RECEIVED | IN_TRANSIT | ON_HOLD | CANCELLED
    RECEIVED → IN_TRANSIT | ON_HOLD | CANCELLED
    IN_TRANSIT → ARRIVED | ON_HOLD
    ARRIVED → OUT_FOR_DELIVERY | ON_HOLD
    OUT_FOR_DELIVERY → DELIVERED | FAILED_DELIVERY | ON_HOLD
    FAILED_DELIVERY → OUT_FOR_DELIVERY | RETURNED
    ON_HOLD → <status it was held from> | RETURNED | CANCELLED
    {DELIVERED, RETURNED, CANCELLED} → (terminal)

Delivery attempts are only recorded while the shipment is OUT_FOR_DELIVERY.
After a failed attempt the courier re-enters OUT_FOR_DELIVERY explicitly
before the next attempt.
"""

import json
import secrets
import string
from datetime import UTC, datetime
from enum import Enum

from protean import atomic_change, invariant
from protean.exceptions import ValidationError
from protean.fields import (
    DateTime,
    Float,
    HasMany,
    Identifier,
    Integer,
    String,
    Text,
    ValueObject,
)

from tracking.domain import tracking
from tracking.shipment.errors import IllegalTransitionError, InvalidStatusError
from tracking.shipment.events import (
    DeliveryAttempted,
    ShipmentRegistered,
    ShipmentStatusChanged,
    TrackingEventAppended,
)


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------
class ShipmentStatus(Enum):
    CREATED = "CREATED"
    RECEIVED = "RECEIVED"
    IN_TRANSIT = "IN_TRANSIT"
    ARRIVED = "ARRIVED"
    OUT_FOR_DELIVERY = "OUT_FOR_DELIVERY"
    DELIVERED = "DELIVERED"
    FAILED_DELIVERY = "FAILED_DELIVERY"
    RETURNED = "RETURNED"
    CANCELLED = "CANCELLED"
    ON_HOLD = "ON_HOLD"


class AttemptOutcome(Enum):
    SUCCESS = "SUCCESS"
    FAILED = "FAILED"
    PENDING = "PENDING"


class FailureReason(Enum):
    ABSENT = "ABSENT"
    REFUSED = "REFUSED"
    WRONG_ADDRESS = "WRONG_ADDRESS"
    BUSINESS_CLOSED = "BUSINESS_CLOSED"
    OTHER = "OTHER"


class EventOrder(Enum):
    ASCENDING = "asc"
    DESCENDING = "desc"


TERMINAL_STATUSES = frozenset(
    {
        ShipmentStatus.DELIVERED,
        ShipmentStatus.RETURNED,
        ShipmentStatus.CANCELLED,
    }
)

# ON_HOLD additionally allows a return to the status it was held from; that
# edge depends on the shipment and is added in ``Shipment.allowed_transitions``.
_VALID_TRANSITIONS = {
    ShipmentStatus.CREATED: {
        ShipmentStatus.RECEIVED,
        ShipmentStatus.IN_TRANSIT,
        ShipmentStatus.ON_HOLD,
        ShipmentStatus.CANCELLED,
    },
    ShipmentStatus.RECEIVED: {
        ShipmentStatus.IN_TRANSIT,
        ShipmentStatus.ON_HOLD,
        ShipmentStatus.CANCELLED,
    },
    ShipmentStatus.IN_TRANSIT: {ShipmentStatus.ARRIVED, ShipmentStatus.ON_HOLD},
    ShipmentStatus.ARRIVED: {ShipmentStatus.OUT_FOR_DELIVERY, ShipmentStatus.ON_HOLD},
    ShipmentStatus.OUT_FOR_DELIVERY: {
        ShipmentStatus.DELIVERED,
        ShipmentStatus.FAILED_DELIVERY,
        ShipmentStatus.ON_HOLD,
    },
    ShipmentStatus.FAILED_DELIVERY: {ShipmentStatus.OUT_FOR_DELIVERY, ShipmentStatus.RETURNED},
    ShipmentStatus.ON_HOLD: {ShipmentStatus.RETURNED, ShipmentStatus.CANCELLED},
    ShipmentStatus.DELIVERED: set(),  # terminal
    ShipmentStatus.RETURNED: set(),  # terminal
    ShipmentStatus.CANCELLED: set(),  # terminal
}

_OUTCOME_STATUS = {
    AttemptOutcome.SUCCESS: ShipmentStatus.DELIVERED,
    AttemptOutcome.FAILED: ShipmentStatus.FAILED_DELIVERY,
    AttemptOutcome.PENDING: ShipmentStatus.OUT_FOR_DELIVERY,
}

_STATUS_DESCRIPTIONS = {
    ShipmentStatus.CREATED: "Shipment registered",
    ShipmentStatus.RECEIVED: "Received at the counter",
    ShipmentStatus.IN_TRANSIT: "In transit",
    ShipmentStatus.ARRIVED: "Arrived at the destination agency",
    ShipmentStatus.OUT_FOR_DELIVERY: "Out for delivery",
    ShipmentStatus.DELIVERED: "Delivered",
    ShipmentStatus.FAILED_DELIVERY: "Delivery failed",
    ShipmentStatus.RETURNED: "Returned to sender",
    ShipmentStatus.CANCELLED: "Shipment cancelled",
    ShipmentStatus.ON_HOLD: "Shipment on hold",
}

_FAILURE_REASON_LABELS = {
    FailureReason.ABSENT: "recipient absent",
    FailureReason.REFUSED: "refused by the recipient",
    FailureReason.WRONG_ADDRESS: "wrong address",
    FailureReason.BUSINESS_CLOSED: "business closed",
    FailureReason.OTHER: "other reason",
}

# Status names used by older scanning terminals
_STATUS_ALIASES = {
    "ARRIVED_AT_DESTINATION": ShipmentStatus.ARRIVED,
}

_TRACKING_NUMBER_ALPHABET = string.ascii_uppercase + string.digits


# ---------------------------------------------------------------------------
# Parsing helpers
# ---------------------------------------------------------------------------
def parse_status(value) -> ShipmentStatus:
    """Return the ShipmentStatus for ``value`` or raise InvalidStatusError."""
    if isinstance(value, ShipmentStatus):
        return value
    if value in _STATUS_ALIASES:
        return _STATUS_ALIASES[value]
    try:
        return ShipmentStatus(value)
    except ValueError:
        raise InvalidStatusError(value) from None


def parse_outcome(value) -> AttemptOutcome:
    """Return the ``AttemptOutcome`` named by ``value`` or raise ``ValidationError``."""
    if isinstance(value, AttemptOutcome):
        return value
    try:
        return AttemptOutcome(value)
    except ValueError:
        raise ValidationError({"outcome": [f"Unknown attempt outcome: {value}"]}) from None


def parse_failure_reason(value) -> FailureReason:
    """Return the ``FailureReason`` named by ``value`` or raise ``ValidationError``."""
    if isinstance(value, FailureReason):
        return value
    try:
        return FailureReason(value)
    except ValueError:
        raise ValidationError({"failure_reason": [f"Unknown failure reason: {value}"]}) from None


def status_for_outcome(outcome) -> ShipmentStatus:
    """Shipment status derived from a delivery attempt outcome."""
    return _OUTCOME_STATUS[parse_outcome(outcome)]


def generate_tracking_number(prefix: str = "RDC", now: datetime | None = None) -> str:
    """Build a tracking number: prefix, YYMMDD, then six random characters."""
    now = now or datetime.now(UTC)
    suffix = "".join(secrets.choice(_TRACKING_NUMBER_ALPHABET) for _ in range(6))
    return f"{prefix}{now:%y%m%d}{suffix}"


def check_proof_refs(proof_refs) -> list[str]:
    """Proof file references as a list; a bare string is refused."""
    if not proof_refs:
        return []
    if not isinstance(proof_refs, (list, tuple)):
        raise ValidationError({"proof_refs": ["Proof references must be a list of file references"]})
    return [str(ref) for ref in proof_refs]


def _check_attempt_details(
    outcome: AttemptOutcome,
    failure_reason,
    recipient_name,
    recipient_details: tuple,
) -> FailureReason | None:
    errors = {}
    reason = None

    if outcome == AttemptOutcome.FAILED:
        if not failure_reason:
            errors["failure_reason"] = ["A failure reason is required for a failed attempt"]
        else:
            reason = parse_failure_reason(failure_reason)
    elif failure_reason:
        errors["failure_reason"] = ["A failure reason is only recorded for a failed attempt"]

    if outcome == AttemptOutcome.SUCCESS:
        if not (recipient_name or "").strip():
            errors["recipient_name"] = ["The recipient name is required for a successful delivery"]
    elif recipient_name or any(recipient_details):
        errors["recipient"] = ["Recipient details are only recorded for a successful delivery"]

    if errors:
        raise ValidationError(errors)
    return reason


def _attempt_message(outcome: AttemptOutcome, reason: FailureReason | None, recipient_name: str | None) -> str:
    if outcome == AttemptOutcome.SUCCESS:
        return f"Delivered to {recipient_name.strip()}"
    if outcome == AttemptOutcome.FAILED:
        return f"Delivery failed, {_FAILURE_REASON_LABELS[reason]}"
    return "Delivery in progress"


# ---------------------------------------------------------------------------
# Value Objects
# ---------------------------------------------------------------------------
@tracking.value_object(part_of="Shipment")
class GeoLocation:
    """Where the courier stood when the attempt was made.

    Both coordinates are required when provided; partial coordinates are rejected.
    """

    latitude = Float(min_value=-90.0, max_value=90.0)
    longitude = Float(min_value=-180.0, max_value=180.0)

    @invariant.post
    def both_coordinates_required(self):
        if self.latitude is None or self.longitude is None:
            raise ValidationError({"geolocation": ["Both latitude and longitude are required"]})


@tracking.value_object(part_of="Shipment")
class Recipient:
    """The person who took the parcel at the door."""

    name = String(required=True, max_length=200)
    relationship = String(max_length=100)
    id_type = String(max_length=50)
    id_number = String(max_length=100)


# ---------------------------------------------------------------------------
# Entities
# ---------------------------------------------------------------------------
@tracking.entity(part_of="Shipment")
class TrackingEvent:
    """A single entry of the shipment's tracking history."""

    sequence = Integer(required=True, min_value=1)
    status = String(required=True, max_length=50, choices=ShipmentStatus)
    previous_status = String(max_length=50, choices=ShipmentStatus)
    location_agency_id = Identifier()
    description = String(max_length=500)
    notes = Text()  # internal, never shown on the public tracking page
    actor_id = Identifier(required=True)
    occurred_at = DateTime(required=True)


@tracking.entity(part_of="Shipment")
class DeliveryAttempt:
    """A physical delivery attempt, numbered from 1 per shipment."""

    attempt_number = Integer(required=True, min_value=1)
    outcome = String(required=True, max_length=20, choices=AttemptOutcome)
    failure_reason = String(max_length=50, choices=FailureReason)
    recipient = ValueObject(Recipient)
    geolocation = ValueObject(GeoLocation)
    proof_refs = Text()  # JSON list of opaque file references
    notes = Text()
    actor_id = Identifier(required=True)
    attempted_at = DateTime(required=True)

    @property
    def proof_references(self) -> list[str]:
        return json.loads(self.proof_refs) if self.proof_refs else []


# ---------------------------------------------------------------------------
# Aggregate Root (CQRS)
# ---------------------------------------------------------------------------
@tracking.aggregate
class Shipment:
    tracking_number = String(required=True, max_length=50, unique=True)
    status = String(
        max_length=50,
        choices=ShipmentStatus,
        default=ShipmentStatus.CREATED.value,
    )
    origin_agency_id = Identifier(required=True)
    destination_agency_id = Identifier(required=True)
    current_location_id = Identifier()
    held_from_status = String(max_length=50, choices=ShipmentStatus)
    tracking_events = HasMany(TrackingEvent)
    delivery_attempts = HasMany(DeliveryAttempt)
    event_count = Integer(default=0)
    attempt_count = Integer(default=0)
    actual_delivery_at = DateTime()
    created_at = DateTime()
    updated_at = DateTime()

    # -------------------------------------------------------------------
    # Invariants
    # -------------------------------------------------------------------
    @invariant.post
    def attempt_numbers_run_from_one_without_gaps(self):
        numbers = sorted(attempt.attempt_number for attempt in self.delivery_attempts)
        if numbers != list(range(1, len(numbers) + 1)) or len(numbers) != (self.attempt_count or 0):
            raise ValidationError({"delivery_attempts": ["Attempt numbers must run from 1 without gaps or duplicates"]})

    @invariant.post
    def held_shipment_remembers_where_it_was_held_from(self):
        on_hold = self.status == ShipmentStatus.ON_HOLD.value
        if on_hold and not self.held_from_status:
            raise ValidationError({"held_from_status": ["A held shipment must record the status it was held from"]})
        if not on_hold and self.held_from_status:
            raise ValidationError({"held_from_status": ["Only a held shipment records a held-from status"]})

    # -------------------------------------------------------------------
    # Factory method
    # -------------------------------------------------------------------
    @classmethod
    def register(
        cls,
        tracking_number: str,
        origin_agency_id: str,
        destination_agency_id: str,
        registered_by: str,
    ):
        """Take in a new shipment at its origin agency."""
        now = datetime.now(UTC)
        shipment = cls(
            tracking_number=tracking_number,
            status=ShipmentStatus.CREATED.value,
            origin_agency_id=origin_agency_id,
            destination_agency_id=destination_agency_id,
            current_location_id=origin_agency_id,
            created_at=now,
            updated_at=now,
        )
        shipment.raise_(
            ShipmentRegistered(
                shipment_id=str(shipment.id),
                tracking_number=tracking_number,
                origin_agency_id=origin_agency_id,
                destination_agency_id=destination_agency_id,
                registered_by=registered_by,
                registered_at=now,
            )
        )
        shipment.append_event(
            ShipmentStatus.CREATED,
            actor_id=registered_by,
            location_agency_id=origin_agency_id,
            occurred_at=now,
        )
        return shipment

    # -------------------------------------------------------------------
    # State helpers
    # -------------------------------------------------------------------
    @property
    def current_status(self) -> ShipmentStatus:
        return ShipmentStatus(self.status)

    @property
    def is_terminal(self) -> bool:
        return self.current_status in TERMINAL_STATUSES

    def allowed_transitions(self) -> set[ShipmentStatus]:
        """Statuses reachable from the current status of this shipment."""
        current = self.current_status
        allowed = set(_VALID_TRANSITIONS[current])
        if current == ShipmentStatus.ON_HOLD and self.held_from_status:
            allowed.add(ShipmentStatus(self.held_from_status))
        return allowed

    def can_transition_to(self, new_status) -> bool:
        return parse_status(new_status) in self.allowed_transitions()

    def _assert_can_transition(self, target_status: ShipmentStatus) -> None:
        if target_status not in self.allowed_transitions():
            raise IllegalTransitionError(self.status, target_status.value)

    # -------------------------------------------------------------------
    # Event log
    # -------------------------------------------------------------------
    def append_event(
        self,
        status,
        actor_id: str,
        location_agency_id: str | None = None,
        description: str | None = None,
        notes: str | None = None,
        previous_status=None,
        occurred_at: datetime | None = None,
    ) -> TrackingEvent:
        """Append an entry to the tracking history.

        Only the history grows: the current status and location are left as
        they are. Use ``apply_transition`` to move the shipment.
        """
        status = parse_status(status)
        previous = parse_status(previous_status) if previous_status is not None else None
        now = occurred_at or datetime.now(UTC)
        sequence = (self.event_count or 0) + 1

        event = TrackingEvent(
            sequence=sequence,
            status=status.value,
            previous_status=previous.value if previous else None,
            location_agency_id=location_agency_id,
            description=description or _STATUS_DESCRIPTIONS[status],
            notes=notes,
            actor_id=actor_id,
            occurred_at=now,
        )
        with atomic_change(self):
            self.add_tracking_events(event)
            self.event_count = sequence

        self.raise_(
            TrackingEventAppended(
                shipment_id=str(self.id),
                tracking_event_id=str(event.id),
                sequence=sequence,
                status=status.value,
                previous_status=event.previous_status,
                location_agency_id=location_agency_id,
                description=event.description,
                actor_id=actor_id,
                occurred_at=now,
            )
        )
        return event

    def events_in_order(self, order: EventOrder = EventOrder.DESCENDING) -> list[TrackingEvent]:
        return sorted(
            self.tracking_events or [],
            key=lambda e: (e.occurred_at, e.sequence),
            reverse=order == EventOrder.DESCENDING,
        )

    def attempts_in_order(self, order: EventOrder = EventOrder.DESCENDING) -> list[DeliveryAttempt]:
        return sorted(
            self.delivery_attempts or [],
            key=lambda a: a.attempt_number,
            reverse=order == EventOrder.DESCENDING,
        )

    # -------------------------------------------------------------------
    # Status transitions
    # -------------------------------------------------------------------
    def apply_transition(
        self,
        new_status,
        actor_id: str,
        location_agency_id: str | None = None,
        description: str | None = None,
        notes: str | None = None,
    ) -> TrackingEvent:
        """Move the shipment to ``new_status`` and record it in the history."""
        target = parse_status(new_status)
        current = self.current_status
        self._assert_can_transition(target)

        now = datetime.now(UTC)
        with atomic_change(self):
            self.status = target.value
            self.held_from_status = current.value if target == ShipmentStatus.ON_HOLD else None
            if location_agency_id:
                self.current_location_id = location_agency_id
            if target == ShipmentStatus.DELIVERED:
                self.actual_delivery_at = now
            self.updated_at = now

        self.raise_(
            ShipmentStatusChanged(
                shipment_id=str(self.id),
                tracking_number=self.tracking_number,
                previous_status=current.value,
                new_status=target.value,
                location_agency_id=self.current_location_id,
                changed_by=actor_id,
                changed_at=now,
            )
        )
        return self.append_event(
            target,
            actor_id=actor_id,
            location_agency_id=self.current_location_id,
            description=description,
            notes=notes,
            previous_status=current,
            occurred_at=now,
        )

    def resume(self, actor_id: str, location_agency_id: str | None = None, notes: str | None = None) -> TrackingEvent:
        """Release a hold, returning the shipment to the status it was held from."""
        if self.current_status != ShipmentStatus.ON_HOLD:
            raise ValidationError({"status": [f"Only a held shipment can be resumed, shipment is {self.status}"]})

        return self.apply_transition(
            self.held_from_status,
            actor_id=actor_id,
            location_agency_id=location_agency_id,
            description="Hold released",
            notes=notes,
        )

    # -------------------------------------------------------------------
    # Delivery attempts
    # -------------------------------------------------------------------
    def record_attempt(
        self,
        outcome,
        actor_id: str,
        failure_reason=None,
        recipient_name: str | None = None,
        recipient_relationship: str | None = None,
        recipient_id_type: str | None = None,
        recipient_id_number: str | None = None,
        latitude: float | None = None,
        longitude: float | None = None,
        proof_refs: list[str] | None = None,
        notes: str | None = None,
    ) -> DeliveryAttempt:
        """Record the next numbered delivery attempt and apply its outcome."""
        outcome = parse_outcome(outcome)
        derived = _OUTCOME_STATUS[outcome]
        current = self.current_status
        if current != ShipmentStatus.OUT_FOR_DELIVERY:
            raise IllegalTransitionError(current.value, derived.value)

        proofs = check_proof_refs(proof_refs)
        reason = _check_attempt_details(
            outcome,
            failure_reason,
            recipient_name,
            (recipient_relationship, recipient_id_type, recipient_id_number),
        )

        recipient = None
        if outcome == AttemptOutcome.SUCCESS:
            recipient = Recipient(
                name=recipient_name.strip(),
                relationship=recipient_relationship,
                id_type=recipient_id_type,
                id_number=recipient_id_number,
            )
        geolocation = None
        if latitude is not None or longitude is not None:
            geolocation = GeoLocation(latitude=latitude, longitude=longitude)

        now = datetime.now(UTC)
        number = (self.attempt_count or 0) + 1
        attempt = DeliveryAttempt(
            attempt_number=number,
            outcome=outcome.value,
            failure_reason=reason.value if reason else None,
            recipient=recipient,
            geolocation=geolocation,
            proof_refs=json.dumps(proofs) if proofs else None,
            notes=notes,
            actor_id=actor_id,
            attempted_at=now,
        )
        with atomic_change(self):
            self.add_delivery_attempts(attempt)
            self.attempt_count = number

        self.raise_(
            DeliveryAttempted(
                shipment_id=str(self.id),
                attempt_id=str(attempt.id),
                attempt_number=number,
                outcome=outcome.value,
                failure_reason=attempt.failure_reason,
                recipient_name=recipient.name if recipient else None,
                notes=notes,
                attempted_by=actor_id,
                attempted_at=now,
            )
        )

        description = f"Attempt #{number}: {_attempt_message(outcome, reason, recipient_name)}"
        if derived == current:
            self.append_event(
                current,
                actor_id=actor_id,
                location_agency_id=self.current_location_id,
                description=description,
                notes=notes,
                occurred_at=now,
            )
        else:
            self.apply_transition(derived, actor_id=actor_id, description=description, notes=notes)
        return attempt

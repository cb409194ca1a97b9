"""Tests for delivery attempts on the Shipment aggregate."""

import pytest
from protean.exceptions import ValidationError
from tracking.shipment.errors import IllegalTransitionError
from tracking.shipment.events import DeliveryAttempted
from tracking.shipment.shipment import (
    AttemptOutcome,
    Shipment,
    ShipmentStatus,
    status_for_outcome,
)


def _out_for_delivery():
    shipment = Shipment.register(
        tracking_number="RDC250101XYZ789",
        origin_agency_id="agency-origin",
        destination_agency_id="agency-dest",
        registered_by="clerk-1",
    )
    for status in ("IN_TRANSIT", "ARRIVED", "OUT_FOR_DELIVERY"):
        shipment.apply_transition(status, actor_id="agent-1", location_agency_id="agency-dest")
    return shipment


class TestOutcomeStatus:
    def test_outcome_mapping(self):
        assert status_for_outcome("SUCCESS") == ShipmentStatus.DELIVERED
        assert status_for_outcome("FAILED") == ShipmentStatus.FAILED_DELIVERY
        assert status_for_outcome(AttemptOutcome.PENDING) == ShipmentStatus.OUT_FOR_DELIVERY

    def test_unknown_outcome(self):
        with pytest.raises(ValidationError) as exc:
            status_for_outcome("MAYBE")
        assert "Unknown attempt outcome" in str(exc.value)


class TestAttemptOutcomes:
    def test_failed_attempt_moves_to_failed_delivery(self):
        shipment = _out_for_delivery()
        attempt = shipment.record_attempt("FAILED", actor_id="courier-1", failure_reason="ABSENT")

        assert attempt.attempt_number == 1
        assert attempt.failure_reason == "ABSENT"
        assert shipment.status == ShipmentStatus.FAILED_DELIVERY.value
        assert shipment.attempt_count == 1

    def test_successful_attempt_delivers(self):
        shipment = _out_for_delivery()
        attempt = shipment.record_attempt(
            "SUCCESS",
            actor_id="courier-1",
            recipient_name="J. Dupont",
            recipient_relationship="Self",
            recipient_id_type="CNI",
            recipient_id_number="123456",
        )

        assert shipment.status == ShipmentStatus.DELIVERED.value
        assert shipment.actual_delivery_at is not None
        assert attempt.recipient.name == "J. Dupont"
        assert attempt.recipient.id_type == "CNI"

    def test_pending_attempt_keeps_status_and_logs_event(self):
        shipment = _out_for_delivery()
        events_before = len(shipment.tracking_events)

        shipment.record_attempt("PENDING", actor_id="courier-1", notes="Gate locked, waiting")

        assert shipment.status == ShipmentStatus.OUT_FOR_DELIVERY.value
        assert len(shipment.tracking_events) == events_before + 1
        latest = shipment.events_in_order()[0]
        assert latest.status == ShipmentStatus.OUT_FOR_DELIVERY.value
        assert latest.description == "Attempt #1: Delivery in progress"

    def test_each_attempt_yields_one_matching_event(self):
        shipment = _out_for_delivery()
        events_before = len(shipment.tracking_events)

        shipment.record_attempt("FAILED", actor_id="courier-1", failure_reason="REFUSED")

        assert len(shipment.tracking_events) == events_before + 1
        latest = shipment.events_in_order()[0]
        assert latest.status == shipment.status
        assert latest.description == "Attempt #1: Delivery failed, refused by the recipient"
        assert latest.previous_status == ShipmentStatus.OUT_FOR_DELIVERY.value

    def test_success_event_names_recipient(self):
        shipment = _out_for_delivery()
        shipment.record_attempt("SUCCESS", actor_id="courier-1", recipient_name="  J. Dupont ")
        assert shipment.events_in_order()[0].description == "Attempt #1: Delivered to J. Dupont"

    def test_attempt_raises_delivery_attempted(self):
        shipment = _out_for_delivery()
        shipment._events.clear()
        attempt = shipment.record_attempt("FAILED", actor_id="courier-1", failure_reason="BUSINESS_CLOSED")

        attempted = [e for e in shipment._events if isinstance(e, DeliveryAttempted)]
        assert len(attempted) == 1
        assert attempted[0].attempt_id == str(attempt.id)
        assert attempted[0].attempt_number == 1
        assert attempted[0].failure_reason == "BUSINESS_CLOSED"


class TestAttemptNumbering:
    def test_numbers_run_from_one(self):
        shipment = _out_for_delivery()
        for _ in range(3):
            shipment.record_attempt("FAILED", actor_id="courier-1", failure_reason="ABSENT")
            shipment.apply_transition("OUT_FOR_DELIVERY", actor_id="courier-1")

        numbers = sorted(a.attempt_number for a in shipment.delivery_attempts)
        assert numbers == [1, 2, 3]
        assert shipment.attempt_count == 3

    def test_attempts_in_order(self):
        shipment = _out_for_delivery()
        shipment.record_attempt("PENDING", actor_id="courier-1")
        shipment.record_attempt("FAILED", actor_id="courier-1", failure_reason="OTHER")

        assert [a.attempt_number for a in shipment.attempts_in_order()] == [2, 1]


class TestAttemptPreconditions:
    def test_attempt_after_failure_requires_out_for_delivery(self):
        shipment = _out_for_delivery()
        shipment.record_attempt("FAILED", actor_id="courier-1", failure_reason="ABSENT")

        with pytest.raises(IllegalTransitionError) as exc:
            shipment.record_attempt("SUCCESS", actor_id="courier-1", recipient_name="J. Dupont")

        assert exc.value.current_status == "FAILED_DELIVERY"
        assert exc.value.target_status == "DELIVERED"
        assert shipment.attempt_count == 1
        assert shipment.status == ShipmentStatus.FAILED_DELIVERY.value

    def test_retry_after_re_entering_out_for_delivery(self):
        shipment = _out_for_delivery()
        shipment.record_attempt("FAILED", actor_id="courier-1", failure_reason="ABSENT")
        shipment.apply_transition("OUT_FOR_DELIVERY", actor_id="courier-2")

        attempt = shipment.record_attempt("SUCCESS", actor_id="courier-2", recipient_name="J. Dupont")

        assert attempt.attempt_number == 2
        assert shipment.status == ShipmentStatus.DELIVERED.value

    def test_attempt_on_created_shipment_is_illegal(self):
        shipment = Shipment.register(
            tracking_number="RDC250101NEW001",
            origin_agency_id="a",
            destination_agency_id="b",
            registered_by="clerk-1",
        )
        with pytest.raises(IllegalTransitionError):
            shipment.record_attempt("PENDING", actor_id="courier-1")
        assert shipment.delivery_attempts == []


class TestAttemptDetails:
    def test_failed_requires_reason(self):
        shipment = _out_for_delivery()
        with pytest.raises(ValidationError) as exc:
            shipment.record_attempt("FAILED", actor_id="courier-1")
        assert "failure_reason" in exc.value.messages
        assert shipment.attempt_count == 0
        assert shipment.status == ShipmentStatus.OUT_FOR_DELIVERY.value

    def test_failed_reason_must_be_known(self):
        shipment = _out_for_delivery()
        with pytest.raises(ValidationError) as exc:
            shipment.record_attempt("FAILED", actor_id="courier-1", failure_reason="DOG")
        assert "Unknown failure reason" in str(exc.value)

    def test_success_requires_recipient_name(self):
        shipment = _out_for_delivery()
        with pytest.raises(ValidationError) as exc:
            shipment.record_attempt("SUCCESS", actor_id="courier-1", recipient_name="   ")
        assert "recipient_name" in exc.value.messages

    def test_reason_only_for_failed_attempts(self):
        shipment = _out_for_delivery()
        with pytest.raises(ValidationError) as exc:
            shipment.record_attempt(
                "SUCCESS",
                actor_id="courier-1",
                recipient_name="J. Dupont",
                failure_reason="ABSENT",
            )
        assert "failure_reason" in exc.value.messages

    def test_recipient_only_for_successful_attempts(self):
        shipment = _out_for_delivery()
        with pytest.raises(ValidationError) as exc:
            shipment.record_attempt(
                "FAILED",
                actor_id="courier-1",
                failure_reason="ABSENT",
                recipient_id_number="123",
            )
        assert "recipient" in exc.value.messages

    def test_geolocation_and_proofs(self):
        shipment = _out_for_delivery()
        attempt = shipment.record_attempt(
            "SUCCESS",
            actor_id="courier-1",
            recipient_name="J. Dupont",
            latitude=5.3599,
            longitude=-4.0083,
            proof_refs=["photos/door.jpg", "signatures/sig-1.png"],
        )
        assert attempt.geolocation.latitude == 5.3599
        assert attempt.geolocation.longitude == -4.0083
        assert attempt.proof_references == ["photos/door.jpg", "signatures/sig-1.png"]

    def test_single_proof_string_rejected(self):
        shipment = _out_for_delivery()
        with pytest.raises(ValidationError) as exc:
            shipment.record_attempt("PENDING", actor_id="courier-1", proof_refs="photo.jpg")

        assert "proof_refs" in exc.value.messages
        assert shipment.attempt_count == 0
        assert shipment.status == ShipmentStatus.OUT_FOR_DELIVERY.value

    def test_partial_geolocation_rejected(self):
        shipment = _out_for_delivery()
        with pytest.raises(ValidationError):
            shipment.record_attempt("PENDING", actor_id="courier-1", latitude=5.36)

    def test_out_of_range_latitude_rejected(self):
        shipment = _out_for_delivery()
        with pytest.raises(ValidationError):
            shipment.record_attempt("PENDING", actor_id="courier-1", latitude=95.0, longitude=0.0)

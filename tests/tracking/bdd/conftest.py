"""Shared BDD fixtures and step definitions for the Tracking domain."""

from pytest_bdd import given, parsers, then, when
from tracking import lifecycle


# ---------------------------------------------------------------------------
# Given steps
# ---------------------------------------------------------------------------
@given(
    parsers.cfparse('a shipment "{tracking_number}" registered at agency "{agency}"'),
    target_fixture="shipment",
)
def registered_shipment(tracking_number, agency):
    result = lifecycle.register_shipment(
        origin_agency_id=agency,
        destination_agency_id="agency-b",
        actor_id="clerk-bdd",
        tracking_number=tracking_number,
    )
    assert result.ok, result.error
    return result.value


# ---------------------------------------------------------------------------
# When steps
# ---------------------------------------------------------------------------
@when(
    parsers.cfparse('agent "{actor}" scans "{tracking_number}" as "{status}" at "{agency}"'),
    target_fixture="result",
)
def scan(actor, tracking_number, status, agency):
    return lifecycle.scan(tracking_number, status, agency, actor)


@when(
    parsers.cfparse('courier "{actor}" records a failed attempt on "{tracking_number}" because "{reason}"'),
    target_fixture="result",
)
def failed_attempt(actor, tracking_number, reason):
    return lifecycle.record_delivery_attempt(tracking_number, "FAILED", {"failure_reason": reason}, actor)


# ---------------------------------------------------------------------------
# Then steps
# ---------------------------------------------------------------------------
@then("the scan succeeds")
def scan_succeeds(result):
    assert result.ok, result.error


@then(parsers.cfparse('shipment "{tracking_number}" is "{status}"'))
def shipment_status_is(tracking_number, status):
    history = lifecycle.get_shipment_with_history(tracking_number)
    assert history.value.shipment.status == status


@then(parsers.cfparse('the request fails with "{kind}"'))
def request_fails_with(result, kind):
    assert not result.ok, "Expected the request to fail"
    assert result.error.kind.value == kind


@then(parsers.cfparse("attempt #{number:d} is recorded"))
def attempt_recorded(result, number):
    assert result.ok, result.error
    assert result.value.attempt_number == number

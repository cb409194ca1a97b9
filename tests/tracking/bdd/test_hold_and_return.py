"""BDD tests for holds and returns."""

from pytest_bdd import parsers, scenarios, when
from tracking import lifecycle

scenarios("features/hold_and_return.feature")


@when(
    parsers.cfparse('clerk "{actor}" releases the hold on "{tracking_number}"'),
    target_fixture="result",
)
def release_hold(actor, tracking_number):
    return lifecycle.resume(tracking_number, actor)


@when(
    parsers.cfparse('clerk "{actor}" marks "{tracking_number}" as returned'),
    target_fixture="result",
)
def mark_returned(actor, tracking_number):
    return lifecycle.mark_returned(tracking_number, actor)

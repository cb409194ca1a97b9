"""Tracking bounded context — Shipment Lifecycle.

Advances postal shipments through their delivery states and keeps the
append-only history of everything that happened to them: scans, delivery
attempts, holds and returns. CQRS (not event sourced): the shipment row is the
single source of truth for the current status, and its tracking events and
delivery attempts are stored alongside it in the same unit of work.
"""

from protean.domain import Domain

from tracking.utils.logging import configure_logging, get_logger

# Configure logging for the application
configure_logging()

logger = get_logger(__name__)

# Domain Composition Root
tracking = Domain(name="tracking")

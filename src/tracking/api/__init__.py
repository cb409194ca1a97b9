"""Tracking domain API package."""

from tracking.api.routes import public_router, scan_router, shipment_router

__all__ = ["shipment_router", "scan_router", "public_router"]

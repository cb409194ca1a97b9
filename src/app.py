"""Postal tracking FastAPI application.

Web server for the shipment lifecycle: intake, scans, delivery attempts,
returns and the public tracking page. Commands are processed synchronously.

Usage:
    uvicorn src.app:app --host 0.0.0.0 --port 8000 --reload
"""

# ---------------------------------------------------------------------------
# Domain initialization
# ---------------------------------------------------------------------------
# The domain is initialized at module level so uvicorn workers share it.
# PROTEAN_ENV controls which config overlay is applied:
#   - "test"       → in-memory database, sync event processing
#   - "production" → PostgreSQL (DATABASE_URL), async event processing
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from protean.integrations.fastapi import register_exception_handlers
from tracking.domain import tracking  # noqa: E402

tracking.init()

# ---------------------------------------------------------------------------
# Route-to-domain mapping
# ---------------------------------------------------------------------------
_TRACKING_PREFIXES = ("/shipments", "/scans", "/track")


# ---------------------------------------------------------------------------
# FastAPI app
# ---------------------------------------------------------------------------
app = FastAPI(
    title="Postal Tracking API",
    description="Shipment lifecycle — scans, delivery attempts and tracking history",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

register_exception_handlers(app)


@app.middleware("http")
async def domain_context_middleware(request: Request, call_next):
    """Push the tracking domain context for every tracking request."""
    if request.url.path.startswith(_TRACKING_PREFIXES):
        with tracking.domain_context():
            response = await call_next(request)
        return response
    # Health check and docs run without a domain context
    return await call_next(request)


# ---------------------------------------------------------------------------
# Routers
# ---------------------------------------------------------------------------
from tracking.api import public_router, scan_router, shipment_router  # noqa: E402

app.include_router(shipment_router)
app.include_router(scan_router)
app.include_router(public_router)


# ---------------------------------------------------------------------------
# Health / root
# ---------------------------------------------------------------------------
@app.get("/health")
async def health():
    return JSONResponse(
        content={
            "status": "ok",
            "domains": {"tracking": {"name": tracking.name}},
        }
    )

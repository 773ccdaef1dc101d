"""FastAPI application for square booking payment confirmation.

Provides REST endpoints for:
- Health check
- Stripe Checkout start, success and cancel pages
- Stripe webhook receiver
"""

import logging
from datetime import UTC, datetime
from typing import Any

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from mangum import Mangum

from squarebooking.utils.logging import CorrelationIdFilter, StructuredFormatter
from squarebooking_api.exceptions import register_exception_handlers
from squarebooking_api.middleware.correlation import CorrelationIdMiddleware
from squarebooking_api.routes.payments import router as payments_router
from squarebooking_api.routes.webhooks import router as webhooks_router

logging.basicConfig(level=logging.INFO)
for _handler in logging.getLogger().handlers:
    _handler.addFilter(CorrelationIdFilter())
    _handler.setFormatter(StructuredFormatter("%(levelname)s %(name)s %(message)s"))

logger = logging.getLogger(__name__)

app = FastAPI(
    title="Square Booking Payments API",
    description="Stripe payment confirmation for square bookings",
    version="0.1.0",
)

# Configure CORS for local development
app.add_middleware(
    CORSMiddleware,
    allow_origins=["http://localhost:3000", "http://127.0.0.1:3000"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
app.add_middleware(CorrelationIdMiddleware)

register_exception_handlers(app)

app.include_router(payments_router, prefix="/api")
app.include_router(webhooks_router, prefix="/api")


@app.get("/api/ping")
async def ping() -> dict[str, Any]:
    """Health check endpoint at /api/ping."""
    return {
        "status": "ok",
        "timestamp": datetime.now(UTC).isoformat(),
        "service": "squarebooking-payments",
    }


# AWS Lambda entry point behind API Gateway
handler = Mangum(app, lifespan="off")


def run_server(host: str = "0.0.0.0", port: int = 8080, reload: bool = True) -> None:
    """Serve the app locally with uvicorn."""
    import uvicorn

    if reload:
        uvicorn.run(
            "squarebooking_api.main:app",
            host=host,
            port=port,
            reload=True,
            reload_dirs=["src"],
        )
    else:
        uvicorn.run(app, host=host, port=port)


if __name__ == "__main__":
    run_server()

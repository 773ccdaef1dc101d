"""API routes package.

- payments: success/cancel pages and checkout session creation
- webhooks: Stripe webhook receiver

All routers are registered in main.py with /api prefix.
"""

from squarebooking_api.routes.payments import router as payments_router
from squarebooking_api.routes.webhooks import router as webhooks_router

__all__ = [
    "payments_router",
    "webhooks_router",
]

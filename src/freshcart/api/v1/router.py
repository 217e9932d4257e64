"""API main router.

Aggregates all API routers into a single router for inclusion in the app.
"""

from fastapi import APIRouter

from freshcart.api.v1.admin import router as admin_router
from freshcart.api.v1.external import router as external_router
from freshcart.api.v1.products import router as products_router
from freshcart.api.v1.webhooks import router as webhooks_router

router = APIRouter()

# Include sub-routers
router.include_router(products_router, prefix="/products", tags=["Products"])
router.include_router(webhooks_router, prefix="/webhook", tags=["Webhooks"])
router.include_router(external_router, prefix="/external", tags=["External"])
router.include_router(admin_router, prefix="/admin", tags=["Admin"])

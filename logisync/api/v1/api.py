from fastapi import APIRouter
from logisync.api.v1.endpoints.logistics import driver_shipments, driver_tracking, shipments
from logisync.api.v1.endpoints.public import tracking
from logisync.api.v1.endpoints.sales import orders

api_router = APIRouter()

# Driver app routes
api_router.include_router(driver_tracking.router, prefix="/driver/tracking", tags=["Driver"])
api_router.include_router(driver_shipments.router, prefix="/driver", tags=["Driver"])

# Back office routes
api_router.include_router(shipments.router, prefix="/shipments", tags=["Logistics"])
api_router.include_router(orders.router, prefix="/orders", tags=["Sales"])

# Public routes
api_router.include_router(tracking.router, prefix="/track", tags=["Tracking"])

# logisync/api/v1/endpoints/logistics/driver_shipments.py
import logging
from fastapi import APIRouter, Depends, HTTPException, status, Query

from logisync.api.dependencies import Principal, ensure_same_driver, get_shipment_service, require_driver
from logisync.schemas.logistics.route_schema import RouteResponse
from logisync.schemas.logistics.shipment_schema import (
    DriverShipmentsResponse, ExceptionReport, ExceptionReportResponse,
    PackageStatusUpdate, StatusUpdateResponse
)
from logisync.services.logistics.shipment_service import ShipmentService

router = APIRouter()
logger = logging.getLogger(__name__)

@router.patch("/shipments/{tracking_id}/status", response_model=StatusUpdateResponse)
async def update_package_status(
    tracking_id: str,
    status_data: PackageStatusUpdate,
    principal: Principal = Depends(require_driver),
    shipment_service: ShipmentService = Depends(get_shipment_service)
):
    """Update the status of a package carried by the driver"""
    try:
        driver_id = ensure_same_driver(principal, status_data.driver_id)
        return await shipment_service.update_package_status(
            tracking_id,
            driver_id,
            status_data.status,
            status_data.location,
            status_data.notes
        )
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error updating package {tracking_id}: {str(e)}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to update package status"
        )

@router.post("/shipments/{shipment_id}/exception", response_model=ExceptionReportResponse)
async def report_shipment_exception(
    shipment_id: str,
    report: ExceptionReport,
    principal: Principal = Depends(require_driver),
    shipment_service: ShipmentService = Depends(get_shipment_service)
):
    """Flag every undelivered package of a shipment as an exception"""
    try:
        driver_id = ensure_same_driver(principal, report.driver_id)
        return await shipment_service.report_shipment_exception(
            shipment_id, driver_id, report.location, report.description
        )
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error reporting exception on shipment {shipment_id}: {str(e)}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to report exception"
        )

@router.get("/shipments", response_model=DriverShipmentsResponse)
async def get_driver_shipments(
    principal: Principal = Depends(require_driver),
    shipment_service: ShipmentService = Depends(get_shipment_service)
):
    """Active shipments assigned to the driver, with vehicle load"""
    try:
        return await shipment_service.get_driver_shipments(principal.user_id)
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error getting shipments for driver {principal.user_id}: {str(e)}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to retrieve driver shipments"
        )

@router.get("/route", response_model=RouteResponse)
async def get_driver_route(
    latitude: float = Query(..., ge=-90, le=90, description="Driver's current latitude"),
    longitude: float = Query(..., ge=-180, le=180, description="Driver's current longitude"),
    principal: Principal = Depends(require_driver),
    shipment_service: ShipmentService = Depends(get_shipment_service)
):
    """Nearest-neighbour delivery order from the driver's current position"""
    try:
        return await shipment_service.get_driver_route(principal.user_id, latitude, longitude)
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error planning route for driver {principal.user_id}: {str(e)}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to plan route"
        )

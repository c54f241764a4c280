# logisync/api/v1/endpoints/logistics/shipments.py
import logging
from fastapi import APIRouter, Depends, HTTPException, status, Query

from logisync.api.dependencies import (
    Principal, ensure_same_driver, get_current_principal, get_location_reporter,
    get_shipment_service, require_driver, require_staff
)
from logisync.schemas.logistics.gps_schema import (
    GpsLocationResponse, LocationHistoryResponse, LocationRecordedResponse, LocationSample
)
from logisync.schemas.logistics.shipment_schema import (
    ShipmentDetailResponse, StaffStatusUpdate, StatusUpdateResponse
)
from logisync.services.logistics.location_reporter import LocationReporter
from logisync.services.logistics.shipment_service import ShipmentService

router = APIRouter()
logger = logging.getLogger(__name__)

@router.patch("/packages/{tracking_id}/status", response_model=StatusUpdateResponse)
async def override_package_status(
    tracking_id: str,
    status_data: StaffStatusUpdate,
    principal: Principal = Depends(require_staff),
    shipment_service: ShipmentService = Depends(get_shipment_service)
):
    """Correct a package status from the back office"""
    try:
        return await shipment_service.override_package_status(
            tracking_id,
            principal.organization_id,
            status_data.status,
            status_data.location,
            status_data.notes,
            force=status_data.force,
            user_id=principal.user_id
        )
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error overriding package {tracking_id}: {str(e)}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to update package status"
        )

@router.get("/{shipment_id}", response_model=ShipmentDetailResponse)
async def get_shipment(
    shipment_id: str,
    principal: Principal = Depends(get_current_principal),
    shipment_service: ShipmentService = Depends(get_shipment_service)
):
    """Get detailed shipment information by ID"""
    try:
        return await shipment_service.get_shipment(shipment_id, principal.organization_id)
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error getting shipment {shipment_id}: {str(e)}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to retrieve shipment"
        )

@router.post("/{shipment_id}/location", response_model=LocationRecordedResponse)
async def record_shipment_location(
    shipment_id: str,
    sample: LocationSample,
    principal: Principal = Depends(require_driver),
    reporter: LocationReporter = Depends(get_location_reporter)
):
    """Store one GPS sample for a shipment"""
    try:
        driver_id = ensure_same_driver(principal, sample.driver_id)
        return await reporter.record_shipment_location(
            shipment_id, principal.organization_id, driver_id, sample, role=principal.role
        )
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error recording location for shipment {shipment_id}: {str(e)}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to record location"
        )

@router.get("/{shipment_id}/location", response_model=GpsLocationResponse)
async def get_latest_location(
    shipment_id: str,
    principal: Principal = Depends(get_current_principal),
    reporter: LocationReporter = Depends(get_location_reporter)
):
    try:
        return await reporter.latest_location(shipment_id, principal.organization_id)
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error getting location for shipment {shipment_id}: {str(e)}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to retrieve location"
        )

@router.get("/{shipment_id}/location/history", response_model=LocationHistoryResponse)
async def get_location_history(
    shipment_id: str,
    limit: int = Query(100, ge=1, le=1000),
    principal: Principal = Depends(get_current_principal),
    reporter: LocationReporter = Depends(get_location_reporter)
):
    try:
        return await reporter.location_history(shipment_id, principal.organization_id, limit)
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error getting location history for shipment {shipment_id}: {str(e)}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to retrieve location history"
        )

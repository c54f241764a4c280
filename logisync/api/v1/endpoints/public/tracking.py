# logisync/api/v1/endpoints/public/tracking.py
import logging
from fastapi import APIRouter, Depends, HTTPException, status

from logisync.api.dependencies import get_shipment_service
from logisync.schemas.logistics.shipment_schema import PublicTrackingResponse
from logisync.services.logistics.shipment_service import ShipmentService

router = APIRouter()
logger = logging.getLogger(__name__)

@router.get("/{tracking_number}", response_model=PublicTrackingResponse)
async def track_package(
    tracking_number: str,
    shipment_service: ShipmentService = Depends(get_shipment_service)
):
    """Public package tracking, no authentication"""
    try:
        return await shipment_service.track_by_tracking_number(tracking_number)
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error tracking {tracking_number}: {str(e)}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to retrieve tracking information"
        )

# logisync/api/v1/endpoints/sales/orders.py
import logging
from fastapi import APIRouter, Depends, HTTPException, status

from logisync.api.dependencies import Principal, get_shipment_service, require_staff
from logisync.schemas.logistics.shipment_schema import ShipmentCreatedResponse, ShipmentFromOrderCreate
from logisync.services.logistics.shipment_service import ShipmentService

router = APIRouter()
logger = logging.getLogger(__name__)

@router.post("/{order_id}/shipment", response_model=ShipmentCreatedResponse, status_code=status.HTTP_201_CREATED)
async def create_shipment_from_order(
    order_id: int,
    shipment_data: ShipmentFromOrderCreate,
    principal: Principal = Depends(require_staff),
    shipment_service: ShipmentService = Depends(get_shipment_service)
):
    """Create a shipment for a fulfilled order"""
    try:
        return await shipment_service.create_shipment_from_order(
            order_id, principal.organization_id, shipment_data, principal.user_id
        )
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error creating shipment for order {order_id}: {str(e)}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to create shipment"
        )

# logisync/api/v1/endpoints/logistics/driver_tracking.py
import logging
from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from logisync.api.dependencies import Principal, ensure_same_driver, get_location_reporter, require_driver
from logisync.core.database import get_async_session
from logisync.schemas.logistics.gps_schema import (
    FanOutResult, LocationSample, TrackingStart, TrackingStartResponse,
    TrackingStatusResponse, TrackingStopResponse
)
from logisync.services.logistics.location_reporter import LocationReporter
from logisync.services.logistics.tracking_session_service import TrackingSessionService
from logisync.services.notification.event_publisher import EventPublisher, get_event_publisher

router = APIRouter()
logger = logging.getLogger(__name__)

@router.post("/start", response_model=TrackingStartResponse)
async def start_tracking(
    start_data: TrackingStart,
    principal: Principal = Depends(require_driver),
    session: AsyncSession = Depends(get_async_session),
    reporter: LocationReporter = Depends(get_location_reporter),
    publisher: EventPublisher = Depends(get_event_publisher)
):
    """Start GPS tracking; every package must be picked up first"""
    try:
        driver_id = ensure_same_driver(principal, start_data.driver_id)
        return await TrackingSessionService(session).start_tracking(
            driver_id,
            principal.organization_id,
            start_data.latitude,
            start_data.longitude,
            reporter=reporter,
            publisher=publisher
        )
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error starting tracking: {str(e)}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to start tracking"
        )

@router.post("/stop", response_model=TrackingStopResponse)
async def stop_tracking(
    principal: Principal = Depends(require_driver),
    session: AsyncSession = Depends(get_async_session)
):
    """Stop GPS tracking"""
    try:
        record = await TrackingSessionService(session).stop_tracking(principal.user_id)
        if record is None:
            return {"message": "No active tracking session", "session": None}
        return {"message": "Tracking stopped", "session": record}
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error stopping tracking: {str(e)}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to stop tracking"
        )

@router.get("", response_model=TrackingStatusResponse)
async def get_tracking_state(
    principal: Principal = Depends(require_driver),
    session: AsyncSession = Depends(get_async_session)
):
    """Whether the driver's tracking session is active"""
    try:
        return await TrackingSessionService(session).get_tracking_state(principal.user_id)
    except Exception as e:
        logger.error(f"Error getting tracking state: {str(e)}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to retrieve tracking state"
        )

@router.post("/location", response_model=FanOutResult)
async def report_location(
    sample: LocationSample,
    principal: Principal = Depends(require_driver),
    reporter: LocationReporter = Depends(get_location_reporter)
):
    """Record the driver's position on every shipment currently on board"""
    try:
        driver_id = ensure_same_driver(principal, sample.driver_id)
        return await reporter.report_location(driver_id, sample)
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error reporting location: {str(e)}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to report location"
        )

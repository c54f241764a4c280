# logisync/services/logistics/location_reporter.py
import asyncio
import logging
from datetime import datetime
from typing import Any, Awaitable, Callable, Dict, List, Optional, Union

from fastapi import HTTPException, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from logisync.core.config import settings
from logisync.core.database import get_session_factory
from logisync.core.exceptions import NotFoundError, NotFoundOrForbiddenError, TrackingRequiredError
from logisync.models.logistics.gps_location import GpsLocation
from logisync.models.logistics.package import Package
from logisync.models.logistics.shipment import Shipment
from logisync.models.shared.enums import UserRole
from logisync.schemas.logistics.gps_schema import LocationSample
from logisync.services.logistics.status_machine import ACTIVE_STATUSES
from logisync.services.logistics.tracking_session_service import TrackingSessionService
from logisync.utils.date_time import utcnow

logger = logging.getLogger(__name__)

SampleInput = Union[LocationSample, Dict[str, Any]]


def _as_sample(sample: SampleInput) -> LocationSample:
    if isinstance(sample, LocationSample):
        return sample
    return LocationSample(**sample)


class LocationReporter:
    """Store driver GPS samples against shipments.

    A driver sample is fanned out to every shipment the driver is actively
    carrying packages for. Each insert runs in its own session so one
    failing shipment never blocks or rolls back the others.
    """

    def __init__(self, session_factory: Optional[async_sessionmaker] = None):
        self.session_factory = session_factory or get_session_factory()

    async def _active_shipment_ids(self, session: AsyncSession, driver_id: int) -> List[str]:
        result = await session.execute(
            select(Shipment.id)
            .join(Package, Package.shipment_id == Shipment.id)
            .where(
                Shipment.driver_id == driver_id,
                Shipment.is_deleted == False,
                Package.is_deleted == False,
                Package.status.in_(list(ACTIVE_STATUSES))
            )
            .distinct()
            .order_by(Shipment.id)
        )
        return list(result.scalars().all())

    async def _store_sample(
        self,
        shipment_id: str,
        driver_id: int,
        sample: LocationSample,
        recorded_at: datetime
    ) -> GpsLocation:
        async with self.session_factory() as session:
            location = GpsLocation(
                shipment_id=shipment_id,
                driver_id=driver_id,
                latitude=sample.latitude,
                longitude=sample.longitude,
                speed=sample.speed,
                accuracy=sample.accuracy,
                recorded_at=recorded_at
            )
            session.add(location)
            await session.commit()
            return location

    async def report_to_shipments(
        self,
        driver_id: int,
        shipment_ids: List[str],
        sample: SampleInput
    ) -> Dict[str, Any]:
        """Insert the sample for each shipment concurrently, collecting per-shipment failures"""
        sample = _as_sample(sample)
        recorded_at = utcnow()
        results = await asyncio.gather(
            *(self._store_sample(shipment_id, driver_id, sample, recorded_at) for shipment_id in shipment_ids),
            return_exceptions=True
        )

        delivered = []
        failed = []
        for shipment_id, outcome in zip(shipment_ids, results):
            if isinstance(outcome, BaseException):
                logger.error(f"GPS sample for shipment {shipment_id} failed: {str(outcome)}")
                failed.append({"shipment_id": shipment_id, "error": str(outcome) or outcome.__class__.__name__})
            else:
                delivered.append(shipment_id)
        return {"delivered": delivered, "failed": failed}

    async def report_location(self, driver_id: int, sample: SampleInput) -> Dict[str, Any]:
        """Fan a driver's sample out to all shipments with packages on board"""
        sample = _as_sample(sample)
        async with self.session_factory() as session:
            sessions = TrackingSessionService(session)
            if not await sessions.is_tracking_active(driver_id):
                raise TrackingRequiredError("GPS tracking is not active")
            shipment_ids = await self._active_shipment_ids(session, driver_id)
            await sessions.touch(driver_id)

        if not shipment_ids:
            logger.debug(f"Driver {driver_id} has no active shipments to report to")
        return await self.report_to_shipments(driver_id, shipment_ids, sample)

    async def _get_org_shipment(self, session: AsyncSession, shipment_id: str, organization_id: int) -> Shipment:
        result = await session.execute(
            select(Shipment).where(
                Shipment.id == shipment_id,
                Shipment.organization_id == organization_id,
                Shipment.is_deleted == False
            )
        )
        shipment = result.scalar_one_or_none()
        if not shipment:
            raise NotFoundError("Shipment not found")
        return shipment

    async def record_shipment_location(
        self,
        shipment_id: str,
        organization_id: int,
        driver_id: int,
        sample: SampleInput,
        role: str = UserRole.DRIVER.value
    ) -> Dict[str, Any]:
        """Store one sample for one shipment"""
        sample = _as_sample(sample)
        try:
            async with self.session_factory() as session:
                shipment = await self._get_org_shipment(session, shipment_id, organization_id)
                if role == UserRole.DRIVER.value and shipment.driver_id != driver_id:
                    raise NotFoundOrForbiddenError("Shipment not found or access denied")

                recorded_at = utcnow()
                session.add(GpsLocation(
                    shipment_id=shipment_id,
                    driver_id=driver_id,
                    latitude=sample.latitude,
                    longitude=sample.longitude,
                    speed=sample.speed,
                    accuracy=sample.accuracy,
                    recorded_at=recorded_at
                ))
                await session.commit()
                await TrackingSessionService(session).touch(driver_id, recorded_at)

            return {
                "message": "Location updated successfully",
                "location": {"latitude": sample.latitude, "longitude": sample.longitude},
            }

        except HTTPException:
            raise
        except Exception as e:
            logger.error(f"Error recording location for shipment {shipment_id}: {str(e)}")
            raise HTTPException(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                detail="Failed to record location"
            )

    async def latest_location(self, shipment_id: str, organization_id: int) -> GpsLocation:
        async with self.session_factory() as session:
            await self._get_org_shipment(session, shipment_id, organization_id)
            result = await session.execute(
                select(GpsLocation)
                .where(GpsLocation.shipment_id == shipment_id)
                .order_by(GpsLocation.recorded_at.desc(), GpsLocation.id.desc())
                .limit(1)
            )
            location = result.scalar_one_or_none()
            if location is None:
                raise NotFoundError("No location data available")
            return location

    async def location_history(self, shipment_id: str, organization_id: int, limit: int = 100) -> Dict[str, Any]:
        async with self.session_factory() as session:
            await self._get_org_shipment(session, shipment_id, organization_id)
            result = await session.execute(
                select(GpsLocation)
                .where(GpsLocation.shipment_id == shipment_id)
                .order_by(GpsLocation.recorded_at.asc(), GpsLocation.id.asc())
                .limit(limit)
            )
            locations = result.scalars().all()
            return {"shipment_id": shipment_id, "count": len(locations), "locations": locations}


PositionProvider = Callable[[], Awaitable[SampleInput]]


class PeriodicLocationSampler:
    """Report a driver's position immediately and then on every interval.

    Failures to read a position or to report it are logged and the loop
    keeps going; only ``stop()`` ends it. Runs on the driver side (device
    agent or simulator) next to a position source, not inside the API.
    """

    def __init__(
        self,
        reporter: LocationReporter,
        driver_id: int,
        position_provider: PositionProvider,
        interval_seconds: Optional[float] = None
    ):
        self.reporter = reporter
        self.driver_id = driver_id
        self.position_provider = position_provider
        self.interval_seconds = settings.GPS_SAMPLE_INTERVAL_SECONDS if interval_seconds is None else interval_seconds
        self.samples_reported = 0
        self._task: Optional[asyncio.Task] = None

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def sample_once(self) -> Optional[Dict[str, Any]]:
        try:
            sample = await self.position_provider()
            result = await self.reporter.report_location(self.driver_id, sample)
            self.samples_reported += 1
            return result
        except TrackingRequiredError:
            logger.warning(f"Skipped GPS sample for driver {self.driver_id}: tracking is not active")
        except Exception as e:
            logger.error(f"GPS sample for driver {self.driver_id} failed: {str(e)}")
        return None

    async def _run(self):
        while True:
            await self.sample_once()
            await asyncio.sleep(self.interval_seconds)

    def start(self) -> asyncio.Task:
        if not self.is_running:
            self._task = asyncio.create_task(self._run())
        return self._task

    async def stop(self):
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None

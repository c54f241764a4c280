# logisync/services/logistics/tracking_session_service.py
import logging
from datetime import datetime, timedelta
from typing import Any, Dict, Optional

from fastapi import HTTPException, status
from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession

from logisync.core.config import settings
from logisync.core.exceptions import PendingPackagesRemainError
from logisync.models.logistics.package import Package
from logisync.models.logistics.shipment import Shipment
from logisync.models.logistics.tracking_session import TrackingSession
from logisync.models.shared.enums import PackageStatus, SessionEndReason
from logisync.services.logistics.geolocation import Coordinate, format_coordinate_pair
from logisync.utils.date_time import as_utc, utcnow

logger = logging.getLogger(__name__)

TRACKING_STARTED_NOTE = "Tracking started - package in transit"


class TrackingSessionService:
    """Server-side record of whether a driver is currently sharing GPS.

    A session is open while ``ended_at`` is NULL and active while open and
    sampled within the staleness window.
    """

    def __init__(self, session: AsyncSession, stale_after_minutes: Optional[int] = None):
        self.session = session
        self.stale_after = timedelta(
            minutes=settings.TRACKING_SESSION_STALE_MINUTES if stale_after_minutes is None else stale_after_minutes
        )

    def is_session_active(self, record: Optional[TrackingSession], now: Optional[datetime] = None) -> bool:
        if record is None or record.ended_at is not None:
            return False
        now = now or utcnow()
        last_seen = as_utc(record.last_sample_at or record.started_at)
        return last_seen >= now - self.stale_after

    def to_dict(self, record: TrackingSession, now: Optional[datetime] = None) -> Dict[str, Any]:
        return {
            "id": record.id,
            "driver_id": record.driver_id,
            "organization_id": record.organization_id,
            "started_at": record.started_at,
            "last_sample_at": record.last_sample_at,
            "ended_at": record.ended_at,
            "end_reason": record.end_reason.value if record.end_reason else None,
            "is_active": self.is_session_active(record, now),
        }

    async def get_open_session(self, driver_id: int, lock: bool = False) -> Optional[TrackingSession]:
        query = (
            select(TrackingSession)
            .where(
                TrackingSession.driver_id == driver_id,
                TrackingSession.ended_at.is_(None),
                TrackingSession.is_deleted == False
            )
            .order_by(TrackingSession.started_at.desc(), TrackingSession.id.desc())
            .limit(1)
        )
        if lock:
            query = query.with_for_update()
        result = await self.session.execute(query)
        return result.scalar_one_or_none()

    async def is_tracking_active(self, driver_id: int) -> bool:
        return self.is_session_active(await self.get_open_session(driver_id))

    async def get_tracking_state(self, driver_id: int) -> Dict[str, Any]:
        record = await self.get_open_session(driver_id)
        now = utcnow()
        return {
            "is_active": self.is_session_active(record, now),
            "session": self.to_dict(record, now) if record else None,
            "sample_interval_seconds": settings.GPS_SAMPLE_INTERVAL_SECONDS,
        }

    async def open_session(self, driver_id: int, organization_id: int) -> TrackingSession:
        """Open a session for the driver or refresh the one already open (no commit)"""
        now = utcnow()
        record = await self.get_open_session(driver_id, lock=True)
        if record is not None:
            record.last_sample_at = now
            return record

        record = TrackingSession(
            driver_id=driver_id,
            organization_id=organization_id,
            started_at=now,
            last_sample_at=now,
            created_at=now,
            created_by=driver_id
        )
        self.session.add(record)
        await self.session.flush()
        return record

    async def count_pending_packages(self, driver_id: int) -> int:
        result = await self.session.execute(
            select(func.count(Package.tracking_id))
            .join(Shipment, Package.shipment_id == Shipment.id)
            .where(
                Shipment.driver_id == driver_id,
                Shipment.is_deleted == False,
                Package.is_deleted == False,
                Package.status == PackageStatus.PENDING
            )
        )
        return result.scalar() or 0

    async def start_tracking(
        self,
        driver_id: int,
        organization_id: int,
        latitude: float,
        longitude: float,
        reporter=None,
        publisher=None
    ) -> Dict[str, Any]:
        """Begin GPS tracking for a driver.

        Every package must have been picked up first. Picked up packages move
        to in_transit, the session is opened (or refreshed) and, when a
        reporter is given, the starting position is reported to the driver's
        active shipments. A package that cannot move is listed in
        ``failed_packages`` and does not undo the others.
        """
        # Import here to avoid circular imports
        from logisync.services.logistics.shipment_service import ShipmentService

        try:
            pending = await self.count_pending_packages(driver_id)
            if pending:
                raise PendingPackagesRemainError(pending)

            record = await self.open_session(driver_id, organization_id)
            await self.session.commit()
            logger.info(f"Tracking session {record.id} opened for driver {driver_id}")

            result = await self.session.execute(
                select(Package.tracking_id)
                .join(Shipment, Package.shipment_id == Shipment.id)
                .where(
                    Shipment.driver_id == driver_id,
                    Shipment.is_deleted == False,
                    Package.is_deleted == False,
                    Package.status == PackageStatus.PICKED_UP
                )
                .order_by(Package.created_at, Package.tracking_id)
            )
            picked_up = list(result.scalars().all())

            shipment_service = ShipmentService(self.session, publisher)
            location = format_coordinate_pair(Coordinate(latitude, longitude))
            moved = 0
            failed = []
            for tracking_id in picked_up:
                # Each package commits on its own; a failure leaves the others moved
                try:
                    await shipment_service.update_package_status(
                        tracking_id,
                        driver_id,
                        PackageStatus.IN_TRANSIT,
                        location,
                        TRACKING_STARTED_NOTE
                    )
                    moved += 1
                except HTTPException as e:
                    logger.warning(f"Tracking start could not move package {tracking_id}: {e.detail}")
                    failed.append({"tracking_id": tracking_id, "detail": str(e.detail)})

            location_result = {"delivered": [], "failed": []}
            if reporter is not None:
                location_result = await reporter.report_location(
                    driver_id, {"latitude": latitude, "longitude": longitude}
                )

            record = await self.get_open_session(driver_id)
            return {
                "message": "Tracking started",
                "session": self.to_dict(record),
                "packages_moved": moved,
                "failed_packages": failed,
                "sample_interval_seconds": settings.GPS_SAMPLE_INTERVAL_SECONDS,
                "location": location_result,
            }

        except HTTPException:
            raise
        except Exception as e:
            await self.session.rollback()
            logger.error(f"Error starting tracking for driver {driver_id}: {str(e)}")
            raise HTTPException(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                detail="Failed to start tracking"
            )

    async def stop_tracking(self, driver_id: int) -> Optional[Dict[str, Any]]:
        """Close the driver's open session; None when nothing was open"""
        try:
            record = await self.get_open_session(driver_id, lock=True)
            if record is None:
                return None

            now = utcnow()
            record.ended_at = now
            record.end_reason = SessionEndReason.STOPPED
            record.updated_by = driver_id
            await self.session.commit()

            logger.info(f"Tracking session {record.id} stopped by driver {driver_id}")
            return self.to_dict(record, now)

        except Exception as e:
            await self.session.rollback()
            logger.error(f"Error stopping tracking for driver {driver_id}: {str(e)}")
            raise HTTPException(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                detail="Failed to stop tracking"
            )

    async def touch(self, driver_id: int, at: Optional[datetime] = None) -> bool:
        """Record a GPS sample on the open session, returns False when none is open"""
        record = await self.get_open_session(driver_id)
        if record is None:
            return False
        record.last_sample_at = at or utcnow()
        await self.session.commit()
        return True

    async def expire_stale_sessions(self, now: Optional[datetime] = None) -> int:
        """Close every open session that has gone quiet for longer than the staleness window"""
        now = now or utcnow()
        try:
            result = await self.session.execute(
                select(TrackingSession).where(
                    TrackingSession.ended_at.is_(None),
                    TrackingSession.is_deleted == False
                )
            )
            expired = 0
            for record in result.scalars().all():
                if self.is_session_active(record, now):
                    continue
                record.ended_at = now
                record.end_reason = SessionEndReason.STALE
                expired += 1

            await self.session.commit()
            if expired:
                logger.info(f"Closed {expired} stale tracking session(s)")
            return expired

        except Exception as e:
            await self.session.rollback()
            logger.error(f"Error expiring stale tracking sessions: {str(e)}")
            raise

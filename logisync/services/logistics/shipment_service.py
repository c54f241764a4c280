# logisync/services/logistics/shipment_service.py
import logging
import secrets
import string
from dataclasses import asdict
from datetime import datetime
from typing import List, Optional, Dict, Any, Union
from fastapi import HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, func
from sqlalchemy.orm import selectinload

from logisync.core.config import settings
from logisync.core.exceptions import (
    NotFoundError, NotFoundOrForbiddenError, OrderNotFulfilledError,
    ShipmentAlreadyExistsError, TrackingRequiredError, ValidationError
)
from logisync.models.logistics.driver import Driver
from logisync.models.logistics.gps_location import GpsLocation
from logisync.models.logistics.package import Package
from logisync.models.logistics.shipment import Shipment
from logisync.models.logistics.tracking_history import TrackingHistory
from logisync.models.logistics.vehicle import Vehicle
from logisync.models.sales.order import Order
from logisync.models.shared.enums import OrderStatus, PackageStatus
from logisync.schemas.logistics.shipment_schema import ShipmentFromOrderCreate
from logisync.services.logistics.capacity_service import compute_vehicle_load, package_volume_m3, summarize_packages
from logisync.services.logistics.geolocation import Coordinate, format_coordinate_pair
from logisync.services.logistics.route_optimizer import RoutePlan
from logisync.services.logistics.status_machine import (
    DEFAULT_STATUS_MESSAGES, DRIVER_STATUSES, EVENT_MESSAGES, GENERIC_LOCATIONS,
    NOTIFIABLE_STATUSES, TERMINAL_STATUSES, TRACKING_EXEMPT_STATUSES,
    default_message, derive_shipment_status, ensure_transition, parse_status, smart_location
)
from logisync.services.logistics.tracking_session_service import TrackingSessionService
from logisync.services.notification.event_publisher import (
    EventPublisher, SHIPMENT_CREATED, SHIPMENT_DELIVERED, SHIPMENT_STATUS_UPDATED
)
from logisync.utils.date_time import as_utc, utcnow

logger = logging.getLogger(__name__)

SHIPMENT_ID_ALPHABET = string.ascii_uppercase + string.digits
MAX_ID_ATTEMPTS = 10
NOT_ASSIGNED = "Not assigned"


def generate_shipment_id() -> str:
    """SHP- followed by 6 random uppercase alphanumerics"""
    return "SHP-" + "".join(secrets.choice(SHIPMENT_ID_ALPHABET) for _ in range(6))


def generate_tracking_id() -> str:
    """LS + 12 hex chars + 3 digits, random enough to resist enumeration"""
    return f"LS{secrets.token_hex(6).upper()}{secrets.randbelow(900) + 100}"


def shipment_priority(shipment_status: PackageStatus) -> str:
    if shipment_status == PackageStatus.PENDING:
        return "high"
    if shipment_status == PackageStatus.OUT_FOR_DELIVERY:
        return "urgent"
    return "normal"


class ShipmentService:
    def __init__(self, session: AsyncSession, publisher: Optional[EventPublisher] = None):
        self.session = session
        self.publisher = publisher or EventPublisher()

    # ------------------------------------------------------------------
    # Identifiers
    # ------------------------------------------------------------------

    async def _shipment_id_exists(self, shipment_id: str) -> bool:
        result = await self.session.execute(select(Shipment.id).where(Shipment.id == shipment_id))
        return result.scalar_one_or_none() is not None

    async def _tracking_id_exists(self, tracking_id: str) -> bool:
        result = await self.session.execute(select(Package.tracking_id).where(Package.tracking_id == tracking_id))
        return result.scalar_one_or_none() is not None

    async def _new_shipment_id(self) -> str:
        for _ in range(MAX_ID_ATTEMPTS):
            shipment_id = generate_shipment_id()
            if not await self._shipment_id_exists(shipment_id):
                return shipment_id
        raise RuntimeError("Could not allocate a unique shipment id")

    async def _new_tracking_id(self, taken: List[str]) -> str:
        for _ in range(MAX_ID_ATTEMPTS):
            tracking_id = generate_tracking_id()
            if tracking_id not in taken and not await self._tracking_id_exists(tracking_id):
                return tracking_id
        raise RuntimeError("Could not allocate a unique tracking id")

    # ------------------------------------------------------------------
    # Creation
    # ------------------------------------------------------------------

    async def _validate_vehicle(self, vehicle_id: int, organization_id: int) -> Vehicle:
        result = await self.session.execute(
            select(Vehicle).where(
                Vehicle.id == vehicle_id,
                Vehicle.organization_id == organization_id,
                Vehicle.is_deleted == False
            )
        )
        vehicle = result.scalar_one_or_none()
        if not vehicle:
            raise NotFoundError("Vehicle not found")
        if not vehicle.is_active:
            raise ValidationError("Vehicle is not active")
        return vehicle

    async def _validate_driver(self, driver_id: int, organization_id: int) -> Driver:
        result = await self.session.execute(
            select(Driver).where(
                Driver.id == driver_id,
                Driver.organization_id == organization_id,
                Driver.is_deleted == False
            )
        )
        driver = result.scalar_one_or_none()
        if not driver:
            raise NotFoundError("Driver not found")
        if not driver.is_active:
            raise ValidationError("Driver is not active")
        return driver

    async def create_shipment_from_order(
        self,
        order_id: int,
        organization_id: int,
        data: ShipmentFromOrderCreate,
        user_id: Optional[int] = None
    ) -> Dict[str, Any]:
        """Create a shipment and its packages for a fulfilled order"""
        try:
            result = await self.session.execute(
                select(Order).where(
                    Order.id == order_id,
                    Order.organization_id == organization_id,
                    Order.is_deleted == False
                )
            )
            order = result.scalar_one_or_none()
            if not order:
                raise NotFoundError("Order not found")

            if order.status != OrderStatus.FULFILLED:
                raise OrderNotFulfilledError()

            result = await self.session.execute(select(Shipment.id).where(Shipment.order_id == order_id))
            if result.scalar_one_or_none() is not None:
                raise ShipmentAlreadyExistsError()

            if not data.has_receiver():
                raise ValidationError("Receiver name and address are required")

            await self._validate_vehicle(data.vehicle_id, organization_id)
            if data.driver_id:
                await self._validate_driver(data.driver_id, organization_id)

            now = utcnow()
            shipment = Shipment(
                id=await self._new_shipment_id(),
                organization_id=organization_id,
                order_id=order_id,
                vehicle_id=data.vehicle_id,
                driver_id=data.driver_id,
                budget_id=data.budget_id,
                warehouse_id=data.warehouse_id,
                origin_name=data.origin_name,
                origin_address=data.origin_address,
                destination_name=data.destination_name,
                destination_address=data.destination_address,
                departure_date=data.departure_date,
                created_at=now,
                created_by=user_id
            )
            self.session.add(shipment)
            await self.session.flush()

            tracking_ids: List[str] = []
            for entry in data.package_entries():
                tracking_id = await self._new_tracking_id(tracking_ids)
                tracking_ids.append(tracking_id)
                self.session.add(Package(
                    tracking_id=tracking_id,
                    shipment_id=shipment.id,
                    order_id=order_id,
                    status=PackageStatus.PENDING,
                    created_at=now,
                    **entry.dict()
                ))
                self.session.add(TrackingHistory(
                    tracking_id=tracking_id,
                    shipment_id=shipment.id,
                    timestamp=now,
                    location=data.origin_name,
                    status=PackageStatus.PENDING,
                    details=DEFAULT_STATUS_MESSAGES[PackageStatus.PENDING],
                    recorded_by=user_id
                ))

            await self.session.commit()
            logger.info(
                f"Shipment {shipment.id} created for order {order_id} with {len(tracking_ids)} package(s)"
            )

            await self.publisher.publish(
                SHIPMENT_CREATED,
                organization_id,
                {
                    "shipment_id": shipment.id,
                    "order_id": order_id,
                    "tracking_ids": tracking_ids,
                    "origin": data.origin_name,
                    "destination": data.destination_name,
                    "created_at": now,
                },
                shipment_id=shipment.id,
                driver_id=data.driver_id
            )

            return {
                "message": "Shipment created successfully",
                "shipment_id": shipment.id,
                "tracking_number": tracking_ids[0],
                "tracking_ids": tracking_ids,
                "package_count": len(tracking_ids),
            }

        except HTTPException:
            await self.session.rollback()
            raise
        except Exception as e:
            await self.session.rollback()
            logger.error(f"Error creating shipment for order {order_id}: {str(e)}")
            raise HTTPException(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                detail="Failed to create shipment"
            )

    # ------------------------------------------------------------------
    # Status changes
    # ------------------------------------------------------------------

    async def _get_package_for_update(self, tracking_id: str) -> Optional[Package]:
        result = await self.session.execute(
            select(Package)
            .options(selectinload(Package.shipment))
            .where(Package.tracking_id == tracking_id, Package.is_deleted == False)
            .with_for_update()
        )
        return result.scalar_one_or_none()

    async def _package_statuses(self, shipment_id: str) -> Dict[str, PackageStatus]:
        result = await self.session.execute(
            select(Package.tracking_id, Package.status).where(
                Package.shipment_id == shipment_id,
                Package.is_deleted == False
            )
        )
        return {tracking_id: PackageStatus(package_status) for tracking_id, package_status in result.all()}

    async def _latest_gps_location(self, shipment_id: str) -> Optional[GpsLocation]:
        result = await self.session.execute(
            select(GpsLocation)
            .where(GpsLocation.shipment_id == shipment_id)
            .order_by(GpsLocation.recorded_at.desc(), GpsLocation.id.desc())
            .limit(1)
        )
        return result.scalar_one_or_none()

    async def _resolve_location(self, shipment: Shipment, new_status: PackageStatus, location: Optional[str]) -> str:
        """Keep a real location; swap app placeholders for the last GPS fix or a status description"""
        location = (location or "").strip()
        if location and location not in GENERIC_LOCATIONS:
            return location[:255]

        latest = await self._latest_gps_location(shipment.id)
        if latest is not None:
            return format_coordinate_pair(Coordinate(float(latest.latitude), float(latest.longitude)))
        return smart_location(new_status, shipment.origin_name)

    async def _next_history_timestamp(self, tracking_id: str) -> datetime:
        """Now, unless clock skew would put the entry before the package's latest one"""
        now = utcnow()
        result = await self.session.execute(
            select(func.max(TrackingHistory.timestamp)).where(TrackingHistory.tracking_id == tracking_id)
        )
        latest = as_utc(result.scalar())
        if latest is not None and latest > now:
            return latest
        return now

    async def _apply_status(
        self,
        package: Package,
        new_status: PackageStatus,
        location: Optional[str],
        notes: Optional[str],
        recorded_by: Optional[int],
        force: bool = False
    ) -> Dict[str, Any]:
        """Move one locked package to a new status and append its history entry in one commit"""
        shipment = package.shipment
        old_status = PackageStatus(package.status)
        ensure_transition(old_status, new_status, enforce=settings.ENFORCE_STATUS_TRANSITIONS, force=force)

        statuses = await self._package_statuses(shipment.id)
        previous_shipment_status = derive_shipment_status(statuses.values())

        resolved_location = await self._resolve_location(shipment, new_status, location)
        timestamp = await self._next_history_timestamp(package.tracking_id)
        details = (notes or "").strip() or default_message(new_status)

        package.status = new_status
        self.session.add(TrackingHistory(
            tracking_id=package.tracking_id,
            shipment_id=shipment.id,
            timestamp=timestamp,
            location=resolved_location,
            status=new_status,
            details=details,
            recorded_by=recorded_by
        ))
        await self.session.commit()

        statuses[package.tracking_id] = new_status
        shipment_status = derive_shipment_status(statuses.values())
        if force:
            logger.warning(
                f"Package {package.tracking_id} forced from {old_status.value} to {new_status.value} by user {recorded_by}"
            )
        else:
            logger.info(f"Package {package.tracking_id} moved from {old_status.value} to {new_status.value}")

        await self._publish_status_events(
            shipment, package.tracking_id, old_status, new_status,
            previous_shipment_status, shipment_status, resolved_location, timestamp
        )

        return {
            "message": "Status updated successfully",
            "tracking_id": package.tracking_id,
            "shipment_id": shipment.id,
            "old_status": old_status,
            "status": new_status,
            "shipment_status": shipment_status,
            "location": resolved_location,
            "timestamp": timestamp,
        }

    async def _publish_status_events(
        self,
        shipment: Shipment,
        tracking_id: str,
        old_status: PackageStatus,
        new_status: PackageStatus,
        previous_shipment_status: PackageStatus,
        shipment_status: PackageStatus,
        location: str,
        timestamp: datetime
    ):
        await self.publisher.publish(
            SHIPMENT_STATUS_UPDATED,
            shipment.organization_id,
            {
                "shipment_id": shipment.id,
                "tracking_id": tracking_id,
                "old_status": old_status.value,
                "new_status": new_status.value,
                "shipment_status": shipment_status.value,
                "location": location,
                "message": EVENT_MESSAGES.get(new_status, "Shipment status updated"),
                "notify": new_status in NOTIFIABLE_STATUSES,
                "driver_id": shipment.driver_id,
                "timestamp": timestamp,
            },
            shipment_id=shipment.id,
            driver_id=shipment.driver_id
        )

        if shipment_status == PackageStatus.DELIVERED and previous_shipment_status != PackageStatus.DELIVERED:
            await self.publisher.publish(
                SHIPMENT_DELIVERED,
                shipment.organization_id,
                {
                    "shipment_id": shipment.id,
                    "order_id": shipment.order_id,
                    "delivered_at": timestamp,
                },
                shipment_id=shipment.id
            )

    async def update_package_status(
        self,
        tracking_id: str,
        driver_id: int,
        new_status: Union[str, PackageStatus],
        location: Optional[str],
        notes: Optional[str] = None,
        force: bool = False
    ) -> Dict[str, Any]:
        """Driver status update.

        The package must belong to a shipment assigned to the driver. Anything
        but a pickup needs an active GPS tracking session.
        """
        try:
            new_status = parse_status(new_status, DRIVER_STATUSES)
            if not (location or "").strip():
                raise ValidationError("Location is required")

            package = await self._get_package_for_update(tracking_id)
            if (
                package is None
                or package.shipment is None
                or package.shipment.is_deleted
                or package.shipment.driver_id != driver_id
            ):
                raise NotFoundOrForbiddenError()

            if new_status not in TRACKING_EXEMPT_STATUSES:
                if not await TrackingSessionService(self.session).is_tracking_active(driver_id):
                    raise TrackingRequiredError()

            return await self._apply_status(package, new_status, location, notes, driver_id, force)

        except HTTPException:
            await self.session.rollback()
            raise
        except Exception as e:
            await self.session.rollback()
            logger.error(f"Error updating status of package {tracking_id}: {str(e)}")
            raise HTTPException(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                detail="Failed to update package status"
            )

    async def override_package_status(
        self,
        tracking_id: str,
        organization_id: int,
        new_status: Union[str, PackageStatus],
        location: Optional[str],
        notes: Optional[str] = None,
        force: bool = False,
        user_id: Optional[int] = None
    ) -> Dict[str, Any]:
        """Staff correction of a package status, scoped to the organization"""
        try:
            new_status = parse_status(new_status)
            package = await self._get_package_for_update(tracking_id)
            if (
                package is None
                or package.shipment is None
                or package.shipment.is_deleted
                or package.shipment.organization_id != organization_id
            ):
                raise NotFoundOrForbiddenError()

            return await self._apply_status(package, new_status, location, notes, user_id, force)

        except HTTPException:
            await self.session.rollback()
            raise
        except Exception as e:
            await self.session.rollback()
            logger.error(f"Error overriding status of package {tracking_id}: {str(e)}")
            raise HTTPException(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                detail="Failed to update package status"
            )

    async def report_shipment_exception(
        self,
        shipment_id: str,
        driver_id: int,
        location: Optional[str],
        description: Optional[str]
    ) -> Dict[str, Any]:
        """Flag every open package of a shipment as an exception, one update per package"""
        description = (description or "").strip()
        if not description:
            raise ValidationError("Exception description is required")

        result = await self.session.execute(
            select(Shipment).where(Shipment.id == shipment_id, Shipment.is_deleted == False)
        )
        shipment = result.scalar_one_or_none()
        if not shipment or shipment.driver_id != driver_id:
            raise NotFoundOrForbiddenError("Shipment not found or access denied")

        if not await TrackingSessionService(self.session).is_tracking_active(driver_id):
            raise TrackingRequiredError()

        result = await self.session.execute(
            select(Package.tracking_id)
            .where(
                Package.shipment_id == shipment_id,
                Package.is_deleted == False,
                Package.status.notin_(list(TERMINAL_STATUSES))
            )
            .order_by(Package.created_at, Package.tracking_id)
        )
        tracking_ids = list(result.scalars().all())

        updated = 0
        failed = []
        for tracking_id in tracking_ids:
            try:
                await self.update_package_status(
                    tracking_id, driver_id, PackageStatus.EXCEPTION, location or "Driver Location", description
                )
                updated += 1
            except HTTPException as e:
                logger.warning(f"Exception report skipped package {tracking_id}: {e.detail}")
                failed.append({"tracking_id": tracking_id, "detail": str(e.detail)})

        logger.info(f"Exception reported on shipment {shipment_id}: {updated} updated, {len(failed)} failed")
        return {"shipment_id": shipment_id, "updated": updated, "failed": failed}

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def track_by_tracking_number(self, tracking_id: str) -> Dict[str, Any]:
        """Public lookup; the tracking id itself is the credential"""
        result = await self.session.execute(
            select(Package)
            .options(
                selectinload(Package.shipment).selectinload(Shipment.driver),
                selectinload(Package.shipment).selectinload(Shipment.vehicle)
            )
            .where(Package.tracking_id == tracking_id, Package.is_deleted == False)
        )
        package = result.scalar_one_or_none()
        if not package or package.shipment is None or package.shipment.is_deleted:
            raise NotFoundError("Tracking number not found")

        shipment = package.shipment
        result = await self.session.execute(
            select(TrackingHistory)
            .where(TrackingHistory.tracking_id == tracking_id)
            .order_by(TrackingHistory.timestamp.asc(), TrackingHistory.id.asc())
        )
        history = result.scalars().all()
        statuses = await self._package_statuses(shipment.id)

        driver = shipment.driver
        vehicle = shipment.vehicle
        return {
            "tracking_number": package.tracking_id,
            "shipment_id": shipment.id,
            "current_status": package.status,
            "shipment_status": derive_shipment_status(statuses.values()),
            "receiver_name": package.receiver_name,
            "destination": shipment.destination_name,
            "destination_address": package.receiver_address or shipment.destination_address,
            "creation_date": package.created_at or shipment.created_at,
            "departure_date": shipment.departure_date,
            "driver": (driver.full_name or driver.username) if driver else NOT_ASSIGNED,
            "vehicle": (vehicle.registration_number or vehicle.vehicle_number) if vehicle else NOT_ASSIGNED,
            "tracking_history": [
                {
                    "timestamp": entry.timestamp,
                    "location": entry.location,
                    "status": entry.status,
                    "details": entry.details,
                }
                for entry in history
            ],
        }

    async def get_shipment(self, shipment_id: str, organization_id: int) -> Dict[str, Any]:
        result = await self.session.execute(
            select(Shipment)
            .options(selectinload(Shipment.packages))
            .where(
                Shipment.id == shipment_id,
                Shipment.organization_id == organization_id,
                Shipment.is_deleted == False
            )
        )
        shipment = result.scalar_one_or_none()
        if not shipment:
            raise NotFoundError("Shipment not found")

        packages = [package for package in shipment.packages if not package.is_deleted]
        result = await self.session.execute(
            select(TrackingHistory)
            .where(TrackingHistory.shipment_id == shipment_id)
            .order_by(TrackingHistory.timestamp.desc(), TrackingHistory.id.desc())
        )

        return {
            "id": shipment.id,
            "organization_id": shipment.organization_id,
            "order_id": shipment.order_id,
            "vehicle_id": shipment.vehicle_id,
            "driver_id": shipment.driver_id,
            "origin_name": shipment.origin_name,
            "origin_address": shipment.origin_address,
            "destination_name": shipment.destination_name,
            "destination_address": shipment.destination_address,
            "departure_date": shipment.departure_date,
            "created_at": shipment.created_at,
            "status": derive_shipment_status(package.status for package in packages),
            "packages": packages,
            "history": result.scalars().all(),
        }

    async def get_driver_shipments(self, driver_id: int) -> Dict[str, Any]:
        """Driver's shipments with undelivered packages, grouped, with load figures"""
        result = await self.session.execute(
            select(Shipment)
            .options(selectinload(Shipment.packages), selectinload(Shipment.vehicle))
            .where(Shipment.driver_id == driver_id, Shipment.is_deleted == False)
            .order_by(Shipment.created_at.desc(), Shipment.id)
        )
        shipments = result.scalars().all()

        all_packages = []
        on_board = []
        vehicle = None
        summaries = []
        for shipment in shipments:
            packages = [package for package in shipment.packages if not package.is_deleted]
            all_packages.extend(packages)
            open_packages = [package for package in packages if package.status not in TERMINAL_STATUSES]
            if not open_packages:
                continue

            if vehicle is None and shipment.vehicle is not None:
                vehicle = shipment.vehicle
            # Load only counts packages riding on the vehicle being reported
            if vehicle is not None and shipment.vehicle_id == vehicle.id:
                on_board.extend(open_packages)

            shipment_status = derive_shipment_status(package.status for package in packages)
            summaries.append({
                "shipment_id": shipment.id,
                "status": shipment_status,
                "priority": shipment_priority(shipment_status),
                "origin_name": shipment.origin_name,
                "destination_name": shipment.destination_name,
                "departure_date": shipment.departure_date,
                "package_count": len(open_packages),
                "destinations": list(dict.fromkeys(package.receiver_address for package in open_packages)),
                "total_weight": round(sum(float(package.weight or 0) for package in open_packages), 2),
                "total_volume": round(sum(package_volume_m3(package) for package in open_packages), 2),
                "total_charges": sum(package.charges or 0 for package in open_packages),
                "packages": open_packages,
            })

        return {
            "shipments": summaries,
            "capacity": compute_vehicle_load(vehicle, on_board) if vehicle is not None else None,
            "summary": summarize_packages(all_packages),
        }

    async def get_driver_route(self, driver_id: int, latitude: float, longitude: float) -> Dict[str, Any]:
        """Nearest-neighbour stop order over the driver's undelivered packages"""
        result = await self.session.execute(
            select(Package)
            .join(Shipment, Package.shipment_id == Shipment.id)
            .where(
                Shipment.driver_id == driver_id,
                Shipment.is_deleted == False,
                Package.is_deleted == False,
                Package.status.notin_(list(TERMINAL_STATUSES))
            )
            .order_by(Package.created_at, Package.tracking_id)
        )
        packages = result.scalars().all()

        plan = RoutePlan(Coordinate(latitude, longitude), packages)
        stops = plan.remaining_stops
        return {
            "start_latitude": latitude,
            "start_longitude": longitude,
            "total_stops": len(stops),
            "total_distance_km": round(sum(stop.distance_km for stop in stops), 2),
            "total_estimated_minutes": sum(stop.estimated_minutes for stop in stops),
            "stops": [asdict(stop) for stop in stops],
            "unroutable": [
                {
                    "tracking_id": package.tracking_id,
                    "receiver_name": package.receiver_name,
                    "receiver_address": package.receiver_address,
                    "reason": "no delivery location",
                }
                for package in plan.unroutable
            ],
        }

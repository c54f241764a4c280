from dataclasses import dataclass
from typing import Optional
from fastapi import Depends, Request
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy.ext.asyncio import AsyncSession
from logisync.core.database import get_async_session, get_session_factory
from logisync.core.exceptions import AuthenticationError, PermissionDeniedError
from logisync.core.security import decode_access_token
from logisync.models.shared.enums import UserRole
from logisync.services.logistics.location_reporter import LocationReporter
from logisync.services.logistics.shipment_service import ShipmentService
from logisync.services.notification.event_publisher import EventPublisher, get_event_publisher
import logging

security = HTTPBearer(auto_error=False)
logger = logging.getLogger(__name__)

@dataclass(frozen=True)
class Principal:
    """Caller identity taken from a verified access token"""
    user_id: int
    organization_id: int
    role: str

    @property
    def is_driver(self) -> bool:
        return self.role == UserRole.DRIVER.value

    @property
    def is_staff(self) -> bool:
        return self.role in (UserRole.STAFF.value, UserRole.ADMIN.value)

async def get_current_principal(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security)
) -> Principal:
    """Get current authenticated caller"""
    if credentials is None:
        raise AuthenticationError("Not authenticated")

    payload = decode_access_token(credentials.credentials)
    if payload is None:
        raise AuthenticationError()

    try:
        principal = Principal(
            user_id=int(payload["sub"]),
            organization_id=int(payload["org"]),
            role=str(payload.get("role", ""))
        )
    except (KeyError, TypeError, ValueError):
        raise AuthenticationError()

    if principal.role not in {role.value for role in UserRole}:
        raise AuthenticationError("Unknown role")

    # Add request info to context
    request.state.principal = principal
    return principal

async def require_driver(
    principal: Principal = Depends(get_current_principal)
) -> Principal:
    if not principal.is_driver:
        raise PermissionDeniedError("Driver access required")
    return principal

async def require_staff(
    principal: Principal = Depends(get_current_principal)
) -> Principal:
    if not principal.is_staff:
        raise PermissionDeniedError("Staff access required")
    return principal

def ensure_same_driver(principal: Principal, driver_id: Optional[int]) -> int:
    """A driver_id sent by the client is only honoured when it matches the token"""
    if driver_id is not None and driver_id != principal.user_id:
        logger.warning(f"User {principal.user_id} sent mismatched driver_id {driver_id}")
        raise PermissionDeniedError("driver_id does not match the authenticated driver")
    return principal.user_id

def get_shipment_service(
    session: AsyncSession = Depends(get_async_session),
    publisher: EventPublisher = Depends(get_event_publisher)
) -> ShipmentService:
    return ShipmentService(session, publisher)

def get_location_reporter(
    session_factory = Depends(get_session_factory)
) -> LocationReporter:
    return LocationReporter(session_factory)

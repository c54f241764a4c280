import os

# Point the app at SQLite before anything imports the settings
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///./.pytest_logisync.db"
os.environ["ENVIRONMENT"] = "test"
os.environ["EVENTS_ENABLED"] = "true"
os.environ["ENFORCE_STATUS_TRANSITIONS"] = "true"

import json
from datetime import timedelta
from types import SimpleNamespace
from typing import AsyncGenerator

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

import logisync.models  # noqa: F401  registers every table on Base.metadata
from logisync.core.database import get_async_session, get_session_factory
from logisync.core.security import create_access_token
from logisync.db.base import Base
from logisync.main import app
from logisync.models.logistics.driver import Driver
from logisync.models.logistics.package import Package
from logisync.models.logistics.shipment import Shipment
from logisync.models.logistics.tracking_session import TrackingSession
from logisync.models.logistics.vehicle import Vehicle
from logisync.models.sales.order import Order
from logisync.models.shared.enums import OrderStatus, PackageStatus
from logisync.services.notification.event_publisher import EventPublisher, get_event_publisher
from logisync.utils.date_time import utcnow

ORG_ID = 1
OTHER_ORG_ID = 2
DRIVER_ID = 5
OTHER_DRIVER_ID = 6
STAFF_ID = 42


class RecordingRedis:
    """Stands in for the Redis client, keeping every published message"""

    def __init__(self):
        self.messages = []

    async def publish(self, channel: str, message: str) -> int:
        self.messages.append((channel, json.loads(message)))
        return 1

    def events(self, name: str):
        return [payload for _, payload in self.messages if payload["event"] == name]

    def channels_for(self, name: str):
        return [channel for channel, payload in self.messages if payload["event"] == name]


@pytest.fixture
async def engine(tmp_path):
    test_engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'test.db'}")
    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield test_engine
    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await test_engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    async with session_factory() as session:
        yield session


@pytest.fixture
def redis_stub():
    return RecordingRedis()


@pytest.fixture
def publisher(redis_stub):
    return EventPublisher(client=redis_stub, enabled=True)


@pytest.fixture
async def client(session_factory, publisher) -> AsyncGenerator[AsyncClient, None]:
    """Create test client"""
    async def override_get_db() -> AsyncGenerator[AsyncSession, None]:
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_async_session] = override_get_db
    app.dependency_overrides[get_session_factory] = lambda: session_factory
    app.dependency_overrides[get_event_publisher] = lambda: publisher

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


@pytest.fixture
def auth_headers():
    def _headers(user_id: int = DRIVER_ID, role: str = "driver", organization_id: int = ORG_ID) -> dict:
        token = create_access_token(user_id, organization_id, role)
        return {"Authorization": f"Bearer {token}"}
    return _headers


@pytest.fixture
async def seed(db_session):
    """Drivers, a vehicle and orders for organization 1"""
    now = utcnow()
    driver = Driver(id=DRIVER_ID, organization_id=ORG_ID, username="driver5", full_name="Juan Dela Cruz",
                    is_active=True, created_at=now)
    other_driver = Driver(id=OTHER_DRIVER_ID, organization_id=ORG_ID, username="driver6", full_name="Ana Reyes",
                          is_active=True, created_at=now)
    vehicle = Vehicle(id=1, organization_id=ORG_ID, vehicle_number="VAN-001", registration_number="NAB-1234",
                      vehicle_type="Van", capacity=100, volume_capacity=2, is_active=True, created_at=now)
    inactive_vehicle = Vehicle(id=2, organization_id=ORG_ID, vehicle_number="VAN-002", registration_number="NAB-5678",
                               vehicle_type="Van", capacity=100, volume_capacity=2, is_active=False, created_at=now)
    fulfilled_order = Order(id=100, organization_id=ORG_ID, customer_name="Acme Retail",
                            status=OrderStatus.FULFILLED, created_at=now)
    processing_order = Order(id=101, organization_id=ORG_ID, customer_name="Acme Retail",
                             status=OrderStatus.PROCESSING, created_at=now)
    foreign_order = Order(id=200, organization_id=OTHER_ORG_ID, customer_name="Other Co",
                          status=OrderStatus.FULFILLED, created_at=now)
    db_session.add_all([
        driver, other_driver, vehicle, inactive_vehicle,
        fulfilled_order, processing_order, foreign_order
    ])
    await db_session.commit()
    return SimpleNamespace(
        driver=driver,
        other_driver=other_driver,
        vehicle=vehicle,
        inactive_vehicle=inactive_vehicle,
        fulfilled_order=fulfilled_order,
        processing_order=processing_order,
        foreign_order=foreign_order,
    )


@pytest.fixture
def make_shipment(db_session):
    """Insert a shipment with packages; each package dict overrides the defaults"""
    async def _make(
        shipment_id: str = "SHP-TEST01",
        packages=None,
        driver_id: int = DRIVER_ID,
        organization_id: int = ORG_ID,
        vehicle_id=None,
        origin_name: str = "Manila Hub"
    ) -> Shipment:
        now = utcnow()
        shipment = Shipment(
            id=shipment_id,
            organization_id=organization_id,
            driver_id=driver_id,
            vehicle_id=vehicle_id,
            origin_name=origin_name,
            origin_address="Port Area, Manila",
            destination_name="Quezon City",
            destination_address="Diliman, Quezon City",
            created_at=now,
            is_deleted=False
        )
        db_session.add(shipment)
        await db_session.flush()

        for index, overrides in enumerate(packages if packages is not None else [{}]):
            data = {
                "tracking_id": f"{shipment_id}-P{index + 1}",
                "receiver_name": "Maria Santos",
                "receiver_address": f"{index + 1} Rizal Avenue",
                "status": PackageStatus.PENDING,
                "charges": 0,
                "created_at": now + timedelta(microseconds=index),
                "is_deleted": False,
            }
            data.update(overrides)
            db_session.add(Package(shipment_id=shipment_id, **data))

        await db_session.commit()
        return shipment
    return _make


@pytest.fixture
def open_tracking_session(db_session):
    async def _open(driver_id: int = DRIVER_ID, organization_id: int = ORG_ID, last_sample_at=None) -> TrackingSession:
        now = utcnow()
        record = TrackingSession(
            driver_id=driver_id,
            organization_id=organization_id,
            started_at=last_sample_at or now,
            last_sample_at=last_sample_at or now,
            created_at=now,
            is_deleted=False
        )
        db_session.add(record)
        await db_session.commit()
        return record
    return _open

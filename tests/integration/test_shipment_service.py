import re
from datetime import timedelta
from decimal import Decimal

import pytest
from fastapi import HTTPException
from sqlalchemy import event, func, select

from logisync.core.exceptions import (
    InvalidStatusError, InvalidTransitionError, NotFoundError, NotFoundOrForbiddenError,
    OrderNotFulfilledError, ShipmentAlreadyExistsError, TrackingRequiredError, ValidationError
)
from logisync.models.logistics.gps_location import GpsLocation
from logisync.models.logistics.package import Package
from logisync.models.logistics.shipment import Shipment
from logisync.models.logistics.tracking_history import TrackingHistory
from logisync.models.logistics.vehicle import Vehicle
from logisync.models.shared.enums import PackageStatus
from logisync.schemas.logistics.shipment_schema import PackageCreate, ShipmentFromOrderCreate
from logisync.services.logistics.shipment_service import ShipmentService, generate_shipment_id, generate_tracking_id
from logisync.utils.date_time import as_utc, utcnow

from conftest import DRIVER_ID, ORG_ID, OTHER_DRIVER_ID, OTHER_ORG_ID, STAFF_ID


def shipment_payload(**overrides) -> ShipmentFromOrderCreate:
    data = {
        "transport_id": 1,
        "origin_name": "Manila Hub",
        "origin_address": "Port Area, Manila",
        "destination_name": "Quezon City",
        "destination_address": "Diliman, Quezon City",
        "receiver_name": "Maria Santos",
        "receiver_contact": "09171234567",
        "receiver_email": "maria@example.com",
        "receiver_address": "12 Katipunan Ave, Quezon City",
        "charges": 336,
    }
    data.update(overrides)
    return ShipmentFromOrderCreate(**data)


async def package_status(session, tracking_id):
    result = await session.execute(select(Package.status).where(Package.tracking_id == tracking_id))
    return result.scalar_one()


async def history_for(session, tracking_id):
    result = await session.execute(
        select(TrackingHistory)
        .where(TrackingHistory.tracking_id == tracking_id)
        .order_by(TrackingHistory.timestamp, TrackingHistory.id)
    )
    return result.scalars().all()


async def history_count(session, tracking_id):
    result = await session.execute(
        select(func.count(TrackingHistory.id)).where(TrackingHistory.tracking_id == tracking_id)
    )
    return result.scalar()


def test_identifier_formats():
    assert re.fullmatch(r"SHP-[A-Z0-9]{6}", generate_shipment_id())
    assert re.fullmatch(r"LS[0-9A-F]{12}\d{3}", generate_tracking_id())
    assert len({generate_tracking_id() for _ in range(200)}) == 200


class TestCreateShipmentFromOrder:
    async def test_creates_shipment_package_and_history(self, db_session, publisher, redis_stub, seed):
        service = ShipmentService(db_session, publisher)

        result = await service.create_shipment_from_order(100, ORG_ID, shipment_payload(), user_id=STAFF_ID)

        assert re.fullmatch(r"SHP-[A-Z0-9]{6}", result["shipment_id"])
        assert result["tracking_ids"] == [result["tracking_number"]]
        assert result["package_count"] == 1

        package = (await db_session.execute(
            select(Package).where(Package.tracking_id == result["tracking_number"])
        )).scalar_one()
        assert package.status == PackageStatus.PENDING
        assert package.charges == 336
        assert package.order_id == 100

        entries = await history_for(db_session, result["tracking_number"])
        assert len(entries) == 1
        assert entries[0].status == PackageStatus.PENDING
        assert entries[0].details == "Shipment created"
        assert entries[0].location == "Manila Hub"
        assert entries[0].shipment_id == result["shipment_id"]

        assert redis_stub.channels_for("shipment.created") == [
            f"organization.{ORG_ID}", f"shipment.{result['shipment_id']}"
        ]

    async def test_creates_one_package_per_entry(self, db_session, publisher, seed):
        payload = shipment_payload(
            receiver_name=None,
            receiver_address=None,
            driver_id=DRIVER_ID,
            packages=[
                PackageCreate(receiver_name="Maria Santos", receiver_address="12 Katipunan Ave", charges=100),
                PackageCreate(receiver_name="Jose Rizal", receiver_address="7 Calamba St", charges=150,
                              receiver_latitude=Decimal("14.2117"), receiver_longitude=Decimal("121.1653")),
            ]
        )

        result = await ShipmentService(db_session, publisher).create_shipment_from_order(100, ORG_ID, payload)

        assert result["package_count"] == 2
        assert len(set(result["tracking_ids"])) == 2
        for tracking_id in result["tracking_ids"]:
            assert await history_count(db_session, tracking_id) == 1

    async def test_order_must_be_fulfilled(self, db_session, publisher, seed):
        with pytest.raises(OrderNotFulfilledError) as exc_info:
            await ShipmentService(db_session, publisher).create_shipment_from_order(101, ORG_ID, shipment_payload())

        assert exc_info.value.status_code == 400
        assert (await db_session.execute(select(func.count(Shipment.id)))).scalar() == 0
        assert (await db_session.execute(select(func.count(Package.tracking_id)))).scalar() == 0

    async def test_one_shipment_per_order(self, db_session, publisher, seed):
        service = ShipmentService(db_session, publisher)
        await service.create_shipment_from_order(100, ORG_ID, shipment_payload())

        with pytest.raises(ShipmentAlreadyExistsError):
            await service.create_shipment_from_order(100, ORG_ID, shipment_payload())

        assert (await db_session.execute(select(func.count(Shipment.id)))).scalar() == 1

    async def test_order_of_another_organization_is_not_found(self, db_session, publisher, seed):
        with pytest.raises(NotFoundError):
            await ShipmentService(db_session, publisher).create_shipment_from_order(200, ORG_ID, shipment_payload())

    async def test_vehicle_must_be_active(self, db_session, publisher, seed):
        with pytest.raises(ValidationError):
            await ShipmentService(db_session, publisher).create_shipment_from_order(
                100, ORG_ID, shipment_payload(transport_id=2)
            )

    async def test_receiver_required_without_package_list(self, db_session, publisher, seed):
        with pytest.raises(ValidationError):
            await ShipmentService(db_session, publisher).create_shipment_from_order(
                100, ORG_ID, shipment_payload(receiver_name=None)
            )


class TestDriverStatusUpdate:
    async def test_pickup_does_not_need_tracking(self, db_session, publisher, seed, make_shipment):
        await make_shipment()
        service = ShipmentService(db_session, publisher)

        result = await service.update_package_status("SHP-TEST01-P1", DRIVER_ID, "picked_up", "Picked up from warehouse")

        assert result["old_status"] == PackageStatus.PENDING
        assert result["status"] == PackageStatus.PICKED_UP
        assert result["shipment_status"] == PackageStatus.PICKED_UP
        assert result["location"] == "Picked up from Manila Hub"

        entries = await history_for(db_session, "SHP-TEST01-P1")
        assert [entry.status for entry in entries] == [PackageStatus.PICKED_UP]
        assert entries[0].details == "Package picked up by driver"
        assert await package_status(db_session, "SHP-TEST01-P1") == entries[-1].status

    async def test_delivery_without_tracking_session_is_refused(self, db_session, publisher, seed, make_shipment):
        await make_shipment(packages=[{"tracking_id": "TRK-001", "status": PackageStatus.PICKED_UP}])
        service = ShipmentService(db_session, publisher)

        with pytest.raises(TrackingRequiredError) as exc_info:
            await service.update_package_status("TRK-001", DRIVER_ID, "delivered", "14.6,120.99", "")

        assert exc_info.value.status_code == 409
        assert await package_status(db_session, "TRK-001") == PackageStatus.PICKED_UP
        assert await history_count(db_session, "TRK-001") == 0

    async def test_foreign_package_looks_missing(self, db_session, publisher, seed, make_shipment):
        await make_shipment(driver_id=OTHER_DRIVER_ID)
        service = ShipmentService(db_session, publisher)

        with pytest.raises(NotFoundOrForbiddenError) as foreign:
            await service.update_package_status("SHP-TEST01-P1", DRIVER_ID, "picked_up", "Manila Hub")
        with pytest.raises(NotFoundOrForbiddenError) as missing:
            await service.update_package_status("LSDOESNOTEXIST", DRIVER_ID, "picked_up", "Manila Hub")

        assert foreign.value.detail == missing.value.detail
        assert foreign.value.status_code == 404

    async def test_pending_is_not_accepted_from_drivers(self, db_session, publisher, seed, make_shipment):
        await make_shipment()
        with pytest.raises(InvalidStatusError):
            await ShipmentService(db_session, publisher).update_package_status(
                "SHP-TEST01-P1", DRIVER_ID, "pending", "Manila Hub"
            )

    async def test_failed_history_write_rolls_back_status(
        self, db_session, publisher, redis_stub, seed, make_shipment, open_tracking_session
    ):
        await make_shipment(packages=[{"status": PackageStatus.PICKED_UP}])
        await open_tracking_session()

        def reject_history(mapper, connection, target):
            raise RuntimeError("history table unavailable")

        event.listen(TrackingHistory, "before_insert", reject_history)
        try:
            with pytest.raises(HTTPException) as exc_info:
                await ShipmentService(db_session, publisher).update_package_status(
                    "SHP-TEST01-P1", DRIVER_ID, "in_transit", "EDSA"
                )
        finally:
            event.remove(TrackingHistory, "before_insert", reject_history)

        assert exc_info.value.status_code == 500
        assert await package_status(db_session, "SHP-TEST01-P1") == PackageStatus.PICKED_UP
        assert await history_count(db_session, "SHP-TEST01-P1") == 0
        assert redis_stub.messages == []

    async def test_illegal_transition_has_no_side_effects(
        self, db_session, publisher, redis_stub, seed, make_shipment, open_tracking_session
    ):
        await make_shipment()
        await open_tracking_session()

        with pytest.raises(InvalidTransitionError):
            await ShipmentService(db_session, publisher).update_package_status(
                "SHP-TEST01-P1", DRIVER_ID, "delivered", "12 Katipunan Ave"
            )

        assert await package_status(db_session, "SHP-TEST01-P1") == PackageStatus.PENDING
        assert await history_count(db_session, "SHP-TEST01-P1") == 0
        assert redis_stub.messages == []

    async def test_full_delivery_run(
        self, db_session, publisher, redis_stub, seed, make_shipment, open_tracking_session
    ):
        await make_shipment(packages=[{"status": PackageStatus.PICKED_UP}])
        await open_tracking_session()
        service = ShipmentService(db_session, publisher)

        for new_status in ["in_transit", "out_for_delivery", "delivered"]:
            await service.update_package_status("SHP-TEST01-P1", DRIVER_ID, new_status, "EDSA, Quezon City")

        entries = await history_for(db_session, "SHP-TEST01-P1")
        assert [entry.status.value for entry in entries] == ["in_transit", "out_for_delivery", "delivered"]
        assert all(entry.location == "EDSA, Quezon City" for entry in entries)
        assert entries[-1].details == "Package delivered successfully"

        updates = redis_stub.events("shipment.status.updated")
        org_updates = [event["data"] for channel, event in redis_stub.messages
                       if channel == f"organization.{ORG_ID}" and event["event"] == "shipment.status.updated"]
        assert len(updates) == 9  # three channels per update
        assert [data["new_status"] for data in org_updates] == ["in_transit", "out_for_delivery", "delivered"]
        assert [data["notify"] for data in org_updates] == [False, True, True]
        assert org_updates[-1]["shipment_status"] == "delivered"
        assert set(redis_stub.channels_for("shipment.status.updated")) == {
            f"organization.{ORG_ID}", "shipment.SHP-TEST01", f"driver.{DRIVER_ID}"
        }
        assert redis_stub.channels_for("shipment.delivered") == [f"organization.{ORG_ID}", "shipment.SHP-TEST01"]

    async def test_delivered_event_waits_for_last_package(
        self, db_session, publisher, redis_stub, seed, make_shipment, open_tracking_session
    ):
        await make_shipment(packages=[
            {"status": PackageStatus.OUT_FOR_DELIVERY},
            {"status": PackageStatus.OUT_FOR_DELIVERY},
        ])
        await open_tracking_session()
        service = ShipmentService(db_session, publisher)

        first = await service.update_package_status("SHP-TEST01-P1", DRIVER_ID, "delivered", "1 Rizal Avenue")
        assert first["shipment_status"] == PackageStatus.OUT_FOR_DELIVERY
        assert redis_stub.events("shipment.delivered") == []

        second = await service.update_package_status("SHP-TEST01-P2", DRIVER_ID, "delivered", "2 Rizal Avenue")
        assert second["shipment_status"] == PackageStatus.DELIVERED
        assert len(redis_stub.channels_for("shipment.delivered")) == 2

    async def test_placeholder_location_uses_latest_gps(
        self, db_session, publisher, seed, make_shipment, open_tracking_session
    ):
        await make_shipment(packages=[{"status": PackageStatus.PICKED_UP}])
        await open_tracking_session()
        now = utcnow()
        db_session.add_all([
            GpsLocation(shipment_id="SHP-TEST01", driver_id=DRIVER_ID, latitude=14.55, longitude=120.95,
                        recorded_at=now - timedelta(minutes=5)),
            GpsLocation(shipment_id="SHP-TEST01", driver_id=DRIVER_ID, latitude=14.6, longitude=120.99,
                        recorded_at=now),
        ])
        await db_session.commit()

        result = await ShipmentService(db_session, publisher).update_package_status(
            "SHP-TEST01-P1", DRIVER_ID, "in_transit", "Driver Location"
        )

        assert result["location"] == "14.600000, 120.990000"

    async def test_history_timestamps_never_go_backwards(
        self, db_session, publisher, seed, make_shipment, open_tracking_session
    ):
        await make_shipment(packages=[{"status": PackageStatus.PICKED_UP}])
        await open_tracking_session()
        future = utcnow() + timedelta(hours=1)
        db_session.add(TrackingHistory(
            tracking_id="SHP-TEST01-P1", shipment_id="SHP-TEST01", timestamp=future,
            location="Manila Hub", status=PackageStatus.PICKED_UP, details="Package picked up by driver"
        ))
        await db_session.commit()

        result = await ShipmentService(db_session, publisher).update_package_status(
            "SHP-TEST01-P1", DRIVER_ID, "in_transit", "EDSA"
        )

        assert as_utc(result["timestamp"]) >= future
        entries = await history_for(db_session, "SHP-TEST01-P1")
        assert entries[-1].status == PackageStatus.IN_TRANSIT
        assert as_utc(entries[-1].timestamp) >= as_utc(entries[0].timestamp)


class TestStaffOverride:
    async def test_force_reopens_terminal_package(self, db_session, publisher, seed, make_shipment):
        await make_shipment(packages=[{"status": PackageStatus.DELIVERED}])
        service = ShipmentService(db_session, publisher)

        with pytest.raises(InvalidTransitionError):
            await service.override_package_status("SHP-TEST01-P1", ORG_ID, "in_transit", "Manila Hub", user_id=STAFF_ID)

        result = await service.override_package_status(
            "SHP-TEST01-P1", ORG_ID, "in_transit", "Manila Hub", "Delivered to wrong address", force=True, user_id=STAFF_ID
        )

        assert result["status"] == PackageStatus.IN_TRANSIT
        entries = await history_for(db_session, "SHP-TEST01-P1")
        assert entries[-1].recorded_by == STAFF_ID
        assert entries[-1].details == "Delivered to wrong address"

    async def test_no_tracking_session_needed(self, db_session, publisher, seed, make_shipment):
        await make_shipment(packages=[{"status": PackageStatus.IN_TRANSIT}])
        result = await ShipmentService(db_session, publisher).override_package_status(
            "SHP-TEST01-P1", ORG_ID, "cancelled", "Manila Hub", user_id=STAFF_ID
        )
        assert result["shipment_status"] == PackageStatus.CANCELLED

    async def test_scoped_to_organization(self, db_session, publisher, seed, make_shipment):
        await make_shipment()
        with pytest.raises(NotFoundOrForbiddenError):
            await ShipmentService(db_session, publisher).override_package_status(
                "SHP-TEST01-P1", OTHER_ORG_ID, "picked_up", "Manila Hub"
            )


class TestExceptionReport:
    async def test_flags_every_open_package(
        self, db_session, publisher, seed, make_shipment, open_tracking_session
    ):
        await make_shipment(packages=[
            {"status": PackageStatus.IN_TRANSIT},
            {"status": PackageStatus.OUT_FOR_DELIVERY},
            {"status": PackageStatus.DELIVERED},
        ])
        await open_tracking_session()

        result = await ShipmentService(db_session, publisher).report_shipment_exception(
            "SHP-TEST01", DRIVER_ID, "SLEX km 34", "  Flat tyre  "
        )

        assert result == {"shipment_id": "SHP-TEST01", "updated": 2, "failed": []}
        assert await package_status(db_session, "SHP-TEST01-P1") == PackageStatus.EXCEPTION
        assert await package_status(db_session, "SHP-TEST01-P2") == PackageStatus.EXCEPTION
        assert await package_status(db_session, "SHP-TEST01-P3") == PackageStatus.DELIVERED
        entries = await history_for(db_session, "SHP-TEST01-P1")
        assert entries[-1].details == "Flat tyre"
        assert entries[-1].location == "SLEX km 34"

    async def test_description_is_required(self, db_session, publisher, seed, make_shipment):
        await make_shipment()
        with pytest.raises(ValidationError):
            await ShipmentService(db_session, publisher).report_shipment_exception("SHP-TEST01", DRIVER_ID, None, "   ")

    async def test_requires_tracking(self, db_session, publisher, seed, make_shipment):
        await make_shipment(packages=[{"status": PackageStatus.IN_TRANSIT}])
        with pytest.raises(TrackingRequiredError):
            await ShipmentService(db_session, publisher).report_shipment_exception(
                "SHP-TEST01", DRIVER_ID, None, "Road closed"
            )

    async def test_other_drivers_shipment(self, db_session, publisher, seed, make_shipment):
        await make_shipment(driver_id=OTHER_DRIVER_ID)
        with pytest.raises(NotFoundOrForbiddenError):
            await ShipmentService(db_session, publisher).report_shipment_exception(
                "SHP-TEST01", DRIVER_ID, None, "Road closed"
            )


class TestReads:
    async def test_public_tracking(self, db_session, publisher, seed):
        service = ShipmentService(db_session, publisher)
        created = await service.create_shipment_from_order(
            100, ORG_ID, shipment_payload(driver_id=DRIVER_ID), user_id=STAFF_ID
        )
        await service.update_package_status(created["tracking_number"], DRIVER_ID, "picked_up", "Manila Hub")

        tracking = await service.track_by_tracking_number(created["tracking_number"])

        assert tracking["current_status"] == PackageStatus.PICKED_UP
        assert tracking["receiver_name"] == "Maria Santos"
        assert tracking["destination"] == "Quezon City"
        assert tracking["driver"] == "Juan Dela Cruz"
        assert tracking["vehicle"] == "NAB-1234"
        assert [entry["status"] for entry in tracking["tracking_history"]] == [
            PackageStatus.PENDING, PackageStatus.PICKED_UP
        ]

    async def test_public_tracking_without_assignment(self, db_session, publisher, seed, make_shipment):
        await make_shipment(driver_id=None)
        tracking = await ShipmentService(db_session, publisher).track_by_tracking_number("SHP-TEST01-P1")
        assert tracking["driver"] == "Not assigned"
        assert tracking["vehicle"] == "Not assigned"
        assert tracking["tracking_history"] == []

    async def test_unknown_tracking_number(self, db_session, publisher, seed):
        with pytest.raises(NotFoundError):
            await ShipmentService(db_session, publisher).track_by_tracking_number("LS000000000000000")

    async def test_shipment_detail_is_organization_scoped(self, db_session, publisher, seed, make_shipment):
        await make_shipment(packages=[{"status": PackageStatus.DELIVERED}, {"status": PackageStatus.IN_TRANSIT}])
        service = ShipmentService(db_session, publisher)

        detail = await service.get_shipment("SHP-TEST01", ORG_ID)
        assert detail["status"] == PackageStatus.IN_TRANSIT
        assert len(detail["packages"]) == 2

        with pytest.raises(NotFoundError):
            await service.get_shipment("SHP-TEST01", OTHER_ORG_ID)

    async def test_driver_shipments(self, db_session, publisher, seed, make_shipment):
        await make_shipment("SHP-AAAAAA", vehicle_id=1, packages=[
            {"status": PackageStatus.PENDING, "weight": 10, "length": 50, "width": 40, "height": 30, "charges": 100},
            {"status": PackageStatus.PICKED_UP, "weight": 20, "charges": 200, "receiver_address": "1 Rizal Avenue"},
            {"status": PackageStatus.DELIVERED, "weight": 50},
        ])
        await make_shipment("SHP-BBBBBB", vehicle_id=1, packages=[{"status": PackageStatus.DELIVERED}])

        result = await ShipmentService(db_session, publisher).get_driver_shipments(DRIVER_ID)

        assert [item["shipment_id"] for item in result["shipments"]] == ["SHP-AAAAAA"]
        summary = result["shipments"][0]
        assert summary["package_count"] == 2
        assert summary["status"] == PackageStatus.PENDING
        assert summary["priority"] == "high"
        assert summary["destinations"] == ["1 Rizal Avenue"]
        assert summary["total_weight"] == 30
        assert summary["total_charges"] == 300
        assert result["capacity"]["current_load"] == 30
        assert result["capacity"]["utilization_percent"] == 30.0
        assert result["summary"]["delivered"] == 2
        assert result["summary"]["total"] == 4

    async def test_driver_load_counts_only_the_reported_vehicle(self, db_session, publisher, seed, make_shipment):
        db_session.add(Vehicle(id=3, organization_id=ORG_ID, vehicle_number="TRK-003", registration_number="NAB-9012",
                               vehicle_type="Truck", capacity=1000, volume_capacity=20, is_active=True,
                               created_at=utcnow()))
        await db_session.commit()
        await make_shipment("SHP-TRUCK1", vehicle_id=3, packages=[{"status": PackageStatus.PICKED_UP, "weight": 60}])
        await make_shipment("SHP-VAN001", vehicle_id=1, packages=[{"status": PackageStatus.PICKED_UP, "weight": 60}])

        result = await ShipmentService(db_session, publisher).get_driver_shipments(DRIVER_ID)

        assert [item["shipment_id"] for item in result["shipments"]] == ["SHP-VAN001", "SHP-TRUCK1"]
        assert result["capacity"]["capacity"] == 100
        assert result["capacity"]["current_load"] == 60
        assert result["capacity"]["package_count"] == 1
        assert result["capacity"]["is_overloaded"] is False

    async def test_driver_route(self, db_session, publisher, seed, make_shipment):
        await make_shipment(packages=[
            {"status": PackageStatus.IN_TRANSIT, "receiver_latitude": 14.55, "receiver_longitude": 120.95},
            {"status": PackageStatus.IN_TRANSIT, "receiver_latitude": 14.6, "receiver_longitude": 120.99},
            {"status": PackageStatus.PICKED_UP},
            {"status": PackageStatus.DELIVERED, "receiver_latitude": 14.5996, "receiver_longitude": 120.9843},
        ])

        route = await ShipmentService(db_session, publisher).get_driver_route(DRIVER_ID, 14.5995, 120.9842)

        assert [stop["tracking_id"] for stop in route["stops"]] == ["SHP-TEST01-P2", "SHP-TEST01-P1"]
        assert [stop["stop_number"] for stop in route["stops"]] == [1, 2]
        assert route["total_stops"] == 2
        assert [item["tracking_id"] for item in route["unroutable"]] == ["SHP-TEST01-P3"]

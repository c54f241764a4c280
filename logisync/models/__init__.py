from logisync.models.sales.order import Order
from logisync.models.logistics.driver import Driver
from logisync.models.logistics.vehicle import Vehicle
from logisync.models.logistics.shipment import Shipment
from logisync.models.logistics.package import Package
from logisync.models.logistics.tracking_history import TrackingHistory
from logisync.models.logistics.gps_location import GpsLocation
from logisync.models.logistics.tracking_session import TrackingSession

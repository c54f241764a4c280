from sqlalchemy import Column, Integer, String, DateTime, Boolean, Text, Date, ForeignKey
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from logisync.db.base import Base

class Shipment(Base):
    """Master record of a delivery run; its status is derived from its packages"""
    __tablename__ = 'shipments'

    id = Column(String(20), primary_key=True)  # SHP-XXXXXX
    organization_id = Column(Integer, nullable=False, index=True)
    order_id = Column(Integer, ForeignKey('orders.id'), unique=True)
    vehicle_id = Column(Integer, ForeignKey('vehicles.id'))
    driver_id = Column(Integer, ForeignKey('drivers.id'), index=True)
    budget_id = Column(Integer)
    warehouse_id = Column(Integer)
    origin_name = Column(String(255))
    origin_address = Column(Text)
    destination_name = Column(String(255))
    destination_address = Column(Text)
    departure_date = Column(Date)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())
    is_deleted = Column(Boolean, default=False)
    created_by = Column(Integer)  # User ID

    # Relationships
    order = relationship("Order")
    vehicle = relationship("Vehicle", back_populates="shipments")
    driver = relationship("Driver", back_populates="shipments")
    packages = relationship("Package", back_populates="shipment", order_by="Package.created_at")
    gps_locations = relationship("GpsLocation", back_populates="shipment")

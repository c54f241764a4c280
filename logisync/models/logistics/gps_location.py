from sqlalchemy import Column, Integer, String, DateTime, Numeric, ForeignKey, Index
from sqlalchemy.orm import relationship
from logisync.db.base import Base

class GpsLocation(Base):
    __tablename__ = 'gps_locations'
    __table_args__ = (
        Index('ix_gps_locations_shipment_recorded', 'shipment_id', 'recorded_at'),
    )

    id = Column(Integer, primary_key=True, index=True)
    shipment_id = Column(String(20), ForeignKey('shipments.id'), nullable=False)
    driver_id = Column(Integer, ForeignKey('drivers.id'), nullable=False)
    latitude = Column(Numeric(10, 8), nullable=False)
    longitude = Column(Numeric(11, 8), nullable=False)
    speed = Column(Numeric(8, 2))     # km/h
    accuracy = Column(Numeric(8, 2))  # meters
    recorded_at = Column(DateTime(timezone=True), nullable=False)

    # Relationships
    shipment = relationship("Shipment", back_populates="gps_locations")

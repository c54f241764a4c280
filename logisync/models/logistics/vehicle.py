from sqlalchemy import Column, Integer, String, Boolean, Numeric
from sqlalchemy.orm import relationship
from logisync.db.base import BaseModel

class Vehicle(BaseModel):
    __tablename__ = 'vehicles'

    organization_id = Column(Integer, nullable=False, index=True)
    vehicle_number = Column(String(20), unique=True, nullable=False)
    registration_number = Column(String(50))
    vehicle_type = Column(String(50))  # Truck, Van, Motorcycle, etc.
    capacity = Column(Numeric(10, 2))  # in KG
    volume_capacity = Column(Numeric(10, 2))  # in cubic meters
    is_active = Column(Boolean, default=True)

    # Relationships
    shipments = relationship("Shipment", back_populates="vehicle")

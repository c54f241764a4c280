from sqlalchemy import Column, Integer, String, Boolean
from sqlalchemy.orm import relationship
from logisync.db.base import BaseModel

class Driver(BaseModel):
    __tablename__ = 'drivers'

    organization_id = Column(Integer, nullable=False, index=True)
    username = Column(String(100), unique=True, nullable=False)
    full_name = Column(String(255))
    phone = Column(String(20))
    is_active = Column(Boolean, default=True)

    # Relationships
    shipments = relationship("Shipment", back_populates="driver")

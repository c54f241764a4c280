from sqlalchemy import Column, Integer, String, DateTime, Boolean, Text, Numeric, ForeignKey, Enum as SQLEnum
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from logisync.db.base import Base
from logisync.models.shared.enums import PackageStatus, enum_values

class Package(Base):
    __tablename__ = 'packages'

    tracking_id = Column(String(32), primary_key=True)
    shipment_id = Column(String(20), ForeignKey('shipments.id'), nullable=False, index=True)
    order_id = Column(Integer, ForeignKey('orders.id'), index=True)
    receiver_name = Column(String(255), nullable=False)
    receiver_contact = Column(String(50))
    receiver_email = Column(String(255))
    receiver_address = Column(Text, nullable=False)
    receiver_latitude = Column(Numeric(10, 8))
    receiver_longitude = Column(Numeric(11, 8))
    weight = Column(Numeric(10, 2))  # kg
    length = Column(Numeric(10, 2))  # cm
    width = Column(Numeric(10, 2))   # cm
    height = Column(Numeric(10, 2))  # cm
    charges = Column(Integer, nullable=False, default=0)  # smallest currency unit
    status = Column(
        SQLEnum(PackageStatus, name="package_status", values_callable=enum_values),
        nullable=False,
        default=PackageStatus.PENDING,
        index=True
    )
    notes = Column(Text)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())
    is_deleted = Column(Boolean, default=False)

    # Relationships
    shipment = relationship("Shipment", back_populates="packages")
    tracking_history = relationship(
        "TrackingHistory",
        back_populates="package",
        order_by="TrackingHistory.timestamp"
    )

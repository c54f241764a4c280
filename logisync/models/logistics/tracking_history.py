from sqlalchemy import Column, Integer, String, DateTime, Text, ForeignKey, Enum as SQLEnum
from sqlalchemy.orm import relationship
from logisync.db.base import Base
from logisync.models.shared.enums import PackageStatus, enum_values

class TrackingHistory(Base):
    """Audit trail of status changes. Rows are inserted, never updated or deleted."""
    __tablename__ = 'tracking_history'

    id = Column(Integer, primary_key=True, index=True)
    tracking_id = Column(String(32), ForeignKey('packages.tracking_id'), index=True)
    shipment_id = Column(String(20), ForeignKey('shipments.id'), index=True)
    timestamp = Column(DateTime(timezone=True), nullable=False, index=True)
    location = Column(String(255))
    status = Column(SQLEnum(PackageStatus, name="package_status", values_callable=enum_values), nullable=False)
    details = Column(Text)
    recorded_by = Column(Integer)  # User ID

    # Relationships
    package = relationship("Package", back_populates="tracking_history")

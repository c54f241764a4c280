from sqlalchemy import Column, Integer, DateTime, ForeignKey, Enum as SQLEnum
from sqlalchemy.orm import relationship
from logisync.db.base import BaseModel
from logisync.models.shared.enums import SessionEndReason, enum_values

class TrackingSession(BaseModel):
    """Driver GPS tracking session. Open while ended_at is NULL."""
    __tablename__ = 'tracking_sessions'

    driver_id = Column(Integer, ForeignKey('drivers.id'), nullable=False, index=True)
    organization_id = Column(Integer, nullable=False)
    started_at = Column(DateTime(timezone=True), nullable=False)
    last_sample_at = Column(DateTime(timezone=True))
    ended_at = Column(DateTime(timezone=True))
    end_reason = Column(SQLEnum(SessionEndReason, name="session_end_reason", values_callable=enum_values))

    # Relationships
    driver = relationship("Driver")

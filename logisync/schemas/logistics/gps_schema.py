from pydantic import BaseModel, Field
from typing import Optional, List, Dict
from datetime import datetime
from logisync.schemas.logistics.shipment_schema import FailedPackage

class LocationSample(BaseModel):
    latitude: float = Field(..., ge=-90, le=90)
    longitude: float = Field(..., ge=-180, le=180)
    speed: Optional[float] = Field(None, ge=0, description="km/h")
    accuracy: Optional[float] = Field(None, ge=0, description="meters")
    driver_id: Optional[int] = None

class TrackingStart(BaseModel):
    latitude: float = Field(..., ge=-90, le=90)
    longitude: float = Field(..., ge=-180, le=180)
    driver_id: Optional[int] = None

class GpsLocationResponse(BaseModel):
    id: int
    shipment_id: str
    driver_id: int
    latitude: float
    longitude: float
    speed: Optional[float] = None
    accuracy: Optional[float] = None
    recorded_at: datetime

    class Config:
        from_attributes = True

class LocationHistoryResponse(BaseModel):
    shipment_id: str
    count: int
    locations: List[GpsLocationResponse] = Field(default_factory=list)

class FailedShipment(BaseModel):
    shipment_id: str
    error: str

class FanOutResult(BaseModel):
    delivered: List[str] = Field(default_factory=list)
    failed: List[FailedShipment] = Field(default_factory=list)

class TrackingSessionResponse(BaseModel):
    id: int
    driver_id: int
    organization_id: int
    started_at: datetime
    last_sample_at: Optional[datetime] = None
    ended_at: Optional[datetime] = None
    end_reason: Optional[str] = None
    is_active: bool = False

class TrackingStatusResponse(BaseModel):
    is_active: bool
    session: Optional[TrackingSessionResponse] = None
    sample_interval_seconds: int

class TrackingStartResponse(BaseModel):
    message: str = "Tracking started"
    session: TrackingSessionResponse
    packages_moved: int
    failed_packages: List[FailedPackage] = Field(default_factory=list)
    sample_interval_seconds: int
    location: FanOutResult

class TrackingStopResponse(BaseModel):
    message: str
    session: Optional[TrackingSessionResponse] = None

class LocationRecordedResponse(BaseModel):
    message: str = "Location updated successfully"
    location: Dict[str, float]

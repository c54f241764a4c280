from pydantic import BaseModel, Field
from typing import Optional, List

class RouteStopResponse(BaseModel):
    stop_number: int
    tracking_id: str
    latitude: float
    longitude: float
    distance_km: float
    estimated_minutes: int
    receiver_name: Optional[str] = None
    receiver_address: Optional[str] = None
    status: Optional[str] = None

    class Config:
        from_attributes = True

class UnroutablePackage(BaseModel):
    tracking_id: str
    receiver_name: Optional[str] = None
    receiver_address: Optional[str] = None
    reason: str = "no delivery location"

class RouteResponse(BaseModel):
    start_latitude: float
    start_longitude: float
    total_stops: int
    total_distance_km: float
    total_estimated_minutes: int
    stops: List[RouteStopResponse] = Field(default_factory=list)
    unroutable: List[UnroutablePackage] = Field(default_factory=list)

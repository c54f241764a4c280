from pydantic import AliasChoices, BaseModel, Field, validator
from typing import Optional, List, Dict, Any
from datetime import date, datetime
from decimal import Decimal
from logisync.models.shared.enums import PackageStatus

class PackageBase(BaseModel):
    receiver_name: str = Field(..., min_length=1, max_length=255)
    receiver_contact: Optional[str] = Field(None, max_length=50)
    receiver_email: Optional[str] = Field(None, max_length=255)
    receiver_address: str = Field(..., min_length=1)
    receiver_latitude: Optional[Decimal] = Field(None, ge=-90, le=90)
    receiver_longitude: Optional[Decimal] = Field(None, ge=-180, le=180)
    weight: Optional[Decimal] = Field(None, ge=0)
    length: Optional[Decimal] = Field(None, ge=0)
    width: Optional[Decimal] = Field(None, ge=0)
    height: Optional[Decimal] = Field(None, ge=0)
    charges: int = Field(0, ge=0)
    notes: Optional[str] = None

    @validator("receiver_email")
    def validate_email(cls, v):
        if v and "@" not in v:
            raise ValueError("Invalid email address")
        return v or None

class PackageCreate(PackageBase):
    pass

class ShipmentFromOrderCreate(BaseModel):
    vehicle_id: int = Field(..., validation_alias=AliasChoices("vehicle_id", "transport_id"))
    driver_id: Optional[int] = None
    budget_id: Optional[int] = None
    warehouse_id: Optional[int] = None
    origin_name: str = Field(..., min_length=1, max_length=255)
    origin_address: str = Field(..., min_length=1)
    destination_name: str = Field(..., min_length=1, max_length=255)
    destination_address: str = Field(..., min_length=1)
    departure_date: Optional[date] = None

    # Single package shorthand, used when ``packages`` is empty
    receiver_name: Optional[str] = Field(None, max_length=255)
    receiver_contact: Optional[str] = Field(None, max_length=50)
    receiver_email: Optional[str] = Field(None, max_length=255)
    receiver_address: Optional[str] = None
    receiver_latitude: Optional[Decimal] = Field(None, ge=-90, le=90)
    receiver_longitude: Optional[Decimal] = Field(None, ge=-180, le=180)
    weight: Optional[Decimal] = Field(None, ge=0)
    length: Optional[Decimal] = Field(None, ge=0)
    width: Optional[Decimal] = Field(None, ge=0)
    height: Optional[Decimal] = Field(None, ge=0)
    charges: int = Field(0, ge=0)

    packages: List[PackageCreate] = Field(default_factory=list)

    def package_entries(self) -> List[PackageCreate]:
        """Packages to create; falls back to the receiver fields as one package"""
        if self.packages:
            return list(self.packages)
        return [
            PackageCreate(
                receiver_name=self.receiver_name,
                receiver_contact=self.receiver_contact,
                receiver_email=self.receiver_email,
                receiver_address=self.receiver_address,
                receiver_latitude=self.receiver_latitude,
                receiver_longitude=self.receiver_longitude,
                weight=self.weight,
                length=self.length,
                width=self.width,
                height=self.height,
                charges=self.charges,
            )
        ]

    def has_receiver(self) -> bool:
        return bool(self.packages) or bool(
            (self.receiver_name or "").strip() and (self.receiver_address or "").strip()
        )

class ShipmentCreatedResponse(BaseModel):
    message: str = "Shipment created successfully"
    shipment_id: str
    tracking_number: str
    tracking_ids: List[str]
    package_count: int

class PackageStatusUpdate(BaseModel):
    status: str
    location: str = Field(..., min_length=1, max_length=255)
    notes: Optional[str] = None
    driver_id: Optional[int] = None

    @validator("location")
    def validate_location(cls, v):
        if not v.strip():
            raise ValueError("Location is required")
        return v.strip()

class StaffStatusUpdate(PackageStatusUpdate):
    force: bool = False

class ExceptionReport(BaseModel):
    description: Optional[str] = Field(None, validation_alias=AliasChoices("description", "notes"))
    location: Optional[str] = Field(None, max_length=255)
    driver_id: Optional[int] = None

class StatusUpdateResponse(BaseModel):
    message: str = "Status updated successfully"
    tracking_id: str
    shipment_id: str
    old_status: PackageStatus
    status: PackageStatus
    shipment_status: PackageStatus
    location: Optional[str] = None
    timestamp: datetime

class FailedPackage(BaseModel):
    tracking_id: str
    detail: str

class ExceptionReportResponse(BaseModel):
    shipment_id: str
    updated: int
    failed: List[FailedPackage] = Field(default_factory=list)

class TrackingHistoryResponse(BaseModel):
    id: int
    tracking_id: Optional[str] = None
    shipment_id: Optional[str] = None
    timestamp: datetime
    location: Optional[str] = None
    status: PackageStatus
    details: Optional[str] = None

    class Config:
        from_attributes = True

class PackageResponse(BaseModel):
    tracking_id: str
    shipment_id: str
    order_id: Optional[int] = None
    receiver_name: str
    receiver_contact: Optional[str] = None
    receiver_email: Optional[str] = None
    receiver_address: str
    receiver_latitude: Optional[float] = None
    receiver_longitude: Optional[float] = None
    weight: Optional[float] = None
    length: Optional[float] = None
    width: Optional[float] = None
    height: Optional[float] = None
    charges: int = 0
    status: PackageStatus
    notes: Optional[str] = None
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True

class ShipmentDetailResponse(BaseModel):
    id: str
    organization_id: int
    order_id: Optional[int] = None
    vehicle_id: Optional[int] = None
    driver_id: Optional[int] = None
    origin_name: Optional[str] = None
    origin_address: Optional[str] = None
    destination_name: Optional[str] = None
    destination_address: Optional[str] = None
    departure_date: Optional[date] = None
    created_at: Optional[datetime] = None
    status: PackageStatus
    packages: List[PackageResponse] = Field(default_factory=list)
    history: List[TrackingHistoryResponse] = Field(default_factory=list)

class TrackingEventResponse(BaseModel):
    timestamp: datetime
    location: Optional[str] = None
    status: PackageStatus
    details: Optional[str] = None

class PublicTrackingResponse(BaseModel):
    tracking_number: str
    shipment_id: str
    current_status: PackageStatus
    shipment_status: PackageStatus
    receiver_name: str
    destination: Optional[str] = None
    destination_address: Optional[str] = None
    creation_date: Optional[datetime] = None
    departure_date: Optional[date] = None
    driver: str = "Not assigned"
    vehicle: str = "Not assigned"
    tracking_history: List[TrackingEventResponse] = Field(default_factory=list)

class DriverShipmentSummary(BaseModel):
    shipment_id: str
    status: PackageStatus
    priority: str
    origin_name: Optional[str] = None
    destination_name: Optional[str] = None
    departure_date: Optional[date] = None
    package_count: int
    destinations: List[str] = Field(default_factory=list)
    total_weight: float = 0
    total_volume: float = 0
    total_charges: int = 0
    packages: List[PackageResponse] = Field(default_factory=list)

class DriverShipmentsResponse(BaseModel):
    shipments: List[DriverShipmentSummary] = Field(default_factory=list)
    capacity: Optional[Dict[str, Any]] = None
    summary: Dict[str, int] = Field(default_factory=dict)

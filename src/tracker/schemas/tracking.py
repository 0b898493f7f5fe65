"""Ingestion and tracking-link API schemas."""

from __future__ import annotations

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field

from ..models.domain import GpsDevice, Truck


class IngestAckResponse(BaseModel):
    success: bool = True
    truck_id: str
    status: str | None = None
    speed: float | None = None
    arrival_number: int | None = None
    applied: bool
    notified: bool = False


class BrowserLocationRequest(BaseModel):
    latitude: float = Field(ge=-90, le=90)
    longitude: float = Field(ge=-180, le=180)
    accuracy: float | None = Field(default=None, ge=0)
    speed: float | None = None
    timestamp: datetime | None = None


class TrackingLinkResponse(BaseModel):
    truck_id: str
    token: str
    url: str


class TrackingPageResponse(BaseModel):
    truck_id: str
    plate_number: str
    driver_name: str | None = None
    destination: str | None = None
    status: str


class DriverArrivalResponse(BaseModel):
    success: bool = True
    truck_id: str
    status: str
    arrival_number: int | None = None


class GpsDeviceCreateRequest(BaseModel):
    device_id: str = Field(min_length=1)
    truck_id: str | None = None
    device_type: str | None = None
    imei: str | None = None
    phone_number: str | None = None

    def to_device(self) -> GpsDevice:
        return GpsDevice(
            device_id=self.device_id.strip(),
            truck_id=self.truck_id,
            device_type=self.device_type,
            imei=self.imei,
            phone_number=self.phone_number,
        )


class GpsDeviceModel(BaseModel):
    id: str | None = None
    device_id: str
    truck_id: str | None = None
    device_type: str | None = None
    imei: str | None = None
    phone_number: str | None = None
    created_at: datetime | None = None
    plate_number: str | None = None
    driver_name: str | None = None

    @classmethod
    def from_device(cls, device: GpsDevice, truck: Optional[Truck] = None) -> "GpsDeviceModel":
        return cls(
            id=device.id,
            device_id=device.device_id,
            truck_id=device.truck_id,
            device_type=device.device_type,
            imei=device.imei,
            phone_number=device.phone_number,
            created_at=device.created_at,
            plate_number=truck.plate_number if truck else None,
            driver_name=truck.driver_name if truck else None,
        )


class GpsDeviceListResponse(BaseModel):
    devices: List[GpsDeviceModel]

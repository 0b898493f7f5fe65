"""Truck API schemas."""

from __future__ import annotations

from datetime import datetime
from typing import List

from pydantic import BaseModel

from ..models.domain import Truck


class TruckModel(BaseModel):
    id: str
    plate_number: str
    driver_name: str | None = None
    driver_phone: str | None = None
    status: str
    latitude: float | None = None
    longitude: float | None = None
    speed: float = 0
    destination: str | None = None
    arrival_number: int | None = None
    last_update: datetime | None = None
    tracking_method: str | None = None
    product_type: str | None = None
    supplier_name: str | None = None
    cargo_type: str | None = None
    bon_livraison: str | None = None
    is_checked: bool = False
    checked_by: str | None = None
    checked_at: datetime | None = None

    @classmethod
    def from_truck(cls, truck: Truck) -> "TruckModel":
        return cls(
            id=truck.id,
            plate_number=truck.plate_number,
            driver_name=truck.driver_name,
            driver_phone=truck.driver_phone,
            status=truck.status.value,
            latitude=truck.latitude,
            longitude=truck.longitude,
            speed=truck.speed,
            destination=truck.destination,
            arrival_number=truck.arrival_number,
            last_update=truck.last_update,
            tracking_method=truck.tracking_method,
            product_type=truck.product_type,
            supplier_name=truck.supplier_name,
            cargo_type=truck.cargo_type,
            bon_livraison=truck.bon_livraison,
            is_checked=truck.is_checked,
            checked_by=truck.checked_by,
            checked_at=truck.checked_at,
        )


class TruckListResponse(BaseModel):
    items: List[TruckModel]
    total: int


class CheckTruckRequest(BaseModel):
    checked_by: str | None = None

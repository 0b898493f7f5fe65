"""Geofence API schemas."""

from __future__ import annotations

from pydantic import BaseModel, Field

from ..models.domain import Geofence, GeofenceKind


class GeofenceModel(BaseModel):
    id: str
    city_name: str
    geofence_type: GeofenceKind
    latitude: float
    longitude: float
    radius: float
    color: str | None = None

    @classmethod
    def from_geofence(cls, geofence: Geofence) -> "GeofenceModel":
        return cls(
            id=geofence.id,
            city_name=geofence.city_name,
            geofence_type=geofence.kind,
            latitude=geofence.latitude,
            longitude=geofence.longitude,
            radius=geofence.radius,
            color=geofence.color,
        )


class GeofenceCreateRequest(BaseModel):
    city_name: str = Field(min_length=1)
    geofence_type: GeofenceKind = GeofenceKind.CITY_BOUNDARY
    latitude: float = Field(ge=-90, le=90)
    longitude: float = Field(ge=-180, le=180)
    radius: float = Field(gt=0, description="Radius in metres.")
    color: str | None = None

    def to_geofence(self) -> Geofence:
        return Geofence(
            id="",
            city_name=self.city_name.strip(),
            kind=self.geofence_type,
            latitude=self.latitude,
            longitude=self.longitude,
            radius=self.radius,
            color=self.color,
        )


class GeofenceImportResponse(BaseModel):
    imported: int

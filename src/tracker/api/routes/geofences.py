"""Geofence administration endpoints."""

from __future__ import annotations

from pathlib import Path
from typing import List

from fastapi import APIRouter, Depends, File, HTTPException, UploadFile, status

from ...data.geofence_repository import load_geofences_from_workbook
from ...errors import PersistenceError
from ...persistence.base import TrackingStore
from ...schemas.geofences import GeofenceCreateRequest, GeofenceImportResponse, GeofenceModel
from ...services.export.geojson import export_geofences_to_geojson
from ..deps import get_tracking_store

router = APIRouter(prefix="/geofences", tags=["geofences"])


@router.get("", response_model=List[GeofenceModel], status_code=status.HTTP_200_OK)
def list_geofences(store: TrackingStore = Depends(get_tracking_store)) -> List[GeofenceModel]:
    return [GeofenceModel.from_geofence(zone) for zone in store.list_geofences()]


@router.get("/geojson", status_code=status.HTTP_200_OK)
def geofences_geojson(store: TrackingStore = Depends(get_tracking_store)) -> dict:
    """Geofences as circle polygons for map overlays."""
    return export_geofences_to_geojson(store.list_geofences())


@router.post("", response_model=GeofenceModel, status_code=status.HTTP_201_CREATED)
def create_geofence(payload: GeofenceCreateRequest, store: TrackingStore = Depends(get_tracking_store)) -> GeofenceModel:
    try:
        return GeofenceModel.from_geofence(store.add_geofence(payload.to_geofence()))
    except PersistenceError as e:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(e)) from e


@router.delete("/{geofence_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_geofence(geofence_id: str, store: TrackingStore = Depends(get_tracking_store)) -> None:
    try:
        deleted = store.delete_geofence(geofence_id)
    except PersistenceError as e:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(e)) from e
    if not deleted:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"Geofence '{geofence_id}' not found")


@router.post("/import", response_model=GeofenceImportResponse, status_code=status.HTTP_200_OK)
async def import_geofences(
    file: UploadFile = File(...),
    store: TrackingStore = Depends(get_tracking_store),
) -> GeofenceImportResponse:
    """Add the geofences listed in an Excel workbook."""
    if not file.filename:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Filename is required.")
    if Path(file.filename).suffix.lower() != ".xlsx":
        raise HTTPException(status_code=status.HTTP_415_UNSUPPORTED_MEDIA_TYPE, detail="Only .xlsx files are supported.")

    contents = await file.read()
    try:
        geofences = load_geofences_from_workbook(contents)
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e)) from e

    try:
        for geofence in geofences:
            store.add_geofence(geofence)
    except PersistenceError as e:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(e)) from e
    return GeofenceImportResponse(imported=len(geofences))

"""GPS device webhook and device registry."""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Body, Depends, HTTPException, status

from ...errors import IngestErrorCode, PersistenceError, TruckNotFoundError
from ...models.domain import FixSource
from ...schemas.tracking import GpsDeviceCreateRequest, GpsDeviceListResponse, GpsDeviceModel, IngestAckResponse
from ...services.tracking.ingestion import IngestionPipeline, IngestResult
from ...services.trucks import TruckService
from ..deps import get_pipeline, get_truck_service

router = APIRouter(prefix="/gps", tags=["gps"])

_ERROR_STATUS = {
    IngestErrorCode.INVALID_PAYLOAD: status.HTTP_400_BAD_REQUEST,
    IngestErrorCode.UNKNOWN_SOURCE: status.HTTP_404_NOT_FOUND,
}


def ingest_or_raise(pipeline: IngestionPipeline, source: FixSource, payload: Any, source_id: str | None = None) -> IngestAckResponse:
    """Run the pipeline and translate its outcome into a response or an HTTP error."""
    try:
        result: IngestResult = pipeline.ingest(source, payload, source_id=source_id)
    except PersistenceError as e:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(e)) from e

    if not result.ok:
        raise HTTPException(
            status_code=_ERROR_STATUS.get(result.error, status.HTTP_400_BAD_REQUEST),
            detail={"error": result.error.value if result.error else "error", "message": result.message},
        )
    return IngestAckResponse(
        truck_id=result.truck_id,
        status=result.status.value if result.status else None,
        speed=result.speed,
        arrival_number=result.arrival_number,
        applied=result.applied,
        notified=result.notified,
    )


@router.post("/webhook", response_model=IngestAckResponse, status_code=status.HTTP_200_OK)
def gps_webhook(
    payload: Any = Body(...),
    pipeline: IngestionPipeline = Depends(get_pipeline),
) -> IngestAckResponse:
    """Accept generic and vendor-specific device payloads."""
    return ingest_or_raise(pipeline, FixSource.WEBHOOK, payload)


@router.get("/devices", response_model=GpsDeviceListResponse, status_code=status.HTTP_200_OK)
def list_devices(service: TruckService = Depends(get_truck_service)) -> GpsDeviceListResponse:
    try:
        devices = service.list_gps_devices()
    except PersistenceError as e:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(e)) from e
    return GpsDeviceListResponse(devices=[GpsDeviceModel.from_device(device, truck) for device, truck in devices])


@router.post("/devices", response_model=GpsDeviceModel, status_code=status.HTTP_201_CREATED)
def register_device(payload: GpsDeviceCreateRequest, service: TruckService = Depends(get_truck_service)) -> GpsDeviceModel:
    """Register a tracker whose id differs from the truck's own GPS number."""
    try:
        device = service.register_gps_device(payload.to_device())
    except TruckNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e)) from e
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e)) from e
    except PersistenceError as e:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(e)) from e
    return GpsDeviceModel.from_device(device, service.store.get_truck(device.truck_id) if device.truck_id else None)

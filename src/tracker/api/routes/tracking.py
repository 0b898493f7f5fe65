"""Browser tracking links and the location endpoint used by the tracking page."""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, status

from ...errors import PersistenceError, TruckNotFoundError, TruckStateError
from ...models.domain import FixSource
from ...persistence.base import TrackingStore
from ...schemas.tracking import (
    BrowserLocationRequest,
    DriverArrivalResponse,
    IngestAckResponse,
    TrackingLinkResponse,
    TrackingPageResponse,
)
from ...services.tracking.ingestion import IngestionPipeline
from ...services.trucks import TruckService
from ..deps import get_pipeline, get_tracking_store, get_truck_service
from .gps import ingest_or_raise

router = APIRouter(prefix="/tracking", tags=["tracking"])


@router.post("/links/{truck_id}", response_model=TrackingLinkResponse, status_code=status.HTTP_201_CREATED)
def create_tracking_link(truck_id: str, service: TruckService = Depends(get_truck_service)) -> TrackingLinkResponse:
    try:
        truck, url = service.issue_tracking_link(truck_id)
    except TruckNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e)) from e
    return TrackingLinkResponse(truck_id=truck.id, token=truck.tracking_token, url=url)


@router.get("/{token}", response_model=TrackingPageResponse, status_code=status.HTTP_200_OK)
def get_tracking_page(token: str, store: TrackingStore = Depends(get_tracking_store)) -> TrackingPageResponse:
    truck = store.find_truck_by_source(FixSource.BROWSER, token)
    if truck is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Invalid or expired tracking link")
    return TrackingPageResponse(
        truck_id=truck.id,
        plate_number=truck.plate_number,
        driver_name=truck.driver_name,
        destination=truck.destination,
        status=truck.status.value,
    )


@router.post("/{token}/location", response_model=IngestAckResponse, status_code=status.HTTP_200_OK)
def post_browser_location(
    token: str,
    payload: BrowserLocationRequest,
    pipeline: IngestionPipeline = Depends(get_pipeline),
) -> IngestAckResponse:
    return ingest_or_raise(pipeline, FixSource.BROWSER, payload.model_dump(mode="json", exclude_none=True), source_id=token)


@router.post("/{token}/arrived", response_model=DriverArrivalResponse, status_code=status.HTTP_200_OK)
def driver_mark_arrived(token: str, service: TruckService = Depends(get_truck_service)) -> DriverArrivalResponse:
    """The driver confirms arrival from the tracking page."""
    try:
        truck = service.mark_arrived_by_token(token)
    except TruckNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Invalid or expired tracking link") from e
    except TruckStateError as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e)) from e
    except PersistenceError as e:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(e)) from e
    return DriverArrivalResponse(truck_id=truck.id, status=truck.status.value, arrival_number=truck.arrival_number)

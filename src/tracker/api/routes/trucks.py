"""Truck queue and manual status actions."""

from __future__ import annotations

from fastapi import APIRouter, Body, Depends, HTTPException, status

from ...errors import PersistenceError, TruckNotFoundError, TruckStateError
from ...schemas.trucks import CheckTruckRequest, TruckListResponse, TruckModel
from ...services.trucks import TruckService
from ..deps import get_truck_service

router = APIRouter(prefix="/trucks", tags=["trucks"])


@router.get("", response_model=TruckListResponse, status_code=status.HTTP_200_OK)
def list_trucks(service: TruckService = Depends(get_truck_service)) -> TruckListResponse:
    trucks = service.list_active_trucks()
    return TruckListResponse(items=[TruckModel.from_truck(truck) for truck in trucks], total=len(trucks))


@router.get("/{truck_id}", response_model=TruckModel, status_code=status.HTTP_200_OK)
def get_truck(truck_id: str, service: TruckService = Depends(get_truck_service)) -> TruckModel:
    try:
        return TruckModel.from_truck(service.get_truck(truck_id))
    except TruckNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e)) from e


@router.post("/{truck_id}/arrived", response_model=TruckModel, status_code=status.HTTP_200_OK)
def mark_arrived(truck_id: str, service: TruckService = Depends(get_truck_service)) -> TruckModel:
    try:
        return TruckModel.from_truck(service.mark_arrived(truck_id))
    except TruckNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e)) from e
    except TruckStateError as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e)) from e
    except PersistenceError as e:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(e)) from e


@router.post("/{truck_id}/check", response_model=TruckModel, status_code=status.HTTP_200_OK)
def check_truck(
    truck_id: str,
    payload: CheckTruckRequest | None = Body(default=None),
    service: TruckService = Depends(get_truck_service),
) -> TruckModel:
    """Mark a truck checked/discharged and archive its arrival snapshot."""
    checked_by = payload.checked_by if payload else None
    try:
        return TruckModel.from_truck(service.discharge(truck_id, checked_by))
    except TruckNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e)) from e
    except TruckStateError as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e)) from e
    except PersistenceError as e:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(e)) from e

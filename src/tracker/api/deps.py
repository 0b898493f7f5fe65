"""FastAPI dependencies resolving the services built in ``create_app``."""

from __future__ import annotations

from fastapi import Request

from ..persistence.base import TrackingStore
from ..services.telegram.access import TelegramAccessService
from ..services.telegram.webhook import TelegramUpdateHandler
from ..services.tracking.ingestion import IngestionPipeline
from ..services.trucks import TruckService


def get_tracking_store(request: Request) -> TrackingStore:
    return request.app.state.tracking_store


def get_pipeline(request: Request) -> IngestionPipeline:
    return request.app.state.pipeline


def get_truck_service(request: Request) -> TruckService:
    return request.app.state.truck_service


def get_access_service(request: Request) -> TelegramAccessService:
    return request.app.state.access_service


def get_telegram_handler(request: Request) -> TelegramUpdateHandler:
    return request.app.state.telegram_handler

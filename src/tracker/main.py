"""FastAPI application entry point."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .api.routes import geofences, gps, health, telegram, telegram_access, tracking, trucks
from .config import settings
from .data.geofence_repository import seed_geofences
from .persistence import build_stores
from .persistence.base import TelegramAccessStore, TrackingStore
from .services.notifications import NotificationDispatcher, NotificationSender, build_sender
from .services.telegram import TelegramAccessService, TelegramUpdateHandler
from .services.tracking import IngestionPipeline
from .services.trucks import TruckService


def create_app(
    tracking_store: TrackingStore | None = None,
    access_store: TelegramAccessStore | None = None,
    notification_sender: NotificationSender | None = None,
    background_notifications: bool = True,
) -> FastAPI:
    logging.basicConfig(level=settings.log_level.upper())

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        yield
        app.state.dispatcher.shutdown(wait=False)

    app = FastAPI(
        title=settings.app_name,
        root_path="",
        lifespan=lifespan,
    )
    if settings.frontend_allowed_origins:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=list(settings.frontend_allowed_origins),
            allow_credentials=True,
            allow_methods=["*"],
            allow_headers=["*"],
        )

    if tracking_store is None or access_store is None:
        default_tracking, default_access = build_stores()
        if tracking_store is None:
            tracking_store = default_tracking
            try:
                seed_geofences(tracking_store)
            except Exception as e:
                logging.warning(f"Geofence seeding skipped: {e}")
        if access_store is None:
            access_store = default_access

    sender = notification_sender or build_sender()
    if background_notifications:
        dispatcher = NotificationDispatcher.with_thread_pool(sender, tracking_store)
    else:
        dispatcher = NotificationDispatcher(sender, tracking_store)

    pipeline = IngestionPipeline(tracking_store, dispatcher)
    access_service = TelegramAccessService(access_store, tracking_store)

    app.state.tracking_store = tracking_store
    app.state.access_store = access_store
    app.state.dispatcher = dispatcher
    app.state.pipeline = pipeline
    app.state.truck_service = TruckService(tracking_store, dispatcher)
    app.state.access_service = access_service
    app.state.telegram_handler = TelegramUpdateHandler(access_service, pipeline)

    @app.get("/")
    def root():
        return {
            "service": settings.app_name,
            "status": "running",
            "api_prefix": settings.api_prefix,
            "health": f"{settings.api_prefix}/health",
            "docs": "/docs",
        }

    app.include_router(health.router, prefix=settings.api_prefix)
    app.include_router(gps.router, prefix=settings.api_prefix)
    app.include_router(telegram.router, prefix=settings.api_prefix)
    app.include_router(telegram_access.router, prefix=settings.api_prefix)
    app.include_router(tracking.router, prefix=settings.api_prefix)
    app.include_router(trucks.router, prefix=settings.api_prefix)
    app.include_router(geofences.router, prefix=settings.api_prefix)
    return app


app = create_app()

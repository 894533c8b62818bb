from __future__ import annotations
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from app.api import router
from datastore.base import ReadingStore
from datastore.sql import build_default_store
from logging_config import configure_logging
from services.ingestion import IngestionService, build_default_ingestion
from settings import get_settings


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    owns_store = app.state.store is None
    if owns_store:
        app.state.store = build_default_store()
    owns_ingestion = app.state.ingestion is None and app.state.start_ingestion
    if owns_ingestion:
        app.state.ingestion = build_default_ingestion(app.state.store)

    ingestion: Optional[IngestionService] = app.state.ingestion
    if ingestion is not None and app.state.start_ingestion:
        ingestion.start()
    try:
        yield
    finally:
        if ingestion is not None:
            ingestion.shutdown()
        if owns_ingestion:
            app.state.ingestion = None
        if owns_store:
            app.state.store.close()
            app.state.store = None
            build_default_store.cache_clear()


def create_app(
    store: Optional[ReadingStore] = None,
    ingestion: Optional[IngestionService] = None,
    start_ingestion: Optional[bool] = None,
) -> FastAPI:
    """Compose the API; the store and ingestion loop may be injected."""
    configure_logging()
    settings = get_settings()
    app = FastAPI(
        title="Sensor Telemetry Ingest",
        description="MQTT sensor ingestion with a read-only history API.",
        version="0.1.0",
        lifespan=lifespan,
    )
    app.state.store = store
    app.state.ingestion = ingestion
    app.state.start_ingestion = (
        settings.ingestion_enabled if start_ingestion is None else start_ingestion
    )
    app.add_middleware(
        CORSMiddleware,
        allow_origins=list(settings.cors_allow_origins),
        allow_methods=["GET"],
        allow_headers=["*"],
    )
    app.include_router(router)
    return app

app = create_app()

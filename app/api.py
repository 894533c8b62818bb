"""HTTP route definitions for the service."""

from __future__ import annotations

import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Request, status

from app.schemas import HealthResponse, IngestionHealth, ReadingOut
from datastore.base import ReadingStore, StoreUnavailable
from services.ingestion import IngestionService

logger = logging.getLogger(__name__)

STORE_UNAVAILABLE_DETAIL = "Reading store unavailable."

router = APIRouter()


def get_store(request: Request) -> ReadingStore:
    store = getattr(request.app.state, "store", None)
    if store is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=STORE_UNAVAILABLE_DETAIL,
        )
    return store


def get_ingestion(request: Request) -> Optional[IngestionService]:
    return getattr(request.app.state, "ingestion", None)


def _store_failure(exc: StoreUnavailable) -> HTTPException:
    logger.error("Store query failed", extra={"reason": str(exc.__cause__ or exc)})
    return HTTPException(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        detail=STORE_UNAVAILABLE_DETAIL,
    )


@router.get(
    "/data/latest",
    response_model=Optional[ReadingOut],
    summary="Most recently stored reading, or null when none exist.",
)
def get_latest(store: ReadingStore = Depends(get_store)) -> Optional[ReadingOut]:
    try:
        reading = store.latest()
    except StoreUnavailable as exc:
        raise _store_failure(exc) from exc
    return ReadingOut.from_reading(reading) if reading is not None else None


@router.get(
    "/data/all",
    response_model=List[ReadingOut],
    summary="Every stored reading, newest first.",
)
def get_all(store: ReadingStore = Depends(get_store)) -> List[ReadingOut]:
    try:
        readings = store.all()
    except StoreUnavailable as exc:
        raise _store_failure(exc) from exc
    return [ReadingOut.from_reading(reading) for reading in readings]


@router.get(
    "/health",
    response_model=HealthResponse,
    summary="Health check including the ingestion loop state.",
    status_code=status.HTTP_200_OK,
)
def healthcheck(
    ingestion: Optional[IngestionService] = Depends(get_ingestion),
) -> HealthResponse:
    if ingestion is None:
        return HealthResponse(status="ok")

    error = ingestion.error
    state = ingestion.state
    return HealthResponse(
        status="degraded" if error is not None else "ok",
        ingestion=IngestionHealth(
            state=state.value,
            stats=ingestion.stats.snapshot(),
            error=str(error) if error is not None else None,
        ),
    )

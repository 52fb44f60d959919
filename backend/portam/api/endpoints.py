"""API endpoints for tap-in validation."""

from typing import Optional
import logging

from fastapi import APIRouter, Body, Depends, Header, Query
from fastapi.responses import JSONResponse
from sqlalchemy import text

from portam.config import settings
from portam.messages import OutcomeKind, render
from portam.models import HistoryResponse, ValidationRequest, ValidationResponse
from portam.services import get_validation_engine, ValidationEngine

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["Validation"])


def get_engine() -> ValidationEngine:
    """Dependency injection for the validation engine."""
    return get_validation_engine()


def get_locale(
    lang: Optional[str] = Query(None, description="Message locale: ca, en or es"),
    accept_language: Optional[str] = Header(None),
) -> str:
    """Locale of the human-readable message, from ?lang= or Accept-Language."""
    return settings.resolve_locale(lang or accept_language)


@router.post(
    "/validation",
    response_model=ValidationResponse,
    responses={
        400: {"model": ValidationResponse, "description": "Missing suport or station"},
        403: {"model": ValidationResponse, "description": "Inactive support, title not usable here"},
        404: {"model": ValidationResponse, "description": "Unknown support or station, no active title"},
        410: {"model": ValidationResponse, "description": "Title expired or without uses"},
        429: {"model": ValidationResponse, "description": "Re-entry at the same station too soon"},
        500: {"model": ValidationResponse, "description": "Internal error"},
    },
)
def validate_tap(
    request: Optional[ValidationRequest] = Body(None),
    engine: ValidationEngine = Depends(get_engine),
    locale: str = Depends(get_locale),
):
    """
    Validate a tap of a support at a station.

    The HTTP status equals the ``code`` of the returned message. On success
    the body also carries the validation id, timestamp, station, issued
    title, remaining uses, expiration and whether the tap was a free
    transfer (``link``).
    """
    if request is None:
        request = ValidationRequest()
    outcome = engine.validate(request.suport, request.station)
    return JSONResponse(status_code=outcome.code, content=outcome.to_response(locale))


@router.get("/validation/history/{user_id}", response_model=HistoryResponse)
def validation_history(
    user_id: int,
    limit: int = Query(settings.HISTORY_LIMIT, ge=1, le=500),
    engine: ValidationEngine = Depends(get_engine),
    locale: str = Depends(get_locale),
):
    """Validations of a rider, newest first."""
    try:
        validations = engine.history(user_id, limit)
    except Exception:
        logger.exception("Could not fetch validation history of user %s", user_id)
        return JSONResponse(status_code=500, content=render(OutcomeKind.INTERNAL_ERROR, locale))

    return HistoryResponse(
        **render(OutcomeKind.HISTORY_FETCH_SUCCESS, locale),
        user_id=user_id,
        validations=validations,
    )


@router.get("/health")
def health_check(engine: ValidationEngine = Depends(get_engine)):
    """Health check endpoint including datastore status."""
    db_status = "healthy"
    try:
        with engine.db_manager.transaction() as session:
            session.execute(text("SELECT 1"))
    except Exception as e:
        db_status = f"unhealthy: {type(e).__name__}"

    return {
        "status": "healthy",
        "service": settings.API_TITLE,
        "datastore_status": db_status,
        "shared_locks": engine.lock_registry.redis_client is not None,
    }

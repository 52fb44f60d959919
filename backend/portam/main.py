"""FastAPI application for the PORTA'M validation service."""

from datetime import datetime, timezone
import logging

from fastapi import FastAPI, Request
from fastapi.exception_handlers import request_validation_exception_handler
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from portam.api.endpoints import router
from portam.config import settings
from portam.messages import OutcomeKind, render

logging.basicConfig(
    level=settings.LOG_LEVEL,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)

logger = logging.getLogger(__name__)

app = FastAPI(
    title=settings.API_TITLE,
    version=settings.API_VERSION,
    description=settings.API_DESCRIPTION,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(router)


@app.exception_handler(RequestValidationError)
async def validation_request_error_handler(request: Request, exc: RequestValidationError):
    """Answer unreadable tap bodies with a catalog message instead of a schema error."""
    if request.url.path != "/api/validation":
        return await request_validation_exception_handler(request, exc)

    logger.info("Unreadable validation request: %s", exc.errors())
    locale = settings.resolve_locale(
        request.query_params.get("lang") or request.headers.get("accept-language")
    )
    body = render(OutcomeKind.MISSING_PARAMETERS, locale)
    return JSONResponse(status_code=body["code"], content=body)


@app.get("/")
def root():
    """Service banner."""
    return {
        "message": "Welcome to PORTA'M Server API",
        "version": settings.API_VERSION,
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("portam.main:app", host="0.0.0.0", port=8000, reload=True)

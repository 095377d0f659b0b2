"""
Token Ledger — FastAPI Application.

This is the entry point for the application.
All routers and the last-resort error handlers are registered here.
"""

import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from sqlalchemy.exc import IntegrityError

from token_ledger.config import get_settings
from token_ledger.exceptions import InvariantViolation
from token_ledger.log_config import configure_logging
from token_ledger.api.health import router as health_router
from token_ledger.api.directory import router as directory_router
from token_ledger.api.tickets import router as tickets_router
from token_ledger.api.billing import router as billing_router
from token_ledger.api.ledger import router as ledger_router
from token_ledger.api.withdrawals import router as withdrawals_router
from token_ledger.api.app_settings import router as app_settings_router

settings = get_settings()
configure_logging()

logger = logging.getLogger(__name__)

app = FastAPI(
    title=settings.APP_NAME,
    version=settings.APP_VERSION,
    debug=settings.DEBUG,
    description="Append-only token ledger with settlement and withdrawals",
)

# Register routers
app.include_router(health_router)
app.include_router(directory_router)
app.include_router(tickets_router)
app.include_router(billing_router)
app.include_router(ledger_router)
app.include_router(withdrawals_router)
app.include_router(app_settings_router)


@app.exception_handler(InvariantViolation)
async def invariant_violation_handler(request: Request, exc: InvariantViolation):
    # Context was logged where the violation was detected; keep it server side.
    logger.error("aborted %s %s: %s", request.method, request.url.path, exc)
    return JSONResponse(
        status_code=500,
        content={"detail": {
            "error_code": "ERR_INTERNAL",
            "message": "Internal ledger error",
        }},
    )


@app.exception_handler(IntegrityError)
async def integrity_error_handler(request: Request, exc: IntegrityError):
    """A unique or check constraint caught a concurrent duplicate."""
    logger.warning("integrity error on %s %s: %s",
                   request.method, request.url.path, exc.orig)
    return JSONResponse(
        status_code=409,
        content={"detail": {
            "error_code": "ERR_CONFLICT",
            "message": "Request conflicts with existing data",
        }},
    )


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception):
    logger.exception("unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse(
        status_code=500,
        content={"detail": {
            "error_code": "ERR_INTERNAL",
            "message": "Internal server error",
        }},
    )

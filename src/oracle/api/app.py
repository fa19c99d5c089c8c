"""FastAPI application factory for the oracle JSON API."""

from __future__ import annotations

from typing import Any

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from oracle.api import routes
from oracle.exceptions import (
    BadRequestError,
    ConflictError,
    InternalError,
    NotFoundError,
    OracleError,
    ValidationError,
)
from oracle.logging import get_logger

logger = get_logger(__name__)

# Most specific first: ConflictError is a BadRequestError.
_STATUS_CODES: tuple[tuple[type[OracleError], int], ...] = (
    (NotFoundError, 404),
    (ConflictError, 409),
    (BadRequestError, 400),
    (ValidationError, 422),
    (InternalError, 500),
)


def status_for(exc: OracleError) -> int:
    for exc_type, status in _STATUS_CODES:
        if isinstance(exc, exc_type):
            return status
    return 500


async def _oracle_error_handler(request: Request, exc: OracleError) -> JSONResponse:
    status = status_for(exc)
    if status >= 500:
        logger.error("api_request_failed", path=request.url.path, error=str(exc))
    return JSONResponse(content={"error": str(exc)}, status_code=status)


def create_app(lifespan: Any = None) -> FastAPI:
    """Create and configure the oracle API application.

    Args:
        lifespan: Optional async context manager for application lifespan events.
                  Used by main.py to wire components onto app.state.

    Returns:
        FastAPI application with the /api router and error mapping installed.
    """
    app = FastAPI(
        title="Equity Perpetuals Price Oracle",
        lifespan=lifespan,
    )

    # Wired by main.py lifespan (or directly by tests)
    app.state.aggregator = None
    app.state.adjustment = None
    app.state.corporate_actions = None
    app.state.funding = None
    app.state.risk_windows = None
    app.state.risk_assessor = None
    app.state.recommendations = None

    app.add_exception_handler(OracleError, _oracle_error_handler)
    app.include_router(routes.router, prefix="/api")
    return app

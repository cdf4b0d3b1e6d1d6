"""Error Handlers — global exception handlers for the OpGate API.

Invariants:
    - OpGateError → structured JSON with error code, message, severity
    - Exception (catch-all) → never leaks internal details
    - Every body carries "status": "ERROR" like the core envelopes

Design Decisions:
    - Two-layer handler: domain (OpGateError), catch-all (Exception).
      Operation bodies are read by hand, so FastAPI request validation never fires
    - Extracted from main.py (ADR: ExMA import fan-out < 10)
"""

import logging

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse

from opgate.core.errors import OpGateError, ErrorSeverity

logger = logging.getLogger(__name__)


def register_error_handlers(app: FastAPI) -> None:
    """Register all global error handlers on the FastAPI app."""
    _register_opgate_error_handler(app)
    _register_generic_error_handler(app)


def _register_opgate_error_handler(app: FastAPI) -> None:
    """Register OpGate domain/infrastructure error handler."""

    @app.exception_handler(OpGateError)
    async def opgate_error_handler(request: Request, exc: OpGateError):
        """Handle all OpGate domain/infrastructure errors."""
        logger.error(
            f"OpGateError: {exc.message}",
            extra={"error_code": exc.code, "path": request.url.path},
        )
        return JSONResponse(
            status_code=exc.http_status, content=exc.to_response(),
        )


def _register_generic_error_handler(app: FastAPI) -> None:
    """Register catch-all error handler."""

    @app.exception_handler(Exception)
    async def generic_error_handler(request: Request, exc: Exception):
        """Catch-all — never leaks internal details."""
        logger.error(
            f"Unhandled exception on {request.url.path}: {exc}",
            exc_info=True,
        )
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={
                "status": "ERROR",
                "error": {
                    "code": "INTERNAL_ERROR",
                    "message": "An unexpected error occurred",
                    "category": "internal",
                    "severity": ErrorSeverity.CRITICAL.value,
                },
            },
        )

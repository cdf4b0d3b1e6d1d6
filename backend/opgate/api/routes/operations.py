"""Operation Routes — one endpoint per operation schema, bound at startup.

Invariants:
    - Route = {spec.method} /{spec.name}; built once from the sealed dispatch table
    - Unreadable bodies answer 406 {"status": "ERROR"} before any audit record exists
    - Every other outcome answers with the gateway's body (transport 200)
    - The handler's follow-up runs after the response is sent
    - Routes never contain business logic (delegate to OperationGateway)

Design Decisions:
    - add_api_route per entry over a catch-all path: unknown paths stay 404/405 at
      the router, and OpenAPI lists every operation
    - X-Correlation-Key header: callers can match a response to its audit lines
"""

import logging

from fastapi import APIRouter, Request, status
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse, Response
from starlette.background import BackgroundTask

from opgate.api.routes.payload_reader import read_payload
from opgate.core.envelopes import bare_error_envelope
from opgate.core.errors import PayloadNotAcceptableError
from opgate.services.operation_dispatch import (
    CallOutcome, DispatchEntry, OperationGateway,
)

logger = logging.getLogger(__name__)

CORRELATION_HEADER = "X-Correlation-Key"


def render_outcome(outcome: CallOutcome) -> Response:
    """CallOutcome -> HTTP response (follow-up attached as background task)."""
    background = BackgroundTask(outcome.follow_up) if outcome.follow_up else None
    headers = {CORRELATION_HEADER: outcome.correlation_key}
    if isinstance(outcome.body, (str, bytes)):
        return Response(
            content=outcome.body, status_code=outcome.status_code,
            media_type="text/plain", headers=headers, background=background,
        )
    return JSONResponse(
        content=jsonable_encoder(outcome.body), status_code=outcome.status_code,
        headers=headers, background=background,
    )


def _make_endpoint(gateway: OperationGateway, name: str):
    async def endpoint(request: Request) -> Response:
        try:
            payload = await read_payload(request)
        except PayloadNotAcceptableError as e:
            logger.warning(
                f"Rejected body for '{name}': {e.message}",
                extra={"operation": name, "error_code": e.code},
            )
            return JSONResponse(
                status_code=status.HTTP_406_NOT_ACCEPTABLE,
                content=bare_error_envelope(),
            )
        outcome = await gateway.dispatch(name, payload, request)
        return render_outcome(outcome)

    endpoint.__name__ = f"operation_{name}"
    return endpoint


def _bind(router: APIRouter, gateway: OperationGateway, entry: DispatchEntry) -> None:
    router.add_api_route(
        entry.spec.path,
        _make_endpoint(gateway, entry.name),
        methods=[entry.method.value],
        name=entry.name,
        tags=["operations"],
    )
    logger.info(
        f"Bound {entry.method.value} {entry.spec.path}"
        + ("" if entry.handler else " (no handler registered)"),
        extra={"operation": entry.name},
    )


def build_operations_router(gateway: OperationGateway) -> APIRouter:
    """Seal the gateway and bind one route per dispatch entry."""
    router = APIRouter()
    for entry in gateway.entries():
        _bind(router, gateway, entry)
    return router

"""OpGate API — FastAPI application factory.

Invariants:
    - The operations map is loaded before the app exists: ConfigError propagates
      and the process never starts serving
    - Routes registered explicitly: health first, then one route per operation
    - Global error handlers map OpGateError → structured JSON responses
    - CORS configured from settings (not hardcoded)
    - Handler tasks and pending audit writes drained on shutdown

Design Decisions:
    - Factory over module-level app: the gateway (with its handlers) is built by
      the embedding program; `uvicorn opgate.main:create_app --factory` serves
      the configured map with handlers from `operations_module`
    - Lifespan over @app.on_event: FastAPI recommended pattern, cleaner cleanup
"""

import importlib
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from opgate.api.error_handlers import register_error_handlers
from opgate.api.routes.health import build_health_router
from opgate.api.routes.operations import build_operations_router
from opgate.config import Settings, get_settings
from opgate.core.errors import ConfigError
from opgate.infrastructure import database
from opgate.infrastructure.audit_repository import SqlAuditSink
from opgate.infrastructure.observability import setup_audit_log, setup_logging
from opgate.services.operation_dispatch import OperationGateway

logger = logging.getLogger(__name__)


def _load_operations_module(gateway: OperationGateway, dotted: str) -> None:
    module = importlib.import_module(dotted)
    module.register_operations(gateway)


def create_app(
    gateway: OperationGateway | None = None, settings: Settings | None = None,
) -> FastAPI:
    """Build the app. Raises ConfigError when the operations map is unusable."""
    settings = settings or get_settings()
    setup_logging(settings.log_level, settings.log_format)
    setup_audit_log(settings.audit_log_path, echo=settings.debug_mode)

    sink = None
    if settings.database_url:
        manager = database.init_db(
            settings.database_url,
            pool_size=settings.database_pool_size,
            max_overflow=settings.database_max_overflow,
        )
        sink = SqlAuditSink(manager)

    if gateway is None:
        try:
            gateway = OperationGateway.from_settings(settings, sink)
        except ConfigError as e:
            logger.critical(
                f"Startup aborted: {e.message}",
                exc_info=True,
                extra={"error_code": e.code},
            )
            raise
        if settings.operations_module:
            _load_operations_module(gateway, settings.operations_module)
    elif sink is not None:
        gateway.ledger.attach_sink(sink)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Startup/shutdown lifecycle."""
        if database.db_manager is not None:
            await database.db_manager.create_tables()
        logger.info(f"OpGate API started with {len(gateway.schemas)} operation(s)")
        yield
        await gateway.shutdown()
        await database.close_db()
        logger.info("OpGate API shutting down")

    app = FastAPI(title="OpGate API", version="1.0.0", lifespan=lifespan)
    app.state.gateway = gateway

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Routes: explicit registration; the health path shadows any same-named operation
    if settings.health_path.lstrip("/") in gateway.schemas:
        logger.warning(
            f"Operation '{settings.health_path.lstrip('/')}' collides with the health path",
        )
    app.include_router(build_health_router(settings.health_path))
    app.include_router(build_operations_router(gateway))

    register_error_handlers(app)
    return app

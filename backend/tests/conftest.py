"""Root conftest — shared fixtures: sample operations map, gateway, ASGI client.

Invariants:
    - No test depends on a real operations-map.json or a real database
    - Every test gets a fresh gateway (fresh schema store and audit ledger)

Design Decisions:
    - Settings built explicitly (no .env lookup) so the developer's env never leaks in
    - httpx ASGITransport: in-process requests, background tasks run before the
      response context closes
"""

import os

import pytest
from httpx import ASGITransport, AsyncClient

from opgate.config import Settings
from opgate.main import create_app
from opgate.services.audit_ledger import AuditLedger
from opgate.services.operation_dispatch import OperationGateway
from opgate.services.schema_store import SchemaStore

# Ensure tests don't accidentally persist to a real database
os.environ.pop("DATABASE_URL", None)


OPERATIONS_MAP = {
    "createUser": {
        "method": "POST",
        "params": [
            {"paramName": "email", "type": "string", "mandatory": True,
             "validation": {"minLength": 5, "maxLength": 60}},
            {"paramName": "name", "type": "string", "mandatory": False},
            {"paramName": "age", "type": "int", "mandatory": False,
             "validation": {"minValue": 18, "maxValue": 130}},
        ],
    },
    "getUser": {
        "method": "GET",
        "params": [
            {"paramName": "userId", "type": "int", "mandatory": True},
        ],
    },
    "deleteUser": {
        "params": [
            {"paramName": "userId", "type": "int", "mandatory": True},
        ],
    },
}


@pytest.fixture
def operations_map() -> dict:
    return {name: dict(body) for name, body in OPERATIONS_MAP.items()}


@pytest.fixture
def schema_store(operations_map) -> SchemaStore:
    store = SchemaStore()
    store.load(operations_map)
    return store


@pytest.fixture
def gateway(schema_store) -> OperationGateway:
    return OperationGateway(
        schema_store, AuditLedger(max_entries=100), handler_timeout_seconds=2.0,
    )


@pytest.fixture
def settings(tmp_path) -> Settings:
    return Settings(
        _env_file=None,
        operations_map_path=str(tmp_path / "missing.json"),
        log_format="text",
        database_url=None,
        audit_log_path=None,
    )


@pytest.fixture
def app_factory(settings):
    """Build an app around a gateway the test has populated."""
    def _build(gateway: OperationGateway):
        return create_app(gateway, settings)
    return _build


@pytest.fixture
async def client_for(app_factory):
    """Async client factory; each client closed at teardown."""
    clients = []

    async def _client(gateway: OperationGateway) -> AsyncClient:
        app = app_factory(gateway)
        c = AsyncClient(transport=ASGITransport(app=app), base_url="http://test")
        clients.append(c)
        return c

    yield _client
    for c in clients:
        await c.aclose()

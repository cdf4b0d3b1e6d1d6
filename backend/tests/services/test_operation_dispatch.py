"""Operation Dispatch — tests for the gateway's registration phase and call lifecycle.

Tests cover:
    - Validation failures short-circuit: envelope, audit finished, no handler call
    - Schema without handler -> "operation not registered", no handler call
    - Handlers complete via the channel or by returning a result
    - Follow-ups travel with the outcome; double completion is contained
    - Handler exceptions and timeouts yield ERROR envelopes and finished audits
    - Sealing freezes the dispatch table; file schemas beat code-time schemas
"""

import asyncio
import json

import pytest

from opgate.core.domain_types import HttpMethod
from opgate.core.errors import RegistrationClosedError
from opgate.services.audit_ledger import AuditLedger
from opgate.services.operation_dispatch import OperationGateway
from opgate.services.schema_store import SchemaStore


def _recording_handler(result=None):
    calls = []

    async def handler(call):
        calls.append(call)
        call.complete(result if result is not None else {"status": "OK"})

    return handler, calls


# ─── Validation & registration outcomes ─────────────────────────

async def test_missing_mandatory_param_never_reaches_handler(gateway):
    handler, calls = _recording_handler()
    gateway.register("createUser", handler)
    outcome = await gateway.dispatch("createUser", {"name": "Ada"})
    assert outcome.body["status"] == "ERROR"
    assert outcome.body["validationErrors"][0]["param"] == "email"
    assert outcome.body["validationErrors"][0]["code"] == "VAL0001"
    assert outcome.status_code == 200
    assert calls == []


async def test_validation_failure_is_audited(gateway):
    outcome = await gateway.dispatch("createUser", {})
    record = gateway.ledger.get(outcome.correlation_key)
    assert record.finished
    assert record.return_values == outcome.body


async def test_unknown_operation_yields_val0000(gateway):
    outcome = await gateway.dispatch("nope", {})
    assert outcome.body["validationErrors"] == [
        {"code": "VAL0000", "description": "Operation not found."},
    ]


async def test_schema_without_handler_is_not_registered(gateway):
    outcome = await gateway.dispatch("deleteUser", {"userId": "3"})
    assert outcome.body == {
        "status": "ERROR", "description": "operation not registered",
    }
    assert gateway.ledger.get(outcome.correlation_key).finished


async def test_not_registered_never_invokes_other_handlers(gateway):
    handler, calls = _recording_handler()
    gateway.register("createUser", handler)
    gateway.seal()
    await gateway.dispatch("deleteUser", {"userId": 1})
    assert calls == []


# ─── Handler completion ─────────────────────────────────────────

async def test_handler_completion_becomes_response(gateway):
    handler, calls = _recording_handler({"status": "OK", "id": 7})
    gateway.register("createUser", handler)
    outcome = await gateway.dispatch("createUser", {"email": "ada@example.com"})
    assert outcome.body == {"status": "OK", "id": 7}
    assert calls[0].payload == {"email": "ada@example.com"}
    assert calls[0].correlation_key == outcome.correlation_key
    record = gateway.ledger.get(outcome.correlation_key)
    assert record.return_values == {"status": "OK", "id": 7}


async def test_returning_handler_is_completed_on_its_behalf(gateway):
    async def handler(call):
        return {"status": "OK", "echo": call.payload["userId"]}

    gateway.register("getUser", handler)
    outcome = await gateway.dispatch("getUser", {"userId": "9"})
    assert outcome.body == {"status": "OK", "echo": "9"}


async def test_handler_completing_from_background_work(gateway):
    async def handler(call):
        async def later():
            await asyncio.sleep(0.01)
            call.complete({"status": "OK", "late": True})
        asyncio.get_running_loop().create_task(later())

    gateway.register("getUser", handler)
    outcome = await gateway.dispatch("getUser", {"userId": 1})
    assert outcome.body == {"status": "OK", "late": True}


async def test_follow_up_travels_with_outcome(gateway):
    def follow_up():
        pass

    async def handler(call):
        call.complete({"status": "OK"}, follow_up)

    gateway.register("getUser", handler)
    outcome = await gateway.dispatch("getUser", {"userId": 1})
    assert outcome.follow_up is follow_up


async def test_double_completion_keeps_first_result(gateway, caplog):
    async def handler(call):
        call.complete({"status": "OK", "n": 1})
        call.complete({"status": "OK", "n": 2})

    gateway.register("getUser", handler)
    outcome = await gateway.dispatch("getUser", {"userId": 1})
    await gateway.shutdown()
    assert outcome.body == {"status": "OK", "n": 1}
    assert "raised" in caplog.text


# ─── Failure policies ───────────────────────────────────────────

async def test_handler_exception_yields_failed_envelope(gateway, caplog):
    async def handler(call):
        raise RuntimeError("boom")

    gateway.register("getUser", handler)
    outcome = await gateway.dispatch("getUser", {"userId": 1})
    assert outcome.body == {"status": "ERROR", "description": "operation failed"}
    assert gateway.ledger.get(outcome.correlation_key).finished
    assert "boom" in caplog.text


async def test_silent_handler_times_out(schema_store):
    gateway = OperationGateway(
        schema_store, AuditLedger(), handler_timeout_seconds=0.05,
    )

    async def handler(call):
        return None

    gateway.register("getUser", handler)
    outcome = await gateway.dispatch("getUser", {"userId": 1})
    assert outcome.body == {"status": "ERROR", "description": "operation timed out"}
    assert gateway.ledger.get(outcome.correlation_key).finished


async def test_late_completion_after_timeout_is_ignored(schema_store):
    gateway = OperationGateway(
        schema_store, AuditLedger(), handler_timeout_seconds=0.02,
    )

    async def handler(call):
        await asyncio.sleep(0.1)
        call.complete({"status": "OK"})

    gateway.register("getUser", handler)
    outcome = await gateway.dispatch("getUser", {"userId": 1})
    await gateway.shutdown()
    assert outcome.body["description"] == "operation timed out"
    assert gateway.ledger.get(outcome.correlation_key).return_values == outcome.body


async def test_concurrent_calls_are_independent(gateway):
    async def handler(call):
        await asyncio.sleep(0.01 * (3 - int(call.payload["userId"])))
        call.complete({"status": "OK", "userId": call.payload["userId"]})

    gateway.register("getUser", handler)
    outcomes = await asyncio.gather(
        *(gateway.dispatch("getUser", {"userId": str(i)}) for i in range(3)),
    )
    assert [o.body["userId"] for o in outcomes] == ["0", "1", "2"]
    assert len({o.correlation_key for o in outcomes}) == 3


# ─── Registration phase ─────────────────────────────────────────

def test_seal_builds_one_entry_per_schema(gateway):
    handler, _ = _recording_handler()
    gateway.register("createUser", handler)
    table = gateway.seal()
    assert set(table) == {"createUser", "getUser", "deleteUser"}
    assert table["createUser"].handler is handler
    assert table["deleteUser"].handler is None
    assert table["getUser"].method == HttpMethod.GET
    assert table["deleteUser"].method == HttpMethod.POST


def test_dispatch_table_is_immutable(gateway):
    table = gateway.seal()
    with pytest.raises(TypeError):
        table["x"] = None


def test_register_after_seal_raises(gateway):
    assert not gateway.sealed
    gateway.seal()
    assert gateway.sealed
    handler, _ = _recording_handler()
    with pytest.raises(RegistrationClosedError):
        gateway.register("createUser", handler)


def test_file_schema_beats_code_time_schema(gateway):
    handler, _ = _recording_handler()
    gateway.register("getUser", handler, {"method": "DELETE", "params": []})
    assert gateway.schemas.lookup("getUser").method == HttpMethod.GET


def test_code_time_schema_added_when_new(gateway):
    @gateway.operation("ping", {"method": "GET"})
    async def ping(call):
        return {"status": "OK"}

    assert gateway.schemas.lookup("ping").method == HttpMethod.GET
    assert gateway.seal()["ping"].handler is ping


def test_handler_without_schema_is_not_bound(gateway, caplog):
    handler, _ = _recording_handler()
    gateway.register("orphan", handler)
    assert "orphan" not in gateway.seal()
    assert "no schema" in caplog.text


def test_injected_empty_collaborators_are_kept():
    store = SchemaStore()
    ledger = AuditLedger(max_entries=3)
    gateway = OperationGateway(store, ledger)
    assert gateway.schemas is store
    assert gateway.ledger is ledger


def test_from_settings_keeps_sink_and_retention(settings, tmp_path, operations_map):
    path = tmp_path / "operations-map.json"
    path.write_text(json.dumps(operations_map), encoding="utf-8")
    sink = object()
    gateway = OperationGateway.from_settings(
        settings.model_copy(update={
            "operations_map_path": str(path), "audit_ledger_max_entries": 7,
        }),
        sink,
    )
    assert gateway.ledger.sink is sink
    assert gateway.ledger.max_entries == 7


async def test_handler_mutating_payload_leaves_audit_intact(gateway):
    async def handler(call):
        call.payload["email"] = "REWRITTEN"
        call.payload["injected"] = 1
        call.complete({"status": "OK"})

    gateway.register("createUser", handler)
    outcome = await gateway.dispatch("createUser", {"email": "ada@example.com"})
    outcome.body["status"] = "CHANGED"
    record = gateway.ledger.get(outcome.correlation_key)
    assert record.values == {"email": "ada@example.com"}
    assert record.return_values == {"status": "OK"}

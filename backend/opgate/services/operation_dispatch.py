"""Operation Dispatch — the gateway that owns schemas, handlers and the audit ledger.

Invariants:
    - Every dispatched call is audited: start() before validation, finish() exactly once
    - Validation failures and missing handlers never reach a handler
    - Every operation->handler mapping is visible in one dict — no getattr magic
    - After seal() the dispatch table is immutable; late handler registration raises
    - A handler either signals its Completion or returns a non-None result;
      exceptions and timeouts are answered with an ERROR envelope
    - Handler tasks are referenced until they finish (no garbage-collected work)

Design Decisions:
    - Explicit dict over reflection: adding an operation means registering it
      (ADR: ExMA no convention-over-config)
    - asyncio.wait over the completion and the handler task: a handler that
      returns without signalling is detected without polling
    - Envelopes answered with transport 200; the failure lives in `status`
"""

import asyncio
import logging
from dataclasses import dataclass
from types import MappingProxyType
from typing import Any, Awaitable, Callable, Mapping

from opgate.config import Settings
from opgate.core.domain_types import CorrelationKey, HttpMethod
from opgate.core.envelopes import (
    failed_envelope, not_registered_envelope, timed_out_envelope,
    validation_error_envelope,
)
from opgate.core.errors import RegistrationClosedError
from opgate.core.operation_schema import OperationSpec
from opgate.core.repository_protocols import AuditSink
from opgate.core.validate_payload import validate_payload
from opgate.services.audit_ledger import AuditLedger
from opgate.services.completion import Completion, CompletionSignal, FollowUp
from opgate.services.schema_store import SchemaStore

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class OperationCall:
    """Everything a handler receives for one call."""
    operation: str
    payload: dict
    correlation_key: CorrelationKey
    completion: Completion
    request: Any = None

    def complete(self, result: Any, then: FollowUp | None = None) -> None:
        self.completion.complete(result, then)


OperationHandler = Callable[[OperationCall], Awaitable[Any]]


@dataclass(frozen=True)
class DispatchEntry:
    """Bound operation: route method, handler (None if unregistered), schema."""
    name: str
    method: HttpMethod
    handler: OperationHandler | None
    spec: OperationSpec


@dataclass(frozen=True)
class CallOutcome:
    """What the route sends back for one call."""
    body: Any
    correlation_key: CorrelationKey
    status_code: int = 200
    follow_up: FollowUp | None = None


_HANDLER_FAILED = object()


class OperationGateway:
    """Registers operations and runs the per-call lifecycle."""

    def __init__(
        self,
        schemas: SchemaStore | None = None,
        ledger: AuditLedger | None = None,
        *,
        handler_timeout_seconds: float = 30.0,
        strict_length_bounds: bool = False,
    ):
        self.schemas = schemas if schemas is not None else SchemaStore()
        self.ledger = ledger if ledger is not None else AuditLedger()
        self._timeout = handler_timeout_seconds or None
        self._strict_length_bounds = strict_length_bounds
        self._handlers: dict[str, OperationHandler] = {}
        self._table: Mapping[str, DispatchEntry] | None = None
        self._running: set[asyncio.Task] = set()

    @classmethod
    def from_settings(
        cls, settings: Settings, sink: AuditSink | None = None,
    ) -> "OperationGateway":
        """Gateway with the operations map loaded. Raises ConfigError."""
        schemas = SchemaStore()
        schemas.load(settings.operations_map_path)
        return cls(
            schemas,
            AuditLedger(settings.audit_ledger_max_entries, sink),
            handler_timeout_seconds=settings.handler_timeout_seconds,
            strict_length_bounds=settings.strict_length_bounds,
        )

    # ─── Registration phase ─────────────────────────────────────

    def register(
        self, name: str, handler: OperationHandler,
        spec: OperationSpec | dict | None = None,
    ) -> None:
        """Bind handler to name; offer spec to the schema store if given."""
        if self._table is not None:
            raise RegistrationClosedError(name)
        logger.info(f"New operation registered: {name}", extra={"operation": name})
        if spec is not None:
            if isinstance(spec, dict):
                spec = OperationSpec.model_validate({**spec, "name": name})
            self.schemas.register(name, spec)
        self._handlers[name] = handler

    def operation(
        self, name: str, spec: OperationSpec | dict | None = None,
    ) -> Callable[[OperationHandler], OperationHandler]:
        """Decorator form of register()."""
        def decorator(handler: OperationHandler) -> OperationHandler:
            self.register(name, handler, spec)
            return handler
        return decorator

    def seal(self) -> Mapping[str, DispatchEntry]:
        """Freeze the dispatch table: one entry per known schema."""
        if self._table is None:
            table = {
                spec.name: DispatchEntry(
                    spec.name, spec.method, self._handlers.get(spec.name), spec,
                )
                for spec in self.schemas
            }
            for name in self._handlers.keys() - table.keys():
                logger.warning(
                    f"Operation '{name}' has a handler but no schema; not reachable",
                    extra={"operation": name},
                )
            self._table = MappingProxyType(table)
        return self._table

    @property
    def sealed(self) -> bool:
        return self._table is not None

    def entries(self) -> list[DispatchEntry]:
        return list(self.seal().values())

    # ─── Request phase ──────────────────────────────────────────

    async def dispatch(
        self, name: str, payload: dict, request: Any = None,
    ) -> CallOutcome:
        """Audit, validate, run the handler, audit again."""
        key = self.ledger.start(name, payload)
        failures = validate_payload(
            self.schemas.lookup(name), payload,
            strict_length_bounds=self._strict_length_bounds,
        )
        if failures:
            logger.warning(
                f"Validation failed for '{name}': "
                f"{[f.code.value for f in failures]}",
                extra={"operation": name, "correlation_key": key},
            )
            return self._answer(key, validation_error_envelope(failures))

        handler = self._handler_for(name)
        if handler is None:
            logger.warning(
                f"Operation '{name}' has no registered handler",
                extra={"operation": name, "correlation_key": key},
            )
            return self._answer(key, not_registered_envelope())

        call = OperationCall(
            name, payload, key, Completion(key, self._running), request,
        )
        signal = await self._run(handler, call)
        return self._answer(key, signal.result, signal.then)

    def _handler_for(self, name: str) -> OperationHandler | None:
        if self._table is not None:
            entry = self._table.get(name)
            return entry.handler if entry else None
        return self._handlers.get(name)

    def _answer(
        self, key: CorrelationKey, body: Any, then: FollowUp | None = None,
    ) -> CallOutcome:
        self.ledger.finish(key, body)
        return CallOutcome(body=body, correlation_key=key, follow_up=then)

    async def _run(
        self, handler: OperationHandler, call: OperationCall,
    ) -> CompletionSignal:
        """Start the handler and wait for its completion, a failure or the deadline."""
        loop = asyncio.get_running_loop()
        handler_task = loop.create_task(self._invoke(handler, call))
        self._running.add(handler_task)
        handler_task.add_done_callback(self._running.discard)

        waiter = asyncio.ensure_future(call.completion.wait())
        pending: set[asyncio.Future] = {waiter, handler_task}
        deadline = loop.time() + self._timeout if self._timeout else None
        while True:
            remaining = None if deadline is None else max(0.0, deadline - loop.time())
            done, _ = await asyncio.wait(
                pending, timeout=remaining, return_when=asyncio.FIRST_COMPLETED,
            )
            if waiter in done:
                return waiter.result()
            if not done:
                logger.error(
                    f"Operation '{call.operation}' timed out after {self._timeout}s",
                    extra={"operation": call.operation, "correlation_key": call.correlation_key},
                )
                return self._abandon(call, waiter, timed_out_envelope())
            pending.discard(handler_task)
            if call.completion.signalled:
                return await waiter
            if handler_task.result() is _HANDLER_FAILED:
                return self._abandon(call, waiter, failed_envelope())
            # returned None without signalling: completion is still owed

    async def _invoke(self, handler: OperationHandler, call: OperationCall) -> Any:
        try:
            result = await handler(call)
        except Exception as e:
            logger.error(
                f"Handler for '{call.operation}' raised: {e}",
                exc_info=True,
                extra={"operation": call.operation, "correlation_key": call.correlation_key},
            )
            return _HANDLER_FAILED
        if result is not None and not call.completion.signalled:
            call.completion.complete(result)
        return result

    @staticmethod
    def _abandon(
        call: OperationCall, waiter: asyncio.Future, body: dict,
    ) -> CompletionSignal:
        call.completion.expire()
        waiter.cancel()
        return CompletionSignal(body)

    async def shutdown(self) -> None:
        """Wait for handler tasks and late follow-ups still running, then pending audit writes."""
        while self._running:
            await asyncio.gather(*list(self._running), return_exceptions=True)
        await self.ledger.drain()

"""Error Hierarchy — typed, categorized exceptions for all OpGate failure modes.

Invariants:
    - Every error has a code (str), category (ErrorCategory), severity (ErrorSeverity)
    - Validation and dispatch outcomes are envelopes (values), never exceptions
    - ConfigError is fatal: the app factory lets it propagate so nothing is served
    - to_response() produces the REST error envelope
    - No internal details leaked in user-facing messages

Design Decisions:
    - Single hierarchy with OpGateError base: FastAPI global handler catches all (ADR: uniform error shape)
    - ErrorContext as dataclass: rich observability without coupling to logging framework
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any
from datetime import datetime, timezone


class ErrorSeverity(str, Enum):
    """Error severity for observability and client handling."""
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class ErrorCategory(str, Enum):
    """High-level error categories for routing and handling."""
    CONFIGURATION = "configuration"
    DISPATCH = "dispatch"
    DATABASE = "database"
    INTERNAL = "internal"
    CONFLICT = "conflict"


@dataclass
class ErrorContext:
    """Rich context for error observability and debugging."""
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    operation: str | None = None
    correlation_key: str | None = None
    source: str | None = None
    debug_info: dict[str, Any] | None = None


class OpGateError(Exception):
    """Base exception for all OpGate errors."""

    def __init__(
        self,
        message: str,
        code: str,
        category: ErrorCategory,
        severity: ErrorSeverity = ErrorSeverity.ERROR,
        context: ErrorContext | None = None,
        http_status: int = 500,
    ):
        super().__init__(message)
        self.message = message
        self.code = code
        self.category = category
        self.severity = severity
        self.context = context or ErrorContext()
        self.http_status = http_status

    def to_response(self) -> dict:
        """Convert to standardized REST error response."""
        return {
            "status": "ERROR",
            "error": {
                "code": self.code,
                "message": self.message,
                "category": self.category.value,
                "severity": self.severity.value,
                "timestamp": self.context.timestamp.isoformat(),
                "context": {
                    "operation": self.context.operation,
                    "correlation_key": self.context.correlation_key,
                },
            },
        }


# ─── Startup Errors ──────────────────────────────────────────────

class ConfigError(OpGateError):
    """Operations map missing, unreadable or malformed. Fatal at startup."""
    def __init__(self, message: str, source: str, context: ErrorContext | None = None):
        ctx = context or ErrorContext()
        ctx.source = source
        super().__init__(
            f"Invalid operations map '{source}': {message}",
            "CONFIG_ERROR", ErrorCategory.CONFIGURATION,
            ErrorSeverity.CRITICAL, ctx, 500,
        )
        self.source = source


class RegistrationClosedError(OpGateError):
    """Handler registered after the dispatch table was sealed."""
    def __init__(self, operation: str, context: ErrorContext | None = None):
        ctx = context or ErrorContext()
        ctx.operation = operation
        super().__init__(
            f"Cannot register '{operation}': dispatch table is sealed",
            "REGISTRATION_CLOSED", ErrorCategory.CONFLICT,
            ErrorSeverity.ERROR, ctx, 500,
        )


# ─── Dispatch Errors ─────────────────────────────────────────────

class PayloadNotAcceptableError(OpGateError):
    """Request body could not be read as a key-value object."""
    def __init__(self, content_type: str | None, context: ErrorContext | None = None):
        super().__init__(
            f"Request body is not a structured object (content-type: {content_type})",
            "PAYLOAD_NOT_ACCEPTABLE", ErrorCategory.DISPATCH,
            ErrorSeverity.WARNING, context, 406,
        )
        self.content_type = content_type


class CompletionAlreadySignalledError(OpGateError):
    """A handler signalled completion more than once for the same call."""
    def __init__(self, correlation_key: str, context: ErrorContext | None = None):
        ctx = context or ErrorContext()
        ctx.correlation_key = correlation_key
        super().__init__(
            "Completion was already signalled for this call",
            "COMPLETION_ALREADY_SIGNALLED", ErrorCategory.INTERNAL,
            ErrorSeverity.ERROR, ctx, 500,
        )


class AuditAlreadyFinishedError(OpGateError):
    """finish() called twice for the same correlation key."""
    def __init__(self, correlation_key: str, context: ErrorContext | None = None):
        ctx = context or ErrorContext()
        ctx.correlation_key = correlation_key
        super().__init__(
            f"Audit record {correlation_key} is already finished",
            "AUDIT_ALREADY_FINISHED", ErrorCategory.INTERNAL,
            ErrorSeverity.ERROR, ctx, 500,
        )


# ─── Infrastructure Errors (500-level) ──────────────────────────

class DatabaseError(OpGateError):
    """Database operation failed."""
    def __init__(self, message: str, operation: str, context: ErrorContext | None = None):
        super().__init__(
            f"Database {operation} failed: {message}",
            "DATABASE_ERROR", ErrorCategory.DATABASE,
            ErrorSeverity.CRITICAL, context, 503,
        )
        self.operation = operation

"""Domain Types — rich types that replace bare primitives across the codebase.

Invariants:
    - CorrelationKey wraps the hex digest string — never pass bare str between ledger and dispatch
    - Every validation code has exactly one human description (VALIDATION_DESCRIPTIONS)
    - All valid states encoded as Enums — no raw string matching

Design Decisions:
    - NewType over dataclass wrappers: zero runtime cost, full type-checker support
    - str Enums: serialize to JSON without custom encoders (envelopes go straight to JSONResponse)
"""

from enum import Enum
from typing import NewType


# ─── Identity Types ──────────────────────────────────────────────

CorrelationKey = NewType("CorrelationKey", str)


# ─── Enums ───────────────────────────────────────────────────────

class ParamType(str, Enum):
    """Flat parameter types accepted by operation schemas."""
    STRING = "string"
    INT = "int"


class HttpMethod(str, Enum):
    """Transport methods an operation can be bound to."""
    GET = "GET"
    POST = "POST"
    PUT = "PUT"
    PATCH = "PATCH"
    DELETE = "DELETE"


class CallStatus(str, Enum):
    """Value of the `status` field in every core-built envelope."""
    OK = "OK"
    ERROR = "ERROR"


class ValidationCode(str, Enum):
    """Validation error codes — stable wire values."""
    OPERATION_NOT_FOUND = "VAL0000"
    MANDATORY_MISSING = "VAL0001"
    NOT_AN_INTEGER = "VAL0002"
    STRING_TOO_SHORT = "VAL1001"
    STRING_TOO_LONG = "VAL1002"
    INT_TOO_SMALL = "VAL2001"
    INT_TOO_LARGE = "VAL2002"


class AuditEvent(str, Enum):
    """Audit stream event tags — one of each per call."""
    BEGIN = "REQUEST-BEGIN"
    END = "REQUEST-END"


# ─── Constants ───────────────────────────────────────────────────

DEFAULT_METHOD = HttpMethod.POST
DEFAULT_HEALTH_PATH = "/status"

VALIDATION_DESCRIPTIONS: dict[ValidationCode, str] = {
    ValidationCode.OPERATION_NOT_FOUND: "Operation not found.",
    ValidationCode.MANDATORY_MISSING: "Mandatory parameter not present in the request.",
    ValidationCode.NOT_AN_INTEGER: "Integer value could not be parsed into integer.",
    ValidationCode.STRING_TOO_SHORT: "String length smaller than needed.",
    ValidationCode.STRING_TOO_LONG: "String length longer than needed.",
    ValidationCode.INT_TOO_SMALL: "Integer number lesser than needed.",
    ValidationCode.INT_TOO_LARGE: "Integer number greater than needed.",
}

NOT_REGISTERED_DESCRIPTION = "operation not registered"
TIMED_OUT_DESCRIPTION = "operation timed out"
FAILED_DESCRIPTION = "operation failed"

"""Payload Validation — checks a call payload against one operation schema.

Invariants:
    - All functions are PURE: no IO, no async, no logging, no side effects
    - Unknown operation (spec is None) yields exactly one VAL0000 failure and nothing else
    - Failures ordered by param declaration, then by check order within a param
    - A param may accumulate several failures (both length bounds, for instance)
    - An int that fails to parse yields VAL0002 and skips range checks
    - Absent means "key missing or value None"

Design Decisions:
    - Return a list (not exceptions): every failure is reported in one response
      (ADR: uniform envelope shape, caller fixes everything at once)
    - The max-length check is gated on min_length being configured, which is how
      existing operation maps behave; strict_length_bounds gates it on max_length
"""

from dataclasses import dataclass
from typing import Any, Mapping

from opgate.core.domain_types import (
    ParamType, ValidationCode, VALIDATION_DESCRIPTIONS,
)
from opgate.core.operation_schema import OperationSpec, ParamSpec


@dataclass(frozen=True)
class ValidationFailure:
    """One violated constraint. param is None for whole-operation failures."""
    code: ValidationCode
    description: str
    param: str | None = None

    def to_dict(self) -> dict:
        out: dict[str, Any] = {}
        if self.param is not None:
            out["param"] = self.param
        out["code"] = self.code.value
        out["description"] = self.description
        return out


def _failure(code: ValidationCode, param: str | None = None) -> ValidationFailure:
    return ValidationFailure(code, VALIDATION_DESCRIPTIONS[code], param)


def parse_int(value: Any) -> int | None:
    """Strict base-10 integer parse. None when the value is not an integer.

    JSON numbers like 36.0 are integers; digit separators ("1_000") and
    non-ASCII digits are not.
    """
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return int(value) if value.is_integer() else None
    if isinstance(value, str):
        text = value.strip()
        if "_" in text or not text.isascii():
            return None
        try:
            return int(text, 10)
        except ValueError:
            return None
    return None


def check_string(
    param: ParamSpec, value: Any, strict_length_bounds: bool = False,
) -> list[ValidationFailure]:
    """Length bounds on the whitespace-trimmed value."""
    bounds = param.validation
    text = value.strip() if isinstance(value, str) else str(value).strip()
    failures = []
    if bounds.min_length is not None and len(text) < bounds.min_length:
        failures.append(_failure(ValidationCode.STRING_TOO_SHORT, param.name))
    max_gate = bounds.max_length if strict_length_bounds else bounds.min_length
    if (
        max_gate is not None
        and bounds.max_length is not None
        and len(text) > bounds.max_length
    ):
        failures.append(_failure(ValidationCode.STRING_TOO_LONG, param.name))
    return failures


def check_int(param: ParamSpec, value: Any) -> list[ValidationFailure]:
    """Parse, then value bounds. Parse failure short-circuits the range checks."""
    number = parse_int(value)
    if number is None:
        return [_failure(ValidationCode.NOT_AN_INTEGER, param.name)]
    bounds = param.validation
    failures = []
    if bounds.min_value is not None and number < bounds.min_value:
        failures.append(_failure(ValidationCode.INT_TOO_SMALL, param.name))
    if bounds.max_value is not None and number > bounds.max_value:
        failures.append(_failure(ValidationCode.INT_TOO_LARGE, param.name))
    return failures


def check_param(
    param: ParamSpec, payload: Mapping[str, Any], strict_length_bounds: bool = False,
) -> list[ValidationFailure]:
    """All failures for one param, in check order."""
    value = payload.get(param.name)
    if value is None:
        if param.mandatory:
            return [_failure(ValidationCode.MANDATORY_MISSING, param.name)]
        return []
    if param.type == ParamType.STRING:
        return check_string(param, value, strict_length_bounds)
    return check_int(param, value)


def validate_payload(
    spec: OperationSpec | None,
    payload: Mapping[str, Any],
    *,
    strict_length_bounds: bool = False,
) -> list[ValidationFailure]:
    """Validate payload against spec. Empty list means valid."""
    if spec is None:
        return [_failure(ValidationCode.OPERATION_NOT_FOUND)]
    failures: list[ValidationFailure] = []
    for param in spec.params:
        failures.extend(check_param(param, payload, strict_length_bounds))
    return failures

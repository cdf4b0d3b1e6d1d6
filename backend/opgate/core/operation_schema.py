"""Operation Schemas — Pydantic models for the declarative operations map.

Invariants:
    - ParamSpec.name unique within its OperationSpec; declaration order preserved
    - Only flat string/int params (no nesting, arrays, enums)
    - Bound keys accept the camelCase names and the legacy literal names
      (longerThan, smallerThan, greaterThan, lesserThan)
    - A bound left unset is None — "not configured" is distinguishable from 0
    - Operation name is a single path segment (it becomes the route)

Design Decisions:
    - Pydantic at the config boundary: type coercion of "5" -> 5 for bounds given as strings
    - parse_operations_map raises ConfigError only — callers never see pydantic internals
"""

from typing import Any

from pydantic import (
    AliasChoices, BaseModel, ConfigDict, Field,
    ValidationError, field_validator, model_validator,
)

from opgate.core.domain_types import DEFAULT_METHOD, HttpMethod, ParamType
from opgate.core.errors import ConfigError


class ParamBounds(BaseModel):
    """Optional constraint bounds. Length bounds for strings, value bounds for ints."""
    model_config = ConfigDict(populate_by_name=True, frozen=True)

    min_length: int | None = Field(
        None, validation_alias=AliasChoices("minLength", "longerThan", "min_length"),
    )
    max_length: int | None = Field(
        None, validation_alias=AliasChoices("maxLength", "smallerThan", "max_length"),
    )
    min_value: int | None = Field(
        None, validation_alias=AliasChoices("minValue", "greaterThan", "min_value"),
    )
    max_value: int | None = Field(
        None, validation_alias=AliasChoices("maxValue", "lesserThan", "max_value"),
    )


class ParamSpec(BaseModel):
    """One parameter of an operation."""
    model_config = ConfigDict(populate_by_name=True, frozen=True)

    name: str = Field(
        min_length=1, validation_alias=AliasChoices("paramName", "name"),
    )
    type: ParamType
    mandatory: bool = False
    validation: ParamBounds = Field(default_factory=ParamBounds)

    @field_validator("validation", mode="before")
    @classmethod
    def none_means_unbounded(cls, v: Any) -> Any:
        return {} if v is None else v


class OperationSpec(BaseModel):
    """Declarative contract of one operation: route, method, ordered params."""
    model_config = ConfigDict(frozen=True)

    name: str = Field(min_length=1, pattern=r"^[^/\s]+$")
    method: HttpMethod = DEFAULT_METHOD
    params: tuple[ParamSpec, ...] = ()

    @field_validator("method", mode="before")
    @classmethod
    def normalize_method(cls, v: Any) -> Any:
        if v is None:
            return DEFAULT_METHOD
        if isinstance(v, str):
            return v.strip().upper()
        return v

    @model_validator(mode="after")
    def check_unique_param_names(self) -> "OperationSpec":
        seen: set[str] = set()
        for param in self.params:
            if param.name in seen:
                raise ValueError(
                    f"duplicate param '{param.name}' in operation '{self.name}'",
                )
            seen.add(param.name)
        return self

    @property
    def path(self) -> str:
        return f"/{self.name}"


def parse_operation(name: str, body: Any) -> OperationSpec:
    """Build one OperationSpec from its map entry. Raises pydantic ValidationError."""
    if not isinstance(body, dict):
        raise TypeError(f"operation '{name}' must be an object")
    return OperationSpec.model_validate({**body, "name": name})


def parse_operations_map(raw: Any, source: str) -> dict[str, OperationSpec]:
    """Parse a decoded operations map. Declaration order preserved.

    Raises ConfigError on any structural problem.
    """
    if not isinstance(raw, dict):
        raise ConfigError("top-level value must be an object", source)
    specs: dict[str, OperationSpec] = {}
    for name, body in raw.items():
        try:
            specs[name] = parse_operation(name, body)
        except (ValidationError, TypeError, ValueError) as e:
            raise ConfigError(f"operation '{name}': {e}", source) from e
    return specs

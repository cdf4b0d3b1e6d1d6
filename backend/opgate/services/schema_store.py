"""Schema Store — operation name -> OperationSpec, loaded once, first registration wins.

Invariants:
    - First successful registration for a name wins; duplicates are logged and discarded
    - register() never raises for duplicates (returns False)
    - load() raises ConfigError for unreadable / malformed sources (fatal at startup)
    - Iteration order = registration order (routes bound in declaration order)

Design Decisions:
    - File-loaded schemas registered before code-time ones: the operations map is
      authoritative over handler-side declarations of the same name
    - Read-only during request handling: no locking
"""

import json
import logging
from pathlib import Path
from typing import Any, Iterator

from opgate.core.errors import ConfigError
from opgate.core.operation_schema import OperationSpec, parse_operations_map

logger = logging.getLogger(__name__)


class SchemaStore:
    """Holds one OperationSpec per operation name."""

    def __init__(self) -> None:
        self._specs: dict[str, OperationSpec] = {}

    def load(self, source: str | Path | dict[str, Any]) -> int:
        """Register every operation in a declarative map. Returns count added.

        source is a path to a JSON file or an already-decoded mapping.
        """
        if isinstance(source, dict):
            specs = parse_operations_map(source, "<mapping>")
        else:
            specs = parse_operations_map(_read_json(Path(source)), str(source))
        added = sum(1 for name, spec in specs.items() if self.register(name, spec))
        logger.info(f"Loaded {added} operation schema(s)")
        return added

    def register(self, name: str, spec: OperationSpec) -> bool:
        """Add spec under name unless name is already known."""
        if name in self._specs:
            logger.info(
                f"Operation '{name}' is already defined in the schema store. "
                f"Duplicate ignored.",
                extra={"operation": name},
            )
            return False
        if spec.name != name:
            spec = spec.model_copy(update={"name": name})
        self._specs[name] = spec
        return True

    def lookup(self, name: str) -> OperationSpec | None:
        return self._specs.get(name)

    def names(self) -> list[str]:
        return list(self._specs)

    def specs(self) -> list[OperationSpec]:
        return list(self._specs.values())

    def __contains__(self, name: object) -> bool:
        return name in self._specs

    def __len__(self) -> int:
        return len(self._specs)

    def __iter__(self) -> Iterator[OperationSpec]:
        return iter(list(self._specs.values()))


def _read_json(path: Path) -> Any:
    """Read and decode the operations map file. Any failure -> ConfigError."""
    try:
        content = path.read_text(encoding="utf-8")
    except OSError as e:
        raise ConfigError(f"cannot read file ({e.strerror or e})", str(path)) from e
    try:
        return json.loads(content)
    except json.JSONDecodeError as e:
        raise ConfigError(f"invalid JSON at line {e.lineno}", str(path)) from e

"""Audit Record — lifecycle snapshot of one call, plus key and duration derivation.

Invariants:
    - derive_correlation_key and compute_duration are PURE (timestamp and nonce passed in)
    - Correlation key = SHA-256 over canonical JSON (sorted keys) of
      operation, values, begin time and a per-call nonce
    - CallDuration components are whole minutes, residual seconds, residual
      milliseconds — each >= 0 when end >= begin
    - end_time, duration, return_values stay None until the record is finished
    - Records hold detached snapshots of values and results, never the caller's objects

Design Decisions:
    - Nonce in the hashed document: two calls with identical payloads in the same
      microsecond still get distinct keys
    - default=str in the canonical dump: payload values are opaque, never crash on them
"""

import hashlib
import json
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any

from opgate.core.domain_types import CorrelationKey


@dataclass(frozen=True)
class CallDuration:
    """Elapsed time split into minutes / residual seconds / residual milliseconds."""
    minutes: int
    seconds: int
    milliseconds: int

    def __str__(self) -> str:
        return f"{self.minutes}m{self.seconds}s{self.milliseconds}ms"


@dataclass
class AuditRecord:
    """One call's audit entry — mutated exactly once, by finish."""
    correlation_key: CorrelationKey
    operation: str
    values: dict
    begin_time: datetime
    end_time: datetime | None = None
    duration: CallDuration | None = None
    return_values: Any = None
    finished: bool = field(default=False)

    def to_dict(self) -> dict:
        """Serializable snapshot for the audit stream and persistence."""
        return {
            "requestKey": self.correlation_key,
            "function": self.operation,
            "values": self.values,
            "begin-time": self.begin_time.isoformat(),
            "end-time": self.end_time.isoformat() if self.end_time else None,
            "duration": str(self.duration) if self.duration else None,
            "returnValues": self.return_values,
        }


def canonical_json(document: Any) -> str:
    """Deterministic JSON: sorted keys, compact separators."""
    return json.dumps(
        document, sort_keys=True, separators=(",", ":"),
        ensure_ascii=False, default=str,
    )


def derive_correlation_key(
    operation: str, values: Any, begin_time: datetime, nonce: str,
) -> CorrelationKey:
    """Collision-resistant key for one call."""
    document = {
        "function": operation,
        "values": values,
        "begin-time": begin_time.isoformat(),
        "nonce": nonce,
    }
    digest = hashlib.sha256(canonical_json(document).encode("utf-8"))
    return CorrelationKey(digest.hexdigest())


def compute_duration(begin_time: datetime, end_time: datetime) -> CallDuration:
    """Split elapsed time into minute, second and millisecond components."""
    total_ms = max(0, (end_time - begin_time) // timedelta(milliseconds=1))
    minutes = total_ms // 60_000
    total_seconds = total_ms // 1000
    return CallDuration(
        minutes=minutes,
        seconds=total_seconds - minutes * 60,
        milliseconds=total_ms - total_seconds * 1000,
    )


def snapshot(value: Any) -> Any:
    """Detached JSON-shaped copy: later mutation of value never reaches the record."""
    return json.loads(json.dumps(value, ensure_ascii=False, default=str))

"""Response Envelopes — the fixed body shapes the core answers with.

Invariants:
    - Every envelope built here carries a `status` field (OK or ERROR)
    - Validation failures keep transport status 200; the failure lives in `status`
    - Only the unparsable-payload envelope pairs with a non-200 transport status (406)

Design Decisions:
    - Pure builders over inline dict literals: routes, dispatch and tests share one shape
"""

from opgate.core.domain_types import (
    CallStatus, FAILED_DESCRIPTION, NOT_REGISTERED_DESCRIPTION,
    TIMED_OUT_DESCRIPTION,
)
from opgate.core.validate_payload import ValidationFailure


def ok_envelope() -> dict:
    return {"status": CallStatus.OK.value}


def bare_error_envelope() -> dict:
    return {"status": CallStatus.ERROR.value}


def validation_error_envelope(failures: list[ValidationFailure]) -> dict:
    return {
        "status": CallStatus.ERROR.value,
        "validationErrors": [f.to_dict() for f in failures],
    }


def described_error_envelope(description: str) -> dict:
    return {"status": CallStatus.ERROR.value, "description": description}


def not_registered_envelope() -> dict:
    return described_error_envelope(NOT_REGISTERED_DESCRIPTION)


def timed_out_envelope() -> dict:
    return described_error_envelope(TIMED_OUT_DESCRIPTION)


def failed_envelope() -> dict:
    return described_error_envelope(FAILED_DESCRIPTION)

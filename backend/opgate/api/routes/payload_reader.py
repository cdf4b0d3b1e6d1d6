"""Payload Reader — turns a raw request body into the key-value payload operations see.

Invariants:
    - Result is always a dict; anything else raises PayloadNotAcceptableError (406)
    - Empty body -> {} (query parameters for GET/DELETE)
    - A JSON object body is accepted whatever the declared content type
    - Non-JSON content types: the first field name of the loosely parsed body is
      tried as a JSON object (JSON posted as a form); urlencoded forms otherwise
      become a flat dict of their fields
    - Never audits: an unreadable body has no audit record

Design Decisions:
    - parse_qsl over request.form(): no multipart dependency for a flat body
    - Reading the body is the route's job, not the gateway's (gateway stays transport-free)
"""

import json
from typing import Any
from urllib.parse import parse_qsl

from starlette.requests import Request

from opgate.core.errors import PayloadNotAcceptableError

JSON_MEDIA_TYPE = "application/json"
FORM_MEDIA_TYPE = "application/x-www-form-urlencoded"
_QUERY_METHODS = frozenset({"GET", "DELETE"})


def _decode_json(raw: bytes | str) -> Any:
    try:
        return json.loads(raw)
    except (json.JSONDecodeError, UnicodeDecodeError):
        return None


def _loose_fields(raw: bytes) -> list[tuple[str, str]]:
    try:
        text = raw.decode("utf-8")
    except UnicodeDecodeError:
        return []
    return parse_qsl(text, keep_blank_values=True)


def decode_body(raw: bytes, content_type: str | None) -> dict:
    """Pure body decoding. Raises PayloadNotAcceptableError."""
    media_type = (content_type or "").split(";")[0].strip().lower()
    decoded = _decode_json(raw)
    if isinstance(decoded, dict):
        return decoded
    if media_type != JSON_MEDIA_TYPE:
        fields = _loose_fields(raw)
        if fields:
            recovered = _decode_json(fields[0][0])
            if isinstance(recovered, dict):
                return recovered
            if media_type == FORM_MEDIA_TYPE:
                form: dict[str, str] = {}
                for name, value in fields:
                    form.setdefault(name, value)
                return form
    raise PayloadNotAcceptableError(content_type)


async def read_payload(request: Request) -> dict:
    """Read and decode the request body."""
    raw = await request.body()
    if not raw.strip():
        if request.method in _QUERY_METHODS:
            return dict(request.query_params)
        return {}
    return decode_body(raw, request.headers.get("content-type"))

"""Payload Reader — pure body decoding rules."""

import pytest

from opgate.api.routes.payload_reader import decode_body
from opgate.core.errors import PayloadNotAcceptableError


def test_json_object_with_json_content_type():
    assert decode_body(b'{"a": 1}', "application/json") == {"a": 1}


def test_json_object_accepted_under_any_content_type():
    assert decode_body(b'{"a": 1}', "text/plain") == {"a": 1}
    assert decode_body(b'{"a": 1}', None) == {"a": 1}


def test_content_type_parameters_ignored():
    assert decode_body(b'{"a": 1}', "application/json; charset=utf-8") == {"a": 1}


def test_urlencoded_json_recovered_from_first_field():
    raw = b"%7B%22email%22%3A%22ada%40example.com%22%7D"
    assert decode_body(raw, "application/x-www-form-urlencoded") == {
        "email": "ada@example.com",
    }


def test_urlencoded_form_first_value_wins():
    raw = b"email=ada%40example.com&age=36&age=40"
    assert decode_body(raw, "application/x-www-form-urlencoded") == {
        "email": "ada@example.com", "age": "36",
    }


@pytest.mark.parametrize("raw, content_type", [
    (b"{not json", "application/json"),
    (b"[1, 2]", "application/json"),
    (b'"text"', "application/json"),
    (b"just words", "text/plain"),
    (b"\xff\xfe", "application/octet-stream"),
])
def test_unreadable_bodies_rejected(raw, content_type):
    with pytest.raises(PayloadNotAcceptableError) as exc_info:
        decode_body(raw, content_type)
    assert exc_info.value.http_status == 406

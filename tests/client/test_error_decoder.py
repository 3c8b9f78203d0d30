from __future__ import annotations

import json

from ridehail.infra.http.api_errors import CodedError, StructuredError, decode_error_response


def _body(payload) -> bytes:
    return json.dumps(payload).encode("utf-8")


def test_short_body_becomes_coded_error_with_status_line():
    err = decode_error_response(401, "Unauthorized", b"")

    assert isinstance(err, CodedError)
    assert err.message == "401 Unauthorized"
    assert err.status_code == 401
    assert err.code == "HTTP_401"
    assert err.retryable is False


def test_three_byte_body_is_not_parsed():
    err = decode_error_response(400, "Bad Request", b"{ }")

    assert isinstance(err, CodedError)
    assert err.message == "400 Bad Request"


def test_structured_error_renders_entries_in_order():
    body = _body(
        {
            "meta": {"surge_confirmation": {"href": "https://example.invalid/surge"}},
            "errors": [
                {"title": "Surge pricing is in effect.", "code": "surge", "status": 409},
                {"status": 409, "code": "fare_expired", "title": "Fare expired."},
            ],
        }
    )

    err = decode_error_response(409, "Conflict", body)

    assert isinstance(err, StructuredError)
    assert err.message == "\n".join(
        [
            '{"status":409,"code":"surge","title":"Surge pricing is in effect."}',
            '{"status":409,"code":"fare_expired","title":"Fare expired."}',
        ]
    )
    assert [e.code for e in err.errors] == ["surge", "fare_expired"]
    assert err.meta == {"surge_confirmation": {"href": "https://example.invalid/surge"}}
    assert err.code == "CONFLICT"
    assert err.retryable is False


def test_structured_error_decoding_is_deterministic():
    body = _body({"errors": [{"status": 422, "code": "invalid_fare_id", "title": "Invalid fare"}]})

    first = decode_error_response(422, "Unprocessable Entity", body)
    second = decode_error_response(422, "Unprocessable Entity", body)

    assert first.message == second.message == '{"status":422,"code":"invalid_fare_id","title":"Invalid fare"}'


def test_structured_error_resolves_actionable_entry():
    body = _body({"errors": [{"status": 409, "code": "surge", "title": "Surge"}]})

    err = decode_error_response(409, "Conflict", body)

    actionable = err.actionable()
    assert actionable is not None
    assert actionable.signature == "surge"
    assert actionable.status_code == 409


def test_retry_request_entry_marks_error_retryable():
    body = _body({"errors": [{"status": 409, "code": "retry_request", "title": "Retry"}]})

    err = decode_error_response(409, "Conflict", body)

    assert isinstance(err, StructuredError)
    assert err.retryable is True


def test_server_errors_are_retryable():
    body = _body({"errors": [{"status": 500, "code": "internal_server_error", "title": "Oops"}]})

    err = decode_error_response(503, "Service Unavailable", body)

    assert err.retryable is True
    assert err.code == "SERVER_ERROR"


def test_zero_value_body_falls_back_to_raw_text():
    err = decode_error_response(400, "Bad Request", b'{"errors": []}')

    assert isinstance(err, CodedError)
    assert err.message == '{"errors": []}'


def test_non_json_body_falls_back_to_raw_text():
    err = decode_error_response(502, "Bad Gateway", b"upstream exploded")

    assert isinstance(err, CodedError)
    assert err.message == "upstream exploded"
    assert err.retryable is True


def test_body_snippet_is_truncated():
    err = decode_error_response(500, "Internal Server Error", b"x" * 1000)

    assert err.body_snippet is not None
    assert len(err.body_snippet) == 200

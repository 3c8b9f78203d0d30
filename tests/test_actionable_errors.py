from __future__ import annotations

import pytest

from ridehail.domain.actionable_errors import (
    ACTIONABLE_ERRORS,
    ActionableError,
    build_signature_index,
    lookup_error_by_signature,
)


def test_lookup_known_signature():
    err = lookup_error_by_signature("too_many_cancellations")

    assert isinstance(err, ActionableError)
    assert err.status_code == 403
    assert err.retryable is False
    assert err.message == "you are temporarily blocked for canceling too many times"


def test_lookup_unknown_signature_returns_none():
    assert lookup_error_by_signature("xyz") is None
    assert lookup_error_by_signature("") is None
    assert lookup_error_by_signature(None) is None


def test_retry_request_is_the_only_retryable_entry():
    retryable = [err.signature for err in ACTIONABLE_ERRORS if err.retryable]
    assert retryable == ["retry_request"]


def test_table_has_unique_signatures():
    signatures = [err.signature for err in ACTIONABLE_ERRORS]
    assert len(signatures) == 32
    assert len(set(signatures)) == len(signatures)


def test_duplicate_signature_is_rejected_at_build_time():
    surge = lookup_error_by_signature("surge")
    assert surge is not None

    with pytest.raises(ValueError) as excinfo:
        build_signature_index([surge, surge])

    assert "surge" in str(excinfo.value)


def test_actions_point_to_remediation():
    forbidden = lookup_error_by_signature("forbidden")
    unverified = lookup_error_by_signature("unverified")
    surge = lookup_error_by_signature("surge")

    assert forbidden.has_action()
    assert "support@uber.com" in forbidden.action
    assert unverified.action == "https://riders.uber.com"
    assert not surge.has_action()


def test_to_dict_exposes_signature_as_code():
    err = lookup_error_by_signature("invalid_fare_id")

    data = err.to_dict()

    assert data["code"] == "invalid_fare_id"
    assert data["category"] == "actionable"
    assert data["message"] == "the fare id is invalid or expired"

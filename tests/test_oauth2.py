from __future__ import annotations

from datetime import datetime, timedelta, timezone
from urllib.parse import parse_qs

import httpx
import pytest

from ridehail.domain.paging import NO_THROTTLE, Pager
from ridehail.errors import AppError
from ridehail.infra.auth.oauth2 import OAUTH2_TOKEN_URL, OAuth2AppConfig, OAuth2Token, OAuth2TokenSource
from ridehail.infra.http.api_errors import ApiError, CodedError
from ridehail.infra.http.uber_client import UberClient

APP = OAuth2AppConfig(client_id="client-1", client_secret="secret-1")


def expired_token() -> OAuth2Token:
    return OAuth2Token(
        access_token="stale",
        refresh_token="refresh-1",
        expiry=datetime.now(timezone.utc) - timedelta(hours=1),
    )


def test_app_config_from_env_lists_missing_values():
    with pytest.raises(AppError) as excinfo:
        OAuth2AppConfig.from_env({})

    assert excinfo.value.code == "OAUTH2_APP_NOT_CONFIGURED"
    assert "UBER_APP_OAUTH2_CLIENT_ID" in excinfo.value.message
    assert "UBER_APP_OAUTH2_CLIENT_SECRET" in excinfo.value.message

    app = OAuth2AppConfig.from_env(
        {"UBER_APP_OAUTH2_CLIENT_ID": "id", "UBER_APP_OAUTH2_CLIENT_SECRET": "secret"}
    )
    assert app == OAuth2AppConfig(client_id="id", client_secret="secret")


def test_valid_token_is_used_without_refresh():
    def handler(request: httpx.Request) -> httpx.Response:
        raise AssertionError("no refresh expected")

    token = OAuth2Token(access_token="fresh", expiry=datetime.now(timezone.utc) + timedelta(hours=1))
    source = OAuth2TokenSource(token, app=APP, transport=httpx.MockTransport(handler))

    assert source.access_token() == "fresh"


def test_expired_token_is_refreshed_once():
    forms = []

    def handler(request: httpx.Request) -> httpx.Response:
        assert str(request.url) == OAUTH2_TOKEN_URL
        forms.append(parse_qs(request.content.decode("utf-8")))
        return httpx.Response(
            200,
            json={"access_token": "renewed", "refresh_token": "refresh-2", "expires_in": 3600, "token_type": "Bearer"},
        )

    source = OAuth2TokenSource(expired_token(), app=APP, transport=httpx.MockTransport(handler))

    assert source.access_token() == "renewed"
    assert source.access_token() == "renewed"
    assert len(forms) == 1
    assert forms[0]["grant_type"] == ["refresh_token"]
    assert forms[0]["refresh_token"] == ["refresh-1"]
    assert forms[0]["client_id"] == ["client-1"]
    assert source.token.refresh_token == "refresh-2"
    assert not source.token.is_expired()


def test_expired_token_without_app_is_returned_as_is():
    source = OAuth2TokenSource(expired_token())

    assert source.access_token() == "stale"


def test_refresh_failure_is_decoded():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(401, content=b"")

    source = OAuth2TokenSource(expired_token(), app=APP, transport=httpx.MockTransport(handler))

    with pytest.raises(CodedError) as excinfo:
        source.access_token()

    assert excinfo.value.message == "401 Unauthorized"


def test_client_uses_refreshed_token():
    auth_headers = []

    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.host == "login.uber.com":
            return httpx.Response(200, json={"access_token": "renewed", "expires_in": 600})
        auth_headers.append(request.headers.get("Authorization"))
        return httpx.Response(200, json={"uuid": "u-1"})

    client = UberClient.from_oauth2_token(expired_token(), app=APP, transport=httpx.MockTransport(handler))

    client.retrieve_my_profile()

    assert auth_headers == ["Bearer renewed"]


def test_refresh_with_non_object_body_is_invalid_json():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json=["renewed"])

    source = OAuth2TokenSource(expired_token(), app=APP, transport=httpx.MockTransport(handler))

    with pytest.raises(ApiError) as excinfo:
        source.access_token()

    assert excinfo.value.code == "INVALID_JSON"
    assert source.token.access_token == "stale"


def test_refresh_with_bad_expires_in_is_invalid_json():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"access_token": "renewed", "expires_in": "soon"})

    source = OAuth2TokenSource(expired_token(), app=APP, transport=httpx.MockTransport(handler))

    with pytest.raises(ApiError) as excinfo:
        source.access_token()

    assert excinfo.value.code == "INVALID_JSON"
    assert "soon" in excinfo.value.message


def test_malformed_refresh_ends_history_stream_with_error_page():
    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.host == "login.uber.com":
            return httpx.Response(200, json="not an object")
        raise AssertionError("API must not be called without a token")

    client = UberClient.from_oauth2_token(expired_token(), app=APP, transport=httpx.MockTransport(handler))

    with client.list_history(Pager(throttle_seconds=NO_THROTTLE)) as stream:
        pages = list(stream)

    assert len(pages) == 1
    assert pages[0].error.code == "INVALID_JSON"

from __future__ import annotations

import os
import threading
from dataclasses import dataclass, replace
from datetime import datetime, timedelta, timezone
from typing import Any, Mapping

import httpx

from ridehail.domain.error_codes import ErrorCode
from ridehail.errors import AppError
from ridehail.infra.http.api_errors import ApiError, decode_error_response

OAUTH2_TOKEN_URL = "https://login.uber.com/oauth/v2/token"
ENV_OAUTH2_CLIENT_ID = "UBER_APP_OAUTH2_CLIENT_ID"
ENV_OAUTH2_CLIENT_SECRET = "UBER_APP_OAUTH2_CLIENT_SECRET"

# Токен считается истёкшим чуть раньше фактического expiry.
EXPIRY_LEEWAY = timedelta(seconds=10)


@dataclass(frozen=True)
class OAuth2AppConfig:
    client_id: str
    client_secret: str

    @classmethod
    def from_env(cls, env: Mapping[str, str] | None = None) -> "OAuth2AppConfig":
        """
        Контракт:
            - Оба значения обязательны; отсутствующие перечисляются в одной ошибке.
        """
        env = os.environ if env is None else env
        client_id = (env.get(ENV_OAUTH2_CLIENT_ID) or "").strip()
        client_secret = (env.get(ENV_OAUTH2_CLIENT_SECRET) or "").strip()
        missing = [
            f"{name!r} was not set"
            for name, value in ((ENV_OAUTH2_CLIENT_ID, client_id), (ENV_OAUTH2_CLIENT_SECRET, client_secret))
            if not value
        ]
        if missing:
            raise AppError(category="config", code="OAUTH2_APP_NOT_CONFIGURED", message="\n".join(missing))
        return cls(client_id=client_id, client_secret=client_secret)


def _parse_expiry(value: Any) -> datetime | None:
    if value in (None, ""):
        return None
    if isinstance(value, datetime):
        return value
    text = str(value).strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    parsed = datetime.fromisoformat(text)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    # нулевое время Go-клиентов означает "без срока действия"
    if parsed.year <= 1:
        return None
    return parsed


@dataclass(frozen=True)
class OAuth2Token:
    """
    Назначение:
        OAuth2 токен пользователя.
    Контракт:
        - expiry=None означает бессрочный токен.
        - to_dict()/from_dict() используют формат файла учётных данных:
          access_token, token_type, refresh_token, expiry (ISO 8601).
    """

    access_token: str
    token_type: str = "Bearer"
    refresh_token: str | None = None
    expiry: datetime | None = None

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "OAuth2Token":
        return cls(
            access_token=str(data.get("access_token") or ""),
            token_type=str(data.get("token_type") or "Bearer"),
            refresh_token=data.get("refresh_token") or None,
            expiry=_parse_expiry(data.get("expiry")),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "access_token": self.access_token,
            "token_type": self.token_type,
            "refresh_token": self.refresh_token or "",
            "expiry": self.expiry.isoformat() if self.expiry else "",
        }

    def is_blank(self) -> bool:
        return not self.access_token.strip() and not (self.refresh_token or "").strip()

    def is_expired(self, now: datetime | None = None) -> bool:
        if self.expiry is None:
            return False
        now = now or datetime.now(timezone.utc)
        return now >= self.expiry - EXPIRY_LEEWAY


class OAuth2TokenSource:
    """
    Назначение:
        Источник bearer-токена поверх OAuth2Token.

    Алгоритм:
        - access_token() возвращает текущий токен.
        - Если токен истёк и есть refresh_token + OAuth2AppConfig, выполняется
          POST grant_type=refresh_token на OAUTH2_TOKEN_URL, результат сохраняется.
        - Без refresh-данных истёкший токен отдаётся как есть: решение за сервером.

    Инварианты/гарантии:
        - Обновление сериализуется под lock: параллельные вызовы не шлют два refresh.
    """

    def __init__(
        self,
        token: OAuth2Token,
        app: OAuth2AppConfig | None = None,
        token_url: str = OAUTH2_TOKEN_URL,
        transport: httpx.BaseTransport | None = None,
        timeout_seconds: float = 20.0,
    ):
        self._lock = threading.Lock()
        self._token = token
        self._app = app
        self._token_url = token_url
        self._transport = transport
        self._timeout_seconds = timeout_seconds

    @property
    def token(self) -> OAuth2Token:
        with self._lock:
            return self._token

    def access_token(self) -> str:
        with self._lock:
            if self._token.is_expired() and self._can_refresh():
                self._token = self._refresh(self._token)
            return self._token.access_token

    def _can_refresh(self) -> bool:
        return self._app is not None and bool(self._token.refresh_token)

    def _refresh(self, current: OAuth2Token) -> OAuth2Token:
        app = self._app
        if app is None:
            raise AppError(category="config", code="OAUTH2_APP_NOT_CONFIGURED", message="OAuth2 app is not configured")
        form = {
            "grant_type": "refresh_token",
            "refresh_token": current.refresh_token or "",
            "client_id": app.client_id,
            "client_secret": app.client_secret,
        }
        client = httpx.Client(transport=self._transport, timeout=self._timeout_seconds)
        try:
            resp = client.post(self._token_url, data=form, headers={"accept": "application/json"})
        except httpx.HTTPError as exc:
            raise ApiError("Network error", code=ErrorCode.NETWORK_ERROR.value) from exc
        finally:
            # переданный снаружи транспорт не закрываем
            if self._transport is None:
                client.close()

        if not 200 <= resp.status_code <= 299:
            raise decode_error_response(resp.status_code, resp.reason_phrase, resp.content)
        try:
            data = resp.json()
        except ValueError as exc:
            raise ApiError(
                "Invalid JSON response",
                status_code=resp.status_code,
                code=ErrorCode.INVALID_JSON.value,
            ) from exc
        if not isinstance(data, dict):
            raise ApiError(
                "unexpected token response: expected a JSON object",
                status_code=resp.status_code,
                code=ErrorCode.INVALID_JSON.value,
            )

        expires_in = data.get("expires_in")
        try:
            lifetime = int(expires_in) if expires_in else None
        except (TypeError, ValueError) as exc:
            raise ApiError(
                f"unexpected token response: expires_in={expires_in!r}",
                status_code=resp.status_code,
                code=ErrorCode.INVALID_JSON.value,
            ) from exc

        refreshed = current
        if data.get("access_token"):
            refreshed = replace(refreshed, access_token=str(data["access_token"]))
        if data.get("refresh_token"):
            refreshed = replace(refreshed, refresh_token=str(data["refresh_token"]))
        if data.get("token_type"):
            refreshed = replace(refreshed, token_type=str(data["token_type"]))
        return replace(
            refreshed,
            expiry=datetime.now(timezone.utc) + timedelta(seconds=lifetime) if lifetime else None,
        )


__all__ = [
    "OAUTH2_TOKEN_URL",
    "OAuth2AppConfig",
    "OAuth2Token",
    "OAuth2TokenSource",
]

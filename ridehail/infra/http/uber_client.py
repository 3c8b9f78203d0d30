from __future__ import annotations

import logging
import os
import threading
import time
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Any, Mapping

import httpx

from ridehail.common.time_utils import getDurationMs
from ridehail.domain.actionable_errors import ERR_INVALID_FARE_ID
from ridehail.domain.error_codes import ErrorCode
from ridehail.domain.models import (
    DeliveryListRequest,
    DeliveryRequest,
    Delivery,
    DriverPaymentsQuery,
    EstimateRequest,
    Location,
    Payment,
    PaymentListing,
    PlaceParams,
    PriceEstimate,
    Product,
    Profile,
    PromoCode,
    Receipt,
    Ride,
    RideRequest,
    SavedPlace,
    TimeEstimate,
    Trip,
    TripMap,
    UpfrontFare,
    parse_place_name,
)
from ridehail.domain.paging import Pager
from ridehail.domain.ports.credentials import TokenSourceProtocol
from ridehail.errors import AppError, InvalidRequestError, TokenNotConfiguredError
from ridehail.infra.auth.oauth2 import OAuth2AppConfig, OAuth2Token, OAuth2TokenSource
from ridehail.infra.http.api_errors import ApiError, decode_error_response
from ridehail.infra.http.paginator import PageSpec, PageStream, open_page_stream
from ridehail.infra.logging.setup import logEvent
from ridehail.infra.secrets.token_file import TokenFileStore

DEFAULT_API_VERSION = "v1.2"
LEGACY_API_VERSION = "v1"
PRODUCTION_HOST = "api.uber.com"
SANDBOX_HOST = "sandbox-api.uber.com"
ENV_TOKEN_KEY = "UBER_TOKEN_KEY"
DEFAULT_TIMEOUT_SECONDS = 20.0
MAX_SEAT_COUNT = 2

HISTORY_PAGES: PageSpec[Trip] = PageSpec(
    resource="history",
    path="/history",
    items_key="history",
    parse_item=Trip.from_dict,
)


@dataclass(frozen=True)
class _RequestState:
    token: str | None
    token_source: TokenSourceProtocol | None
    http: httpx.Client
    sandbox: bool

    def resolve_token(self) -> str | None:
        if self.token_source is not None:
            return self.token_source.access_token() or None
        return self.token or None


def _host(sandbox: bool) -> str:
    return SANDBOX_HOST if sandbox else PRODUCTION_HOST


def _clean_params(params: Mapping[str, Any] | None) -> dict[str, Any]:
    return {k: v for k, v in (params or {}).items() if v is not None}


def _require_text(value: str | None, field_name: str) -> str:
    text = (value or "").strip()
    if not text:
        raise InvalidRequestError(f"{field_name} is required", field_name)
    return text


class UberClient:
    """
    Назначение:
        Клиент REST API сервиса поездок.

    Контракт:
        - Учётные данные: статический bearer-токен или OAuth2 источник токена;
          установка одного сбрасывает другой. Без них заголовок Authorization не отправляется.
        - sandbox переключает хост на sandbox-api; влияет только на запросы после переключения.
        - Постраничные методы возвращают уже запущенный PageStream.

    Инварианты/гарантии:
        - Изменяемое состояние (токен, транспорт, sandbox, timeout) читается под lock
          одним снимком; сетевой ввод-вывод выполняется вне lock.
    """

    def __init__(
        self,
        token: str | None = None,
        token_source: TokenSourceProtocol | None = None,
        sandbox: bool = False,
        timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS,
        transport: httpx.BaseTransport | None = None,
        logger: logging.Logger | None = None,
        run_id: str | None = None,
    ):
        self._lock = threading.Lock()
        self._token = (token or "").strip() or None
        self._token_source = token_source if self._token is None else None
        self._sandbox = sandbox
        self._timeout_seconds = timeout_seconds
        self._transport = transport
        self._http = httpx.Client(transport=transport, timeout=timeout_seconds)
        # заменённые клиенты могут ещё использоваться снимками запущенных потоков
        self._retired: list[httpx.Client] = []
        self.logger = logger
        self.run_id = run_id

    # --- construction ----------------------------------------------------

    @classmethod
    def create(cls, *tokens: str | None, env: Mapping[str, str] | None = None, **kwargs: Any) -> "UberClient":
        """
        Алгоритм:
            - первый непустой токен из аргументов;
            - иначе UBER_TOKEN_KEY из окружения;
            - иначе TokenNotConfiguredError.
        """
        for candidate in tokens:
            if candidate and candidate.strip():
                return cls(token=candidate.strip(), **kwargs)
        return cls.from_env(env=env, **kwargs)

    @classmethod
    def from_env(cls, env: Mapping[str, str] | None = None, **kwargs: Any) -> "UberClient":
        env = os.environ if env is None else env
        token = (env.get(ENV_TOKEN_KEY) or "").strip()
        if not token:
            raise TokenNotConfiguredError(f"{ENV_TOKEN_KEY!r} was not set")
        return cls(token=token, **kwargs)

    @classmethod
    def from_oauth2_token(
        cls,
        token: OAuth2Token,
        app: OAuth2AppConfig | None = None,
        **kwargs: Any,
    ) -> "UberClient":
        transport = kwargs.get("transport")
        source = OAuth2TokenSource(token, app=app, transport=transport)
        return cls(token_source=source, **kwargs)

    @classmethod
    def from_token_file(
        cls,
        path: str | Path,
        app: OAuth2AppConfig | None = None,
        **kwargs: Any,
    ) -> "UberClient":
        return cls.from_oauth2_token(TokenFileStore(path).read(), app=app, **kwargs)

    # --- state -----------------------------------------------------------

    def set_token(self, token: str | None) -> None:
        with self._lock:
            self._token = (token or "").strip() or None
            self._token_source = None

    def set_oauth2_token(self, token: OAuth2Token, app: OAuth2AppConfig | None = None) -> None:
        with self._lock:
            self._token_source = OAuth2TokenSource(
                token,
                app=app,
                transport=self._transport,
                timeout_seconds=self._timeout_seconds,
            )
            self._token = None

    def set_token_source(self, token_source: TokenSourceProtocol | None) -> None:
        with self._lock:
            self._token_source = token_source
            self._token = None

    def set_transport(self, transport: httpx.BaseTransport | None) -> None:
        with self._lock:
            self._transport = transport
            self._retired.append(self._http)
            self._http = httpx.Client(transport=transport, timeout=self._timeout_seconds)

    def set_sandbox(self, sandbox: bool) -> None:
        with self._lock:
            self._sandbox = bool(sandbox)

    def set_timeout(self, timeout_seconds: float) -> None:
        with self._lock:
            self._timeout_seconds = timeout_seconds
            self._retired.append(self._http)
            self._http = httpx.Client(transport=self._transport, timeout=timeout_seconds)

    def close(self) -> None:
        """Закрывает текущий и все заменённые HTTP-клиенты."""
        with self._lock:
            clients = [*self._retired, self._http]
            self._retired = []
        for http in clients:
            http.close()

    def __enter__(self) -> "UberClient":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    @property
    def sandbox(self) -> bool:
        with self._lock:
            return self._sandbox

    def _snapshot(self) -> _RequestState:
        with self._lock:
            return _RequestState(
                token=self._token,
                token_source=self._token_source,
                http=self._http,
                sandbox=self._sandbox,
            )

    def base_url(self, version: str | None = None) -> str:
        return f"https://{_host(self.sandbox)}/{version or DEFAULT_API_VERSION}"

    def auth_header(self) -> str | None:
        """'Bearer <token>' либо None, если токен не настроен."""
        token = self._snapshot().resolve_token()
        if not token:
            return None
        return f"Bearer {token}"

    # --- transport -------------------------------------------------------

    def _resolve_token(self, state: _RequestState, method: str, path: str) -> str | None:
        """Токен из снимка; сбой источника токена превращается в ApiError NETWORK_ERROR."""
        try:
            return state.resolve_token()
        except AppError:
            raise
        except Exception as exc:
            logEvent(self.logger, logging.ERROR, self.run_id, "api", f"{method} {path} token source failed: {exc}")
            raise ApiError(
                f"cannot obtain access token: {exc}",
                status_code=None,
                retryable=False,
                code=ErrorCode.NETWORK_ERROR.value,
            ) from exc

    def _request(
        self,
        method: str,
        path: str,
        version: str | None = None,
        params: Mapping[str, Any] | None = None,
        json_body: Any | None = None,
        require_token: bool = False,
    ) -> Any:
        """
        Назначение:
            Один HTTP-запрос с авторизацией и декодированием ответа.
        Ошибки/исключения:
            - TokenNotConfiguredError, если require_token и токена нет (до сети).
            - ApiError NETWORK_ERROR на любой ошибке httpx (сеть, таймаут, декодирование тела,
              редиректы) и на сбое источника токена.
            - CodedError/StructuredError на не-2xx.
            - ApiError INVALID_JSON, если 2xx-тело не JSON.
        """
        state = self._snapshot()
        token = self._resolve_token(state, method, path)
        if require_token and not token:
            raise TokenNotConfiguredError()

        url = f"https://{_host(state.sandbox)}/{version or DEFAULT_API_VERSION}{path}"
        headers = {"accept": "application/json"}
        if token:
            headers["Authorization"] = f"Bearer {token}"

        start = time.monotonic()
        try:
            resp = state.http.request(
                method,
                url,
                params=_clean_params(params),
                json=json_body,
                headers=headers,
            )
        except httpx.HTTPError as exc:
            logEvent(self.logger, logging.ERROR, self.run_id, "api", f"{method} {path} network error: {exc}")
            raise ApiError("Network error", status_code=None, retryable=False, code=ErrorCode.NETWORK_ERROR.value) from exc

        logEvent(
            self.logger,
            logging.DEBUG,
            self.run_id,
            "api",
            f"{method} {path} status={resp.status_code} durationMs={getDurationMs(start, time.monotonic())}",
        )

        if not 200 <= resp.status_code <= 299:
            err = decode_error_response(resp.status_code, resp.reason_phrase, resp.content)
            logEvent(self.logger, logging.WARNING, self.run_id, "api", f"{method} {path} failed code={err.code}")
            raise err

        if not resp.content:
            return None
        try:
            return resp.json()
        except ValueError as exc:
            raise ApiError(
                "Invalid JSON response",
                status_code=resp.status_code,
                retryable=False,
                code=ErrorCode.INVALID_JSON.value,
            ) from exc

    def _get_json(self, path: str, params: Mapping[str, Any], version: str | None = None) -> Any:
        return self._request("GET", path, version=version, params=params)

    def _get_object(self, path: str, version: str | None = None, params: Mapping[str, Any] | None = None) -> dict:
        data = self._request("GET", path, version=version, params=params)
        return self._as_object(data, path)

    @staticmethod
    def _as_object(data: Any, path: str) -> dict:
        if not isinstance(data, dict):
            raise ApiError(f"unexpected response from {path}: expected a JSON object", code=ErrorCode.EMPTY_RESPONSE.value)
        return data

    def _open_stream(self, spec: PageSpec, pager: Pager | None) -> PageStream:
        return open_page_stream(spec, pager, self._get_json, logger=self.logger, run_id=self.run_id)

    # --- paginated resources -------------------------------------------

    def list_history(self, pager: Pager | None = None) -> PageStream[Trip]:
        """История поездок пользователя, постранично (GET /history)."""
        return self._open_stream(HISTORY_PAGES, pager)

    def list_all_my_history(self) -> PageStream[Trip]:
        return self.list_history(Pager())

    def estimate_price(self, request: EstimateRequest | None, pager: Pager | None = None) -> PageStream[PriceEstimate]:
        """
        Оценки цены по продуктам (GET /estimates/price).
        request=None -> InvalidRequestError синхронно, без воркера и запросов.
        """
        if request is None:
            raise InvalidRequestError("estimate request is required", "request")
        base_query = request.to_query(include_seat_count=True)
        spec = PageSpec(
            resource="prices",
            path="/estimates/price",
            items_key="prices",
            parse_item=PriceEstimate.from_dict,
            build_query=lambda p: {**base_query, **p.to_query()},
        )
        return self._open_stream(spec, pager)

    def estimate_time(self, request: EstimateRequest | None, pager: Pager | None = None) -> PageStream[TimeEstimate]:
        """Оценки времени подачи (GET /estimates/time); seat_count не отправляется."""
        if request is None:
            raise InvalidRequestError("estimate request is required", "request")
        base_query = request.to_query(include_seat_count=False)
        spec = PageSpec(
            resource="times",
            path="/estimates/time",
            items_key="times",
            parse_item=TimeEstimate.from_dict,
            build_query=lambda p: {**base_query, **p.to_query()},
        )
        return self._open_stream(spec, pager)

    def list_deliveries(
        self,
        request: DeliveryListRequest | None = None,
        pager: Pager | None = None,
    ) -> PageStream[Delivery]:
        """Доставки (GET v1/deliveries); без запроса фильтр status=ready."""
        request = request or DeliveryListRequest()
        spec = PageSpec(
            resource="deliveries",
            path="/deliveries",
            items_key="deliveries",
            parse_item=Delivery.from_dict,
            version=LEGACY_API_VERSION,
            build_query=lambda p: {**request.to_query(), **p.to_query()},
        )
        return self._open_stream(spec, pager)

    def list_driver_payments(
        self,
        query: DriverPaymentsQuery | None = None,
        pager: Pager | None = None,
    ) -> PageStream[Payment]:
        """Платежи водителя (GET v1/partners/payments), from_time/to_time в unix-секундах."""
        query = query or DriverPaymentsQuery()
        spec = PageSpec(
            resource="payments",
            path="/partners/payments",
            items_key="payments",
            parse_item=Payment.from_dict,
            version=LEGACY_API_VERSION,
            build_query=lambda p: {**query.to_query(), **p.to_query()},
        )
        return self._open_stream(spec, pager)

    # --- profile / payments ----------------------------------------------

    def list_payment_methods(self) -> PaymentListing:
        return PaymentListing.from_dict(self._get_object("/payment-methods"))

    def retrieve_my_profile(self) -> Profile:
        return Profile.from_dict(self._get_object("/me"))

    def driver_profile(self) -> Profile:
        return Profile.from_dict(self._get_object("/partners/me", version=LEGACY_API_VERSION))

    def apply_promo_code(self, code: str | None) -> PromoCode:
        code = _require_text(code, "promo_code")
        data = self._request("PATCH", "/me", json_body={"applied_promotion_codes": code}, require_token=True)
        return PromoCode.from_dict(self._as_object(data, "/me"))

    # --- products / places -----------------------------------------------

    def list_products(self, place: Location | None) -> list[Product]:
        if place is None:
            raise InvalidRequestError("place is required", "place")
        data = self._get_object("/products", params={"latitude": place.latitude, "longitude": place.longitude})
        return [Product.from_dict(item) for item in data.get("products") or []]

    def product_by_id(self, product_id: str | None) -> Product:
        product_id = _require_text(product_id, "product_id")
        product = Product.from_dict(self._get_object(f"/products/{product_id}"))
        if product.is_blank():
            raise ApiError(f"no product returned for {product_id!r}", code=ErrorCode.EMPTY_RESPONSE.value)
        return product

    def place(self, name: str | None) -> SavedPlace:
        place_name = parse_place_name(name)
        if place_name is None:
            raise InvalidRequestError("place name is required", "place")
        return SavedPlace.from_dict(self._get_object(f"/places/{place_name.value}"))

    def update_place(self, params: PlaceParams | None) -> SavedPlace:
        if params is None:
            raise InvalidRequestError("place params are required", "place")
        place_name = parse_place_name(params.place)
        if place_name is None:
            raise InvalidRequestError("place name is required", "place")
        _require_text(params.address, "address")
        data = self._request("PUT", f"/places/{place_name.value}", json_body=params.to_json())
        return SavedPlace.from_dict(self._as_object(data, "/places"))

    # --- rides -------------------------------------------------------------

    def request_receipt(self, request_id: str | None) -> Receipt:
        request_id = _require_text(request_id, "request_id")
        return Receipt.from_dict(self._get_object(f"/requests/{request_id}/receipt"))

    def request_map(self, trip_id: str | None) -> TripMap:
        trip_id = _require_text(trip_id, "trip_id")
        trip_map = TripMap.from_dict(self._get_object(f"/requests/{trip_id}/map"))
        if not trip_map.href:
            raise ApiError(f"no map returned for trip {trip_id!r}", code=ErrorCode.EMPTY_RESPONSE.value)
        return trip_map

    def upfront_fare(self, request: EstimateRequest | None) -> UpfrontFare:
        """
        Фиксированная цена поездки (POST /requests/estimate).
        seat_count допускается только 0..2; пустой ответ считается ошибкой.
        """
        if request is None:
            raise InvalidRequestError("estimate request is required", "request")
        if request.seat_count < 0 or request.seat_count > MAX_SEAT_COUNT:
            raise InvalidRequestError(
                f"seat_count must be between 0 and {MAX_SEAT_COUNT}, got {request.seat_count}",
                "seat_count",
            )
        data = self._request("POST", "/requests/estimate", json_body=request.to_json())
        fare = UpfrontFare.from_dict(self._as_object(data, "/requests/estimate"))
        if fare.is_blank():
            raise ApiError("received a blank upfront fare", code=ErrorCode.EMPTY_RESPONSE.value)
        return fare

    def _confirm_fare(self, request: RideRequest) -> RideRequest:
        if (request.fare_id or "").strip() or request.prompt_on_fare is None:
            return request
        fare = self.upfront_fare(request.to_estimate_request())
        confirmed = replace(request, fare_id=fare.fare.fare_id if fare.fare else None)
        if not confirmed.product_id and fare.trip is not None:
            confirmed = replace(confirmed, product_id=fare.trip.product_id)
        request.prompt_on_fare(fare)
        return confirmed

    def request_ride(self, request: RideRequest | None) -> Ride:
        """
        Назначение:
            Заказ поездки (POST /requests).
        Алгоритм:
            1) Без fare_id и с prompt_on_fare: получить upfront fare, подставить fare_id/product_id,
               отдать цену в callback (исключение из callback отменяет заказ).
            2) Пустой fare_id -> ActionableError invalid_fare_id.
            3) start_place/end_place должны быть home/work.
        """
        if request is None:
            raise replace(ERR_INVALID_FARE_ID)
        request = self._confirm_fare(request)
        if not (request.fare_id or "").strip():
            raise replace(ERR_INVALID_FARE_ID)
        body = request.to_json()
        data = self._request("POST", "/requests", json_body=body, require_token=True)
        return Ride.from_dict(self._as_object(data, "/requests"))

    # --- deliveries --------------------------------------------------------

    def request_delivery(self, request: DeliveryRequest | None) -> Delivery:
        if request is None:
            raise InvalidRequestError("delivery request is required", "request")
        request.validate()
        data = self._request("POST", "/deliveries", json_body=request.to_json())
        return Delivery.from_dict(self._as_object(data, "/deliveries"))

    def cancel_delivery(self, delivery_id: str | None) -> None:
        delivery_id = _require_text(delivery_id, "delivery_id")
        self._request("POST", f"/deliveries/{delivery_id}/cancel")


__all__ = [
    "DEFAULT_API_VERSION",
    "ENV_TOKEN_KEY",
    "LEGACY_API_VERSION",
    "UberClient",
]

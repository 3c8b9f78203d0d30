from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Callable, Mapping

from ridehail.common.time_utils import toUnixSeconds
from ridehail.errors import InvalidRequestError


class PlaceName(str, Enum):
    """Сохранённые места пользователя; API принимает только эти два имени."""

    HOME = "home"
    WORK = "work"


def parse_place_name(value: "PlaceName | str | None") -> PlaceName | None:
    """
    Контракт:
        - None/пустая строка -> None.
        - "home"/"work" -> PlaceName.
        - Иное -> InvalidRequestError.
    """
    if value is None:
        return None
    if isinstance(value, PlaceName):
        return value
    text = str(value).strip()
    if not text:
        return None
    try:
        return PlaceName(text)
    except ValueError as exc:
        raise InvalidRequestError(f"unknown place {text!r}; expected home or work", "place") from exc


def _opt_float(value: Any) -> float | None:
    if value is None or value == "":
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def _opt_str(value: Any) -> str | None:
    if value is None:
        return None
    return str(value)


def _drop_empty(data: Mapping[str, Any]) -> dict[str, Any]:
    return {k: v for k, v in data.items() if v not in (None, "", 0, 0.0, False)}


# --- history -------------------------------------------------------------


@dataclass(frozen=True)
class City:
    latitude: float | None = None
    longitude: float | None = None
    name: str | None = None
    address: str | None = None

    @classmethod
    def from_dict(cls, data: Mapping[str, Any] | None) -> "City | None":
        if not data:
            return None
        return cls(
            latitude=_opt_float(data.get("latitude")),
            longitude=_opt_float(data.get("longitude")),
            name=_opt_str(data.get("display_name")),
            address=_opt_str(data.get("address")),
        )


@dataclass(frozen=True)
class Trip:
    """Поездка из истории пользователя (GET /history)."""

    request_id: str
    product_id: str | None = None
    status: str | None = None
    distance_miles: float | None = None
    start_time: int | None = None
    end_time: int | None = None
    start_city: City | None = None

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Trip":
        return cls(
            request_id=str(data.get("request_id") or ""),
            product_id=_opt_str(data.get("product_id")),
            status=_opt_str(data.get("status")),
            distance_miles=_opt_float(data.get("distance")),
            start_time=data.get("start_time"),
            end_time=data.get("end_time"),
            start_city=City.from_dict(data.get("start_city")),
        )


# --- estimates -----------------------------------------------------------


@dataclass(frozen=True)
class EstimateRequest:
    """
    Назначение:
        Запрос оценки цены/времени прибытия.
    Контракт:
        - Точка старта задаётся координатами или start_place (home/work), то же для финиша.
        - seat_count попадает только в запрос цены (include_seat_count=True).
    """

    start_latitude: float = 0.0
    start_longitude: float = 0.0
    end_latitude: float = 0.0
    end_longitude: float = 0.0
    seat_count: int = 0
    product_id: str | None = None
    start_place: PlaceName | str | None = None
    end_place: PlaceName | str | None = None

    def to_query(self, include_seat_count: bool = True) -> dict[str, Any]:
        query: dict[str, Any] = {
            "start_latitude": self.start_latitude,
            "start_longitude": self.start_longitude,
            "end_latitude": self.end_latitude,
            "end_longitude": self.end_longitude,
        }
        if include_seat_count and self.seat_count:
            query["seat_count"] = self.seat_count
        if self.product_id:
            query["product_id"] = self.product_id
        start_place = parse_place_name(self.start_place)
        end_place = parse_place_name(self.end_place)
        if start_place is not None:
            query["start_place_id"] = start_place.value
        if end_place is not None:
            query["end_place_id"] = end_place.value
        return query

    def to_json(self) -> dict[str, Any]:
        return _drop_empty(self.to_query(include_seat_count=True))


@dataclass(frozen=True)
class PriceEstimate:
    product_id: str
    display_name: str | None = None
    localized_display_name: str | None = None
    currency_code: str | None = None
    estimate: str | None = None
    duration_seconds: float | None = None
    distance: float | None = None
    minimum: float | None = None
    low_estimate: float | None = None
    high_estimate: float | None = None
    surge_multiplier: float | None = None

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "PriceEstimate":
        return cls(
            product_id=str(data.get("product_id") or ""),
            display_name=_opt_str(data.get("display_name")),
            localized_display_name=_opt_str(data.get("localized_display_name")),
            currency_code=_opt_str(data.get("currency_code")),
            estimate=_opt_str(data.get("estimate")),
            duration_seconds=_opt_float(data.get("duration")),
            distance=_opt_float(data.get("distance")),
            minimum=_opt_float(data.get("minimum")),
            low_estimate=_opt_float(data.get("low_estimate")),
            high_estimate=_opt_float(data.get("high_estimate")),
            surge_multiplier=_opt_float(data.get("surge_multiplier")),
        )


@dataclass(frozen=True)
class TimeEstimate:
    product_id: str
    display_name: str | None = None
    localized_display_name: str | None = None
    eta_seconds: float | None = None

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "TimeEstimate":
        return cls(
            product_id=str(data.get("product_id") or ""),
            display_name=_opt_str(data.get("display_name")),
            localized_display_name=_opt_str(data.get("localized_display_name")),
            eta_seconds=_opt_float(data.get("estimate")),
        )


@dataclass(frozen=True)
class Fare:
    fare_id: str | None = None
    value: float | None = None
    currency_code: str | None = None
    display: str | None = None
    expires_at: int | None = None

    @classmethod
    def from_dict(cls, data: Mapping[str, Any] | None) -> "Fare | None":
        if not data:
            return None
        return cls(
            fare_id=_opt_str(data.get("fare_id")),
            value=_opt_float(data.get("value")),
            currency_code=_opt_str(data.get("currency_code")),
            display=_opt_str(data.get("display")),
            expires_at=data.get("expires_at"),
        )


@dataclass(frozen=True)
class UpfrontFare:
    """Ответ POST /requests/estimate: фиксированная цена и оценка поездки."""

    fare: Fare | None = None
    trip: Trip | None = None
    pickup_estimate_minutes: float | None = None
    surge_confirmation_id: str | None = None
    surge_confirmation_url: str | None = None

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "UpfrontFare":
        estimate = data.get("estimate") or {}
        trip = data.get("trip")
        return cls(
            fare=Fare.from_dict(data.get("fare")),
            trip=Trip.from_dict(trip) if trip else None,
            pickup_estimate_minutes=_opt_float(data.get("pickup_estimate")),
            surge_confirmation_id=_opt_str(estimate.get("surge_confirmation_id")),
            surge_confirmation_url=_opt_str(estimate.get("surge_confirmation_href")),
        )

    def is_blank(self) -> bool:
        return self.fare is None and self.trip is None and self.pickup_estimate_minutes is None


# --- rides ---------------------------------------------------------------


@dataclass(frozen=True)
class Location:
    latitude: float | None = None
    longitude: float | None = None
    bearing: int | None = None
    address: str | None = None
    address_2: str | None = None
    city: str | None = None
    state: str | None = None
    postal_code: str | None = None
    country: str | None = None

    @classmethod
    def from_dict(cls, data: Mapping[str, Any] | None) -> "Location | None":
        if not data:
            return None
        return cls(
            latitude=_opt_float(data.get("latitude")),
            longitude=_opt_float(data.get("longitude")),
            bearing=data.get("bearing"),
            address=_opt_str(data.get("address")),
            address_2=_opt_str(data.get("address_2")),
            city=_opt_str(data.get("city")),
            state=_opt_str(data.get("state")),
            postal_code=_opt_str(data.get("postal_code")),
            country=_opt_str(data.get("country")),
        )

    def to_json(self) -> dict[str, Any]:
        return _drop_empty(
            {
                "latitude": self.latitude,
                "longitude": self.longitude,
                "bearing": self.bearing,
                "address": self.address,
                "address_2": self.address_2,
                "city": self.city,
                "state": self.state,
                "postal_code": self.postal_code,
                "country": self.country,
            }
        )


@dataclass
class RideRequest:
    """
    Назначение:
        Запрос поездки (POST /requests).
    Контракт:
        - fare_id обязателен; если он пуст и задан prompt_on_fare, клиент сначала
          запрашивает upfront fare и передаёт его в callback для подтверждения.
        - prompt_on_fare может бросить исключение, чтобы отказаться от цены.
    """

    fare_id: str | None = None
    start_latitude: float = 0.0
    start_longitude: float = 0.0
    end_latitude: float = 0.0
    end_longitude: float = 0.0
    start_place: PlaceName | str | None = None
    end_place: PlaceName | str | None = None
    product_id: str | None = None
    surge_confirmation_id: str | None = None
    payment_method_id: str | None = None
    seat_count: int = 0
    expense_code: str | None = None
    expense_memo: str | None = None
    prompt_on_fare: Callable[[UpfrontFare], None] | None = field(default=None, repr=False, compare=False)

    def to_estimate_request(self) -> EstimateRequest:
        return EstimateRequest(
            start_latitude=self.start_latitude,
            start_longitude=self.start_longitude,
            end_latitude=self.end_latitude,
            end_longitude=self.end_longitude,
            seat_count=self.seat_count,
            start_place=self.start_place,
            end_place=self.end_place,
        )

    def to_json(self) -> dict[str, Any]:
        start_place = parse_place_name(self.start_place)
        end_place = parse_place_name(self.end_place)
        return _drop_empty(
            {
                "fare_id": self.fare_id,
                "start_place_id": start_place.value if start_place else None,
                "end_place_id": end_place.value if end_place else None,
                "start_latitude": self.start_latitude,
                "start_longitude": self.start_longitude,
                "end_latitude": self.end_latitude,
                "end_longitude": self.end_longitude,
                "product_id": self.product_id,
                "surge_confirmation_id": self.surge_confirmation_id,
                "payment_method_id": self.payment_method_id,
                "seat_count": self.seat_count,
                "expense_code": self.expense_code,
                "expense_memo": self.expense_memo,
            }
        )


@dataclass(frozen=True)
class Vehicle:
    make: str | None = None
    model: str | None = None
    license_plate: str | None = None
    picture_url: str | None = None


@dataclass(frozen=True)
class Driver:
    name: str | None = None
    phone_number: str | None = None
    sms_number: str | None = None
    picture_url: str | None = None
    rating: float | None = None


@dataclass(frozen=True)
class Ride:
    request_id: str
    product_id: str | None = None
    status: str | None = None
    eta_minutes: int | None = None
    surge_multiplier: float | None = None
    vehicle: Vehicle | None = None
    driver: Driver | None = None
    location: Location | None = None

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Ride":
        vehicle = data.get("vehicle")
        driver = data.get("driver")
        return cls(
            request_id=str(data.get("request_id") or ""),
            product_id=_opt_str(data.get("product_id")),
            status=_opt_str(data.get("status")),
            eta_minutes=data.get("eta"),
            surge_multiplier=_opt_float(data.get("surge_multiplier")),
            vehicle=Vehicle(
                make=_opt_str(vehicle.get("make")),
                model=_opt_str(vehicle.get("model")),
                license_plate=_opt_str(vehicle.get("license_plate")),
                picture_url=_opt_str(vehicle.get("picture_url")),
            )
            if vehicle
            else None,
            driver=Driver(
                name=_opt_str(driver.get("name")),
                phone_number=_opt_str(driver.get("phone_number")),
                sms_number=_opt_str(driver.get("sms_number")),
                picture_url=_opt_str(driver.get("picture_url")),
                rating=_opt_float(driver.get("rating")),
            )
            if driver
            else None,
            location=Location.from_dict(data.get("location")),
        )


@dataclass(frozen=True)
class Receipt:
    request_id: str
    subtotal: str | None = None
    total_fare: str | None = None
    total_charged: str | None = None
    total_owed: float | None = None
    currency_code: str | None = None
    duration: str | None = None
    distance: str | None = None
    distance_label: str | None = None

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Receipt":
        return cls(
            request_id=str(data.get("request_id") or ""),
            subtotal=_opt_str(data.get("subtotal")),
            total_fare=_opt_str(data.get("total_fare")),
            total_charged=_opt_str(data.get("total_charged")),
            total_owed=_opt_float(data.get("total_owed")),
            currency_code=_opt_str(data.get("currency_code")),
            duration=_opt_str(data.get("duration")),
            distance=_opt_str(data.get("distance")),
            distance_label=_opt_str(data.get("distance_label")),
        )


@dataclass(frozen=True)
class TripMap:
    request_id: str
    href: str

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "TripMap":
        return cls(request_id=str(data.get("request_id") or ""), href=str(data.get("href") or ""))


# --- products / places / profile ----------------------------------------


@dataclass(frozen=True)
class PriceDetails:
    base: float | None = None
    minimum: float | None = None
    cost_per_minute: float | None = None
    cost_per_distance: float | None = None
    distance_unit: str | None = None
    cancellation_fee: float | None = None
    currency_code: str | None = None


@dataclass(frozen=True)
class Product:
    product_id: str
    display_name: str | None = None
    description: str | None = None
    short_description: str | None = None
    capacity: int | None = None
    shared: bool = False
    cash_enabled: bool = False
    upfront_fare_enabled: bool = False
    image: str | None = None
    price_details: PriceDetails | None = None

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Product":
        details = data.get("price_details")
        return cls(
            product_id=str(data.get("product_id") or ""),
            display_name=_opt_str(data.get("display_name")),
            description=_opt_str(data.get("description")),
            short_description=_opt_str(data.get("short_description")),
            capacity=data.get("capacity"),
            shared=bool(data.get("shared")),
            cash_enabled=bool(data.get("cash_enabled")),
            upfront_fare_enabled=bool(data.get("upfront_fare_enabled")),
            image=_opt_str(data.get("image")),
            price_details=PriceDetails(
                base=_opt_float(details.get("base")),
                minimum=_opt_float(details.get("minimum")),
                cost_per_minute=_opt_float(details.get("cost_per_minute")),
                cost_per_distance=_opt_float(details.get("cost_per_distance")),
                distance_unit=_opt_str(details.get("distance_unit")),
                cancellation_fee=_opt_float(details.get("cancellation_fee")),
                currency_code=_opt_str(details.get("currency_code")),
            )
            if details
            else None,
        )

    def is_blank(self) -> bool:
        return not self.product_id and not self.display_name


@dataclass(frozen=True)
class PlaceParams:
    place: PlaceName | str
    address: str

    def to_json(self) -> dict[str, Any]:
        return {"address": self.address}


@dataclass(frozen=True)
class SavedPlace:
    address: str

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "SavedPlace":
        return cls(address=str(data.get("address") or ""))


@dataclass(frozen=True)
class Profile:
    uuid: str | None = None
    first_name: str | None = None
    last_name: str | None = None
    email: str | None = None
    picture: str | None = None
    mobile_verified: bool = False
    promo_code: str | None = None
    rating: float | None = None
    activation_status: str | None = None
    driver_id: str | None = None

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Profile":
        return cls(
            uuid=_opt_str(data.get("uuid")),
            first_name=_opt_str(data.get("first_name")),
            last_name=_opt_str(data.get("last_name")),
            email=_opt_str(data.get("email")),
            picture=_opt_str(data.get("picture")),
            mobile_verified=bool(data.get("mobile_verified")),
            promo_code=_opt_str(data.get("promo_code")),
            rating=_opt_float(data.get("rating")),
            activation_status=_opt_str(data.get("activation_status")),
            driver_id=_opt_str(data.get("driver_id")),
        )


@dataclass(frozen=True)
class PromoCode:
    promo_code: str | None = None
    description: str | None = None

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "PromoCode":
        return cls(promo_code=_opt_str(data.get("promo_code")), description=_opt_str(data.get("description")))


# --- payments ------------------------------------------------------------


@dataclass(frozen=True)
class Payment:
    """Способ оплаты пользователя либо платёж водителя (общая схема API)."""

    payment_id: str | None = None
    payment_method_id: str | None = None
    type: str | None = None
    description: str | None = None
    category: str | None = None
    driver_id: str | None = None
    partner_id: str | None = None
    trip_id: str | None = None
    event_time: float | None = None
    cash_collected: float | None = None
    amount: float | None = None
    currency_code: str | None = None

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Payment":
        return cls(
            payment_id=_opt_str(data.get("payment_id")),
            payment_method_id=_opt_str(data.get("payment_method_id")),
            type=_opt_str(data.get("type")),
            description=_opt_str(data.get("description")),
            category=_opt_str(data.get("category")),
            driver_id=_opt_str(data.get("driver_id")),
            partner_id=_opt_str(data.get("partner_id")),
            trip_id=_opt_str(data.get("trip_id")),
            event_time=_opt_float(data.get("event_time")),
            cash_collected=_opt_float(data.get("cash_collected")),
            amount=_opt_float(data.get("amount")),
            currency_code=_opt_str(data.get("currency_code")),
        )


@dataclass(frozen=True)
class PaymentListing:
    methods: tuple[Payment, ...] = ()
    last_used: str | None = None

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "PaymentListing":
        raw = data.get("payment_methods") or []
        return cls(
            methods=tuple(Payment.from_dict(item) for item in raw),
            last_used=_opt_str(data.get("last_used")),
        )


@dataclass(frozen=True)
class DriverPaymentsQuery:
    """
    Назначение:
        Параметры выборки платежей водителя (GET v1/partners/payments).
    Контракт:
        - start_date/end_date уходят в API как from_time/to_time в unix-секундах.
    """

    start_date: datetime | None = None
    end_date: datetime | None = None

    def to_query(self) -> dict[str, Any]:
        query: dict[str, Any] = {}
        from_time = toUnixSeconds(self.start_date)
        to_time = toUnixSeconds(self.end_date)
        if from_time:
            query["from_time"] = from_time
        if to_time:
            query["to_time"] = to_time
        return query


# --- deliveries ----------------------------------------------------------

DEFAULT_DELIVERY_STATUS = "ready"


@dataclass(frozen=True)
class DeliveryListRequest:
    status: str = DEFAULT_DELIVERY_STATUS

    def to_query(self) -> dict[str, Any]:
        return {"status": self.status or DEFAULT_DELIVERY_STATUS}


@dataclass(frozen=True)
class Contact:
    first_name: str | None = None
    last_name: str | None = None
    company_name: str | None = None
    email: str | None = None
    phone_number: str | None = None
    sms_enabled: bool = False

    @classmethod
    def from_dict(cls, data: Mapping[str, Any] | None) -> "Contact | None":
        if not data:
            return None
        phone = data.get("phone") or {}
        return cls(
            first_name=_opt_str(data.get("first_name")),
            last_name=_opt_str(data.get("last_name")),
            company_name=_opt_str(data.get("company_name")),
            email=_opt_str(data.get("email")),
            phone_number=_opt_str(phone.get("number")),
            sms_enabled=bool(phone.get("sms_enabled")),
        )

    def to_json(self) -> dict[str, Any]:
        body = _drop_empty(
            {
                "first_name": self.first_name,
                "last_name": self.last_name,
                "company_name": self.company_name,
                "email": self.email,
            }
        )
        if self.phone_number:
            body["phone"] = {"number": self.phone_number, "sms_enabled": self.sms_enabled}
        return body


@dataclass(frozen=True)
class Endpoint:
    location: Location | None = None
    contact: Contact | None = None
    special_instructions: str | None = None
    signature_required: bool = False
    includes_alcohol: bool = False

    @classmethod
    def from_dict(cls, data: Mapping[str, Any] | None) -> "Endpoint | None":
        if not data:
            return None
        return cls(
            location=Location.from_dict(data.get("location")),
            contact=Contact.from_dict(data.get("contact")),
            special_instructions=_opt_str(data.get("special_instructions")),
            signature_required=bool(data.get("signature_required")),
            includes_alcohol=bool(data.get("includes_alcohol")),
        )

    def to_json(self) -> dict[str, Any]:
        body = _drop_empty(
            {
                "special_instructions": self.special_instructions,
                "signature_required": self.signature_required,
                "includes_alcohol": self.includes_alcohol,
            }
        )
        if self.location is not None:
            body["location"] = self.location.to_json()
        if self.contact is not None:
            body["contact"] = self.contact.to_json()
        return body


@dataclass(frozen=True)
class Item:
    title: str
    quantity: int
    fragile: bool = False
    currency_code: str | None = None

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Item":
        return cls(
            title=str(data.get("title") or ""),
            quantity=int(data.get("quantity") or 0),
            fragile=bool(data.get("is_fragile")),
            currency_code=_opt_str(data.get("currency_code")),
        )

    def to_json(self) -> dict[str, Any]:
        body: dict[str, Any] = {"title": self.title, "quantity": self.quantity}
        if self.fragile:
            body["is_fragile"] = True
        if self.currency_code:
            body["currency_code"] = self.currency_code
        return body


@dataclass(frozen=True)
class DeliveryRequest:
    """
    Назначение:
        Запрос на доставку (POST v1/deliveries).
    Инварианты/гарантии:
        - validate() проверяет pickup/dropoff (location + contact) и наличие хотя бы
          одного товара с непустым title и quantity > 0.
    """

    pickup: Endpoint | None
    dropoff: Endpoint | None
    items: tuple[Item, ...] = ()
    quote_id: str | None = None
    order_reference_id: str | None = None

    def validate(self) -> None:
        for name, endpoint in (("pickup", self.pickup), ("dropoff", self.dropoff)):
            if endpoint is None:
                raise InvalidRequestError(f"{name} is required", name)
            if endpoint.location is None:
                raise InvalidRequestError(f"{name}.location is required", f"{name}.location")
            if endpoint.contact is None:
                raise InvalidRequestError(f"{name}.contact is required", f"{name}.contact")
        if not self.items:
            raise InvalidRequestError("at least one item is required", "items")
        for index, item in enumerate(self.items):
            if not (item.title or "").strip():
                raise InvalidRequestError(f"item #{index} has no title", "items")
            if item.quantity <= 0:
                raise InvalidRequestError(f"item #{index} must have quantity > 0", "items")

    def to_json(self) -> dict[str, Any]:
        body: dict[str, Any] = {
            "items": [item.to_json() for item in self.items],
            "pickup": self.pickup.to_json() if self.pickup else None,
            "dropoff": self.dropoff.to_json() if self.dropoff else None,
        }
        if self.quote_id:
            body["quote_id"] = self.quote_id
        if self.order_reference_id:
            body["order_reference_id"] = self.order_reference_id
        return body


@dataclass(frozen=True)
class Delivery:
    delivery_id: str
    status: str | None = None
    fee: float | None = None
    quote_id: str | None = None
    order_reference_id: str | None = None
    currency_code: str | None = None
    tracking_url: str | None = None
    created_at: int | None = None
    courier: Contact | None = None
    items: tuple[Item, ...] = ()
    pickup: Endpoint | None = None
    dropoff: Endpoint | None = None

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Delivery":
        return cls(
            delivery_id=str(data.get("delivery_id") or ""),
            status=_opt_str(data.get("status")),
            fee=_opt_float(data.get("fee")),
            quote_id=_opt_str(data.get("quote_id")),
            order_reference_id=_opt_str(data.get("order_reference_id")),
            currency_code=_opt_str(data.get("currency_code")),
            tracking_url=_opt_str(data.get("tracking_url")),
            created_at=data.get("created_at"),
            courier=Contact.from_dict(data.get("courier")),
            items=tuple(Item.from_dict(item) for item in data.get("items") or []),
            pickup=Endpoint.from_dict(data.get("pickup")),
            dropoff=Endpoint.from_dict(data.get("dropoff")),
        )

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, Mapping

from ridehail.errors import AppError


@dataclass
class ActionableError(AppError):
    """
    Назначение:
        Заранее классифицированная ошибка API с подсказкой для пользователя.
    Контракт:
        - code хранит сигнатуру ошибки API (например, "surge").
        - status_code: исходный HTTP-статус, с которым API возвращает эту ошибку.
        - action: необязательная ссылка/контакт для исправления ситуации.
    """

    status_code: int = 0
    action: str = ""

    @property
    def signature(self) -> str:
        return self.code

    def has_action(self) -> bool:
        return bool(self.action)


def _actionable(
    signature: str,
    status_code: int,
    message: str,
    action: str = "",
    retryable: bool = False,
) -> ActionableError:
    return ActionableError(
        category="actionable",
        code=signature,
        message=message,
        retryable=retryable,
        status_code=status_code,
        action=action,
    )


RIDERS_URL = "https://riders.uber.com"

# 400
ERR_UNCONFIRMED_EMAIL = _actionable("unconfirmed_email", 400, "unconfirmed email address", action=RIDERS_URL)
ERR_PROCESSING_REQUEST = _actionable(
    "error_processing_request", 400, "encountered an error processing the request"
)
ERR_PROMOTIONS_REVOKED = _actionable("promotions_revoked", 400, "promotions have been revoked")
ERR_INVALID_PAYMENT = _actionable(
    "invalid_payment", 400, "rider's payment is invalid. Please update billing information"
)
ERR_INVALID_PAYMENT_METHOD = _actionable("invalid_payment_method", 400, "the provided payment method is not valid")
ERR_OUTSTANDING_BALANCE = _actionable(
    "outstanding_balance_update_billing",
    400,
    "your account has outstanding balances. Please update billing information",
)
ERR_INSUFFICIENT_BALANCE = _actionable(
    "insufficient_balance",
    400,
    "insufficient balance on the credit card associated with your account. Please update billing information",
)
ERR_PAYMENT_METHOD_NOT_ALLOWED = _actionable("payment_method_not_allowed", 400, "the payment method is not allowed")
ERR_CARD_HAS_OUTSTANDING_BALANCE = _actionable(
    "card_assoc_outstanding_balance",
    400,
    "the associated card has an outstanding balance. Please update billing information",
)
ERR_INVALID_MOBILE_PHONE_NUMBER = _actionable(
    "invalid_mobile_phone_number",
    400,
    "the mobile phone number is not supported. Phone numbers from providers "
    "that allow temporary numbers are not accepted",
)

# 403
ERR_FORBIDDEN_REQUEST = _actionable(
    "forbidden",
    403,
    "you are forbidden from making a request at this time. Please consult the support team",
    action="https://help.uber.com,support@uber.com",
)
ERR_UNVERIFIED = _actionable("unverified", 403, "your phone number hasn't yet been confirmed", action=RIDERS_URL)
ERR_VERIFICATION_REQUIRED = _actionable(
    "verification_required",
    403,
    "you aren't allowed to make ride requests through the API. Please use the iOS or Android rider app",
)
ERR_PRODUCT_NOT_ALLOWED = _actionable(
    "product_not_allowed",
    403,
    "the requested product is not available to you. Please select another product",
)
ERR_PAY_BALANCE = _actionable(
    "pay_balance",
    403,
    "you have an outstanding balance. Please update your account settings",
    action=RIDERS_URL,
)
ERR_USER_NOT_ALLOWED = _actionable(
    "user_not_allowed", 403, "the user is banned and not permitted to request a ride"
)
ERR_TOO_MANY_CANCELLATIONS = _actionable(
    "too_many_cancellations", 403, "you are temporarily blocked for canceling too many times"
)
ERR_MISSING_NATIONAL_ID = _actionable(
    "missing_national_id",
    403,
    "this jurisdiction requires a registered national ID or passport number before taking a ride. "
    "Please enter it through the iOS or Android app",
)

# 404
ERR_NO_PRODUCT_FOUND = _actionable(
    "no_product_found",
    404,
    "an invalid product ID was requested. Retry the API call with a valid product ID",
)

# 409
ERR_MISSING_PAYMENT_METHOD = _actionable(
    "missing_payment_method",
    409,
    "please add at least one payment method on file before requesting a car",
    action=RIDERS_URL,
)
ERR_SURGE = _actionable(
    "surge",
    409,
    "surge pricing is currently in effect for this product. Please confirm the surge pricing first",
)
ERR_FARE_EXPIRED = _actionable(
    "fare_expired",
    409,
    "the fare has expired for the requested product. Get estimates again, confirm the new fare and re-request",
)
ERR_RETRY_REQUEST = _actionable(
    "retry_request",
    409,
    "an error occurred when attempting to request a product. Please retry the request",
    retryable=True,
)
ERR_CURRENT_TRIP_EXISTS = _actionable("current_trip_exists", 409, "the user is currently on a trip")

# 422
ERR_INVALID_FARE_ID = _actionable("invalid_fare_id", 422, "the fare id is invalid or expired")
ERR_DESTINATION_REQUIRED = _actionable(
    "destination_required", 422, "this product requires setting a destination"
)
ERR_DISTANCE_EXCEEDED = _actionable(
    "distance_exceeded", 422, "the distance between start and end location exceeds 100 miles"
)
ERR_SAME_PICKUP_DROPOFF = _actionable("same_pickup_dropoff", 422, "pickup and dropoff cannot be the same")
ERR_INVALID_POOL_DESTINATION = _actionable(
    "validation_failed", 422, "this destination is not supported for uberPOOL"
)
ERR_INVALID_SEAT_COUNT = _actionable("invalid_seat_count", 422, "number of seats exceeds max capacity")
ERR_OUTSIDE_SERVICE_AREA = _actionable(
    "outside_service_area", 422, "the destination is not supported by the requested product"
)

# 500
ERR_INTERNAL_SERVER_ERROR = _actionable("internal_server_error", 500, "an unknown error has occurred")


ACTIONABLE_ERRORS: tuple[ActionableError, ...] = (
    ERR_UNCONFIRMED_EMAIL,
    ERR_PROCESSING_REQUEST,
    ERR_PROMOTIONS_REVOKED,
    ERR_INVALID_PAYMENT,
    ERR_INVALID_PAYMENT_METHOD,
    ERR_OUTSTANDING_BALANCE,
    ERR_INSUFFICIENT_BALANCE,
    ERR_PAYMENT_METHOD_NOT_ALLOWED,
    ERR_CARD_HAS_OUTSTANDING_BALANCE,
    ERR_INVALID_MOBILE_PHONE_NUMBER,
    ERR_FORBIDDEN_REQUEST,
    ERR_UNVERIFIED,
    ERR_VERIFICATION_REQUIRED,
    ERR_PRODUCT_NOT_ALLOWED,
    ERR_PAY_BALANCE,
    ERR_USER_NOT_ALLOWED,
    ERR_TOO_MANY_CANCELLATIONS,
    ERR_MISSING_NATIONAL_ID,
    ERR_NO_PRODUCT_FOUND,
    ERR_MISSING_PAYMENT_METHOD,
    ERR_SURGE,
    ERR_FARE_EXPIRED,
    ERR_RETRY_REQUEST,
    ERR_CURRENT_TRIP_EXISTS,
    ERR_INVALID_FARE_ID,
    ERR_DESTINATION_REQUIRED,
    ERR_DISTANCE_EXCEEDED,
    ERR_SAME_PICKUP_DROPOFF,
    ERR_INVALID_POOL_DESTINATION,
    ERR_INVALID_SEAT_COUNT,
    ERR_OUTSIDE_SERVICE_AREA,
    ERR_INTERNAL_SERVER_ERROR,
)


def build_signature_index(errors: Iterable[ActionableError]) -> Mapping[str, ActionableError]:
    """
    Назначение:
        Строит индекс сигнатура -> ActionableError.
    Ошибки/исключения:
        ValueError при повторной сигнатуре: таблица не должна молча перезаписываться.
    """
    index: dict[str, ActionableError] = {}
    for position, err in enumerate(errors):
        if err.signature in index:
            raise ValueError(f"actionable error #{position}: signature {err.signature!r} already exists")
        index[err.signature] = err
    return index


_SIGNATURE_INDEX = build_signature_index(ACTIONABLE_ERRORS)


def lookup_error_by_signature(signature: str | None) -> ActionableError | None:
    """Неизвестная сигнатура -> None, это не ошибка."""
    if not signature:
        return None
    return _SIGNATURE_INDEX.get(signature)


__all__ = [
    "ActionableError",
    "ACTIONABLE_ERRORS",
    "build_signature_index",
    "lookup_error_by_signature",
]

from __future__ import annotations

from enum import Enum


class ErrorCode(str, Enum):
    """
    Назначение:
        Единая таксономия кодов ошибок клиента.
    """

    NETWORK_ERROR = "NETWORK_ERROR"
    HTTP_ERROR = "HTTP_ERROR"
    INVALID_JSON = "INVALID_JSON"
    INVALID_ITEMS_FORMAT = "INVALID_ITEMS_FORMAT"
    INVALID_QUERY = "INVALID_QUERY"
    EMPTY_RESPONSE = "EMPTY_RESPONSE"
    API_ERROR = "API_ERROR"
    UNAUTHORIZED = "UNAUTHORIZED"
    FORBIDDEN = "FORBIDDEN"
    NOT_FOUND = "NOT_FOUND"
    CONFLICT = "CONFLICT"
    RATE_LIMITED = "RATE_LIMITED"
    SERVER_ERROR = "SERVER_ERROR"

    @classmethod
    def from_status(cls, status_code: int | None) -> "ErrorCode":
        """
        Назначение:
            Подбор общего кода по HTTP-статусу.
        """
        if status_code == 401:
            return cls.UNAUTHORIZED
        if status_code == 403:
            return cls.FORBIDDEN
        if status_code == 404:
            return cls.NOT_FOUND
        if status_code == 409:
            return cls.CONFLICT
        if status_code == 429:
            return cls.RATE_LIMITED
        if status_code is not None and 500 <= status_code <= 599:
            return cls.SERVER_ERROR
        return cls.HTTP_ERROR

    @staticmethod
    def is_retryable_status(status_code: int | None) -> bool:
        """429 и 5xx считаются временными."""
        if status_code is None:
            return False
        return status_code == 429 or 500 <= status_code <= 599

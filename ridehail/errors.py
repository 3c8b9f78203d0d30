from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict


@dataclass
class AppError(Exception):
    """
    Унифицированная ошибка приложения.
    """

    category: str
    code: str
    message: str
    retryable: bool = False
    details: Dict[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "category": self.category,
            "code": self.code,
            "message": self.message,
            "retryable": self.retryable,
            "details": self.details or {},
        }


class InvalidRequestError(AppError):
    """
    Назначение:
        Локальная ошибка валидации входа (None-запрос, пустой ID и т.п.).
    Контракт:
        - Бросается синхронно, до любого сетевого запроса.
    """

    def __init__(self, message: str, field_name: str | None = None):
        super().__init__(
            category="validation",
            code="INVALID_REQUEST",
            message=message,
            retryable=False,
            details={"field": field_name} if field_name else {},
        )


class TokenNotConfiguredError(AppError):
    """Токен не задан там, где без него нельзя даже собрать запрос."""

    def __init__(self, message: str = "bearer token is not configured"):
        super().__init__(
            category="auth",
            code="TOKEN_NOT_CONFIGURED",
            message=message,
            retryable=False,
        )


__all__ = ["AppError", "InvalidRequestError", "TokenNotConfiguredError"]

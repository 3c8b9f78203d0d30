from __future__ import annotations

import json
from dataclasses import asdict, dataclass
from typing import Any

from ridehail.common.sanitize import truncateText
from ridehail.domain.actionable_errors import ActionableError, lookup_error_by_signature
from ridehail.domain.error_codes import ErrorCode
from ridehail.errors import AppError

# Короче этого тело заведомо не является структурированной ошибкой.
MIN_STRUCTURED_BODY_BYTES = 4
BODY_SNIPPET_LIMIT = 200


class ApiError(AppError):
    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        body_snippet: str | None = None,
        retryable: bool = False,
        details: dict | None = None,
        code: str | None = None,
    ):
        """
        Назначение:
            Исключение для ошибок HTTP/API уровня UberClient.
        Контракт:
            - code: строковый код (HTTP_*, NETWORK_ERROR, INVALID_JSON и т.п.).
            - status_code/body_snippet используются для диагностики.
        """
        super().__init__(
            category="api",
            code=code or (f"HTTP_{status_code}" if status_code else ErrorCode.API_ERROR.value),
            message=message,
            retryable=retryable,
            details=details or {},
        )
        self.status_code = status_code
        self.body_snippet = body_snippet


class CodedError(ApiError):
    """
    Назначение:
        Ответ с не-2xx статусом, тело которого не разобралось как структурированная ошибка.
    Контракт:
        - message: статусная строка ("401 Unauthorized") либо сырое тело ответа.
    """


@dataclass(frozen=True)
class StatusCodedError:
    """Одна запись из массива errors ответа API."""

    status: int | None = None
    code: str | None = None
    title: str | None = None

    @classmethod
    def from_dict(cls, data: Any) -> "StatusCodedError":
        if not isinstance(data, dict):
            raise ValueError("error entry must be an object")
        status = data.get("status")
        if status is not None and not isinstance(status, int):
            status = int(status)
        return cls(status=status, code=data.get("code"), title=data.get("title"))

    def render(self) -> str:
        """Компактный JSON с фиксированным порядком ключей status, code, title."""
        return json.dumps(
            {"status": self.status, "code": self.code, "title": self.title},
            separators=(",", ":"),
            ensure_ascii=False,
        )


class StructuredError(ApiError):
    """
    Назначение:
        Структурированная ошибка API: {"meta": ..., "errors": [{status, code, title}]}.
    Инварианты/гарантии:
        - message детерминирован: записи рендерятся в исходном порядке и склеиваются через "\\n".
        - retryable, если статус 429/5xx или одна из записей соответствует retryable ActionableError.
    """

    def __init__(
        self,
        status_code: int,
        errors: tuple[StatusCodedError, ...],
        meta: Any = None,
        body_snippet: str | None = None,
    ):
        message = "\n".join(entry.render() for entry in errors)
        actionable = [err for err in (lookup_error_by_signature(e.code) for e in errors) if err is not None]
        retryable = ErrorCode.is_retryable_status(status_code) or any(err.retryable for err in actionable)
        super().__init__(
            message,
            status_code=status_code,
            body_snippet=body_snippet,
            retryable=retryable,
            details={"errors": [asdict(entry) for entry in errors], "meta": meta},
            code=ErrorCode.from_status(status_code).value,
        )
        self.errors = errors
        self.meta = meta

    def actionable(self) -> ActionableError | None:
        """Первая запись, распознанная по таблице сигнатур, либо None."""
        for entry in self.errors:
            found = lookup_error_by_signature(entry.code)
            if found is not None:
                return found
        return None


def _parse_structured(text: str) -> tuple[tuple[StatusCodedError, ...], Any] | None:
    try:
        payload = json.loads(text)
    except ValueError:
        return None
    if not isinstance(payload, dict):
        return None
    raw_errors = payload.get("errors")
    meta = payload.get("meta")
    if raw_errors is not None and not isinstance(raw_errors, list):
        return None
    try:
        entries = tuple(StatusCodedError.from_dict(item) for item in raw_errors or [])
    except (TypeError, ValueError):
        return None
    if not entries and meta is None:
        return None
    return entries, meta


def decode_error_response(status_code: int, reason: str | None, body: bytes) -> ApiError:
    """
    Назначение:
        Превращает не-2xx ответ в типизированную ошибку.

    Алгоритм:
        1) Тело короче MIN_STRUCTURED_BODY_BYTES -> CodedError со статусной строкой.
        2) Тело разобралось как {meta, errors} и не пустое -> StructuredError.
        3) Иначе -> CodedError с сырым текстом тела в качестве сообщения.
    """
    text = body.decode("utf-8", errors="replace") if body else ""
    snippet = truncateText(text, BODY_SNIPPET_LIMIT) if text else None
    retryable = ErrorCode.is_retryable_status(status_code)

    if len(body or b"") < MIN_STRUCTURED_BODY_BYTES:
        status_line = f"{status_code} {reason}".strip() if reason else str(status_code)
        return CodedError(
            status_line,
            status_code=status_code,
            body_snippet=snippet,
            retryable=retryable,
            details={"body_snippet": snippet},
        )

    parsed = _parse_structured(text)
    if parsed is None:
        return CodedError(
            text,
            status_code=status_code,
            body_snippet=snippet,
            retryable=retryable,
            details={"body_snippet": snippet},
        )

    entries, meta = parsed
    return StructuredError(status_code, entries, meta=meta, body_snippet=snippet)


__all__ = [
    "ApiError",
    "CodedError",
    "StatusCodedError",
    "StructuredError",
    "decode_error_response",
]

from __future__ import annotations

from dataclasses import dataclass, replace
from typing import Generic, TypeVar

T = TypeVar("T")

DEFAULT_LIMIT_PER_PAGE = 50
DEFAULT_THROTTLE_SECONDS = 0.15
NO_THROTTLE = -1


def resolve_throttle(throttle_seconds: float | None) -> float:
    """
    Назначение:
        Приводит интервал между страницами к рабочему значению.
    Контракт:
        - NO_THROTTLE -> 0 (ожидания нет вообще).
        - None/0/любое другое неположительное значение -> DEFAULT_THROTTLE_SECONDS.
        - Положительное значение возвращается как есть.
    """
    if throttle_seconds == NO_THROTTLE:
        return 0.0
    if throttle_seconds is None or throttle_seconds <= 0:
        return DEFAULT_THROTTLE_SECONDS
    return float(throttle_seconds)


@dataclass(frozen=True)
class Pager:
    """
    Назначение:
        Параметры постраничной выборки одного вызова.
    Инварианты/гарантии:
        - Pager неизменяем; движок продвигает собственную копию через advanced().
        - max_pages <= 0 означает отсутствие ограничения.
    """

    limit_per_page: int = DEFAULT_LIMIT_PER_PAGE
    start_offset: int = 0
    max_pages: int = 0
    throttle_seconds: float | None = None

    def normalized(self) -> "Pager":
        limit = self.limit_per_page if self.limit_per_page and self.limit_per_page > 0 else DEFAULT_LIMIT_PER_PAGE
        offset = self.start_offset if self.start_offset and self.start_offset > 0 else 0
        return replace(self, limit_per_page=limit, start_offset=offset)

    def advanced(self) -> "Pager":
        """Следующая страница: offset сдвигается на limit независимо от числа полученных элементов."""
        return replace(self, start_offset=self.start_offset + self.limit_per_page)

    def is_bounded(self) -> bool:
        return self.max_pages > 0

    def to_query(self) -> dict[str, int]:
        return {"limit": self.limit_per_page, "offset": self.start_offset}


@dataclass(frozen=True)
class Page(Generic[T]):
    """
    Назначение:
        Одна страница результатов, отданная потребителю.
    Контракт:
        - page_number начинается с 0 и растёт на единицу без пропусков.
        - count: остаток по данным сервера; count <= 0 завершает поток.
        - error задан только у последней страницы неудачного потока; items тогда пуст.
    """

    page_number: int
    items: tuple[T, ...] = ()
    count: int = 0
    limit: int = 0
    offset: int = 0
    error: Exception | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


__all__ = [
    "DEFAULT_LIMIT_PER_PAGE",
    "DEFAULT_THROTTLE_SECONDS",
    "NO_THROTTLE",
    "Page",
    "Pager",
    "resolve_throttle",
]

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import Callable, Generic, TypeVar

from ridehail.common.time_utils import getDurationMs
from ridehail.domain.paging import Page
from ridehail.infra.http.paginator import PageStream
from ridehail.infra.logging.setup import logEvent

T = TypeVar("T")


@dataclass
class CollectResult(Generic[T]):
    items: list[T] = field(default_factory=list)
    pages: int = 0
    error: Exception | None = None
    duration_ms: int = 0

    @property
    def ok(self) -> bool:
        return self.error is None


class CollectPagesUseCase:
    """
    Назначение/ответственность:
        Вычитывает PageStream до конца и собирает элементы всех страниц.
    Взаимодействия:
        - on_page вызывается для каждой успешной страницы (печать в CLI).
        - Ошибочная страница завершает сбор; ошибка возвращается в CollectResult.
        - Поток закрывается в любом случае, в том числе при исключении из on_page.
    """

    def __init__(self, logger: logging.Logger | None, run_id: str | None, component: str = "paging"):
        self.logger = logger
        self.run_id = run_id
        self.component = component

    def collect(
        self,
        stream: PageStream[T],
        on_page: Callable[[Page[T]], None] | None = None,
    ) -> CollectResult[T]:
        result: CollectResult[T] = CollectResult()
        start = time.monotonic()
        with stream:
            for page in stream:
                if page.error is not None:
                    result.error = page.error
                    logEvent(
                        self.logger,
                        logging.ERROR,
                        self.run_id,
                        self.component,
                        f"page={page.page_number} failed: {page.error}",
                    )
                    break
                result.pages += 1
                result.items.extend(page.items)
                if on_page is not None:
                    on_page(page)
        result.duration_ms = getDurationMs(start, time.monotonic())
        logEvent(
            self.logger,
            logging.INFO,
            self.run_id,
            self.component,
            f"collected pages={result.pages} items={len(result.items)} ok={result.ok} durationMs={result.duration_ms}",
        )
        return result

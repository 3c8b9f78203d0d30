from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, replace
from typing import Iterable

from ridehail.domain.models import EstimateRequest, UpfrontFare
from ridehail.errors import AppError
from ridehail.infra.logging.setup import logEvent
from ridehail.usecases.ports import UpfrontFareSourceProtocol

DEFAULT_QUOTE_WORKERS = 5


@dataclass(frozen=True)
class FareQuote:
    product_id: str
    fare: UpfrontFare | None = None
    error: AppError | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


class FareQuoteUseCase:
    """
    Назначение/ответственность:
        Параллельно запрашивает upfront fare для набора продуктов.

    Контракт:
        - Не более max_workers запросов одновременно (по умолчанию 5).
        - Порядок результатов совпадает с порядком product_ids.
        - Ошибка по одному продукту не прерывает остальные: она попадает в FareQuote.error.
    """

    def __init__(
        self,
        fare_source: UpfrontFareSourceProtocol,
        logger: logging.Logger | None = None,
        run_id: str | None = None,
        max_workers: int = DEFAULT_QUOTE_WORKERS,
    ):
        self.fare_source = fare_source
        self.logger = logger
        self.run_id = run_id
        self.max_workers = max(1, max_workers)

    def _quote_one(self, request: EstimateRequest, product_id: str) -> FareQuote:
        try:
            fare = self.fare_source.upfront_fare(replace(request, product_id=product_id))
        except AppError as exc:
            logEvent(self.logger, logging.WARNING, self.run_id, "quote", f"product={product_id} failed: {exc}")
            return FareQuote(product_id=product_id, error=exc)
        return FareQuote(product_id=product_id, fare=fare)

    def quote(self, request: EstimateRequest, product_ids: Iterable[str]) -> list[FareQuote]:
        unique_ids = list(dict.fromkeys(pid for pid in product_ids if pid))
        if not unique_ids:
            return []
        with ThreadPoolExecutor(max_workers=self.max_workers, thread_name_prefix="ridehail-quote") as pool:
            quotes = list(pool.map(lambda pid: self._quote_one(request, pid), unique_ids))
        logEvent(
            self.logger,
            logging.INFO,
            self.run_id,
            "quote",
            f"quoted products={len(quotes)} failed={sum(1 for q in quotes if not q.ok)}",
        )
        return quotes

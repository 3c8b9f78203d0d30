from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from typing import Any, Callable, Generic, Iterator, Mapping, TypeVar

from ridehail.domain.error_codes import ErrorCode
from ridehail.domain.paging import Page, Pager, resolve_throttle
from ridehail.errors import AppError
from ridehail.infra.http.api_errors import ApiError
from ridehail.infra.logging.setup import logEvent

T = TypeVar("T")

FetchJson = Callable[[str, Mapping[str, Any], str | None], Any]

_EMPTY = object()


class Cancellation:
    """
    Назначение:
        Одноразовый потокобезопасный сигнал отмены.
    Инварианты/гарантии:
        - cancel() идемпотентен: первый вызов возвращает True, последующие False.
        - wait() прерывается сразу, как только сигнал выставлен.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._event = threading.Event()

    def cancel(self) -> bool:
        with self._lock:
            if self._event.is_set():
                return False
            self._event.set()
            return True

    @property
    def canceled(self) -> bool:
        return self._event.is_set()

    def wait(self, seconds: float) -> bool:
        """Ждёт seconds или отмены; True, если отмена наступила."""
        if seconds <= 0:
            return self._event.is_set()
        return self._event.wait(seconds)


class _Handoff(Generic[T]):
    """
    Небуферизованная передача страниц между воркером и потребителем.

    send() блокируется, пока потребитель не заберёт значение либо не откажется от потока.
    """

    def __init__(self) -> None:
        self._cond = threading.Condition()
        self._item: Any = _EMPTY
        self._closed = False
        self._abandoned = False

    def send(self, item: T) -> bool:
        with self._cond:
            if self._abandoned:
                return False
            self._item = item
            self._cond.notify_all()
            while self._item is not _EMPTY and not self._abandoned:
                self._cond.wait()
            if self._item is not _EMPTY:
                self._item = _EMPTY
                return False
            return True

    def receive(self) -> tuple[bool, T | None]:
        with self._cond:
            while self._item is _EMPTY and not self._closed and not self._abandoned:
                self._cond.wait()
            if self._item is _EMPTY:
                return False, None
            item = self._item
            self._item = _EMPTY
            self._cond.notify_all()
            return True, item

    def close(self) -> None:
        with self._cond:
            self._closed = True
            self._cond.notify_all()

    def abandon(self) -> None:
        with self._cond:
            self._abandoned = True
            self._cond.notify_all()


def _pager_query(pager: Pager) -> Mapping[str, Any]:
    return pager.to_query()


@dataclass(frozen=True)
class PageSpec(Generic[T]):
    """
    Назначение:
        Конфигурация одного постраничного ресурса для общего движка.
    Поля:
        resource: имя для логов ("history", "prices", ...).
        path: путь относительно base URL выбранной версии API.
        items_key: ключ массива элементов в ответе.
        parse_item: преобразование dict -> T.
        version: версия API (None -> версия по умолчанию).
        build_query: query-параметры по текущему Pager (включая сдвигаемый offset).
    """

    resource: str
    path: str
    items_key: str
    parse_item: Callable[[Mapping[str, Any]], T]
    version: str | None = None
    build_query: Callable[[Pager], Mapping[str, Any]] = _pager_query


class PageStream(Generic[T]):
    """
    Назначение:
        Поток страниц одного постраничного вызова.

    Контракт:
        - Итерация отдаёт Page[T] с page_number 0, 1, 2, ... без пропусков.
        - Ошибка любой стадии (query, транспорт, не-2xx, разбор) приходит как последняя
          страница с заполненным error; повторов нет.
        - cancel() наблюдается только в паузе между страницами: запрос в полёте
          завершается, и его страница всё равно отдаётся.
        - close()/выход из with отменяет поток и освобождает воркер, ждущий передачи.

    Алгоритм воркера:
        fetch -> отдать страницу -> error? стоп -> page_number += 1 -> count <= 0? стоп
        -> max_pages достигнут? стоп -> пауза (или отмена) -> offset += limit -> fetch ...
    """

    def __init__(
        self,
        spec: PageSpec[T],
        pager: Pager,
        fetch_json: FetchJson,
        logger: logging.Logger | None = None,
        run_id: str | None = None,
    ):
        self._spec = spec
        self._pager = pager.normalized()
        self._throttle = resolve_throttle(pager.throttle_seconds)
        self._fetch_json = fetch_json
        self._logger = logger
        self._run_id = run_id
        self._cancellation = Cancellation()
        self._handoff: _Handoff[Page[T]] = _Handoff()
        self._thread = threading.Thread(
            target=self._run,
            name=f"ridehail-pages-{spec.resource}",
            daemon=True,
        )

    def start(self) -> "PageStream[T]":
        self._thread.start()
        return self

    def __iter__(self) -> Iterator[Page[T]]:
        return self

    def __next__(self) -> Page[T]:
        ok, page = self._handoff.receive()
        if not ok or page is None:
            raise StopIteration
        return page

    def __enter__(self) -> "PageStream[T]":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    @property
    def canceled(self) -> bool:
        return self._cancellation.canceled

    def cancel(self) -> bool:
        """Идемпотентная отмена; True только для первого вызова."""
        return self._cancellation.cancel()

    def close(self) -> None:
        self._cancellation.cancel()
        self._handoff.abandon()

    def join(self, timeout: float | None = None) -> bool:
        """Ожидает завершения воркера; True, если он завершился."""
        self._thread.join(timeout)
        return not self._thread.is_alive()

    def _log(self, level: int, message: str) -> None:
        logEvent(self._logger, level, self._run_id, "paging", f"resource={self._spec.resource} {message}")

    def _run(self) -> None:
        pager = self._pager
        page_number = 0
        try:
            while True:
                page = self._fetch_page(page_number, pager)
                if not self._handoff.send(page):
                    self._log(logging.INFO, f"page={page_number} consumer left, stopping")
                    return
                if page.error is not None:
                    self._log(logging.ERROR, f"page={page_number} failed: {page.error}")
                    return
                self._log(
                    logging.DEBUG,
                    f"page={page_number} offset={pager.start_offset} items={len(page.items)} count={page.count}",
                )
                page_number += 1
                if page.count <= 0:
                    self._log(logging.INFO, f"done pages={page_number} reason=exhausted")
                    return
                if pager.is_bounded() and page_number >= pager.max_pages:
                    self._log(logging.INFO, f"done pages={page_number} reason=max_pages")
                    return
                if self._cancellation.wait(self._throttle):
                    self._log(logging.INFO, f"canceled after pages={page_number}")
                    return
                pager = pager.advanced()
        finally:
            self._handoff.close()

    def _fetch_page(self, page_number: int, pager: Pager) -> Page[T]:
        """Любой сбой стадии query/fetch/decode становится последней страницей с error."""
        try:
            return self._load_page(page_number, pager)
        except AppError as exc:
            return Page(page_number=page_number, error=exc)
        except Exception as exc:
            err = ApiError(f"{self._spec.resource} page failed: {exc}", code=ErrorCode.API_ERROR.value)
            err.__cause__ = exc
            return Page(page_number=page_number, error=err)

    def _load_page(self, page_number: int, pager: Pager) -> Page[T]:
        spec = self._spec
        try:
            query = dict(spec.build_query(pager))
        except AppError:
            raise
        except (TypeError, ValueError) as exc:
            raise ApiError(f"cannot encode query: {exc}", code=ErrorCode.INVALID_QUERY.value) from exc

        data = self._fetch_json(spec.path, query, spec.version)
        return self._decode_page(page_number, data)

    def _decode_page(self, page_number: int, data: Any) -> Page[T]:
        spec = self._spec
        if not isinstance(data, dict):
            raise ApiError(
                f"unexpected {spec.resource} page: expected a JSON object",
                code=ErrorCode.INVALID_ITEMS_FORMAT.value,
            )
        raw_items = data.get(spec.items_key)
        if raw_items is None:
            raw_items = []
        if not isinstance(raw_items, list):
            raise ApiError(
                f"unexpected {spec.resource} page: {spec.items_key!r} is not an array",
                code=ErrorCode.INVALID_ITEMS_FORMAT.value,
            )
        try:
            items = tuple(spec.parse_item(item) for item in raw_items)
            count = int(data.get("count") or 0)
            limit = int(data.get("limit") or 0)
            offset = int(data.get("offset") or 0)
        except (AttributeError, KeyError, TypeError, ValueError) as exc:
            raise ApiError(
                f"cannot decode {spec.resource} page: {exc}",
                code=ErrorCode.INVALID_ITEMS_FORMAT.value,
            ) from exc
        return Page(page_number=page_number, items=items, count=count, limit=limit, offset=offset)


def open_page_stream(
    spec: PageSpec[T],
    pager: Pager | None,
    fetch_json: FetchJson,
    logger: logging.Logger | None = None,
    run_id: str | None = None,
) -> PageStream[T]:
    """Создаёт и сразу запускает поток страниц."""
    return PageStream(spec, pager or Pager(), fetch_json, logger=logger, run_id=run_id).start()


__all__ = ["Cancellation", "PageSpec", "PageStream", "open_page_stream"]

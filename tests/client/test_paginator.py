from __future__ import annotations

import threading
import time

import pytest

from ridehail.domain.error_codes import ErrorCode
from ridehail.domain.paging import DEFAULT_THROTTLE_SECONDS, NO_THROTTLE, Pager
from ridehail.errors import AppError
from ridehail.infra.http.api_errors import ApiError
from ridehail.infra.http.paginator import Cancellation, PageSpec, PageStream, open_page_stream


def _identity(item):
    return dict(item)


SPEC = PageSpec(resource="things", path="/things", items_key="things", parse_item=_identity)


class FakeFetcher:
    """Отдаёт count=remaining, пока не исчерпан total; записывает запросы."""

    def __init__(self, total: int = 1000, fail_at_call: int | None = None):
        self.total = total
        self.fail_at_call = fail_at_call
        self.calls: list[tuple[str, dict, str | None]] = []
        self._lock = threading.Lock()

    def __call__(self, path, query, version):
        with self._lock:
            self.calls.append((path, dict(query), version))
            call_index = len(self.calls) - 1
        if self.fail_at_call is not None and call_index == self.fail_at_call:
            raise ApiError("boom", status_code=500, retryable=True, code="SERVER_ERROR")
        offset = query["offset"]
        limit = query["limit"]
        remaining = max(self.total - offset - limit, 0)
        items = [{"n": n} for n in range(offset, min(offset + limit, self.total))]
        return {"count": remaining, "limit": limit, "offset": offset, "things": items}


def _drain(stream):
    with stream:
        return list(stream)


def test_max_pages_bounds_stream_and_offsets_advance_by_limit():
    fetch = FakeFetcher()
    pager = Pager(limit_per_page=10, max_pages=4, throttle_seconds=NO_THROTTLE)

    pages = _drain(open_page_stream(SPEC, pager, fetch))

    assert [p.page_number for p in pages] == [0, 1, 2, 3]
    assert [call[1]["offset"] for call in fetch.calls] == [0, 10, 20, 30]
    assert all(call[1]["limit"] == 10 for call in fetch.calls)
    assert all(p.ok for p in pages)


def test_stream_stops_when_count_is_exhausted():
    fetch = FakeFetcher(total=25)
    pager = Pager(limit_per_page=10, throttle_seconds=NO_THROTTLE)

    pages = _drain(open_page_stream(SPEC, pager, fetch))

    assert [p.page_number for p in pages] == [0, 1, 2]
    assert pages[-1].count == 0
    assert [item["n"] for p in pages for item in p.items] == list(range(25))


def test_error_page_is_last_page():
    fetch = FakeFetcher(fail_at_call=1)
    pager = Pager(limit_per_page=5, throttle_seconds=NO_THROTTLE)

    stream = open_page_stream(SPEC, pager, fetch)
    pages = _drain(stream)

    assert len(pages) == 2
    assert pages[0].ok
    assert not pages[1].ok
    assert pages[1].items == ()
    assert isinstance(pages[1].error, ApiError)
    assert pages[1].error.code == "SERVER_ERROR"
    assert len(fetch.calls) == 2
    assert stream.join(timeout=2)


def test_cancel_during_throttle_still_delivers_first_page():
    fetch = FakeFetcher()
    pager = Pager(limit_per_page=10, throttle_seconds=5)

    stream = open_page_stream(SPEC, pager, fetch)
    first = next(stream)
    assert first.page_number == 0

    assert stream.cancel() is True
    assert stream.cancel() is False
    assert stream.canceled

    rest = list(stream)
    assert rest == []
    assert stream.join(timeout=2)
    assert len(fetch.calls) == 1


def test_close_releases_worker_blocked_on_send():
    fetch = FakeFetcher()
    pager = Pager(limit_per_page=1, throttle_seconds=NO_THROTTLE)

    stream = open_page_stream(SPEC, pager, fetch)
    next(stream)
    stream.close()

    assert stream.join(timeout=2)


def test_non_list_items_become_invalid_items_format():
    def fetch(path, query, version):
        return {"count": 3, "things": {"oops": True}}

    pages = _drain(open_page_stream(SPEC, Pager(throttle_seconds=NO_THROTTLE), fetch))

    assert len(pages) == 1
    assert pages[0].error.code == ErrorCode.INVALID_ITEMS_FORMAT.value


def test_non_object_response_becomes_invalid_items_format():
    def fetch(path, query, version):
        return ["not", "an", "object"]

    pages = _drain(open_page_stream(SPEC, Pager(throttle_seconds=NO_THROTTLE), fetch))

    assert pages[0].error.code == ErrorCode.INVALID_ITEMS_FORMAT.value


def test_missing_items_key_is_an_empty_page():
    def fetch(path, query, version):
        return {"count": 0}

    pages = _drain(open_page_stream(SPEC, Pager(throttle_seconds=NO_THROTTLE), fetch))

    assert len(pages) == 1
    assert pages[0].ok
    assert pages[0].items == ()


def test_query_build_failure_becomes_invalid_query_page():
    def bad_query(pager):
        raise ValueError("cannot encode")

    spec = PageSpec(resource="things", path="/things", items_key="things", parse_item=_identity, build_query=bad_query)
    calls = []

    def fetch(path, query, version):
        calls.append(query)
        return {}

    pages = _drain(open_page_stream(spec, Pager(throttle_seconds=NO_THROTTLE), fetch))

    assert len(pages) == 1
    assert pages[0].error.code == ErrorCode.INVALID_QUERY.value
    assert calls == []


def test_app_error_from_query_builder_is_passed_through():
    def bad_query(pager):
        raise AppError(category="validation", code="INVALID_REQUEST", message="nope")

    spec = PageSpec(resource="things", path="/things", items_key="things", parse_item=_identity, build_query=bad_query)

    pages = _drain(open_page_stream(spec, Pager(throttle_seconds=NO_THROTTLE), lambda *a: {}))

    assert pages[0].error.code == "INVALID_REQUEST"


def test_version_and_path_are_forwarded():
    fetch = FakeFetcher(total=1)
    spec = PageSpec(resource="things", path="/things", items_key="things", parse_item=_identity, version="v1")

    _drain(open_page_stream(spec, Pager(throttle_seconds=NO_THROTTLE), fetch))

    assert fetch.calls == [("/things", {"limit": 50, "offset": 0}, "v1")]


def test_stream_is_not_started_until_start():
    fetch = FakeFetcher()
    stream = PageStream(SPEC, Pager(throttle_seconds=NO_THROTTLE), fetch)

    assert fetch.calls == []
    stream.start()
    with stream:
        assert next(stream).page_number == 0


def test_cancellation_wait_returns_immediately_once_set():
    cancel = Cancellation()
    assert cancel.wait(0) is False

    cancel.cancel()

    assert cancel.wait(5) is True


def test_unexpected_fetch_exception_becomes_error_page():
    def fetch(path, query, version):
        raise RuntimeError("socket exploded")

    stream = open_page_stream(SPEC, Pager(throttle_seconds=NO_THROTTLE), fetch)
    pages = _drain(stream)

    assert len(pages) == 1
    assert isinstance(pages[0].error, ApiError)
    assert pages[0].error.code == ErrorCode.API_ERROR.value
    assert isinstance(pages[0].error.__cause__, RuntimeError)
    assert stream.join(timeout=2)


def test_next_page_is_not_requested_before_previous_is_taken():
    fetch = FakeFetcher()
    stream = open_page_stream(SPEC, Pager(limit_per_page=1, throttle_seconds=NO_THROTTLE), fetch)
    with stream:
        time.sleep(0.2)
        assert len(fetch.calls) == 1

        assert next(stream).page_number == 0
        time.sleep(0.2)
        assert len(fetch.calls) == 2

        assert next(stream).page_number == 1
        time.sleep(0.2)
        assert len(fetch.calls) == 3


@pytest.mark.parametrize("throttle", [0, -5])
def test_non_positive_throttle_waits_default_interval(throttle):
    stamps = []

    def fetch(path, query, version):
        stamps.append(time.monotonic())
        return {"count": 10, "things": [{"n": query["offset"]}]}

    pages = _drain(open_page_stream(SPEC, Pager(limit_per_page=1, max_pages=3, throttle_seconds=throttle), fetch))

    assert len(pages) == 3
    gaps = [later - earlier for earlier, later in zip(stamps, stamps[1:])]
    assert all(gap >= DEFAULT_THROTTLE_SECONDS * 0.9 for gap in gaps)

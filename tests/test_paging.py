from __future__ import annotations

from ridehail.domain.paging import DEFAULT_LIMIT_PER_PAGE, DEFAULT_THROTTLE_SECONDS, NO_THROTTLE, Pager, resolve_throttle


def test_resolve_throttle():
    assert resolve_throttle(NO_THROTTLE) == 0.0
    assert resolve_throttle(None) == DEFAULT_THROTTLE_SECONDS
    assert resolve_throttle(0) == DEFAULT_THROTTLE_SECONDS
    assert resolve_throttle(-5) == DEFAULT_THROTTLE_SECONDS
    assert resolve_throttle(0.5) == 0.5


def test_pager_normalizes_and_advances():
    pager = Pager(limit_per_page=0, start_offset=-3).normalized()

    assert pager.limit_per_page == DEFAULT_LIMIT_PER_PAGE
    assert pager.start_offset == 0
    assert pager.advanced().to_query() == {"limit": DEFAULT_LIMIT_PER_PAGE, "offset": DEFAULT_LIMIT_PER_PAGE}
    assert not pager.is_bounded()
    assert Pager(max_pages=2).is_bounded()

import pytest

from rating_service.errors import StoreUnavailable, UnsupportedQuery
from rating_service.queries import fetch_with_fallback


def test_primary_result_used_when_supported():
    calls = []

    def fallback():
        calls.append("fallback")
        return []

    assert fetch_with_fallback(lambda: [3, 2, 1], fallback, key=lambda x: x) == [3, 2, 1]
    assert calls == []


def test_unsupported_query_falls_back_and_sorts():
    def primary():
        raise UnsupportedQuery("no index")

    assert fetch_with_fallback(primary, lambda: [2, 3, 1], key=lambda x: x, reverse=True) == [3, 2, 1]


def test_other_errors_propagate():
    def primary():
        raise StoreUnavailable("down")

    with pytest.raises(StoreUnavailable):
        fetch_with_fallback(primary, lambda: [], key=lambda x: x)

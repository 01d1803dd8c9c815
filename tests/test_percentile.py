from __future__ import annotations

from hypothesis import given, strategies as st

from replprobe.metrics import percentile, percentile_index


def test_nearest_rank_fixture() -> None:
    latencies = [10, 20, 30, 40, 50]
    assert percentile(latencies, 50) == 30
    assert percentile(latencies, 95) == 50


def test_percentile_sorts_input() -> None:
    assert percentile([50, 10, 40, 20, 30], 50) == 30


def test_single_value() -> None:
    assert percentile([123.0], 50) == 123.0
    assert percentile([123.0], 95) == 123.0


def test_empty_series_is_unavailable() -> None:
    assert percentile([], 50) is None
    assert percentile([], 95) is None


def test_index_formula() -> None:
    # floor((p*(n-1)+50)/100)
    assert percentile_index(50, 2) == 1
    assert percentile_index(95, 10) == 9
    assert percentile_index(50, 10) == 5
    assert percentile_index(0, 10) == 0
    assert percentile_index(100, 10) == 9


@given(
    latencies=st.lists(st.floats(min_value=0.0, max_value=60_000.0), min_size=1, max_size=200),
)
def test_percentiles_are_members_and_ordered(latencies: list[float]) -> None:
    p50 = percentile(latencies, 50)
    p95 = percentile(latencies, 95)
    assert p50 in latencies
    assert p95 in latencies
    assert min(latencies) <= p50 <= p95 <= max(latencies)


@given(p=st.integers(min_value=0, max_value=100), n=st.integers(min_value=1, max_value=10_000))
def test_index_is_clamped(p: int, n: int) -> None:
    assert 0 <= percentile_index(p, n) < n

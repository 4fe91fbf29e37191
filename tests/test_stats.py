"""Tests for the statistics ledger."""

import asyncio

import pytest
from urlsweep.engine.redirects import RedirectObserver, removed_by_redirect
from urlsweep.engine.stats import StatsAggregator
from urlsweep.store.store import STATS, Store

DAY = "2026-10-19"


@pytest.fixture
def store(tmp_path):
    s = Store(tmp_path / "store")
    yield s
    s.close()


def _aggregator(store, day=DAY):
    return StatsAggregator(store, date_key=lambda: day)


def test_stats_additivity(store):
    stats = _aggregator(store)

    async def scenario():
        await stats.record("a.com", 3, 0)
        await stats.record(None, 0, 7)
        return await stats.load()

    ledger = asyncio.run(scenario())
    assert ledger["total"] == 3
    assert ledger["inspected"] == 7
    assert ledger[DAY] == {"total": 3, "inspected": 7, "a.com": 3}


def test_record_without_domain_or_inspection_is_noop(store):
    stats = _aggregator(store)
    asyncio.run(stats.record(None, 5, 0))
    assert asyncio.run(store.get(STATS)) == {}


def test_domain_counter_only_for_positive_removals(store):
    stats = _aggregator(store)
    asyncio.run(stats.record("a.com", 0, 2))
    ledger = asyncio.run(stats.load())
    assert "a.com" not in ledger[DAY]
    assert ledger[DAY]["inspected"] == 2


def test_buckets_per_date_and_domain_total(store):
    asyncio.run(_aggregator(store, "2026-10-18").record("a.com", 2))
    asyncio.run(_aggregator(store, DAY).record("a.com", 4))
    asyncio.run(_aggregator(store, DAY).record("b.com", 1))

    stats = _aggregator(store)
    assert asyncio.run(stats.domain_total("a.com")) == 6
    assert asyncio.run(stats.domain_total("b.com")) == 1
    assert asyncio.run(stats.load())["total"] == 7


def test_reset_zeroes_ledger(store):
    stats = _aggregator(store)
    asyncio.run(stats.record("a.com", 3, 1))
    asyncio.run(stats.reset())
    assert asyncio.run(stats.load()) == {"total": 0}


def test_merge_sums_totals_and_buckets(store):
    stats = _aggregator(store)
    asyncio.run(stats.record("a.com", 3, 10))
    merged = asyncio.run(stats.merge({"total": 2, "inspected": 5, DAY: {"a.com": 1, "total": 1}, "2026-01-01": {"c.com": 4}}))

    assert merged["total"] == 5
    assert merged["inspected"] == 15
    assert merged[DAY]["a.com"] == 4
    assert merged[DAY]["total"] == 4
    assert merged["2026-01-01"] == {"c.com": 4}


def test_merge_rejects_malformed_ledgers(store):
    stats = _aggregator(store)
    with pytest.raises(ValueError):
        asyncio.run(stats.merge(["not", "a", "ledger"]))
    with pytest.raises(ValueError):
        asyncio.run(stats.merge({DAY: {"a.com": "many"}}))


def test_summary_ratio(store):
    stats = _aggregator(store)
    asyncio.run(stats.record("a.com", 1, 8))
    assert asyncio.run(stats.summary()) == {"inspected": 8, "total": 1, "ratio_percent": 12.5}


def test_redirect_attribution_heuristic():
    assert removed_by_redirect("https://a.com/p?fbclid=1&id=2", "https://a.com/p?id=2") == 1
    assert removed_by_redirect("https://a.com/p?id=2", "https://a.com/p?id=2") == 0
    assert removed_by_redirect("https://a.com/p?fbclid=1", "https://b.com/p") == 0
    assert removed_by_redirect("https://a.com/p?fbclid=1", "https://a.com/other") == 0
    assert removed_by_redirect("https://[bad", "https://a.com/") == 0


def test_redirect_observer_records(store):
    observer = RedirectObserver(_aggregator(store))

    async def scenario():
        await observer.on_before_request()
        await observer.on_before_request()
        removed = await observer.on_before_redirect("https://a.com/p?fbclid=1&gclid=2&id=3", "https://a.com/p?id=3")
        await observer.on_before_redirect("http://a.com/", "https://a.com/")
        return removed, await observer.stats.load()

    removed, ledger = asyncio.run(scenario())
    assert removed == 2
    assert ledger["inspected"] == 2
    assert ledger["total"] == 2
    assert ledger[DAY]["a.com"] == 2


def test_merge_rejects_number_bucket_conflicts(store):
    stats = _aggregator(store)
    asyncio.run(stats.record("a.com", 1, 1))

    with pytest.raises(ValueError):
        asyncio.run(stats.merge({DAY: 5}))
    with pytest.raises(ValueError):
        asyncio.run(stats.merge({"total": {"a.com": 1}}))
    assert asyncio.run(stats.load())["total"] == 1

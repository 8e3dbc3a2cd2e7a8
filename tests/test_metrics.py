"""Tests for the cached approval metrics projection."""

import pytest

from coop_svc.metrics.projection import ApprovalMetrics
from coop_svc.policy.types import Module
from coop_svc.requests.store import ListFilter
from coop_svc.requests.types import RequestType


class FakeClock:
    def __init__(self, now: float = 1000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def cached_metrics(store, clock):
    return ApprovalMetrics(store, refresh_interval_seconds=30.0, clock=clock)


@pytest.fixture
def populated(engine, member, admin, treasurer):
    loan_a = engine.create_request(RequestType.LOAN_APPLICATION, {"amount": 100}, member.actor_id)
    loan_b = engine.create_request(RequestType.LOAN_APPLICATION, {"amount": 200}, member.actor_id)
    withdrawal = engine.create_request(RequestType.SAVINGS_WITHDRAWAL, {"amount": 50}, member.actor_id)
    biodata = engine.create_request(RequestType.BIODATA_APPROVAL, {"phone": "1"}, member.actor_id)

    engine.review(loan_b.id, admin)
    engine.mark_reviewed(loan_b.id, treasurer)
    engine.review(withdrawal.id, admin)
    engine.reject(biodata.id, admin, "photo missing")
    return loan_a, loan_b, withdrawal, biodata


class TestCounts:

    def test_pending_counts_pending_and_in_review(self, metrics, populated):
        # loan_a PENDING, withdrawal IN_REVIEW
        assert metrics.pending_count() == 2

    def test_counts_by_status(self, metrics, populated):
        counts = metrics.counts_by_status()
        assert counts["PENDING"] == 1
        assert counts["IN_REVIEW"] == 1
        assert counts["REVIEWED"] == 1
        assert counts["REJECTED"] == 1
        assert counts["COMPLETED"] == 0
        assert counts["total"] == 4

    def test_counts_by_level_skip_terminal(self, metrics, populated):
        # loan_a at 1, withdrawal at 2, loan_b at 3; rejected biodata excluded
        assert metrics.counts_by_level() == {1: 1, 2: 1, 3: 1}

    def test_counts_by_type(self, metrics, populated):
        counts = metrics.counts_by_type()
        assert counts["LOAN_APPLICATION"] == 2
        assert counts["SAVINGS_WITHDRAWAL"] == 1
        assert counts["ACCOUNT_CLOSURE"] == 0

    def test_filtered(self, metrics, populated):
        assert metrics.pending_count(ListFilter(module=Module.LOAN)) == 1
        assert metrics.counts_by_status(ListFilter(type=RequestType.SAVINGS_WITHDRAWAL))["total"] == 1

    def test_summary(self, metrics, populated):
        summary = metrics.summary()
        assert summary["pending"] == 2
        assert summary["by_status"]["total"] == 4
        assert set(summary) == {"pending", "by_status", "by_level", "by_type"}

    def test_counts_span_store_pages(self, store, engine, member):
        store.max_page_size = 3
        for i in range(7):
            engine.create_request(RequestType.LOAN_APPLICATION, {"amount": 10 + i}, member.actor_id)
        metrics = ApprovalMetrics(store)
        assert metrics.counts_by_status()["total"] == 7
        assert metrics.counts_by_level() == {1: 7}


class TestCaching:

    def test_value_is_cached_within_interval(self, store, cached_metrics, clock, engine, member):
        assert cached_metrics.pending_count() == 0
        # Engine invalidates its own metrics, not this separate projection
        engine.create_request(RequestType.LOAN_APPLICATION, {"amount": 10}, member.actor_id)

        clock.advance(10)
        assert cached_metrics.pending_count() == 0
        assert cached_metrics.stats["hits"] == 1

    def test_value_refreshes_after_interval(self, cached_metrics, clock, engine, member):
        assert cached_metrics.pending_count() == 0
        engine.create_request(RequestType.LOAN_APPLICATION, {"amount": 10}, member.actor_id)

        clock.advance(31)
        assert cached_metrics.pending_count() == 1
        assert cached_metrics.stats["misses"] == 2

    def test_invalidate_drops_cache(self, cached_metrics, engine, member):
        assert cached_metrics.pending_count() == 0
        engine.create_request(RequestType.LOAN_APPLICATION, {"amount": 10}, member.actor_id)

        cached_metrics.invalidate()
        assert cached_metrics.stats["entries"] == 0
        assert cached_metrics.pending_count() == 1

    def test_filters_are_cached_separately(self, cached_metrics, engine, member):
        engine.create_request(RequestType.LOAN_APPLICATION, {"amount": 10}, member.actor_id)
        assert cached_metrics.pending_count(ListFilter(module=Module.LOAN)) == 1
        assert cached_metrics.pending_count(ListFilter(module=Module.SAVINGS)) == 0
        assert cached_metrics.stats["entries"] == 2

    def test_returned_dicts_are_copies(self, cached_metrics):
        counts = cached_metrics.counts_by_status()
        counts["PENDING"] = 99
        assert cached_metrics.counts_by_status()["PENDING"] == 0

    def test_engine_writes_invalidate(self, metrics, engine, member, admin):
        request = engine.create_request(RequestType.LOAN_APPLICATION, {"amount": 10}, member.actor_id)
        assert metrics.counts_by_status()["PENDING"] == 1
        engine.review(request.id, admin)
        assert metrics.counts_by_status()["IN_REVIEW"] == 1

"""Concurrent transitions on the same request: exactly one writer wins."""

import threading

import pytest

from coop_svc.errors import InvalidTransitionError, StaleStateError
from coop_svc.requests.chains import ChainCatalog
from coop_svc.requests.types import (
    HistoryEntry,
    Priority,
    Request,
    RequestStatus,
    RequestType,
    StatusUpdate,
)
from coop_svc.policy.types import Module

pytestmark = pytest.mark.concurrency

R = RequestStatus
WORKERS = 8


def _race(fn, args_list):
    """Run ``fn(*args)`` for each entry at the same moment; collect outcomes."""
    barrier = threading.Barrier(len(args_list))
    results: list = [None] * len(args_list)

    def worker(index, args):
        barrier.wait()
        try:
            results[index] = fn(*args)
        except Exception as e:
            results[index] = e

    threads = [threading.Thread(target=worker, args=(i, a)) for i, a in enumerate(args_list)]
    for t in threads:
        t.start()
    for t in threads:
        t.join(timeout=10)
    return results


class TestStoreCompareAndSet:

    def test_one_winner_per_expected_status(self, any_store):
        created = any_store.create(Request(
            id="",
            type=RequestType.BIODATA_APPROVAL,
            initiator_id="m-001",
            module=Module.ACCOUNT,
            priority=Priority.NORMAL,
            approval_steps=ChainCatalog().build(RequestType.BIODATA_APPROVAL),
        ))

        def attempt(actor_id):
            update = StatusUpdate(
                to_status=R.IN_REVIEW,
                entry=HistoryEntry(
                    from_status=R.PENDING,
                    to_status=R.IN_REVIEW,
                    actor_id=actor_id,
                    timestamp="2025-01-01T10:00:00+00:00",
                ),
                current_approval_level=2,
            )
            return any_store.compare_and_set(created.id, R.PENDING, update)

        results = _race(attempt, [(f"a-{i:03d}",) for i in range(WORKERS)])

        winners = [r for r in results if isinstance(r, Request)]
        losers = [r for r in results if isinstance(r, StaleStateError)]
        assert len(winners) == 1
        assert len(losers) == WORKERS - 1
        history = any_store.get(created.id).history
        assert len(history) == 1
        assert history[0].actor_id == winners[0].history[0].actor_id


class TestEngineRaces:

    @pytest.fixture
    def treasurers(self, roles):
        roles.assign("t-002", "TREASURER")
        return roles.get_actor_role_profile("t-001"), roles.get_actor_role_profile("t-002")

    def test_two_reviewers_on_pending_request(self, engine, member, treasurers):
        request = engine.create_request(RequestType.BIODATA_APPROVAL, {"phone": "0800"}, member.actor_id)

        results = _race(engine.review, [(request.id, t) for t in treasurers])

        successes = [r for r in results if isinstance(r, Request)]
        failures = [r for r in results if not isinstance(r, Request)]
        assert len(successes) == 1
        assert len(failures) == 1
        assert isinstance(failures[0], (StaleStateError, InvalidTransitionError))

        final = engine.get_request(request.id)
        assert final.status == R.IN_REVIEW
        assert len(final.history) == 1

    def test_two_treasurers_mark_loan_reviewed(self, engine, member, admin, treasurers, loans):
        request = engine.create_request(RequestType.LOAN_APPLICATION, {"amount": 5000}, member.actor_id)
        engine.review(request.id, admin)

        results = _race(engine.mark_reviewed, [(request.id, t) for t in treasurers])

        successes = [r for r in results if isinstance(r, Request)]
        failures = [r for r in results if not isinstance(r, Request)]
        assert len(successes) == 1
        assert isinstance(failures[0], (StaleStateError, InvalidTransitionError))

        final = engine.get_request(request.id)
        assert final.status == R.REVIEWED
        assert len(final.history) == 2
        loan = loans.get(request.linked_entity.entity_id)
        assert loan.status.value == "REVIEWED"
        # The loan moved once
        assert len(loan.status_history) == 2

    def test_stale_failure_is_retryable(self, engine, member, treasurers):
        request = engine.create_request(RequestType.BIODATA_APPROVAL, {"phone": "0800"}, member.actor_id)
        results = _race(engine.review, [(request.id, t) for t in treasurers])
        for result in results:
            if isinstance(result, StaleStateError):
                assert result.retryable is True
                assert result.to_dict()["retryable"] is True

    def test_many_requests_in_parallel(self, engine, member, admin):
        """Independent requests never interfere with each other."""
        requests = [
            engine.create_request(RequestType.LOAN_APPLICATION, {"amount": 100 + i}, member.actor_id)
            for i in range(WORKERS)
        ]
        results = _race(engine.review, [(r.id, admin) for r in requests])
        assert all(isinstance(r, Request) for r in results)
        assert all(engine.get_request(r.id).status == R.IN_REVIEW for r in requests)

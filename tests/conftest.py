"""Shared test fixtures for the coop approval service."""

import pytest

from coop_svc.adapters.registry import AdapterRegistry, default_registry
from coop_svc.metrics.projection import ApprovalMetrics
from coop_svc.notifications.dispatcher import NotificationDispatcher
from coop_svc.notifications.sinks import MemorySink
from coop_svc.policy.roles import RoleDirectory
from coop_svc.requests.registry import InMemoryRequestStore
from coop_svc.requests.sqlite_store import SqliteRequestStore
from coop_svc.workflow.engine import ApprovalEngine


ASSIGNMENTS = {
    "m-001": "MEMBER",
    "m-002": "MEMBER",
    "a-001": "ADMIN",
    "t-001": "TREASURER",
    "c-001": "CHAIRMAN",
    "root": "SUPER_ADMIN",
}


# =============================================================================
# Roles
# =============================================================================

@pytest.fixture
def roles() -> RoleDirectory:
    """Default roles with one actor per role (two members)."""
    directory = RoleDirectory()
    for actor_id, role in ASSIGNMENTS.items():
        directory.assign(actor_id, role)
    return directory


@pytest.fixture
def member(roles):
    return roles.get_actor_role_profile("m-001")


@pytest.fixture
def other_member(roles):
    return roles.get_actor_role_profile("m-002")


@pytest.fixture
def admin(roles):
    return roles.get_actor_role_profile("a-001")


@pytest.fixture
def treasurer(roles):
    return roles.get_actor_role_profile("t-001")


@pytest.fixture
def chairman(roles):
    return roles.get_actor_role_profile("c-001")


@pytest.fixture
def super_admin(roles):
    return roles.get_actor_role_profile("root")


# =============================================================================
# Stores
# =============================================================================

@pytest.fixture
def store():
    """Empty in-memory request store."""
    return InMemoryRequestStore()


@pytest.fixture(params=["memory", "sqlite"])
def any_store(request):
    """Each store backend in turn."""
    if request.param == "memory":
        yield InMemoryRequestStore()
        return
    sqlite_store = SqliteRequestStore(":memory:")
    yield sqlite_store
    sqlite_store.close()


# =============================================================================
# Engine
# =============================================================================

@pytest.fixture
def adapters() -> AdapterRegistry:
    """All four domain adapters, each on a fresh book."""
    return default_registry()


@pytest.fixture
def sink() -> MemorySink:
    return MemorySink()


@pytest.fixture
def notifier(sink) -> NotificationDispatcher:
    return NotificationDispatcher(sinks=[sink])


@pytest.fixture
def metrics(store) -> ApprovalMetrics:
    return ApprovalMetrics(store, refresh_interval_seconds=60.0)


@pytest.fixture
def engine(store, adapters, roles, notifier, metrics) -> ApprovalEngine:
    return ApprovalEngine(
        store=store,
        adapters=adapters,
        roles=roles,
        notifier=notifier,
        metrics=metrics,
    )


@pytest.fixture
def loans(adapters):
    """The loan book behind the loan adapter."""
    return adapters.get("loan").book


@pytest.fixture
def savings(adapters):
    """The savings book behind the savings withdrawal adapter."""
    return adapters.get("savings_withdrawal").book


@pytest.fixture
def plans(adapters):
    """The personal savings book."""
    return adapters.get("personal_savings").book


@pytest.fixture
def accounts(adapters):
    """The member directory behind the account adapter."""
    return adapters.get("account").book

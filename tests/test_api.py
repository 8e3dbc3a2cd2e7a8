"""HTTP API tests for the request workflow endpoints."""

import base64
import json

import pytest
import yaml
from fastapi.testclient import TestClient

from coop_svc import _bootstrap as bs
from coop_svc.main import app


ROLES_YAML = """
assignments:
  m-001: MEMBER
  m-002: MEMBER
  a-001: ADMIN
  t-001: TREASURER
  c-001: CHAIRMAN
"""


def _headers(actor_id: str) -> dict:
    return {"X-Actor-ID": actor_id}


def _bearer(claims: dict) -> dict:
    def part(data: dict) -> str:
        return base64.urlsafe_b64encode(json.dumps(data).encode()).decode().rstrip("=")

    token = f"{part({'alg': 'none'})}.{part(claims)}.sig"
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def snapshot_path(tmp_path):
    return tmp_path / "requests.yaml"


@pytest.fixture
def client(tmp_path, snapshot_path, monkeypatch):
    (tmp_path / "roles.yaml").write_text(ROLES_YAML)
    config_path = tmp_path / "config.yaml"
    config_path.write_text(yaml.dump({
        "store": {"backend": "memory", "snapshot_path": snapshot_path.name},
        "workflow": {"default_page_size": 5},
        "notifications": {"sink": "memory"},
        "roles": {"definition_file": "roles.yaml"},
    }))
    monkeypatch.setenv(bs.CONFIG_ENV_VAR, str(config_path))

    with TestClient(app) as test_client:
        yield test_client


def _create_loan(client, amount=250_000, actor="m-001"):
    response = client.post(
        "/requests",
        json={"type": "LOAN_APPLICATION", "content": {"amount": amount, "purpose": "roof"}},
        headers=_headers(actor),
    )
    assert response.status_code == 201, response.text
    return response.json()


def _act(client, request_id, action, actor, notes=""):
    return client.post(
        f"/requests/{request_id}/transition",
        json={"action": action, "notes": notes},
        headers=_headers(actor),
    )


class TestCreate:

    def test_create_loan_request(self, client):
        data = _create_loan(client)
        assert data["id"].startswith("REQ-")
        assert data["status"] == "PENDING"
        assert data["type"] == "LOAN_APPLICATION"
        assert data["module"] == "LOAN"
        assert data["initiator_id"] == "m-001"
        assert data["priority"] == "MEDIUM"
        assert data["current_approval_level"] == 1
        assert data["linked_entity"]["domain_module"] == "loan"
        assert [s["approver_role"] for s in data["approval_steps"]] == [
            "ADMIN", "TREASURER", "CHAIRMAN", "TREASURER",
        ]

    def test_create_requires_identity(self, client):
        response = client.post("/requests", json={"type": "LOAN_APPLICATION", "content": {"amount": 1}})
        assert response.status_code == 403
        assert response.json()["error"] == "FORBIDDEN"

    def test_create_by_unassigned_actor(self, client):
        response = client.post(
            "/requests",
            json={"type": "LOAN_APPLICATION", "content": {"amount": 1}},
            headers=_headers("nobody"),
        )
        assert response.status_code == 403

    def test_unknown_type(self, client):
        response = client.post("/requests", json={"type": "MORTGAGE"}, headers=_headers("m-001"))
        assert response.status_code == 400
        assert response.json()["error"] == "VALIDATION_ERROR"

    def test_invalid_content(self, client):
        response = client.post(
            "/requests", json={"type": "LOAN_APPLICATION", "content": {}}, headers=_headers("m-001"),
        )
        assert response.status_code == 400

    def test_identity_from_bearer_token(self, client):
        response = client.post(
            "/requests",
            json={"type": "BIODATA_APPROVAL", "content": {"phone": "1"}},
            headers=_bearer({"sub": "m-002"}),
        )
        assert response.status_code == 201
        assert response.json()["initiator_id"] == "m-002"

    def test_create_saves_snapshot(self, client, snapshot_path):
        created = _create_loan(client)
        data = yaml.safe_load(snapshot_path.read_text())
        assert [r["id"] for r in data["requests"]] == [created["id"]]


class TestTransitions:

    def test_full_loan_walk(self, client):
        request_id = _create_loan(client)["id"]

        for action, actor, status in (
            ("review", "a-001", "IN_REVIEW"),
            ("mark_reviewed", "t-001", "REVIEWED"),
            ("approve", "c-001", "APPROVED"),
            ("disburse", "t-001", "COMPLETED"),
        ):
            response = _act(client, request_id, action, actor)
            assert response.status_code == 200, response.text
            assert response.json()["status"] == status

        data = client.get(f"/requests/{request_id}").json()
        assert data["completed_at"] is not None
        assert len(data["history"]) == 4

    def test_history_endpoint(self, client):
        request_id = _create_loan(client)["id"]
        _act(client, request_id, "review", "a-001", "docs ok")
        history = client.get(f"/requests/{request_id}/history").json()
        assert history == [{
            "from_status": "PENDING",
            "to_status": "IN_REVIEW",
            "actor_id": "a-001",
            "timestamp": history[0]["timestamp"],
            "notes": "docs ok",
        }]

    def test_invalid_transition_is_409(self, client):
        request_id = _create_loan(client)["id"]
        response = _act(client, request_id, "approve", "c-001")
        assert response.status_code == 409
        body = response.json()
        assert body["error"] == "INVALID_TRANSITION"
        assert body["retryable"] is False

    def test_wrong_role_is_403(self, client):
        request_id = _create_loan(client)["id"]
        response = _act(client, request_id, "review", "m-002")
        assert response.status_code == 403
        assert "cannot approve" in response.json()["detail"]

    def test_reject_without_reason_is_400(self, client):
        request_id = _create_loan(client)["id"]
        response = _act(client, request_id, "reject", "a-001")
        assert response.status_code == 400

    def test_unknown_action_is_400(self, client):
        request_id = _create_loan(client)["id"]
        assert _act(client, request_id, "escalate", "a-001").status_code == 400

    def test_domain_failure_is_422(self, client):
        response = client.post(
            "/requests", json={"type": "SAVINGS_WITHDRAWAL", "content": {"amount": 500}},
            headers=_headers("m-001"),
        )
        request_id = response.json()["id"]
        _act(client, request_id, "review", "a-001")
        _act(client, request_id, "mark_reviewed", "t-001")
        _act(client, request_id, "approve", "c-001")

        response = _act(client, request_id, "complete", "t-001")
        assert response.status_code == 422
        assert response.json()["error"] == "DOMAIN_SYNC_FAILURE"
        assert client.get(f"/requests/{request_id}").json()["status"] == "APPROVED"

    def test_cancel_by_initiator(self, client):
        request_id = _create_loan(client)["id"]
        assert _act(client, request_id, "cancel", "m-002").status_code == 403
        response = _act(client, request_id, "cancel", "m-001", "no longer needed")
        assert response.status_code == 200
        assert response.json()["status"] == "CANCELLED"
        assert {s["status"] for s in response.json()["approval_steps"]} == {"SKIPPED"}

    def test_unknown_request_is_404(self, client):
        response = _act(client, "REQ-000000000000", "review", "a-001")
        assert response.status_code == 404
        assert response.json() == {
            "error": "NOT_FOUND",
            "detail": "Request not found: REQ-000000000000",
            "retryable": False,
        }


class TestQueries:

    def test_get_missing(self, client):
        assert client.get("/requests/REQ-NOPE").status_code == 404

    def test_list_envelope(self, client):
        for _ in range(7):
            _create_loan(client)

        body = client.get("/requests").json()
        assert set(body) == {"data", "meta"}
        assert len(body["data"]) == 5
        assert body["meta"] == {"total": 7, "page": 1, "limit": 5, "totalPages": 2}

        second = client.get("/requests", params={"page": 2}).json()
        assert len(second["data"]) == 2

    def test_empty_list(self, client):
        body = client.get("/requests").json()
        assert body == {"data": [], "meta": {"total": 0, "page": 1, "limit": 5, "totalPages": 0}}

    def test_filters(self, client):
        loan = _create_loan(client)
        client.post(
            "/requests", json={"type": "BIODATA_APPROVAL", "content": {"phone": "1"}},
            headers=_headers("m-002"),
        )
        _act(client, loan["id"], "review", "a-001")

        assert client.get("/requests", params={"type": "BIODATA_APPROVAL"}).json()["meta"]["total"] == 1
        assert client.get("/requests", params={"status": "IN_REVIEW"}).json()["data"][0]["id"] == loan["id"]
        assert client.get("/requests", params={"initiator_id": "m-002"}).json()["meta"]["total"] == 1
        assert client.get("/requests", params={"actor_id": "a-001"}).json()["meta"]["total"] == 1
        assert client.get("/requests", params={"module": "LOAN"}).json()["meta"]["total"] == 1

    def test_domain_status_alias(self, client):
        loan = _create_loan(client)
        for action, actor in (("review", "a-001"), ("mark_reviewed", "t-001"),
                              ("approve", "c-001"), ("complete", "t-001")):
            _act(client, loan["id"], action, actor)

        body = client.get("/requests", params={"status": "DISBURSED"}).json()
        assert [r["id"] for r in body["data"]] == [loan["id"]]

    @pytest.mark.parametrize("params", [
        {"page": 0},
        {"limit": 0},
        {"sort_by": "content"},
        {"status": "LOST"},
        {"type": "MORTGAGE"},
    ])
    def test_invalid_query_is_400(self, client, params):
        response = client.get("/requests", params=params)
        assert response.status_code == 400
        assert response.json()["error"] == "VALIDATION_ERROR"

    def test_pending_count_and_metrics(self, client):
        first = _create_loan(client)
        _create_loan(client)
        _act(client, first["id"], "review", "a-001")
        _act(client, first["id"], "mark_reviewed", "t-001")

        assert client.get("/requests/pending-count").json() == {"count": 1}
        assert client.get("/requests/pending-count", params={"module": "SAVINGS"}).json() == {"count": 0}

        metrics = client.get("/requests/metrics").json()
        assert metrics["pending"] == 1
        assert metrics["by_status"]["REVIEWED"] == 1
        assert metrics["by_status"]["total"] == 2
        assert metrics["by_level"] == {"1": 1, "3": 1}
        assert metrics["by_type"]["LOAN_APPLICATION"] == 2


class TestDelete:

    def test_initiator_deletes(self, client):
        request_id = _create_loan(client)["id"]
        response = client.delete(f"/requests/{request_id}", headers=_headers("m-001"))
        assert response.status_code == 204
        assert client.get(f"/requests/{request_id}").status_code == 404

    def test_other_actor_cannot_delete(self, client):
        request_id = _create_loan(client)["id"]
        response = client.delete(f"/requests/{request_id}", headers=_headers("a-001"))
        assert response.status_code == 403

    def test_acted_on_request_cannot_be_deleted(self, client):
        request_id = _create_loan(client)["id"]
        _act(client, request_id, "review", "a-001")
        response = client.delete(f"/requests/{request_id}", headers=_headers("m-001"))
        assert response.status_code == 409


class TestService:

    def test_health(self, client):
        body = client.get("/health").json()
        assert body["status"] == "healthy"
        assert body["store"] == "memory"
        assert sorted(body["domain_modules"]) == ["account", "loan", "personal_savings", "savings_withdrawal"]
        assert body["notifications"]["enabled"] is True

    def test_root(self, client):
        body = client.get("/").json()
        assert body["service"] == "coop-approval"
        assert body["endpoints"]["requests"] == "/requests"

    def test_notifications_reach_sink(self, client):
        _create_loan(client)
        sink = app.state.services.notifier._sinks[0]
        assert {n.recipient for n in sink.items} == {"m-001", "role:ADMIN"}

"""Tests for saving and loading request snapshots as YAML."""

import yaml

from coop_svc.requests.loader import load_requests_from_yaml, save_requests_to_yaml
from coop_svc.requests.registry import InMemoryRequestStore
from coop_svc.requests.types import Priority, RequestStatus, RequestType, StepStatus


class TestSaveAndLoad:

    def test_round_trip_keeps_workflow_state(self, tmp_path, engine, store, member, admin):
        loan = engine.create_request(
            RequestType.LOAN_APPLICATION, {"amount": 2_000_000, "purpose": "tractor"}, member.actor_id,
        )
        engine.review(loan.id, admin, "looks fine")
        biodata = engine.create_request(RequestType.BIODATA_APPROVAL, {"phone": "0800"}, member.actor_id)
        engine.reject(biodata.id, admin, "blurry photo")

        path = tmp_path / "requests.yaml"
        assert save_requests_to_yaml(path, store) == 2

        restored = InMemoryRequestStore()
        loaded = load_requests_from_yaml(path, restored)
        assert len(loaded) == 2

        again = restored.get(loan.id)
        original = store.get(loan.id)
        assert again.status == RequestStatus.IN_REVIEW
        assert again.priority == Priority.HIGH
        assert again.linked_entity == original.linked_entity
        assert again.content == {"amount": 2_000_000, "purpose": "tractor"}
        assert again.current_approval_level == 2
        assert again.approval_steps == original.approval_steps
        assert again.history == original.history
        assert again.created_at == original.created_at

        rejected = restored.get(biodata.id)
        assert rejected.status == RequestStatus.REJECTED
        assert rejected.completed_at == store.get(biodata.id).completed_at
        assert rejected.history[0].notes == "blurry photo"
        assert rejected.approval_steps[0].status == StepStatus.REJECTED

    def test_missing_file(self, tmp_path):
        store = InMemoryRequestStore()
        assert load_requests_from_yaml(tmp_path / "absent.yaml", store) == []
        assert store.all_requests() == []

    def test_empty_file(self, tmp_path):
        path = tmp_path / "empty.yaml"
        path.write_text("")
        assert load_requests_from_yaml(path, InMemoryRequestStore()) == []

    def test_malformed_entries_are_skipped(self, tmp_path):
        path = tmp_path / "requests.yaml"
        path.write_text(yaml.dump({
            "requests": [
                {"id": "REQ-GOOD00000001", "type": "LOAN_APPLICATION", "initiator_id": "m-001",
                 "status": "PENDING"},
                {"id": "REQ-NOTYPE000001", "initiator_id": "m-001"},
                {"id": "REQ-BADSTATUS001", "type": "LOAN_APPLICATION", "status": "LOST"},
            ],
        }))

        store = InMemoryRequestStore()
        loaded = load_requests_from_yaml(path, store)

        assert [r.id for r in loaded] == ["REQ-GOOD00000001"]
        good = store.get("REQ-GOOD00000001")
        assert good.module.value == "LOAN"
        assert good.current_approval_level == 1

    def test_save_creates_parent_directory(self, tmp_path, store, engine, member):
        engine.create_request(RequestType.BIODATA_APPROVAL, {"phone": "1"}, member.actor_id)
        path = tmp_path / "nested" / "dir" / "requests.yaml"
        save_requests_to_yaml(path, store)
        data = yaml.safe_load(path.read_text())
        assert len(data["requests"]) == 1
        assert data["requests"][0]["type"] == "BIODATA_APPROVAL"

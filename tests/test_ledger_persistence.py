"""Tests for domain book persistence and service restarts."""

from decimal import Decimal

import pytest
import yaml

from coop_svc import _bootstrap as bs
from coop_svc.config import Config
from coop_svc.ledger.accounts import AccountBook, ChangeKind, MemberStatus
from coop_svc.ledger.loader import attach_yaml_file, load_book_from_yaml, save_book_to_yaml
from coop_svc.ledger.loans import LoanBook, LoanStatus
from coop_svc.ledger.personal_savings import PersonalSavingsBook, PlanStatus
from coop_svc.ledger.savings import SavingsBook
from coop_svc.requests.types import RequestStatus, RequestType


ROLES_YAML = """
assignments:
  m-001: MEMBER
  a-001: ADMIN
  t-001: TREASURER
  c-001: CHAIRMAN
"""


class TestBookFiles:

    def test_missing_file_loads_nothing(self, tmp_path):
        assert load_book_from_yaml(tmp_path / "loan.yaml", LoanBook()) == 0

    def test_attached_book_saves_every_write(self, tmp_path):
        path = tmp_path / "ledger" / "loan.yaml"
        book = LoanBook()
        attach_yaml_file(book, path)

        loan = book.open_loan("m-001", "2500.50", tenure_months=6)
        book.update_status(loan.id, LoanStatus.IN_REVIEW, "a-001", "docs ok")

        data = yaml.safe_load(path.read_text())
        [saved] = data["loans"]
        assert saved["id"] == loan.id
        assert saved["amount"] == "2500.50"
        assert saved["status"] == "IN_REVIEW"
        assert saved["status_history"][0]["notes"] == "docs ok"
        assert not (tmp_path / "ledger" / "loan.yaml.tmp").exists()

    def test_loan_reload(self, tmp_path):
        path = tmp_path / "loan.yaml"
        book = LoanBook()
        loan = book.open_loan("m-001", 5000)
        book.update_status(loan.id, LoanStatus.IN_REVIEW, "a-001")
        save_book_to_yaml(path, book)

        reloaded = LoanBook()
        assert load_book_from_yaml(path, reloaded) == 1
        copy = reloaded.get(loan.id)
        assert copy.amount == Decimal("5000")
        assert copy.status == LoanStatus.IN_REVIEW
        assert copy.status_history[0].actor_id == "a-001"
        # the reloaded loan keeps moving along its machine
        reloaded.update_status(loan.id, LoanStatus.REVIEWED, "t-001")

    def test_savings_reload_keeps_balances(self, tmp_path):
        path = tmp_path / "savings.yaml"
        book = SavingsBook()
        book.deposit("m-001", "1000.25")
        withdrawal = book.open_withdrawal("m-001", 400, "school fees")
        save_book_to_yaml(path, book)

        reloaded = SavingsBook()
        load_book_from_yaml(path, reloaded)
        assert reloaded.balance("m-001") == Decimal("1000.25")
        assert reloaded.get(withdrawal.id).reason == "school fees"

    def test_plan_reload(self, tmp_path):
        path = tmp_path / "plans.yaml"
        book = PersonalSavingsBook()
        open_ended = book.open_plan("m-001", "Rainy day")
        targeted = book.open_plan("m-001", "Christmas", target_amount=5000)
        save_book_to_yaml(path, book)

        reloaded = PersonalSavingsBook()
        load_book_from_yaml(path, reloaded)
        assert reloaded.get_plan(open_ended.id).target_amount is None
        assert reloaded.get_plan(targeted.id).target_amount == Decimal("5000")
        assert reloaded.get_plan(targeted.id).status == PlanStatus.PENDING
        assert reloaded.kind_of(targeted.id) == "plan"

    def test_account_reload(self, tmp_path):
        path = tmp_path / "account.yaml"
        book = AccountBook()
        book.add_member("m-001", {"phone": "0800", "next_of_kin": {"name": "Ada"}})
        change = book.open_change(ChangeKind.CLOSE, "m-001", requested_by="m-001")
        save_book_to_yaml(path, book)

        reloaded = AccountBook()
        assert load_book_from_yaml(path, reloaded) == 2
        member = reloaded.get_member("m-001")
        assert member.profile["next_of_kin"] == {"name": "Ada"}
        assert member.status == MemberStatus.ACTIVE
        assert reloaded.get_change(change.id).kind == ChangeKind.CLOSE

    def test_entity_ids_do_not_repeat_across_books(self):
        first, second = LoanBook(), LoanBook()
        assert first.open_loan("m-001", 100).id != second.open_loan("m-001", 100).id


class TestLedgerDir:

    def test_beside_sqlite_file(self, tmp_path):
        config = Config.from_dict({"store": {"backend": "sqlite", "db_path": "coop.db"}})
        assert bs.ledger_dir(config, tmp_path / "config.yaml") == str(tmp_path / "coop_ledger")

    def test_beside_snapshot(self, tmp_path):
        config = Config.from_dict({"store": {"snapshot_path": "data/requests.yaml"}})
        assert bs.ledger_dir(config, tmp_path / "config.yaml") == str(tmp_path / "data" / "requests_ledger")

    def test_explicit(self, tmp_path):
        config = Config.from_dict({"store": {"backend": "sqlite", "ledger_dir": "books"}})
        assert bs.ledger_dir(config, tmp_path / "config.yaml") == str(tmp_path / "books")

    @pytest.mark.parametrize("store", [
        {"backend": "memory"},
        {"backend": "sqlite", "db_path": ":memory:"},
    ])
    def test_memory_only(self, store):
        assert bs.ledger_dir(Config.from_dict({"store": store})) is None


class TestRestart:

    @pytest.fixture
    def start(self, tmp_path):
        (tmp_path / "roles.yaml").write_text(ROLES_YAML)
        config = Config.from_dict({
            "store": {"backend": "sqlite", "db_path": "coop.db"},
            "notifications": {"sink": "memory"},
            "roles": {"definition_file": "roles.yaml"},
        })
        started = []

        def _start():
            services = bs.build_services(config, tmp_path / "config.yaml")
            started.append(services)
            return services

        yield _start
        for services in started:
            services.close()

    @staticmethod
    def _act(services, request_id, *steps):
        request = None
        for action, actor_id in steps:
            actor = services.roles.get_actor_role_profile(actor_id)
            request = services.engine.transition(request_id, action, actor)
        return request

    def test_completed_request_survives_restart(self, start):
        first = start()
        old = first.engine.create_request(RequestType.LOAN_APPLICATION, {"amount": 250_000}, "m-001")
        old = self._act(
            first, old.id,
            ("review", "a-001"), ("mark_reviewed", "t-001"), ("approve", "c-001"), ("complete", "t-001"),
        )
        assert old.status == RequestStatus.COMPLETED
        first.close()

        second = start()
        new = second.engine.create_request(RequestType.LOAN_APPLICATION, {"amount": 1_000}, "m-001")
        assert new.linked_entity.entity_id != old.linked_entity.entity_id

        reread = second.engine.get_request(old.id)
        assert reread.status == RequestStatus.COMPLETED
        assert reread.history == old.history
        loans = second.adapters.get("loan").book
        assert loans.status_of(old.linked_entity.entity_id) == LoanStatus.DISBURSED

    def test_open_request_continues_after_restart(self, start):
        first = start()
        request = first.engine.create_request(RequestType.LOAN_APPLICATION, {"amount": 250_000}, "m-001")
        self._act(first, request.id, ("review", "a-001"))
        first.close()

        second = start()
        request = self._act(second, request.id, ("mark_reviewed", "t-001"), ("approve", "c-001"))
        assert request.status == RequestStatus.APPROVED
        assert second.adapters.get("loan").book.status_of(request.linked_entity.entity_id) == LoanStatus.APPROVED

    def test_savings_balance_survives_restart(self, start):
        first = start()
        first.adapters.get("savings_withdrawal").book.deposit("m-001", 1000)
        request = first.engine.create_request(RequestType.SAVINGS_WITHDRAWAL, {"amount": 400}, "m-001")
        self._act(first, request.id, ("review", "a-001"), ("mark_reviewed", "t-001"), ("approve", "c-001"))
        first.close()

        second = start()
        request = self._act(second, request.id, ("complete", "t-001"))
        assert request.status == RequestStatus.COMPLETED
        assert second.adapters.get("savings_withdrawal").book.balance("m-001") == Decimal("600")

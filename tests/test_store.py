from datetime import date
from pathlib import Path

import pytest

from budget_core.domain import CurrentUser
from budget_core.errors import StorageError, ValidationError
from budget_core.events import BUDGET_ALERT, RECORD_DELETED
from budget_core.storage import JsonFileStorage
from budget_core.store import AppStore
from budget_core.transforms import load_seed

SEED = Path(__file__).resolve().parent.parent / "data" / "seed.json"


def make_user():
    return CurrentUser(id="u1", name="Ana", email="ana@example.com")


@pytest.fixture
def store(tmp_path):
    s = AppStore(JsonFileStorage(tmp_path), make_user())
    s.load()
    return s


class FailingWrites(JsonFileStorage):
    def create(self, kind, user_id, record):
        raise StorageError("disk full")


class FailingReads(JsonFileStorage):
    def list_records(self, kind, user_id):
        raise StorageError("backend unavailable")


def test_load_seeds_default_categories(tmp_path):
    storage = JsonFileStorage(tmp_path)
    store = AppStore(storage, make_user())
    snap = store.load()
    assert len(snap.expense_categories) == 9
    assert len(snap.income_categories) == 9
    assert store.loading is False
    assert store.error is None
    # persisted, so a second load does not seed again
    assert len(storage.list_records("expense_categories", "u1")) == 9
    assert len(AppStore(storage, make_user()).load().expense_categories) == 9


def test_add_expense_prepends_and_persists(store):
    first = store.add_expense("Groceries", 80, "Food & Dining", date(2024, 3, 2), "household")
    second = store.add_expense("Bus", 3, "Transportation", date(2024, 3, 3))
    assert store.snapshot.expenses == (second, first)
    assert first.user_id == "u1"
    assert {e.id for e in store.storage.list_records("expenses", "u1")} == {first.id, second.id}


def test_invalid_record_is_rejected(store):
    with pytest.raises(ValidationError) as exc:
        store.add_expense("Groceries", 0, "Food & Dining", date(2024, 3, 2))
    assert exc.value.details["error"] == "invalid_amount"
    assert store.snapshot.expenses == ()
    assert store.storage.list_records("expenses", "u1") == ()


def test_update_and_delete(store):
    from dataclasses import replace

    inc = store.add_income("Salary", 1000, "Salary", date(2024, 3, 1))
    store.update("incomes", replace(inc, amount=1200.0))
    assert store.snapshot.incomes[0].amount == 1200.0

    deleted = []
    store.bus.subscribe(RECORD_DELETED, lambda event, payload: deleted.append(payload))
    store.delete("incomes", inc.id)
    assert store.snapshot.incomes == ()
    assert deleted == [{"kind": "incomes", "record_id": inc.id}]


def test_write_failure_is_surfaced(tmp_path):
    store = AppStore(FailingWrites(tmp_path), make_user())
    with pytest.raises(StorageError):
        store.add_budget("Travel", 100)
    assert "disk full" in store.error
    assert store.snapshot.budgets == ()


def test_load_failure_is_surfaced(tmp_path):
    store = AppStore(FailingReads(tmp_path), make_user())
    with pytest.raises(StorageError):
        store.load()
    assert store.error.startswith("Could not load data")
    assert store.loading is False


def test_budget_alert_on_overspend(store):
    received = []
    store.bus.subscribe(BUDGET_ALERT, lambda event, payload: received.append(payload))
    store.add_budget("Food & Dining", 120)
    store.add_expense("Groceries", 100, "Food & Dining", date(2024, 3, 2))
    assert store.pop_alerts() == []

    store.add_expense("Dinner", 50, "Food & Dining", date(2024, 3, 5))
    alerts = store.pop_alerts()
    assert len(alerts) == 1
    assert alerts[0]["category"] == "Food & Dining"
    assert alerts[0]["spent"] == 150
    assert received == alerts
    assert store.pop_alerts() == []


def test_only_one_active_tithe_goal(store):
    store.set_tithe_goal(10)
    store.set_tithe_goal(12.5, "yearly")
    goals = store.snapshot.tithe_goals
    assert len(goals) == 1
    assert goals[0].target_percentage == 12.5
    assert len(store.storage.list_records("tithe_goals", "u1")) == 1


def test_invalid_tithe_goal_keeps_existing(store):
    store.set_tithe_goal(10)
    with pytest.raises(ValidationError):
        store.set_tithe_goal(150)
    assert store.snapshot.tithe_goals[0].target_percentage == 10


def test_add_category(store):
    cat = store.add_category("income_categories", "Gifts", "#123456", "Gift")
    assert cat in store.snapshot.income_categories
    with pytest.raises(ValueError):
        store.add_category("expenses", "Gifts", "#123456", "Gift")


def test_import_seed(store):
    count = store.import_records(load_seed(SEED, "u1"))
    assert count == len(store.snapshot.expenses) + len(store.snapshot.incomes) + \
        len(store.snapshot.budgets) + len(store.snapshot.tithes) + len(store.snapshot.tithe_goals)
    assert all(e.user_id == "u1" for e in store.snapshot.expenses)
    assert len(store.storage.list_records("budgets", "u1")) == len(store.snapshot.budgets)


class FailingGoalWrites(JsonFileStorage):
    fail = False

    def create(self, kind, user_id, record):
        if self.fail and kind == "tithe_goals":
            raise StorageError("disk full")
        super().create(kind, user_id, record)


def test_failed_goal_replace_keeps_previous_goal(tmp_path):
    storage = FailingGoalWrites(tmp_path)
    store = AppStore(storage, make_user())
    store.load()
    store.set_tithe_goal(10.0)

    storage.fail = True
    with pytest.raises(StorageError):
        store.set_tithe_goal(12.0)

    active = [g for g in store.snapshot.tithe_goals if g.is_active]
    assert [g.target_percentage for g in active] == [10.0]
    assert [g.target_percentage for g in storage.list_records("tithe_goals", "u1")] == [10.0]


class FailsOnThirdCategory(JsonFileStorage):
    def __init__(self, data_dir):
        super().__init__(data_dir)
        self.writes = 0

    def create(self, kind, user_id, record):
        if kind == "expense_categories":
            self.writes += 1
            if self.writes == 3:
                raise StorageError("disk full")
        super().create(kind, user_id, record)


def test_failed_default_seeding_is_rolled_back(tmp_path):
    with pytest.raises(StorageError):
        AppStore(FailsOnThirdCategory(tmp_path), make_user()).load()

    storage = JsonFileStorage(tmp_path)
    assert storage.list_records("expense_categories", "u1") == ()
    assert len(AppStore(storage, make_user()).load().expense_categories) == 9

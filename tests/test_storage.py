import json
from datetime import date

import pytest

from budget_core.domain import Category, Expense, FamilyMember, MemberProfile, TitheGoal
from budget_core.errors import RecordNotFound, StorageError
from budget_core.storage import SCHEMA_VERSION, JsonFileStorage, migrate_document


def make_exp(id="e1", amount=42.0):
    return Expense(id=id, title="Groceries", amount=amount, category="Food & Dining",
                   date=date(2024, 3, 2), paid_by="household", user_id="u1")


def test_create_and_list(tmp_path):
    storage = JsonFileStorage(tmp_path)
    storage.create("expenses", "u1", make_exp())
    assert storage.list_records("expenses", "u1") == (make_exp(),)
    assert storage.list_records("expenses", "u2") == ()

    doc = json.loads((tmp_path / "users" / "u1" / "expenses.json").read_text())
    assert doc["version"] == SCHEMA_VERSION
    assert doc["records"][0]["date"] == "2024-03-02"
    assert "kind" not in doc["records"][0]


def test_update_and_delete(tmp_path):
    storage = JsonFileStorage(tmp_path)
    storage.create("expenses", "u1", make_exp("e1"))
    storage.create("expenses", "u1", make_exp("e2"))

    storage.update("expenses", "u1", make_exp("e1", amount=99.0))
    assert [e.amount for e in storage.list_records("expenses", "u1")] == [99.0, 42.0]

    storage.delete("expenses", "u1", "e2")
    assert [e.id for e in storage.list_records("expenses", "u1")] == ["e1"]


def test_missing_records_raise(tmp_path):
    storage = JsonFileStorage(tmp_path)
    with pytest.raises(RecordNotFound):
        storage.update("expenses", "u1", make_exp("nope"))
    with pytest.raises(RecordNotFound):
        storage.delete("expenses", "u1", "nope")


def test_unknown_kind(tmp_path):
    with pytest.raises(StorageError):
        JsonFileStorage(tmp_path).list_records("accounts", "u1")


def test_other_kinds_round_trip(tmp_path):
    storage = JsonFileStorage(tmp_path)
    goal = TitheGoal(id="g1", target_percentage=10.0, period="monthly", is_active=True)
    cat = Category(id="c1", name="Pets", color="#123456", icon="Heart")
    storage.create("tithe_goals", "u1", goal)
    storage.create("expense_categories", "u1", cat)
    assert storage.list_records("tithe_goals", "u1") == (goal,)
    assert storage.list_records("expense_categories", "u1") == (cat,)
    assert storage.list_records("income_categories", "u1") == ()


def test_legacy_array_is_migrated(tmp_path):
    path = tmp_path / "users" / "u1" / "expenses.json"
    path.parent.mkdir(parents=True)
    path.write_text(json.dumps([{
        "id": "e1", "title": "Groceries", "amount": 42, "category": "Food & Dining",
        "date": "2024-03-02", "paidBy": "household", "userId": "u1", "createdAt": "2024-03-02T10:00:00Z",
    }]))

    storage = JsonFileStorage(tmp_path)
    assert storage.list_records("expenses", "u1") == (make_exp(),)

    doc = json.loads(path.read_text())
    assert doc["version"] == SCHEMA_VERSION
    assert doc["records"][0]["paid_by"] == "household"


def test_migrate_document_shapes():
    doc, migrated = migrate_document({"version": 1, "records": []})
    assert not migrated
    with pytest.raises(StorageError):
        migrate_document({"version": SCHEMA_VERSION + 1, "records": []})
    with pytest.raises(StorageError):
        migrate_document({"rows": []})


def test_corrupt_file_raises_storage_error(tmp_path):
    path = tmp_path / "users" / "u1" / "budgets.json"
    path.parent.mkdir(parents=True)
    path.write_text("{broken")
    with pytest.raises(StorageError):
        JsonFileStorage(tmp_path).list_records("budgets", "u1")


def test_malformed_record_raises_storage_error(tmp_path):
    path = tmp_path / "users" / "u1" / "budgets.json"
    path.parent.mkdir(parents=True)
    path.write_text(json.dumps({"version": 1, "records": [{"id": "b1"}]}))
    with pytest.raises(StorageError):
        JsonFileStorage(tmp_path).list_records("budgets", "u1")


def test_family_members(tmp_path):
    storage = JsonFileStorage(tmp_path)
    member = FamilyMember(id="m1", family_id="f1", user_id="u1", role="admin", nickname="Ana",
                          profile=MemberProfile(name="Ana", email="ana@example.com"), created_by="u1")
    storage.add_family_member(member)
    assert storage.list_family("f1") == (member,)
    assert storage.list_family("f2") == ()

    storage.remove_family_member("f1", "m1")
    assert storage.list_family("f1") == ()
    with pytest.raises(RecordNotFound):
        storage.remove_family_member("f1", "m1")


def test_non_integer_version_is_storage_error(tmp_path):
    with pytest.raises(StorageError):
        migrate_document({"version": "1", "records": []})
    path = tmp_path / "users" / "u1" / "tithes.json"
    path.parent.mkdir(parents=True)
    path.write_text(json.dumps({"version": "1", "records": []}))
    with pytest.raises(StorageError):
        JsonFileStorage(tmp_path).list_records("tithes", "u1")

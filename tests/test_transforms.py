import json
from datetime import date

import pytest

from budget_core.domain import Budget, Expense, FamilyMember, Income, MemberProfile, Snapshot
from budget_core.transforms import (
    add_record, collection_for, load_seed, member_from_dict, member_to_dict, new_id, record_from_dict,
    record_to_dict, remove_record, replace_record, snapshot_replace,
)


def make_budget(id, amount):
    return Budget(id=id, category="Travel", amount=amount)


def test_add_record_appends_or_prepends():
    b1, b2 = make_budget("b1", 100), make_budget("b2", 200)
    budgets = (b1,)
    assert add_record(budgets, b2) == (b1, b2)
    assert add_record(budgets, b2, first=True) == (b2, b1)
    assert budgets == (b1,)


def test_replace_and_remove():
    budgets = (make_budget("b1", 100), make_budget("b2", 200))
    updated = replace_record(budgets, make_budget("b1", 500))
    assert updated[0].amount == 500
    assert budgets[0].amount == 100
    assert remove_record(budgets, "b2") == (budgets[0],)
    assert remove_record(budgets, "missing") == budgets


def test_record_dict_round_trip():
    e = Expense(id="e1", title="Groceries", amount=42.0, category="Food & Dining",
                date=date(2024, 3, 2), paid_by="user", user_id="u1")
    data = record_to_dict(e)
    assert data["date"] == "2024-03-02"
    assert "kind" not in data
    assert record_from_dict("expenses", data) == e


def test_record_from_dict_ignores_unknown_keys():
    b = record_from_dict("budgets", {"id": "b1", "category": "Travel", "amount": "25",
                                     "user_id": "u1", "created_at": "2024-01-01"})
    assert b == Budget(id="b1", category="Travel", amount=25.0)


def test_member_round_trip():
    m = FamilyMember(id="m1", family_id="f1", user_id="u1", role="admin", nickname="Ana",
                     profile=MemberProfile(name="Ana", email="ana@example.com"))
    assert member_from_dict(member_to_dict(m)) == m


def test_snapshot_replace():
    snap = Snapshot()
    new = snapshot_replace(snap, "budgets", (make_budget("b1", 1),))
    assert len(new.budgets) == 1
    assert snap.budgets == ()


def test_new_id_unique():
    assert len({new_id() for _ in range(100)}) == 100


def test_load_seed(tmp_path):
    path = tmp_path / "seed.json"
    path.write_text(json.dumps({
        "expenses": [
            {"title": "Groceries", "amount": 10, "category": "Food & Dining",
             "date": "2024-03-02", "paid_by": "household"},
            {"id": "fixed", "title": "Bus", "amount": 3, "category": "Transportation",
             "date": "2024-03-03", "paid_by": "user", "user_id": "someone-else"},
        ],
        "budgets": [{"category": "Travel", "amount": 300}],
    }))
    seed = load_seed(path, "u1")
    assert len(seed["expenses"]) == 2
    assert all(e.user_id == "u1" for e in seed["expenses"])
    assert seed["expenses"][1].id == "fixed"
    assert seed["expenses"][0].id
    assert seed["budgets"][0].period == "monthly"
    assert seed["tithes"] == ()


def test_collection_for_transactions():
    e = Expense(id="e1", title="x", amount=1.0, category="Other", date=date(2024, 1, 1),
                paid_by="user", user_id="u1")
    i = Income(id="i1", title="x", amount=1.0, category="Other", date=date(2024, 1, 1),
               earned_by="user", user_id="u1")
    assert collection_for(e) == "expenses"
    assert collection_for(i) == "incomes"
    with pytest.raises(TypeError):
        collection_for(make_budget("b1", 1))

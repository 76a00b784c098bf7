from datetime import date

import pytest

from budget_core.domain import Budget, CurrentUser, Expense
from budget_core.errors import StorageError
from budget_core.loading import load_collections, load_snapshot
from budget_core.storage import JsonFileStorage
from budget_core.store import AppStore
from budget_core.transforms import KINDS


def make_exp(id):
    return Expense(id=id, title="Groceries", amount=10.0, category="Food & Dining",
                   date=date(2024, 3, 2), paid_by="user", user_id="u1")


@pytest.mark.asyncio
async def test_load_collections_returns_every_kind(tmp_path):
    storage = JsonFileStorage(tmp_path)
    storage.create("expenses", "u1", make_exp("e1"))
    storage.create("budgets", "u1", Budget(id="b1", category="Food & Dining", amount=50.0))

    res = await load_collections(storage, "u1")
    assert set(res) == set(KINDS)
    assert res["expenses"] == (make_exp("e1"),)
    assert res["incomes"] == ()


@pytest.mark.asyncio
async def test_load_snapshot(tmp_path):
    storage = JsonFileStorage(tmp_path)
    storage.create("expenses", "u1", make_exp("e1"))
    snap = await load_snapshot(storage, "u1")
    assert snap.expenses == (make_exp("e1"),)
    assert snap.tithes == ()


class OneBrokenKind(JsonFileStorage):
    def list_records(self, kind, user_id):
        if kind == "tithes":
            raise StorageError("tithes unavailable")
        return super().list_records(kind, user_id)


@pytest.mark.asyncio
async def test_load_collections_propagates_failure(tmp_path):
    with pytest.raises(StorageError, match="tithes unavailable"):
        await load_collections(OneBrokenKind(tmp_path), "u1")


@pytest.mark.asyncio
async def test_store_aload(tmp_path):
    store = AppStore(JsonFileStorage(tmp_path), CurrentUser(id="u1", name="Ana", email="ana@example.com"))
    snap = await store.aload()
    assert snap is store.snapshot
    assert len(snap.income_categories) == 9

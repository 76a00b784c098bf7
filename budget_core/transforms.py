import json
from dataclasses import asdict, fields, replace
from datetime import date
from pathlib import Path
from typing import Dict, Tuple, Type, Union
from uuid import uuid4

from budget_core.domain import (
    EXPENSE, INCOME, Budget, Category, Expense, FamilyMember, Income, MemberProfile,
    Snapshot, Tithe, TitheGoal, Transaction, transaction_kind,
)
from budget_core.filters import as_date

RECORD_TYPES: Dict[str, Type] = {
    "expenses": Expense,
    "incomes": Income,
    "budgets": Budget,
    "tithes": Tithe,
    "tithe_goals": TitheGoal,
    "expense_categories": Category,
    "income_categories": Category,
}

KINDS = tuple(RECORD_TYPES)

_TRANSACTION_COLLECTIONS = {EXPENSE: "expenses", INCOME: "incomes"}


def collection_for(t: Transaction) -> str:
    """Record kind a transaction is stored under."""
    return _TRANSACTION_COLLECTIONS[transaction_kind(t)]


def new_id() -> str:
    return uuid4().hex


def add_record(records: Tuple, record, first: bool = False) -> Tuple:
    # transactions are listed newest first, so callers may prepend
    return (record,) + records if first else records + (record,)


def replace_record(records: Tuple, record) -> Tuple:
    return tuple(record if r.id == record.id else r for r in records)


def remove_record(records: Tuple, record_id: str) -> Tuple:
    return tuple(r for r in records if r.id != record_id)


def record_to_dict(record) -> dict:
    data = asdict(record)
    data.pop("kind", None)
    for key, value in data.items():
        if isinstance(value, date):
            data[key] = value.isoformat()
    return data


def record_from_dict(kind: str, data: dict):
    cls = RECORD_TYPES[kind]
    allowed = {f.name for f in fields(cls) if f.init}
    values = {k: v for k, v in data.items() if k in allowed}
    if "date" in values:
        values["date"] = as_date(values["date"])
    if "amount" in values:
        values["amount"] = float(values["amount"])
    if "target_percentage" in values:
        values["target_percentage"] = float(values["target_percentage"])
    return cls(**values)


def member_to_dict(member: FamilyMember) -> dict:
    return asdict(member)


def member_from_dict(data: dict) -> FamilyMember:
    profile = data.get("profile") or {}
    return FamilyMember(
        id=data["id"],
        family_id=data["family_id"],
        user_id=data["user_id"],
        role=data["role"],
        nickname=data["nickname"],
        profile=MemberProfile(name=profile.get("name", ""), email=profile.get("email", "")),
        created_by=data.get("created_by"),
    )


def snapshot_replace(snapshot: Snapshot, kind: str, records: Tuple) -> Snapshot:
    return replace(snapshot, **{kind: records})


def load_seed(path: Union[str, Path], user_id: str) -> Dict[str, Tuple]:
    """Read demo records from a JSON seed file, stamping transactions with ``user_id``."""
    with open(path, "r", encoding="utf-8") as f:
        data = json.load(f)

    seed: Dict[str, Tuple] = {}
    for kind in KINDS:
        rows = data.get(kind, [])
        if kind in ("expenses", "incomes"):
            rows = [{**row, "user_id": user_id} for row in rows]
        seed[kind] = tuple(record_from_dict(kind, {**row, "id": row.get("id") or new_id()}) for row in rows)
    return seed

"""Application state: the current snapshot plus the mutations that change it.

The store owns the only mutable reference to the user's records.  Every
write goes through the injected :class:`~budget_core.storage.StoragePort`
first; the in-memory snapshot is only replaced once the backend accepted
the change, and a failed write is re-raised to the caller.
"""

import asyncio
import logging
from dataclasses import replace
from datetime import date
from typing import Callable, Dict, List, Optional

from budget_core.categories import DEFAULT_EXPENSE_CATEGORIES, DEFAULT_INCOME_CATEGORIES
from budget_core.domain import (
    PERSONAL, Budget, Category, CurrentUser, Expense, Income, Snapshot, Tithe,
    TitheGoal,
)
from budget_core.errors import BudgetAppError, StorageError, ValidationError
from budget_core.events import (
    BUDGET_ALERT, RECORD_CREATED, RECORD_DELETED, RECORD_UPDATED, EventBus,
    budget_alert_handler,
)
from budget_core.loading import load_snapshot
from budget_core.storage import StoragePort
from budget_core.transforms import (
    KINDS, add_record, new_id, remove_record, replace_record, snapshot_replace,
)
from budget_core.validation import (
    validate_budget, validate_category, validate_expense, validate_income,
    validate_tithe, validate_tithe_goal,
)

logger = logging.getLogger(__name__)

_VALIDATORS: Dict[str, Callable] = {
    "expenses": validate_expense,
    "incomes": validate_income,
    "budgets": validate_budget,
    "tithes": validate_tithe,
    "tithe_goals": validate_tithe_goal,
    "expense_categories": validate_category,
    "income_categories": validate_category,
}

# dated collections are shown newest first
_PREPEND = ("expenses", "incomes", "tithes")

_DEFAULT_CATEGORIES = {
    "expense_categories": DEFAULT_EXPENSE_CATEGORIES,
    "income_categories": DEFAULT_INCOME_CATEGORIES,
}


class AppStore:

    def __init__(self, storage: StoragePort, user: CurrentUser, bus: Optional[EventBus] = None):
        self.storage = storage
        self.user = user
        self.bus = bus or EventBus()
        self.snapshot = Snapshot()
        self.loading = False
        self.error: Optional[str] = None
        self.alerts: List[dict] = []
        self.bus.subscribe(RECORD_CREATED, budget_alert_handler)
        self.bus.subscribe(RECORD_UPDATED, budget_alert_handler)

    # -- loading -----------------------------------------------------------

    async def aload(self) -> Snapshot:
        self.loading = True
        self.error = None
        try:
            snapshot = await load_snapshot(self.storage, self.user.id)
            snapshot = self._with_default_categories(snapshot)
        except BudgetAppError as e:
            self.error = f"Could not load data: {e}"
            logger.warning("Loading records for %s failed: %s", self.user.id, e)
            raise
        finally:
            self.loading = False
        self.snapshot = snapshot
        return snapshot

    def load(self) -> Snapshot:
        return asyncio.run(self.aload())

    def _with_default_categories(self, snapshot: Snapshot) -> Snapshot:
        for kind, defaults in _DEFAULT_CATEGORIES.items():
            if getattr(snapshot, kind):
                continue
            seeded = tuple(replace(cat, id=new_id()) for cat in defaults)
            self._create_all(kind, seeded)
            logger.info("Seeded %d default %s for %s", len(seeded), kind, self.user.id)
            snapshot = snapshot_replace(snapshot, kind, seeded)
        return snapshot

    def _create_all(self, kind: str, records) -> None:
        """Write ``records`` as one unit; on failure the ones already written are removed."""
        written = []
        try:
            for record in records:
                self.storage.create(kind, self.user.id, record)
                written.append(record)
        except StorageError:
            for record in written:
                try:
                    self.storage.delete(kind, self.user.id, record.id)
                except StorageError as e:
                    logger.warning("Could not roll back %s %s: %s", kind, record.id, e)
            raise

    # -- generic mutations -------------------------------------------------

    def _validated(self, kind: str, record):
        if kind not in KINDS:
            raise StorageError(f"unknown record kind: {kind}")
        result = _VALIDATORS[kind](record)
        if result.is_left():
            raise ValidationError(result.get_error())
        return result.get_or_else(record)

    def _write(self, action: str, kind: str, fn: Callable[[], None]) -> None:
        try:
            fn()
        except StorageError as e:
            self.error = f"Could not {action} {kind}: {e}"
            logger.warning(self.error)
            raise
        self.error = None

    def _publish(self, name: str, kind: str, record) -> None:
        payload = {"kind": kind, "record": record, "snapshot": self.snapshot}
        for result in self.bus.publish(name, payload):
            if result and "alert" in result:
                self.alerts.append(result)
                self.bus.publish(BUDGET_ALERT, result)

    def create(self, kind: str, record):
        record = self._validated(kind, record)
        self._write("create", kind, lambda: self.storage.create(kind, self.user.id, record))
        records = add_record(getattr(self.snapshot, kind), record, first=kind in _PREPEND)
        self.snapshot = snapshot_replace(self.snapshot, kind, records)
        self._publish(RECORD_CREATED, kind, record)
        return record

    def update(self, kind: str, record):
        """Full replace of the record carrying ``record.id``."""
        record = self._validated(kind, record)
        self._write("update", kind, lambda: self.storage.update(kind, self.user.id, record))
        records = replace_record(getattr(self.snapshot, kind), record)
        self.snapshot = snapshot_replace(self.snapshot, kind, records)
        self._publish(RECORD_UPDATED, kind, record)
        return record

    def delete(self, kind: str, record_id: str) -> None:
        if kind not in KINDS:
            raise StorageError(f"unknown record kind: {kind}")
        self._write("delete", kind, lambda: self.storage.delete(kind, self.user.id, record_id))
        records = remove_record(getattr(self.snapshot, kind), record_id)
        self.snapshot = snapshot_replace(self.snapshot, kind, records)
        self.bus.publish(RECORD_DELETED, {"kind": kind, "record_id": record_id})

    def import_records(self, records: Dict[str, tuple]) -> int:
        """Create every record in ``records`` (kind -> records); returns the count."""
        count = 0
        for kind, items in records.items():
            for record in items:
                self.create(kind, record)
                count += 1
        logger.info("Imported %d records for %s", count, self.user.id)
        return count

    def pop_alerts(self) -> List[dict]:
        alerts, self.alerts = self.alerts, []
        return alerts

    # -- record constructors -----------------------------------------------

    def add_expense(self, title: str, amount: float, category: str, when: date,
                    paid_by: str = PERSONAL, description: str = "") -> Expense:
        return self.create("expenses", Expense(
            id=new_id(), title=title, amount=amount, category=category, date=when,
            paid_by=paid_by, user_id=self.user.id, description=description,
        ))

    def add_income(self, title: str, amount: float, category: str, when: date,
                   earned_by: str = PERSONAL, description: str = "") -> Income:
        return self.create("incomes", Income(
            id=new_id(), title=title, amount=amount, category=category, date=when,
            earned_by=earned_by, user_id=self.user.id, description=description,
        ))

    def add_budget(self, category: str, amount: float, period: str = "monthly") -> Budget:
        return self.create("budgets", Budget(id=new_id(), category=category, amount=amount, period=period))

    def add_tithe(self, amount: float, when: date, recipient: str, description: str = "") -> Tithe:
        return self.create("tithes", Tithe(
            id=new_id(), amount=amount, date=when, recipient=recipient, description=description,
        ))

    def set_tithe_goal(self, target_percentage: float, period: str = "monthly") -> TitheGoal:
        """Replace any active goal with a new one; only one goal is active at a time.

        The new goal is written before the old ones are removed, so a failed
        write leaves the previous goal in place.
        """
        previous = [g for g in self.snapshot.tithe_goals if g.is_active]
        goal = self.create("tithe_goals", TitheGoal(
            id=new_id(), target_percentage=target_percentage, period=period, is_active=True,
        ))
        for old in previous:
            self.delete("tithe_goals", old.id)
        return goal

    def add_category(self, kind: str, name: str, color: str, icon: str) -> Category:
        if kind not in _DEFAULT_CATEGORIES:
            raise ValueError(f"not a category collection: {kind}")
        return self.create(kind, Category(id=new_id(), name=name, color=color, icon=icon))

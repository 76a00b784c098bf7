from datetime import datetime
from typing import Callable, Dict, List, NamedTuple

from budget_core.aggregation import budget_status

__all__ = [
    'Event', 'EventBus', 'RECORD_CREATED', 'RECORD_UPDATED', 'RECORD_DELETED',
    'BUDGET_ALERT', 'budget_alert_handler',
]


class Event(NamedTuple):
    name: str
    ts: str
    payload: dict


Handler = Callable[[Event, dict], dict]


class EventBus:
    def __init__(self):
        self._subscribers: Dict[str, List[Handler]] = {}

    def subscribe(self, name: str, handler: Handler) -> None:
        self._subscribers.setdefault(name, []).append(handler)

    def unsubscribe(self, name: str, handler: Handler) -> None:
        handlers = self._subscribers.get(name, [])
        if handler in handlers:
            handlers.remove(handler)

    def publish(self, name: str, payload: dict) -> List[dict]:
        handlers = list(self._subscribers.get(name, ()))
        if not handlers:
            return []
        event = Event(name=name, ts=datetime.now().isoformat(), payload=payload)
        return [handler(event, payload) for handler in handlers]


RECORD_CREATED = "RECORD_CREATED"
RECORD_UPDATED = "RECORD_UPDATED"
RECORD_DELETED = "RECORD_DELETED"
BUDGET_ALERT = "BUDGET_ALERT"


def budget_alert_handler(event: Event, payload: dict) -> dict:
    """Flag the budget a new or edited expense pushed over its cap.

    payload: kind, record, snapshot (after the write).
    """
    if payload.get("kind") != "expenses":
        return {}
    record = payload["record"]
    snapshot = payload["snapshot"]
    matching = [b for b in snapshot.budgets if b.category == record.category]
    for status in budget_status(snapshot.expenses, matching):
        if status.is_over_budget:
            return {
                "alert": f"Budget exceeded for {record.category}: "
                         f"{status.spent:.2f} / {status.budget.amount:.2f}",
                "category": record.category,
                "spent": status.spent,
                "limit": status.budget.amount,
            }
    return {}

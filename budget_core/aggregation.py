"""Pure aggregations over record collections.

Every function takes the collections it needs as arguments and returns a
fresh value; none of them read application state or care about input order.
"""

from collections import defaultdict
from dataclasses import dataclass
from datetime import date, timedelta
from typing import Dict, Iterable, Iterator, Optional, Sequence, Tuple

from budget_core.domain import HOUSEHOLD, PERSONAL, Budget, Expense, TitheGoal
from budget_core.filters import apply_filters, by_date_range, in_month, in_year, previous_month

WARNING_THRESHOLD = 80.0


def total(records: Iterable) -> float:
    return sum((r.amount for r in records), 0.0)


def by_category(records: Iterable) -> Dict[str, float]:
    totals: Dict[str, float] = defaultdict(float)
    for r in records:
        totals[r.category] += r.amount
    return dict(totals)


def top_categories(records: Iterable, k: int) -> Iterator[Tuple[str, float]]:
    # sorted() is stable, so ties keep first-seen order
    ordered = sorted(by_category(records).items(), key=lambda item: item[1], reverse=True)
    for name, amount in ordered[: max(0, k)]:
        yield name, amount


def category_shares(records: Iterable) -> Tuple[Tuple[str, float, float], ...]:
    """(name, amount, percent of total) rows, largest first."""
    totals = by_category(records)
    grand = sum(totals.values())
    rows = sorted(totals.items(), key=lambda item: item[1], reverse=True)
    return tuple(
        (name, amount, (amount / grand) * 100 if grand > 0 else 0.0)
        for name, amount in rows
    )


def by_classification(records: Iterable) -> Dict[str, float]:
    sums = {"personal": 0.0, "household": 0.0}
    for r in records:
        if r.classification == PERSONAL:
            sums["personal"] += r.amount
        elif r.classification == HOUSEHOLD:
            sums["household"] += r.amount
    return sums


def net_balance(incomes: Iterable, expenses: Iterable) -> float:
    return total(incomes) - total(expenses)


def average_per_transaction(records: Sequence) -> float:
    records = tuple(records)
    if not records:
        return 0.0
    return total(records) / len(records)


def _bar(value: float, peak: float) -> float:
    return (value / peak) * 100 if peak > 0 else 0.0


def _comparison(incomes: Sequence, expenses: Sequence) -> dict:
    inc, exp = total(incomes), total(expenses)
    peak = max(inc, exp)
    return {
        "income": inc,
        "expenses": exp,
        "balance": inc - exp,
        "income_bar": _bar(inc, peak),
        "expense_bar": _bar(exp, peak),
    }


def period_summary(incomes: Sequence, expenses: Sequence, month: int, year: int) -> dict:
    """Monthly and yearly income/expense comparison for the given month."""
    return {
        "monthly": _comparison(
            apply_filters(incomes, in_month(month, year)),
            apply_filters(expenses, in_month(month, year)),
        ),
        "yearly": _comparison(
            apply_filters(incomes, in_year(year)),
            apply_filters(expenses, in_year(year)),
        ),
    }


def month_over_month(expenses: Sequence, month: int, year: int) -> dict:
    pm, py = previous_month(month, year)
    current = total(apply_filters(expenses, in_month(month, year)))
    previous = total(apply_filters(expenses, in_month(pm, py)))
    change = current - previous
    return {
        "current": current,
        "previous": previous,
        "change": change,
        "change_percent": (change / previous) * 100 if previous > 0 else 0.0,
    }


@dataclass(frozen=True)
class BudgetStatus:
    budget: Budget
    spent: float
    remaining: float
    percentage: Optional[float]       # clamped to 100 for progress bars
    raw_percentage: Optional[float]
    is_over_budget: bool

    @property
    def level(self) -> str:
        if self.is_over_budget:
            return "over"
        if self.percentage is not None and self.percentage > WARNING_THRESHOLD:
            return "warning"
        return "ok"


def period_window(period: str, as_of: date) -> Tuple[date, date]:
    if period == "weekly":
        start = as_of - timedelta(days=as_of.weekday())
        return start, start + timedelta(days=6)
    if period == "monthly":
        start = as_of.replace(day=1)
        nm, ny = (1, start.year + 1) if start.month == 12 else (start.month + 1, start.year)
        return start, date(ny, nm, 1) - timedelta(days=1)
    if period == "yearly":
        return date(as_of.year, 1, 1), date(as_of.year, 12, 31)
    raise ValueError(f"unknown budget period: {period}")


def _status(budget: Budget, spent: float) -> BudgetStatus:
    if budget.amount > 0:
        raw = (spent / budget.amount) * 100
        pct: Optional[float] = min(raw, 100.0)
    else:
        raw = pct = None
    return BudgetStatus(
        budget=budget,
        spent=spent,
        remaining=budget.amount - spent,
        percentage=pct,
        raw_percentage=raw,
        is_over_budget=spent > budget.amount,
    )


def budget_status(
    expenses: Sequence[Expense],
    budgets: Iterable[Budget],
    as_of: Optional[date] = None,
) -> Tuple[BudgetStatus, ...]:
    """Spent/remaining/percentage per budget.

    Without ``as_of`` every matching expense counts, whatever its date.  With
    ``as_of`` only expenses inside the budget's current period window count.
    """
    if as_of is None:
        totals = by_category(expenses)
        return tuple(_status(b, totals.get(b.category, 0.0)) for b in budgets)

    statuses = []
    for b in budgets:
        start, end = period_window(b.period, as_of)
        scoped = by_category(apply_filters(expenses, by_date_range(start, end)))
        statuses.append(_status(b, scoped.get(b.category, 0.0)))
    return tuple(statuses)


def tithe_giving_percentage(tithes: Iterable, expenses: Iterable = (), incomes: Iterable = (),
                            basis: str = "expenses") -> float:
    if basis == "expenses":
        denominator = total(expenses)
    elif basis == "income":
        denominator = total(incomes)
    else:
        raise ValueError(f"unknown giving basis: {basis}")
    if denominator <= 0:
        return 0.0
    return (total(tithes) / denominator) * 100


def active_goal(goals: Iterable[TitheGoal]) -> Optional[TitheGoal]:
    return next((g for g in goals if g.is_active), None)


def goal_progress(current_percentage: float, goal: Optional[TitheGoal]) -> float:
    if goal is None or goal.target_percentage <= 0:
        return 0.0
    return (current_percentage / goal.target_percentage) * 100


def goal_level(progress: float) -> str:
    if progress >= 100:
        return "reached"
    if progress >= 80:
        return "close"
    return "progress"

from dataclasses import dataclass, field
from datetime import date
from typing import Any, Callable, Dict, Sequence

from budget_core import aggregation as agg
from budget_core.domain import HOUSEHOLD, PERSONAL, Snapshot
from budget_core.filters import apply_filters, by_classification, in_month
from budget_core.functional import compose, pipe


@dataclass(frozen=True)
class ReportContext:
    today: date = field(default_factory=date.today)
    # False keeps all-history spending per budget, True scopes to the budget's period
    scope_budgets_to_period: bool = False
    giving_basis: str = "expenses"
    top_n: int = 5


Calculator = Callable[[Snapshot, ReportContext, Dict[str, Any]], Dict[str, Any]]


def _month_total(ctx: ReportContext) -> Callable[[Sequence], float]:
    month = in_month(ctx.today.month, ctx.today.year)
    return compose(agg.total, lambda records: apply_filters(records, month))


def statistics(snapshot: Snapshot, ctx: ReportContext, acc: Dict[str, Any]) -> Dict[str, Any]:
    exp, inc = snapshot.expenses, snapshot.incomes
    month_total = _month_total(ctx)
    return {
        "total_expenses": agg.total(exp),
        "total_income": agg.total(inc),
        "net_income": agg.net_balance(inc, exp),
        "average_per_transaction": agg.average_per_transaction(exp),
        "current_month_expenses": month_total(exp),
        "current_month_income": month_total(inc),
        "month_over_month": agg.month_over_month(exp, ctx.today.month, ctx.today.year),
        "top_expense_categories": pipe(exp, agg.category_shares, lambda rows: rows[: ctx.top_n]),
        "top_income_categories": pipe(inc, agg.category_shares, lambda rows: rows[: ctx.top_n]),
    }


def household(snapshot: Snapshot, ctx: ReportContext, acc: Dict[str, Any]) -> Dict[str, Any]:
    views = {}
    for label, value in (("household", HOUSEHOLD), ("personal", PERSONAL)):
        exp = apply_filters(snapshot.expenses, by_classification(value))
        inc = apply_filters(snapshot.incomes, by_classification(value))
        views[label] = {
            "expenses": exp,
            "incomes": inc,
            "total_expenses": agg.total(exp),
            "total_income": agg.total(inc),
            "balance": agg.net_balance(inc, exp),
        }
    return {"household": views["household"], "personal": views["personal"]}


def periods(snapshot: Snapshot, ctx: ReportContext, acc: Dict[str, Any]) -> Dict[str, Any]:
    return {"periods": agg.period_summary(snapshot.incomes, snapshot.expenses, ctx.today.month, ctx.today.year)}


def budgets(snapshot: Snapshot, ctx: ReportContext, acc: Dict[str, Any]) -> Dict[str, Any]:
    as_of = ctx.today if ctx.scope_budgets_to_period else None
    statuses = agg.budget_status(snapshot.expenses, snapshot.budgets, as_of=as_of)
    return {
        "budget_status": statuses,
        "over_budget": tuple(s for s in statuses if s.is_over_budget),
    }


def tithes(snapshot: Snapshot, ctx: ReportContext, acc: Dict[str, Any]) -> Dict[str, Any]:
    giving = agg.tithe_giving_percentage(
        snapshot.tithes, snapshot.expenses, snapshot.incomes, basis=ctx.giving_basis,
    )
    goal = agg.active_goal(snapshot.tithe_goals)
    progress = agg.goal_progress(giving, goal)
    return {
        "total_tithes": agg.total(snapshot.tithes),
        "current_month_tithes": _month_total(ctx)(snapshot.tithes),
        "giving_percentage": giving,
        "active_goal": goal,
        "goal_progress": progress,
        "goal_level": agg.goal_level(progress) if goal else None,
    }


DEFAULT_CALCULATORS: Sequence[Calculator] = (statistics, household, periods, budgets, tithes)


class ReportService:
    """Runs calculators in order over one snapshot and merges their output.

    Each calculator sees the merged output of the ones before it, so later
    steps may build on earlier figures.
    """

    def __init__(self, calculators: Sequence[Calculator] = DEFAULT_CALCULATORS):
        self.calculators = calculators

    def build(self, snapshot: Snapshot, ctx: ReportContext = None) -> Dict[str, Any]:
        ctx = ctx or ReportContext()
        report = {"as_of": ctx.today, "steps": [], "result": {}}
        acc: Dict[str, Any] = {}
        for calc in self.calculators:
            out = calc(snapshot, ctx, acc)
            report["steps"].append({"calculator": getattr(calc, "__name__", str(calc)), "keys": sorted(out)})
            acc.update(out)
        report["result"] = acc
        return report

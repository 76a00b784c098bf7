from datetime import date

import pytest

from budget_core.domain import Budget, Expense, Income, Snapshot, Tithe, TitheGoal
from budget_core.services import DEFAULT_CALCULATORS, ReportContext, ReportService


def make_exp(id, category, amount, ts, paid_by="user"):
    return Expense(id=id, title=id, amount=amount, category=category,
                   date=date.fromisoformat(ts), paid_by=paid_by, user_id="u1")


def make_inc(id, amount, ts, earned_by="user"):
    return Income(id=id, title=id, amount=amount, category="Salary",
                  date=date.fromisoformat(ts), earned_by=earned_by, user_id="u1")


SNAPSHOT = Snapshot(
    expenses=(
        make_exp("e1", "Food & Dining", 100, "2024-03-02", paid_by="household"),
        make_exp("e2", "Food & Dining", 50, "2024-03-10"),
        make_exp("e3", "Transportation", 30, "2024-02-20"),
    ),
    incomes=(
        make_inc("i1", 500, "2024-03-01"),
        make_inc("i2", 280, "2024-03-01", earned_by="household"),
    ),
    budgets=(Budget(id="b1", category="Food & Dining", amount=120),),
    tithes=(Tithe(id="t1", amount=18, date=date(2024, 3, 3), recipient="Church"),),
    tithe_goals=(TitheGoal(id="g1", target_percentage=10),),
)

CTX = ReportContext(today=date(2024, 3, 20))


def test_report_steps_and_as_of():
    rpt = ReportService().build(SNAPSHOT, CTX)
    assert rpt["as_of"] == date(2024, 3, 20)
    assert [s["calculator"] for s in rpt["steps"]] == [c.__name__ for c in DEFAULT_CALCULATORS]
    assert "total_expenses" in rpt["steps"][0]["keys"]


def test_statistics():
    res = ReportService().build(SNAPSHOT, CTX)["result"]
    assert res["total_expenses"] == 180
    assert res["total_income"] == 780
    assert res["net_income"] == 600
    assert res["current_month_expenses"] == 150
    assert res["current_month_income"] == 780
    assert res["month_over_month"]["previous"] == 30
    assert res["top_expense_categories"][0][:2] == ("Food & Dining", 150)


def test_household_and_personal_views():
    res = ReportService().build(SNAPSHOT, CTX)["result"]
    assert res["household"]["total_expenses"] == 100
    assert res["household"]["total_income"] == 280
    assert res["household"]["balance"] == 180
    assert res["personal"]["total_expenses"] == 80
    assert [e.id for e in res["personal"]["expenses"]] == ["e2", "e3"]


def test_budgets_and_tithes():
    res = ReportService().build(SNAPSHOT, CTX)["result"]
    (status,) = res["budget_status"]
    assert status.spent == 150
    assert status.remaining == -30
    assert res["over_budget"] == (status,)
    assert res["giving_percentage"] == pytest.approx(10.0)
    assert res["goal_progress"] == pytest.approx(100.0)
    assert res["goal_level"] == "reached"
    assert res["current_month_tithes"] == 18


def test_budget_scope_and_giving_basis_options():
    ctx = ReportContext(today=date(2024, 4, 2), scope_budgets_to_period=True, giving_basis="income")
    res = ReportService().build(SNAPSHOT, ctx)["result"]
    assert res["budget_status"][0].spent == 0
    assert res["over_budget"] == ()
    assert res["giving_percentage"] == pytest.approx(18 / 780 * 100)


def test_empty_snapshot():
    res = ReportService().build(Snapshot(), CTX)["result"]
    assert res["total_expenses"] == 0
    assert res["average_per_transaction"] == 0
    assert res["active_goal"] is None
    assert res["goal_level"] is None


def test_custom_calculators_see_earlier_output():
    def expenses_only(snapshot, ctx, acc):
        return {"n": len(snapshot.expenses)}

    def doubled(snapshot, ctx, acc):
        return {"double": acc["n"] * 2}

    rpt = ReportService([expenses_only, doubled]).build(SNAPSHOT, CTX)
    assert rpt["result"] == {"n": 3, "double": 6}
    assert rpt["steps"][1] == {"calculator": "doubled", "keys": ["double"]}

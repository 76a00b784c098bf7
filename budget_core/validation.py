from datetime import date

from budget_core.domain import (
    CLASSIFICATIONS, PERIODS, ROLES, Budget, Category, Expense, FamilyMember,
    Income, Tithe, TitheGoal,
)
from budget_core.functional import Either, Left, Right


def _error(code: str, message: str, **context) -> Left:
    return Left({"error": code, "message": message, **context})


def _check_amount(record) -> Either[dict, object]:
    amount = record.amount
    if isinstance(amount, bool) or not isinstance(amount, (int, float)):
        return _error("invalid_amount", f"Amount must be a number, got {amount!r}", amount=amount)
    if amount <= 0:
        return _error("invalid_amount", f"Amount must be greater than zero, got {amount}", amount=amount)
    return Right(record)


def _check_required(record, *fields: str) -> Either[dict, object]:
    for name in fields:
        if not str(getattr(record, name) or "").strip():
            return _error("missing_field", f"Field '{name}' is required", field=name)
    return Right(record)


def _check_date(record) -> Either[dict, object]:
    if not isinstance(record.date, date):
        return _error("invalid_date", f"Invalid date: {record.date!r}", date=record.date)
    return Right(record)


def _check_choice(record, name: str, allowed) -> Either[dict, object]:
    value = getattr(record, name)
    if value not in allowed:
        return _error(f"invalid_{name}", f"{name} must be one of {', '.join(allowed)}, got {value!r}",
                      field=name, value=value)
    return Right(record)


def validate_expense(e: Expense) -> Either[dict, Expense]:
    return (
        _check_required(e, "title", "category", "user_id")
        .bind(_check_amount)
        .bind(_check_date)
        .bind(lambda r: _check_choice(r, "paid_by", CLASSIFICATIONS))
    )


def validate_income(i: Income) -> Either[dict, Income]:
    return (
        _check_required(i, "title", "category", "user_id")
        .bind(_check_amount)
        .bind(_check_date)
        .bind(lambda r: _check_choice(r, "earned_by", CLASSIFICATIONS))
    )


def validate_budget(b: Budget) -> Either[dict, Budget]:
    # zero caps are rejected here so budget percentages always have a divisor
    return (
        _check_required(b, "category")
        .bind(_check_amount)
        .bind(lambda r: _check_choice(r, "period", PERIODS))
    )


def validate_tithe(t: Tithe) -> Either[dict, Tithe]:
    return _check_required(t, "recipient").bind(_check_amount).bind(_check_date)


def validate_tithe_goal(g: TitheGoal) -> Either[dict, TitheGoal]:
    pct = g.target_percentage
    if isinstance(pct, bool) or not isinstance(pct, (int, float)) or not 0 < pct <= 100:
        return _error("invalid_percentage", f"Target percentage must be in (0, 100], got {pct!r}",
                      target_percentage=pct)
    return _check_choice(g, "period", PERIODS)


def validate_category(c: Category) -> Either[dict, Category]:
    return _check_required(c, "name", "color", "icon")


def validate_family_member(m: FamilyMember) -> Either[dict, FamilyMember]:
    return (
        _check_required(m, "family_id", "user_id", "nickname")
        .bind(lambda r: _check_choice(r, "role", ROLES))
        .bind(lambda r: _check_required(r.profile, "name", "email").map(lambda _: r))
    )

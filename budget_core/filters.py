from datetime import date, datetime
from typing import Callable, Iterable, Tuple, Union

from budget_core.domain import Transaction

DateLike = Union[date, str]


def as_date(value: DateLike) -> date:
    """Coerce a ``YYYY-MM-DD`` string (or datetime) to a calendar date."""
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    return datetime.strptime(value[:10], "%Y-%m-%d").date()


def by_date_range(start: DateLike, end: DateLike):
    lo, hi = as_date(start), as_date(end)

    def _filter(r) -> bool:
        return lo <= r.date <= hi

    return _filter


def in_month(month: int, year: int):
    def _filter(r) -> bool:
        return r.date.month == month and r.date.year == year

    return _filter


def in_year(year: int):
    def _filter(r) -> bool:
        return r.date.year == year

    return _filter


def by_classification(value: str):
    def _filter(t: Transaction) -> bool:
        return t.classification == value

    return _filter


def by_member(user_id: str):
    def _filter(t: Transaction) -> bool:
        return t.user_id == user_id

    return _filter


def by_category(name: str):
    def _filter(r) -> bool:
        return r.category == name

    return _filter


def matching_text(term: str):
    needle = term.strip().lower()

    def _filter(t: Transaction) -> bool:
        if not needle:
            return True
        return needle in t.title.lower() or needle in (t.description or "").lower()

    return _filter


def apply_filters(records: Iterable, *predicates: Callable[..., bool]) -> Tuple:
    return tuple(r for r in records if all(p(r) for p in predicates))


_SORT_KEYS = {
    "date": (lambda t: t.date, True),
    "amount": (lambda t: t.amount, True),
    "title": (lambda t: t.title.lower(), False),
}


def sort_transactions(records: Iterable[Transaction], by: str = "date") -> Tuple[Transaction, ...]:
    if by not in _SORT_KEYS:
        raise ValueError(f"unknown sort key: {by}")
    key, reverse = _SORT_KEYS[by]
    return tuple(sorted(records, key=key, reverse=reverse))


def previous_month(month: int, year: int) -> Tuple[int, int]:
    if month == 1:
        return 12, year - 1
    return month - 1, year

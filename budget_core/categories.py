"""Category defaults and name-based lookup.

Transactions reference their category by *name*, not by id.  Build a
:class:`CategoryIndex` once per computation pass and resolve names through
it; names with no matching category fall back to a neutral gray and the
generic ``MoreHorizontal`` icon.
"""

from typing import Dict, Iterable, Tuple

from budget_core.domain import Category
from budget_core.functional import Maybe

FALLBACK_COLOR = "#6b7280"
FALLBACK_ICON = "MoreHorizontal"

ICONS = (
    "Utensils", "Car", "ShoppingBag", "GameController2", "Heart",
    "GraduationCap", "Receipt", "Plane", "Briefcase", "Laptop", "Building2",
    "TrendingUp", "Home", "Gift", "RotateCcw", "Shield", FALLBACK_ICON,
)

DEFAULT_EXPENSE_CATEGORIES: Tuple[Category, ...] = (
    Category("1", "Food & Dining", "#ef4444", "Utensils"),
    Category("2", "Transportation", "#3b82f6", "Car"),
    Category("3", "Shopping", "#8b5cf6", "ShoppingBag"),
    Category("4", "Entertainment", "#f59e0b", "GameController2"),
    Category("5", "Health & Fitness", "#10b981", "Heart"),
    Category("6", "Education", "#06b6d4", "GraduationCap"),
    Category("7", "Bills & Utilities", "#84cc16", "Receipt"),
    Category("8", "Travel", "#f97316", "Plane"),
    Category("9", "Other", FALLBACK_COLOR, FALLBACK_ICON),
)

DEFAULT_INCOME_CATEGORIES: Tuple[Category, ...] = (
    Category("1", "Salary", "#10b981", "Briefcase"),
    Category("2", "Freelance", "#3b82f6", "Laptop"),
    Category("3", "Business", "#8b5cf6", "Building2"),
    Category("4", "Investments", "#f59e0b", "TrendingUp"),
    Category("5", "Rental", "#ef4444", "Home"),
    Category("6", "Bonus", "#06b6d4", "Gift"),
    Category("7", "Refund", "#84cc16", "RotateCcw"),
    Category("8", "Pension", "#f97316", "Shield"),
    Category("9", "Other", FALLBACK_COLOR, FALLBACK_ICON),
)


class CategoryIndex:

    def __init__(self, categories: Iterable[Category]):
        self._by_name: Dict[str, Category] = {}
        for cat in categories:
            # first one wins when names repeat
            self._by_name.setdefault(cat.name, cat)

    def __contains__(self, name: str) -> bool:
        return name in self._by_name

    def __len__(self) -> int:
        return len(self._by_name)

    def names(self) -> Tuple[str, ...]:
        return tuple(self._by_name)

    def find(self, name: str) -> Maybe[Category]:
        return Maybe.of(self._by_name.get(name))

    def color(self, name: str) -> str:
        return self.find(name).map(lambda c: c.color).get_or_else(FALLBACK_COLOR)

    def icon(self, name: str) -> str:
        return self.find(name).map(lambda c: c.icon).get_or_else(FALLBACK_ICON)

    def resolve(self, name: str) -> Category:
        """Return the named category, or a synthetic fallback carrying ``name``."""
        return self.find(name).get_or_else(
            Category(id="", name=name, color=FALLBACK_COLOR, icon=FALLBACK_ICON)
        )

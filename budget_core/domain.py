from dataclasses import dataclass, field
from datetime import date
from typing import Optional, Union

PERSONAL = "user"
HOUSEHOLD = "household"
CLASSIFICATIONS = (PERSONAL, HOUSEHOLD)

PERIODS = ("weekly", "monthly", "yearly")

ADMIN = "admin"
MEMBER = "user"
ROLES = (ADMIN, MEMBER)

EXPENSE = "expense"
INCOME = "income"


@dataclass(frozen=True)
class Expense:
    id: str
    title: str
    amount: float
    category: str      # category name, resolved through CategoryIndex
    date: date
    paid_by: str       # "user" or "household"
    user_id: str       # owner
    description: str = ""
    kind: str = field(default=EXPENSE, init=False)

    @property
    def classification(self) -> str:
        return self.paid_by


@dataclass(frozen=True)
class Income:
    id: str
    title: str
    amount: float
    category: str
    date: date
    earned_by: str
    user_id: str
    description: str = ""
    kind: str = field(default=INCOME, init=False)

    @property
    def classification(self) -> str:
        return self.earned_by


Transaction = Union[Expense, Income]


def transaction_kind(t: Transaction) -> str:
    if isinstance(t, Expense):
        return EXPENSE
    if isinstance(t, Income):
        return INCOME
    raise TypeError(f"not a transaction: {type(t).__name__}")


@dataclass(frozen=True)
class Budget:
    id: str
    category: str
    amount: float      # cap for the period
    period: str = "monthly"


@dataclass(frozen=True)
class Tithe:
    id: str
    amount: float
    date: date
    recipient: str
    description: str = ""


@dataclass(frozen=True)
class TitheGoal:
    id: str
    target_percentage: float
    period: str = "monthly"
    is_active: bool = True


@dataclass(frozen=True)
class Category:
    id: str
    name: str
    color: str   # hex, e.g. "#ef4444"
    icon: str    # symbolic icon name


@dataclass(frozen=True)
class MemberProfile:
    name: str
    email: str


@dataclass(frozen=True)
class FamilyMember:
    id: str
    family_id: str
    user_id: str
    role: str
    nickname: str
    profile: MemberProfile
    created_by: Optional[str] = None

    @property
    def is_admin(self) -> bool:
        return self.role == ADMIN


@dataclass(frozen=True)
class CurrentUser:
    """Identity handed to the core by the authentication provider."""
    id: str
    name: str
    email: str
    role: str = MEMBER
    family_id: Optional[str] = None

    @property
    def is_admin(self) -> bool:
        return self.role == ADMIN


@dataclass(frozen=True)
class Snapshot:
    expenses: tuple = ()
    incomes: tuple = ()
    budgets: tuple = ()
    tithes: tuple = ()
    tithe_goals: tuple = ()
    expense_categories: tuple = ()
    income_categories: tuple = ()

"""
Core Data Models for Financely

These models define the strict schemas for the household snapshot and
everything inside it. They are designed to:
1. Enforce type safety at runtime
2. Keep money as integer paise everywhere
3. Be serializable for every store backend
4. Make whole-collection replacement the only way to change a snapshot

DESIGN DECISION: The Household is an aggregate root. Stores load and save
it; the ledger never patches single rows. A HouseholdUpdate names the
collections being replaced and `Household.apply_update` produces the new
snapshot, re-validating the whole thing.
"""

from datetime import date, datetime
from enum import Enum
from typing import Optional
from uuid import uuid4

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    model_validator,
)


MAX_DESCRIPTION_LENGTH = 500


def new_id(prefix: str) -> str:
    """Generate a fresh entity id such as 'exp-6f1c...'."""
    return f"{prefix}-{uuid4()}"


# =============================================================================
# ENUMS - Finite set of valid values
# =============================================================================

class NotificationSeverity(str, Enum):
    """Severity of a household notification."""
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    SUCCESS = "success"


class SubscriptionFrequency(str, Enum):
    """How often a subscription is charged."""
    WEEKLY = "weekly"
    MONTHLY = "monthly"
    YEARLY = "yearly"


# =============================================================================
# REFERENCE DATA
# =============================================================================

class Member(BaseModel):
    """A household member. Created at setup, immutable afterwards."""
    model_config = ConfigDict(str_strip_whitespace=True, frozen=True)

    id: str = Field(..., min_length=1)
    name: str = Field(..., min_length=1, max_length=100)
    avatar_url: str = Field(default="")


class Category(BaseModel):
    """Spending category. Referenced by id everywhere else."""
    model_config = ConfigDict(str_strip_whitespace=True, frozen=True)

    id: str = Field(..., min_length=1)
    name: str = Field(..., min_length=1, max_length=100)
    icon: str = Field(default="")


class Rule(BaseModel):
    """
    Keyword categorization rule.

    Rules are evaluated in list order; the first keyword found
    (case-insensitively) inside a description wins.
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    id: str = Field(default_factory=lambda: new_id("rule"))
    keyword: str = Field(..., min_length=1, max_length=100)
    category_id: str


# =============================================================================
# EXPENSES
# =============================================================================

class Split(BaseModel):
    """One member's share of one expense, in paise."""

    member_id: str
    amount: int = Field(..., ge=0, description="Share in paise")


class Expense(BaseModel):
    """
    A recorded expense.

    For newly authored expenses sum(splits) == amount. Imported or legacy
    rows may have splits totalling less than the amount, so the model
    itself only checks what every stored row satisfies.
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    id: str = Field(default_factory=lambda: new_id("exp"))
    description: str = Field(..., min_length=1, max_length=MAX_DESCRIPTION_LENGTH)
    amount: int = Field(..., ge=0, description="Total in paise")
    date: date
    member_id: str = Field(..., description="Payer")
    category_id: str
    splits: list[Split] = Field(default_factory=list)

    @property
    def split_total(self) -> int:
        return sum(split.amount for split in self.splits)

    @property
    def is_fully_split(self) -> bool:
        return self.split_total == self.amount


class ExpenseDraft(BaseModel):
    """
    An expense as entered by a user or proposed by an import.

    PROPOSED data, NOT verified. Deliberately loose: the ExpenseValidator
    reports every problem at once instead of pydantic failing on the first.
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    description: str = ""
    amount: int = 0
    date: date
    member_id: str
    category_id: str
    splits: list[Split] = Field(default_factory=list)
    imported: bool = Field(
        default=False,
        description="Came from a statement/receipt import rather than manual entry"
    )


# =============================================================================
# PLANNING
# =============================================================================

class Budget(BaseModel):
    """Monthly spending ceiling for one category."""

    id: str = Field(default_factory=lambda: new_id("bud"))
    category_id: str
    amount: int = Field(..., ge=0, description="Monthly ceiling in paise")


class BucketGoal(BaseModel):
    """A named savings target."""
    model_config = ConfigDict(str_strip_whitespace=True)

    id: str = Field(default_factory=lambda: new_id("goal"))
    name: str = Field(..., min_length=1, max_length=200)
    target_amount: int = Field(..., ge=0)
    current_amount: int = Field(default=0, ge=0)

    @property
    def progress(self) -> float:
        """Fraction of the target saved (0 when there is no target)."""
        if self.target_amount <= 0:
            return 0.0
        return self.current_amount / self.target_amount


class Trip(BaseModel):
    """A trip with its own budget and its own expense list."""
    model_config = ConfigDict(str_strip_whitespace=True)

    id: str = Field(default_factory=lambda: new_id("trip"))
    name: str = Field(..., min_length=1, max_length=200)
    start_date: date
    end_date: date
    budget: int = Field(..., ge=0)
    expenses: list[Expense] = Field(default_factory=list)

    @model_validator(mode='after')
    def validate_dates(self) -> 'Trip':
        if self.end_date < self.start_date:
            raise ValueError("Trip end date cannot be before start date")
        return self


class Subscription(BaseModel):
    """A recurring payment."""
    model_config = ConfigDict(str_strip_whitespace=True)

    id: str = Field(default_factory=lambda: new_id("sub"))
    description: str = Field(..., min_length=1, max_length=200)
    amount: int = Field(..., ge=0)
    frequency: SubscriptionFrequency
    next_due_date: date
    category_id: str


class Notification(BaseModel):
    """
    Entry in the household notification log.

    Append-only: after creation only `is_read` ever changes.
    """

    id: str = Field(default_factory=lambda: new_id("notif"))
    message: str = Field(..., min_length=1)
    timestamp: datetime = Field(default_factory=datetime.utcnow)
    severity: NotificationSeverity = NotificationSeverity.INFO
    is_read: bool = False


# =============================================================================
# AGGREGATE ROOT
# =============================================================================

class HouseholdUpdate(BaseModel):
    """
    Partial, whole-collection replacement of a household.

    Every field that is not None replaces the corresponding collection or
    setting in full. Replacing `budgets` replaces the whole list, never a
    single row.
    """

    rules: Optional[list[Rule]] = None
    expenses: Optional[list[Expense]] = None
    budgets: Optional[list[Budget]] = None
    bucket_goals: Optional[list[BucketGoal]] = None
    trips: Optional[list[Trip]] = None
    subscriptions: Optional[list[Subscription]] = None
    notifications: Optional[list[Notification]] = None
    monthly_income: Optional[int] = Field(default=None, ge=0)
    email_alerts_enabled: Optional[bool] = None

    @property
    def changed_fields(self) -> list[str]:
        return [
            name for name in type(self).model_fields
            if getattr(self, name) is not None
        ]

    @property
    def is_empty(self) -> bool:
        return not self.changed_fields


class Household(BaseModel):
    """
    The full household snapshot.

    Single instance per deployment. Members and categories are reference
    data; everything else is replaced through HouseholdUpdate.
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    id: str = Field(default="hh-1")
    name: str = Field(default="My Household", max_length=200)
    members: list[Member] = Field(default_factory=list)
    categories: list[Category] = Field(default_factory=list)
    rules: list[Rule] = Field(default_factory=list)
    expenses: list[Expense] = Field(default_factory=list)
    budgets: list[Budget] = Field(default_factory=list)
    bucket_goals: list[BucketGoal] = Field(default_factory=list)
    trips: list[Trip] = Field(default_factory=list)
    subscriptions: list[Subscription] = Field(default_factory=list)
    notifications: list[Notification] = Field(default_factory=list)
    email_alerts_enabled: bool = True
    monthly_income: int = Field(default=0, ge=0)

    @model_validator(mode='after')
    def validate_uniqueness(self) -> 'Household':
        """At most one budget per category; ids unique within reference data."""
        budget_categories = [b.category_id for b in self.budgets]
        if len(budget_categories) != len(set(budget_categories)):
            raise ValueError("Only one budget per category is allowed")

        member_ids = [m.id for m in self.members]
        if len(member_ids) != len(set(member_ids)):
            raise ValueError("Member ids must be unique")

        category_ids = [c.id for c in self.categories]
        if len(category_ids) != len(set(category_ids)):
            raise ValueError("Category ids must be unique")

        return self

    # -- lookups ------------------------------------------------------------

    def get_member(self, member_id: str) -> Optional[Member]:
        return next((m for m in self.members if m.id == member_id), None)

    def get_category(self, category_id: str) -> Optional[Category]:
        return next((c for c in self.categories if c.id == category_id), None)

    def find_category_by_name(self, name: str) -> Optional[Category]:
        """Case-insensitive category lookup by display name."""
        wanted = name.strip().lower()
        return next(
            (c for c in self.categories if c.name.lower() == wanted),
            None,
        )

    def budget_for(self, category_id: str) -> Optional[Budget]:
        return next((b for b in self.budgets if b.category_id == category_id), None)

    def get_goal(self, goal_id: str) -> Optional[BucketGoal]:
        return next((g for g in self.bucket_goals if g.id == goal_id), None)

    def default_category_id(self, name: str = "Other") -> Optional[str]:
        """The fallback category: `name` if present, else the first category."""
        category = self.find_category_by_name(name)
        if category:
            return category.id
        return self.categories[0].id if self.categories else None

    @property
    def unread_count(self) -> int:
        return sum(1 for n in self.notifications if not n.is_read)

    # -- updates ------------------------------------------------------------

    def apply_update(self, update: HouseholdUpdate) -> 'Household':
        """Return a new, re-validated snapshot with the update's fields replaced."""
        data = self.model_dump()
        for name in update.changed_fields:
            value = getattr(update, name)
            if isinstance(value, list):
                data[name] = [item.model_dump() for item in value]
            else:
                data[name] = value
        return Household.model_validate(data)

"""
Demo household used to seed an empty store.

Expense and subscription dates are relative to `today` so a fresh install
always has something in the current and previous month to look at.
"""

from datetime import date, datetime, timedelta
from typing import Optional

from dateutil.relativedelta import relativedelta

from financely.models.household import (
    BucketGoal,
    Budget,
    Category,
    Expense,
    Household,
    Member,
    Notification,
    NotificationSeverity,
    Rule,
    Split,
    Subscription,
    SubscriptionFrequency,
    Trip,
)


def _expense(
    expense_id: str,
    description: str,
    amount: int,
    on: date,
    payer: str,
    category_id: str,
    splits: list[tuple[str, int]],
) -> Expense:
    return Expense(
        id=expense_id,
        description=description,
        amount=amount,
        date=on,
        member_id=payer,
        category_id=category_id,
        splits=[Split(member_id=m, amount=a) for m, a in splits],
    )


def build_demo_household(today: Optional[date] = None) -> Household:
    """Build the two-member demo household."""
    today = today or date.today()
    now = datetime.combine(today, datetime.min.time())
    last_month = today - relativedelta(months=1)
    two_months_ago = today - relativedelta(months=2)

    return Household(
        id="hh-1",
        name="The Sharma Household",
        members=[
            Member(id="mem-1", name="Rohan", avatar_url="https://i.pravatar.cc/150?u=rohan"),
            Member(id="mem-2", name="Priya", avatar_url="https://i.pravatar.cc/150?u=priya"),
        ],
        categories=[
            Category(id="cat-1", name="Groceries", icon="🛒"),
            Category(id="cat-2", name="Utilities", icon="💡"),
            Category(id="cat-3", name="Dining Out", icon="🍔"),
            Category(id="cat-4", name="Transport", icon="🚗"),
            Category(id="cat-5", name="Entertainment", icon="🎬"),
            Category(id="cat-6", name="Shopping", icon="🛍️"),
            Category(id="cat-7", name="Health", icon="❤️"),
            Category(id="cat-8", name="Other", icon="❓"),
        ],
        rules=[
            Rule(id="rule-1", keyword="zomato", category_id="cat-3"),
            Rule(id="rule-2", keyword="swiggy", category_id="cat-3"),
            Rule(id="rule-3", keyword="bigbasket", category_id="cat-1"),
            Rule(id="rule-4", keyword="uber", category_id="cat-4"),
            Rule(id="rule-5", keyword="ola", category_id="cat-4"),
        ],
        expenses=[
            _expense("exp-1", "Weekly groceries", 350000, today - timedelta(days=2),
                     "mem-1", "cat-1", [("mem-1", 175000), ("mem-2", 175000)]),
            _expense("exp-2", "Electricity Bill", 220000, today - timedelta(days=5),
                     "mem-2", "cat-2", [("mem-1", 110000), ("mem-2", 110000)]),
            _expense("exp-3", "Dinner with friends", 250000, today - timedelta(days=1),
                     "mem-1", "cat-3", [("mem-1", 250000)]),
            _expense("exp-4", "Fuel for car", 300000, today - timedelta(days=3),
                     "mem-1", "cat-4", [("mem-1", 300000)]),
            _expense("exp-5", "Movie tickets", 90000, today - timedelta(days=10),
                     "mem-2", "cat-5", [("mem-2", 90000)]),
            _expense("exp-6", "Netflix", 64900, last_month,
                     "mem-2", "cat-5", [("mem-1", 32450), ("mem-2", 32450)]),
            _expense("exp-7", "Netflix", 64900, two_months_ago,
                     "mem-2", "cat-5", [("mem-2", 64900)]),
            _expense("exp-8", "Gym Membership", 200000, last_month,
                     "mem-1", "cat-7", [("mem-1", 200000)]),
        ],
        budgets=[
            Budget(id="bud-1", category_id="cat-1", amount=2000000),
            Budget(id="bud-2", category_id="cat-2", amount=1000000),
            Budget(id="bud-3", category_id="cat-3", amount=1500000),
            Budget(id="bud-4", category_id="cat-4", amount=800000),
        ],
        bucket_goals=[
            BucketGoal(id="goal-1", name="Goa Vacation", target_amount=7500000, current_amount=1500000),
            BucketGoal(id="goal-2", name="New Laptop", target_amount=12000000, current_amount=8000000),
        ],
        trips=[
            Trip(
                id="trip-1",
                name="Manali Weekend",
                start_date=date(2024, 8, 15),
                end_date=date(2024, 8, 18),
                budget=3000000,
                expenses=[
                    _expense("texp-1", "Hotel", 1500000, date(2024, 8, 15),
                             "mem-1", "cat-4", [("mem-1", 1500000)]),
                    _expense("texp-2", "Food", 800000, date(2024, 8, 16),
                             "mem-2", "cat-3", [("mem-2", 800000)]),
                ],
            ),
        ],
        subscriptions=[
            Subscription(id="sub-1", description="Netflix Subscription", amount=64900,
                         frequency=SubscriptionFrequency.MONTHLY,
                         next_due_date=today + timedelta(days=10), category_id="cat-5"),
            Subscription(id="sub-2", description="Gym Membership", amount=200000,
                         frequency=SubscriptionFrequency.MONTHLY,
                         next_due_date=today + timedelta(days=2), category_id="cat-7"),
        ],
        notifications=[
            Notification(id="notif-1",
                         message="You are close to your Dining Out budget for this month.",
                         timestamp=now - timedelta(days=1),
                         severity=NotificationSeverity.WARNING, is_read=False),
            Notification(id="notif-2",
                         message="Welcome to Financely! Add your first expense to get started.",
                         timestamp=now - timedelta(days=10),
                         severity=NotificationSeverity.INFO, is_read=True),
        ],
        email_alerts_enabled=True,
        monthly_income=8000000,
    )

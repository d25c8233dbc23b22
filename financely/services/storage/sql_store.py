"""
SQL Storage Implementation (SQLAlchemy)

DESIGN DECISION: SQLite through SQLAlchemy is the default backend because:
1. Zero setup for a single household on one machine
2. Real transactions: a save replaces several collections atomically
3. Foreign keys and ON DELETE CASCADE keep splits tied to their expense
4. Any SQLAlchemy URL works if the household outgrows a file

Every list keeps a `position` column so a snapshot loads back in exactly
the order it was saved (rule order matters: first match wins).
"""

from datetime import date, datetime
from typing import Any, Iterable, Optional

from sqlalchemy import (
    JSON,
    Boolean,
    Date,
    DateTime,
    ForeignKey,
    Integer,
    String,
    Text,
    create_engine,
    delete,
    event,
    select,
)
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import (
    DeclarativeBase,
    Mapped,
    Session,
    mapped_column,
    relationship,
    sessionmaker,
)
from sqlalchemy.pool import StaticPool

from financely.models.audit import AuditEvent, AuditEventType, AuditSeverity
from financely.models.household import (
    BucketGoal,
    Budget,
    Category,
    Expense,
    Household,
    HouseholdUpdate,
    Member,
    Notification,
    NotificationSeverity,
    Rule,
    Split,
    Subscription,
    SubscriptionFrequency,
    Trip,
)
from financely.services.storage.interface import (
    AuditStorageInterface,
    HouseholdStorageInterface,
    NotFoundError,
    StorageError,
    StoreConnectionError,
)
from financely.services.storage.seed import build_demo_household


class Base(DeclarativeBase):
    """Base class for all tables."""

    pass


class HouseholdRow(Base):
    __tablename__ = "household_settings"

    id: Mapped[str] = mapped_column(String(50), primary_key=True)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    email_alerts_enabled: Mapped[bool] = mapped_column(Boolean, default=True)
    monthly_income: Mapped[int] = mapped_column(Integer, default=0)


class MemberRow(Base):
    __tablename__ = "members"

    id: Mapped[str] = mapped_column(String(100), primary_key=True)
    position: Mapped[int] = mapped_column(Integer, nullable=False)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    avatar_url: Mapped[str] = mapped_column(String(500), default="")


class CategoryRow(Base):
    __tablename__ = "categories"

    id: Mapped[str] = mapped_column(String(100), primary_key=True)
    position: Mapped[int] = mapped_column(Integer, nullable=False)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    icon: Mapped[str] = mapped_column(String(20), default="")


class RuleRow(Base):
    __tablename__ = "rules"

    id: Mapped[str] = mapped_column(String(100), primary_key=True)
    position: Mapped[int] = mapped_column(Integer, nullable=False)
    keyword: Mapped[str] = mapped_column(String(100), nullable=False)
    category_id: Mapped[str] = mapped_column(ForeignKey("categories.id"), nullable=False)


class TripRow(Base):
    __tablename__ = "trips"

    id: Mapped[str] = mapped_column(String(100), primary_key=True)
    position: Mapped[int] = mapped_column(Integer, nullable=False)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    start_date: Mapped[date] = mapped_column(Date, nullable=False)
    end_date: Mapped[date] = mapped_column(Date, nullable=False)
    budget: Mapped[int] = mapped_column(Integer, nullable=False)

    expenses: Mapped[list["ExpenseRow"]] = relationship(
        back_populates="trip",
        cascade="all, delete-orphan",
        order_by="ExpenseRow.position",
        lazy="selectin",
    )


class ExpenseRow(Base):
    __tablename__ = "expenses"

    id: Mapped[str] = mapped_column(String(100), primary_key=True)
    position: Mapped[int] = mapped_column(Integer, nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    amount: Mapped[int] = mapped_column(Integer, nullable=False)
    spent_on: Mapped[date] = mapped_column("date", Date, nullable=False)
    member_id: Mapped[str] = mapped_column(ForeignKey("members.id"), nullable=False)
    category_id: Mapped[str] = mapped_column(ForeignKey("categories.id"), nullable=False)
    trip_id: Mapped[Optional[str]] = mapped_column(
        ForeignKey("trips.id", ondelete="CASCADE"), nullable=True, index=True
    )

    trip: Mapped[Optional[TripRow]] = relationship(back_populates="expenses")
    splits: Mapped[list["SplitRow"]] = relationship(
        back_populates="expense",
        cascade="all, delete-orphan",
        order_by="SplitRow.position",
        lazy="selectin",
    )


class SplitRow(Base):
    __tablename__ = "expense_splits"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    expense_id: Mapped[str] = mapped_column(
        ForeignKey("expenses.id", ondelete="CASCADE"), nullable=False, index=True
    )
    position: Mapped[int] = mapped_column(Integer, nullable=False)
    member_id: Mapped[str] = mapped_column(ForeignKey("members.id"), nullable=False)
    amount: Mapped[int] = mapped_column(Integer, nullable=False)

    expense: Mapped[ExpenseRow] = relationship(back_populates="splits")


class BudgetRow(Base):
    __tablename__ = "budgets"

    id: Mapped[str] = mapped_column(String(100), primary_key=True)
    position: Mapped[int] = mapped_column(Integer, nullable=False)
    category_id: Mapped[str] = mapped_column(
        ForeignKey("categories.id"), unique=True, nullable=False
    )
    amount: Mapped[int] = mapped_column(Integer, nullable=False)


class BucketGoalRow(Base):
    __tablename__ = "bucket_goals"

    id: Mapped[str] = mapped_column(String(100), primary_key=True)
    position: Mapped[int] = mapped_column(Integer, nullable=False)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    target_amount: Mapped[int] = mapped_column(Integer, nullable=False)
    current_amount: Mapped[int] = mapped_column(Integer, nullable=False)


class SubscriptionRow(Base):
    __tablename__ = "subscriptions"

    id: Mapped[str] = mapped_column(String(100), primary_key=True)
    position: Mapped[int] = mapped_column(Integer, nullable=False)
    description: Mapped[str] = mapped_column(String(200), nullable=False)
    amount: Mapped[int] = mapped_column(Integer, nullable=False)
    frequency: Mapped[str] = mapped_column(String(20), nullable=False)
    next_due_date: Mapped[date] = mapped_column(Date, nullable=False)
    category_id: Mapped[str] = mapped_column(ForeignKey("categories.id"), nullable=False)


class NotificationRow(Base):
    __tablename__ = "notifications"

    id: Mapped[str] = mapped_column(String(100), primary_key=True)
    position: Mapped[int] = mapped_column(Integer, nullable=False)
    message: Mapped[str] = mapped_column(Text, nullable=False)
    timestamp: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    severity: Mapped[str] = mapped_column(String(20), nullable=False)
    is_read: Mapped[bool] = mapped_column(Boolean, default=False)


class AuditEventRow(Base):
    __tablename__ = "audit_events"

    event_id: Mapped[str] = mapped_column(String(36), primary_key=True)
    timestamp: Mapped[datetime] = mapped_column(DateTime, nullable=False, index=True)
    event_type: Mapped[str] = mapped_column(String(50), nullable=False)
    severity: Mapped[str] = mapped_column(String(20), nullable=False)
    entity_type: Mapped[Optional[str]] = mapped_column(String(50))
    entity_id: Mapped[Optional[str]] = mapped_column(String(100))
    correlation_id: Mapped[Optional[str]] = mapped_column(String(36))
    description: Mapped[str] = mapped_column(String(500), nullable=False)
    details: Mapped[Optional[dict]] = mapped_column(JSON)
    error_message: Mapped[Optional[str]] = mapped_column(Text)
    is_user_action: Mapped[bool] = mapped_column(Boolean, default=False)


def _expense_to_row(expense: Expense, position: int, trip_id: Optional[str] = None) -> ExpenseRow:
    return ExpenseRow(
        id=expense.id,
        position=position,
        description=expense.description,
        amount=expense.amount,
        spent_on=expense.date,
        member_id=expense.member_id,
        category_id=expense.category_id,
        trip_id=trip_id,
        splits=[
            SplitRow(position=i, member_id=split.member_id, amount=split.amount)
            for i, split in enumerate(expense.splits)
        ],
    )


def _row_to_expense(row: ExpenseRow) -> Expense:
    return Expense(
        id=row.id,
        description=row.description,
        amount=row.amount,
        date=row.spent_on,
        member_id=row.member_id,
        category_id=row.category_id,
        splits=[Split(member_id=s.member_id, amount=s.amount) for s in row.splits],
    )


class SQLHouseholdStorage(HouseholdStorageInterface, AuditStorageInterface):
    """
    SQLAlchemy implementation of household and audit storage.

    One transaction per save(); a failure rolls every collection back.
    """

    def __init__(
        self,
        database_url: str = "sqlite:///financely.db",
        household_id: str = "hh-1",
        seed_household: Optional[Household] = None,
        seed_demo_data: bool = True,
        echo: bool = False,
    ):
        self._database_url = database_url
        self._household_id = household_id
        self._seed_household = seed_household
        self._seed_demo_data = seed_demo_data
        self._echo = echo
        self._engine = None
        self._session_factory: Optional[sessionmaker] = None

    # -- lifecycle ----------------------------------------------------------

    async def open(self) -> None:
        """Create the schema and seed an empty database."""
        if self._engine is not None:
            return

        is_sqlite = self._database_url.startswith("sqlite")
        engine_kwargs: dict[str, Any] = {"echo": self._echo}
        if is_sqlite:
            engine_kwargs["connect_args"] = {"check_same_thread": False}
            if self._database_url in ("sqlite://", "sqlite:///:memory:"):
                # One shared connection, otherwise every session sees a new empty DB
                engine_kwargs["poolclass"] = StaticPool

        try:
            engine = create_engine(self._database_url, **engine_kwargs)
            if is_sqlite:
                event.listen(engine, "connect", _set_sqlite_pragma)
            Base.metadata.create_all(bind=engine)
        except SQLAlchemyError as e:
            raise StoreConnectionError(f"Failed to open database: {e}") from e

        self._engine = engine
        self._session_factory = sessionmaker(bind=engine, expire_on_commit=False)

        try:
            with self._session_factory() as session, session.begin():
                if session.get(HouseholdRow, self._household_id) is None:
                    household = self._seed_household
                    if household is None:
                        household = (
                            build_demo_household()
                            if self._seed_demo_data
                            else Household(id=self._household_id)
                        )
                    self._insert_household(session, household)
        except SQLAlchemyError as e:
            raise StorageError(f"Failed to seed database: {e}") from e

    async def close(self) -> None:
        if self._engine is not None:
            self._engine.dispose()
        self._engine = None
        self._session_factory = None

    def _session(self) -> Session:
        if self._session_factory is None:
            raise StorageError("Store is not open")
        return self._session_factory()

    # -- household ----------------------------------------------------------

    async def load(self) -> Household:
        """Load the full snapshot."""
        try:
            with self._session() as session:
                settings_row = session.get(HouseholdRow, self._household_id)
                if settings_row is None:
                    raise NotFoundError(f"Household not found: {self._household_id}")

                members = session.scalars(select(MemberRow).order_by(MemberRow.position))
                categories = session.scalars(select(CategoryRow).order_by(CategoryRow.position))
                rules = session.scalars(select(RuleRow).order_by(RuleRow.position))
                expenses = session.scalars(
                    select(ExpenseRow)
                    .where(ExpenseRow.trip_id.is_(None))
                    .order_by(ExpenseRow.position)
                )
                budgets = session.scalars(select(BudgetRow).order_by(BudgetRow.position))
                goals = session.scalars(select(BucketGoalRow).order_by(BucketGoalRow.position))
                trips = session.scalars(select(TripRow).order_by(TripRow.position))
                subscriptions = session.scalars(
                    select(SubscriptionRow).order_by(SubscriptionRow.position)
                )
                notifications = session.scalars(
                    select(NotificationRow).order_by(NotificationRow.position)
                )

                return Household(
                    id=settings_row.id,
                    name=settings_row.name,
                    email_alerts_enabled=settings_row.email_alerts_enabled,
                    monthly_income=settings_row.monthly_income,
                    members=[
                        Member(id=r.id, name=r.name, avatar_url=r.avatar_url) for r in members
                    ],
                    categories=[
                        Category(id=r.id, name=r.name, icon=r.icon) for r in categories
                    ],
                    rules=[
                        Rule(id=r.id, keyword=r.keyword, category_id=r.category_id) for r in rules
                    ],
                    expenses=[_row_to_expense(r) for r in expenses],
                    budgets=[
                        Budget(id=r.id, category_id=r.category_id, amount=r.amount) for r in budgets
                    ],
                    bucket_goals=[
                        BucketGoal(
                            id=r.id,
                            name=r.name,
                            target_amount=r.target_amount,
                            current_amount=r.current_amount,
                        )
                        for r in goals
                    ],
                    trips=[
                        Trip(
                            id=r.id,
                            name=r.name,
                            start_date=r.start_date,
                            end_date=r.end_date,
                            budget=r.budget,
                            expenses=[_row_to_expense(e) for e in r.expenses],
                        )
                        for r in trips
                    ],
                    subscriptions=[
                        Subscription(
                            id=r.id,
                            description=r.description,
                            amount=r.amount,
                            frequency=SubscriptionFrequency(r.frequency),
                            next_due_date=r.next_due_date,
                            category_id=r.category_id,
                        )
                        for r in subscriptions
                    ],
                    notifications=[
                        Notification(
                            id=r.id,
                            message=r.message,
                            timestamp=r.timestamp,
                            severity=NotificationSeverity(r.severity),
                            is_read=r.is_read,
                        )
                        for r in notifications
                    ],
                )
        except StorageError:
            raise
        except (SQLAlchemyError, ValueError) as e:
            raise StorageError(f"Failed to load household: {e}") from e

    async def save(self, update: HouseholdUpdate) -> bool:
        """Replace the named collections inside one transaction."""
        try:
            with self._session() as session, session.begin():
                settings_row = session.get(HouseholdRow, self._household_id)
                if settings_row is None:
                    raise NotFoundError(f"Household not found: {self._household_id}")

                if update.monthly_income is not None:
                    settings_row.monthly_income = update.monthly_income
                if update.email_alerts_enabled is not None:
                    settings_row.email_alerts_enabled = update.email_alerts_enabled

                if update.rules is not None:
                    session.execute(delete(RuleRow))
                    session.add_all(self._rule_rows(update.rules))

                if update.budgets is not None:
                    session.execute(delete(BudgetRow))
                    session.add_all(self._budget_rows(update.budgets))

                if update.bucket_goals is not None:
                    session.execute(delete(BucketGoalRow))
                    session.add_all(self._goal_rows(update.bucket_goals))

                if update.subscriptions is not None:
                    session.execute(delete(SubscriptionRow))
                    session.add_all(self._subscription_rows(update.subscriptions))

                if update.notifications is not None:
                    session.execute(delete(NotificationRow))
                    session.add_all(self._notification_rows(update.notifications))

                if update.expenses is not None:
                    # ORM deletes so the split cascade runs
                    for row in session.scalars(
                        select(ExpenseRow).where(ExpenseRow.trip_id.is_(None))
                    ):
                        session.delete(row)
                    session.flush()
                    session.add_all(
                        _expense_to_row(e, i) for i, e in enumerate(update.expenses)
                    )

                if update.trips is not None:
                    for row in session.scalars(select(TripRow)):
                        session.delete(row)
                    session.flush()
                    session.add_all(self._trip_rows(update.trips))
            return True
        except StorageError:
            raise
        except SQLAlchemyError as e:
            raise StorageError(f"Failed to save household: {e}") from e

    # -- row builders -------------------------------------------------------

    def _insert_household(self, session: Session, household: Household) -> None:
        session.add(HouseholdRow(
            id=household.id,
            name=household.name,
            email_alerts_enabled=household.email_alerts_enabled,
            monthly_income=household.monthly_income,
        ))
        session.add_all(
            MemberRow(id=m.id, position=i, name=m.name, avatar_url=m.avatar_url)
            for i, m in enumerate(household.members)
        )
        session.add_all(
            CategoryRow(id=c.id, position=i, name=c.name, icon=c.icon)
            for i, c in enumerate(household.categories)
        )
        session.flush()
        session.add_all(self._rule_rows(household.rules))
        session.add_all(_expense_to_row(e, i) for i, e in enumerate(household.expenses))
        session.add_all(self._budget_rows(household.budgets))
        session.add_all(self._goal_rows(household.bucket_goals))
        session.add_all(self._trip_rows(household.trips))
        session.add_all(self._subscription_rows(household.subscriptions))
        session.add_all(self._notification_rows(household.notifications))

    @staticmethod
    def _rule_rows(rules: Iterable[Rule]) -> list[RuleRow]:
        return [
            RuleRow(id=r.id, position=i, keyword=r.keyword, category_id=r.category_id)
            for i, r in enumerate(rules)
        ]

    @staticmethod
    def _budget_rows(budgets: Iterable[Budget]) -> list[BudgetRow]:
        return [
            BudgetRow(id=b.id, position=i, category_id=b.category_id, amount=b.amount)
            for i, b in enumerate(budgets)
        ]

    @staticmethod
    def _goal_rows(goals: Iterable[BucketGoal]) -> list[BucketGoalRow]:
        return [
            BucketGoalRow(
                id=g.id,
                position=i,
                name=g.name,
                target_amount=g.target_amount,
                current_amount=g.current_amount,
            )
            for i, g in enumerate(goals)
        ]

    @staticmethod
    def _trip_rows(trips: Iterable[Trip]) -> list[TripRow]:
        return [
            TripRow(
                id=t.id,
                position=i,
                name=t.name,
                start_date=t.start_date,
                end_date=t.end_date,
                budget=t.budget,
                expenses=[_expense_to_row(e, j, trip_id=t.id) for j, e in enumerate(t.expenses)],
            )
            for i, t in enumerate(trips)
        ]

    @staticmethod
    def _subscription_rows(subscriptions: Iterable[Subscription]) -> list[SubscriptionRow]:
        return [
            SubscriptionRow(
                id=s.id,
                position=i,
                description=s.description,
                amount=s.amount,
                frequency=s.frequency.value,
                next_due_date=s.next_due_date,
                category_id=s.category_id,
            )
            for i, s in enumerate(subscriptions)
        ]

    @staticmethod
    def _notification_rows(notifications: Iterable[Notification]) -> list[NotificationRow]:
        return [
            NotificationRow(
                id=n.id,
                position=i,
                message=n.message,
                timestamp=n.timestamp,
                severity=n.severity.value,
                is_read=n.is_read,
            )
            for i, n in enumerate(notifications)
        ]

    # -- audit --------------------------------------------------------------

    async def append_event(self, event: AuditEvent) -> bool:
        """Append an audit event. Never raises."""
        try:
            with self._session() as session, session.begin():
                session.add(AuditEventRow(
                    event_id=str(event.event_id),
                    timestamp=event.timestamp,
                    event_type=event.event_type.value,
                    severity=event.severity.value,
                    entity_type=event.entity_type,
                    entity_id=event.entity_id,
                    correlation_id=str(event.correlation_id) if event.correlation_id else None,
                    description=event.description,
                    details=event.details or None,
                    error_message=event.error_message,
                    is_user_action=event.is_user_action,
                ))
            return True
        except (SQLAlchemyError, StorageError):
            return False

    async def get_recent_events(self, limit: int = 100) -> list[AuditEvent]:
        try:
            with self._session() as session:
                rows = session.scalars(
                    select(AuditEventRow)
                    .order_by(AuditEventRow.timestamp.desc())
                    .limit(limit)
                )
                return [
                    AuditEvent(
                        event_id=r.event_id,
                        timestamp=r.timestamp,
                        event_type=AuditEventType(r.event_type),
                        severity=AuditSeverity(r.severity),
                        entity_type=r.entity_type,
                        entity_id=r.entity_id,
                        correlation_id=r.correlation_id,
                        description=r.description,
                        details=r.details or {},
                        error_message=r.error_message,
                        is_user_action=r.is_user_action,
                    )
                    for r in rows
                ]
        except SQLAlchemyError as e:
            raise StorageError(f"Failed to get audit events: {e}") from e


def _set_sqlite_pragma(dbapi_connection, connection_record):
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()

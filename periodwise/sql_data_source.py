from __future__ import annotations

from datetime import date, datetime, time
from decimal import Decimal
from typing import Iterable, List, Optional, Set

from sqlalchemy import (
    Boolean,
    Column,
    Date,
    DateTime,
    ForeignKey,
    Integer,
    MetaData,
    Numeric,
    String,
    Table,
    UniqueConstraint,
    func,
    select,
)
from sqlalchemy.engine import Connection

from periodwise.data_source import (
    Budget,
    Category,
    EnteredAmount,
    RolloverPolicy,
    RolloverSetting,
)
from periodwise.period_calculator import recurrence_from_fields
from periodwise.recurring_occurrences import ACTIVE_STATUS, RecurringItem

ZERO = Decimal("0")

metadata = MetaData()

budgets = Table(
    "budgets",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("workspace_id", Integer, nullable=False),
    Column("name", String(255), nullable=False),
    Column("anchor_day_1", Integer),
    Column("anchor_day_2", Integer),
    Column("interval_days", Integer),
    Column("anchor_date", Date),
    UniqueConstraint("workspace_id", "name", name="uq_budgets_workspace_name"),
)

accounts = Table(
    "accounts",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("workspace_id", Integer, nullable=False),
    Column("name", String(255), nullable=False),
    Column("balance", Numeric(19, 4), nullable=False, server_default="0"),
)

budget_accounts = Table(
    "budget_accounts",
    metadata,
    Column("budget_id", Integer, ForeignKey("budgets.id"), primary_key=True),
    Column("account_id", Integer, ForeignKey("accounts.id"), primary_key=True),
)

categories = Table(
    "categories",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("workspace_id", Integer, nullable=False),
    Column("parent_id", Integer, ForeignKey("categories.id")),
    Column("name", String(255), nullable=False),
    Column("display_order", Integer, nullable=False, server_default="0"),
    Column("is_income", Boolean, nullable=False, server_default="0"),
    Column("exclude_from_budget", Boolean, nullable=False, server_default="0"),
)

budget_period_entries = Table(
    "budget_period_entries",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("budget_id", Integer, ForeignKey("budgets.id"), nullable=False),
    Column("category_id", Integer, ForeignKey("categories.id"), nullable=False),
    Column("period_start", Date, nullable=False),
    Column("expected_amount", Numeric(19, 4), nullable=False),
    UniqueConstraint(
        "budget_id", "category_id", "period_start", name="uq_budget_period_entries"
    ),
)

budget_category_configs = Table(
    "budget_category_configs",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("budget_id", Integer, ForeignKey("budgets.id"), nullable=False),
    Column("category_id", Integer, ForeignKey("categories.id"), nullable=False),
    Column("rollover_type", String(20), nullable=False, server_default="NONE"),
    UniqueConstraint("budget_id", "category_id", name="uq_budget_category_configs"),
)

transactions = Table(
    "transactions",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("workspace_id", Integer, nullable=False),
    Column("account_id", Integer, ForeignKey("accounts.id"), nullable=False),
    Column("category_id", Integer, ForeignKey("categories.id")),
    Column("amount", Numeric(19, 4), nullable=False),
    Column("date", DateTime, nullable=False),
    Column("notes", String(500)),
)

recurring_items = Table(
    "recurring_items",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("workspace_id", Integer, nullable=False),
    Column("account_id", Integer, ForeignKey("accounts.id"), nullable=False),
    Column("category_id", Integer, ForeignKey("categories.id")),
    Column("amount", Numeric(19, 4), nullable=False),
    Column("frequency_granularity", String(10), nullable=False),
    Column("frequency_quantity", Integer, nullable=False, server_default="1"),
    Column("start_date", Date, nullable=False),
    Column("end_date", Date),
    Column("status", String(20), nullable=False, server_default=ACTIVE_STATUS),
)

recurring_item_anchor_dates = Table(
    "recurring_item_anchor_dates",
    metadata,
    Column("recurring_item_id", Integer, ForeignKey("recurring_items.id"), primary_key=True),
    Column("position", Integer, primary_key=True),
    Column("anchor_date", Date, nullable=False),
)


class SqlBudgetDataSource:
    """Budget data source backed by SQLAlchemy Core queries on one connection.

    The caller owns the connection (typically ``engine.begin()``) so that all
    reads made while building a view share the same transaction.
    """

    def __init__(self, conn: Connection) -> None:
        self._conn = conn

    def find_budget(self, workspace_id: object, budget_id: object) -> Optional[Budget]:
        row = self._conn.execute(
            select(budgets).where(
                budgets.c.id == budget_id,
                budgets.c.workspace_id == workspace_id,
            )
        ).mappings().first()
        if row is None:
            return None
        recurrence = None
        if row["anchor_day_1"] is not None or row["anchor_date"] is not None:
            recurrence = recurrence_from_fields(
                anchor_date=row["anchor_date"],
                interval_days=row["interval_days"],
                anchor_day_1=row["anchor_day_1"],
                anchor_day_2=row["anchor_day_2"],
            )
        return Budget(
            id=row["id"],
            workspace_id=row["workspace_id"],
            name=row["name"],
            recurrence=recurrence,
        )

    def find_categories(self, workspace_id: object) -> List[Category]:
        rows = self._conn.execute(
            select(categories)
            .where(categories.c.workspace_id == workspace_id)
            .order_by(categories.c.display_order.asc(), categories.c.id.asc())
        ).mappings().all()
        return [
            Category(
                id=row["id"],
                name=row["name"],
                parent_id=row["parent_id"],
                display_order=row["display_order"],
                is_income=bool(row["is_income"]),
                exclude_from_budget=bool(row["exclude_from_budget"]),
            )
            for row in rows
        ]

    def find_entered_amounts(self, budget_id: object, period_start: date) -> List[EnteredAmount]:
        rows = self._conn.execute(
            select(
                budget_period_entries.c.category_id,
                budget_period_entries.c.expected_amount,
            ).where(
                budget_period_entries.c.budget_id == budget_id,
                budget_period_entries.c.period_start == period_start,
            )
        ).mappings().all()
        return [
            EnteredAmount(
                category_id=row["category_id"],
                expected_amount=_coerce_amount(row["expected_amount"]),
            )
            for row in rows
        ]

    def find_entered_amount(
        self, budget_id: object, category_id: object, period_start: date
    ) -> Optional[Decimal]:
        amount = self._conn.execute(
            select(budget_period_entries.c.expected_amount).where(
                budget_period_entries.c.budget_id == budget_id,
                budget_period_entries.c.category_id == category_id,
                budget_period_entries.c.period_start == period_start,
            )
        ).scalar_one_or_none()
        if amount is None:
            return None
        return _coerce_amount(amount)

    def find_rollover_policies(self, budget_id: object) -> List[RolloverSetting]:
        rows = self._conn.execute(
            select(
                budget_category_configs.c.category_id,
                budget_category_configs.c.rollover_type,
            ).where(budget_category_configs.c.budget_id == budget_id)
        ).mappings().all()
        return [
            RolloverSetting(
                category_id=row["category_id"],
                policy=RolloverPolicy.parse(row["rollover_type"]),
            )
            for row in rows
        ]

    def sum_activity(
        self, budget_id: object, category_id: object, period_start: date, period_end: date
    ) -> Decimal:
        total = self._conn.execute(
            select(func.coalesce(func.sum(transactions.c.amount), 0))
            .select_from(
                transactions.join(
                    budget_accounts,
                    transactions.c.account_id == budget_accounts.c.account_id,
                )
            )
            .where(
                budget_accounts.c.budget_id == budget_id,
                transactions.c.category_id == category_id,
                transactions.c.date >= datetime.combine(period_start, time.min),
                transactions.c.date <= datetime.combine(period_end, time.max),
            )
        ).scalar_one()
        return _coerce_amount(total)

    def find_included_account_ids(self, budget_id: object) -> Set[object]:
        rows = self._conn.execute(
            select(budget_accounts.c.account_id).where(budget_accounts.c.budget_id == budget_id)
        ).scalars().all()
        return set(rows)

    def sum_account_balances(self, account_ids: Iterable[object]) -> Decimal:
        ids = list(account_ids)
        if not ids:
            return ZERO
        total = self._conn.execute(
            select(func.coalesce(func.sum(accounts.c.balance), 0)).where(accounts.c.id.in_(ids))
        ).scalar_one()
        return _coerce_amount(total)

    def find_active_recurring_items(self, workspace_id: object) -> List[RecurringItem]:
        rows = self._conn.execute(
            select(recurring_items)
            .where(
                recurring_items.c.workspace_id == workspace_id,
                func.lower(recurring_items.c.status) == ACTIVE_STATUS,
            )
            .order_by(recurring_items.c.id.asc())
        ).mappings().all()
        if not rows:
            return []

        anchor_rows = self._conn.execute(
            select(recurring_item_anchor_dates)
            .where(
                recurring_item_anchor_dates.c.recurring_item_id.in_([row["id"] for row in rows])
            )
            .order_by(
                recurring_item_anchor_dates.c.recurring_item_id.asc(),
                recurring_item_anchor_dates.c.position.asc(),
            )
        ).mappings().all()
        anchors_by_item: dict[int, list[date]] = {}
        for anchor in anchor_rows:
            anchors_by_item.setdefault(anchor["recurring_item_id"], []).append(
                anchor["anchor_date"]
            )

        return [
            RecurringItem(
                id=row["id"],
                account_id=row["account_id"],
                category_id=row["category_id"],
                amount=_coerce_amount(row["amount"]),
                frequency_granularity=row["frequency_granularity"],
                frequency_quantity=row["frequency_quantity"],
                anchor_dates=tuple(anchors_by_item.get(row["id"], [])),
                start_date=row["start_date"],
                end_date=row["end_date"],
                status=row["status"],
            )
            for row in rows
        ]


def _coerce_amount(amount) -> Decimal:
    if amount is None:
        return ZERO
    if isinstance(amount, Decimal):
        return amount
    return Decimal(str(amount))

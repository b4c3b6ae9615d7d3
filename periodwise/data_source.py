from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from enum import Enum
from typing import Iterable, List, Optional, Protocol, Set

from periodwise.period_calculator import RecurrenceConfig
from periodwise.recurring_occurrences import RecurringItem


class RolloverPolicy(str, Enum):
    NONE = "NONE"
    SAME_CATEGORY = "SAME_CATEGORY"
    AVAILABLE_POOL = "AVAILABLE_POOL"

    @classmethod
    def parse(cls, value: Optional[str]) -> "RolloverPolicy":
        if value is None:
            return cls.NONE
        return cls(value.strip().upper())


@dataclass(frozen=True)
class Budget:
    id: object
    workspace_id: object
    name: str
    recurrence: Optional[RecurrenceConfig] = None


@dataclass(frozen=True)
class Category:
    id: object
    name: str
    parent_id: Optional[object] = None
    display_order: int = 0
    is_income: bool = False
    exclude_from_budget: bool = False


@dataclass(frozen=True)
class EnteredAmount:
    category_id: object
    expected_amount: Decimal


@dataclass(frozen=True)
class RolloverSetting:
    category_id: object
    policy: RolloverPolicy


class BudgetDataSource(Protocol):
    """Read-only queries the period engine needs from persistence."""

    def find_budget(self, workspace_id: object, budget_id: object) -> Optional[Budget]:
        ...

    def find_categories(self, workspace_id: object) -> List[Category]:
        ...

    def find_entered_amounts(self, budget_id: object, period_start: date) -> List[EnteredAmount]:
        ...

    def find_entered_amount(
        self, budget_id: object, category_id: object, period_start: date
    ) -> Optional[Decimal]:
        ...

    def find_rollover_policies(self, budget_id: object) -> List[RolloverSetting]:
        ...

    def sum_activity(
        self, budget_id: object, category_id: object, period_start: date, period_end: date
    ) -> Decimal:
        ...

    def find_included_account_ids(self, budget_id: object) -> Set[object]:
        ...

    def sum_account_balances(self, account_ids: Iterable[object]) -> Decimal:
        ...

    def find_active_recurring_items(self, workspace_id: object) -> List[RecurringItem]:
        ...

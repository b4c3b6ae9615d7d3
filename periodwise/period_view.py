from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from typing import Callable, Dict, Iterable, List, Optional, Sequence, Tuple

import structlog

from periodwise.data_source import Budget, BudgetDataSource, Category, RolloverPolicy
from periodwise.errors import PeriodNotConfiguredError
from periodwise.period_calculator import (
    PeriodRange,
    RecurrenceConfig,
    compute_period,
    compute_period_by_offset,
)
from periodwise.recurring_occurrences import (
    RecurringItem,
    count_occurrences,
    expected_by_category,
)
from periodwise.rollover import MAX_ROLLOVER_DEPTH, RolloverResolver

logger = structlog.get_logger()

ZERO = Decimal("0")

OccurrenceCounter = Callable[[RecurringItem, date, date], int]


@dataclass(frozen=True)
class CategoryPeriodFacts:
    expected: Decimal = ZERO
    activity: Decimal = ZERO
    recurring_expected: Decimal = ZERO
    rolled_over: Decimal = ZERO

    def available(self, is_income: bool) -> Decimal:
        # Income activity is positive, so it reduces the headroom left to receive.
        if is_income:
            return self.expected + self.rolled_over - self.activity
        return self.expected + self.rolled_over + self.activity

    def __add__(self, other: "CategoryPeriodFacts") -> "CategoryPeriodFacts":
        return CategoryPeriodFacts(
            expected=self.expected + other.expected,
            activity=self.activity + other.activity,
            recurring_expected=self.recurring_expected + other.recurring_expected,
            rolled_over=self.rolled_over + other.rolled_over,
        )


@dataclass(frozen=True)
class CategoryNode:
    category_id: object
    name: str
    parent_id: Optional[object]
    display_order: int
    is_income: bool
    rollover_policy: RolloverPolicy
    facts: CategoryPeriodFacts
    available: Decimal
    children: Tuple["CategoryNode", ...] = ()

    @property
    def expected(self) -> Decimal:
        return self.facts.expected

    @property
    def activity(self) -> Decimal:
        return self.facts.activity

    @property
    def recurring_expected(self) -> Decimal:
        return self.facts.recurring_expected

    @property
    def rolled_over(self) -> Decimal:
        return self.facts.rolled_over


@dataclass(frozen=True)
class PeriodSection:
    expected: Decimal = ZERO
    activity: Decimal = ZERO
    available: Decimal = ZERO
    categories: Tuple[CategoryNode, ...] = field(default_factory=tuple)

    @classmethod
    def from_roots(cls, roots: Sequence[CategoryNode]) -> "PeriodSection":
        return cls(
            expected=sum((node.expected for node in roots), ZERO),
            activity=sum((node.activity for node in roots), ZERO),
            available=sum((node.available for node in roots), ZERO),
            categories=tuple(roots),
        )


@dataclass(frozen=True)
class PeriodSummary:
    period_start: date
    period_end: date
    budgetable: Decimal
    total_budgeted: Decimal
    left_to_budget: Decimal
    net_total_available: Decimal
    recurring_expected: Decimal
    available_pool: Decimal
    total_rolled_over: Decimal
    inflow: PeriodSection
    outflow: PeriodSection


class PeriodViewBuilder:
    def __init__(
        self,
        data_source: BudgetDataSource,
        occurrence_counter: OccurrenceCounter = count_occurrences,
        max_rollover_depth: int = MAX_ROLLOVER_DEPTH,
    ) -> None:
        self._data_source = data_source
        self._occurrence_counter = occurrence_counter
        self._max_rollover_depth = max_rollover_depth

    def view_for_offset(
        self, budget: Budget, offset: int, today: Optional[date] = None
    ) -> PeriodSummary:
        config = _require_recurrence(budget)
        return self.build_view(budget, compute_period_by_offset(config, offset, today))

    def view_for_date(self, budget: Budget, day: date) -> PeriodSummary:
        config = _require_recurrence(budget)
        return self.build_view(budget, compute_period(config, day))

    def build_view(self, budget: Budget, period: PeriodRange) -> PeriodSummary:
        config = _require_recurrence(budget)
        source = self._data_source

        categories = [
            category
            for category in source.find_categories(budget.workspace_id)
            if not category.exclude_from_budget
        ]
        expected_map = {
            entry.category_id: entry.expected_amount
            for entry in source.find_entered_amounts(budget.id, period.start)
        }
        policy_map = {
            setting.category_id: setting.policy
            for setting in source.find_rollover_policies(budget.id)
        }
        included_account_ids = source.find_included_account_ids(budget.id)
        recurring_map = expected_by_category(
            source.find_active_recurring_items(budget.workspace_id),
            period.start,
            period.end,
            included_account_ids,
            occurrence_counter=self._occurrence_counter,
        )
        resolver = RolloverResolver(source, budget.id, config, self._max_rollover_depth)

        by_id = {category.id: category for category in categories}
        children_by_parent: Dict[object, List[Category]] = {}
        roots: List[Category] = []
        for category in categories:
            if category.parent_id is not None and category.parent_id in by_id:
                children_by_parent.setdefault(category.parent_id, []).append(category)
            else:
                roots.append(category)

        def leaf_facts(category: Category) -> CategoryPeriodFacts:
            policy = policy_map.get(category.id, RolloverPolicy.NONE)
            return CategoryPeriodFacts(
                expected=expected_map.get(category.id, ZERO),
                activity=source.sum_activity(budget.id, category.id, period.start, period.end),
                recurring_expected=recurring_map.get(category.id, ZERO),
                rolled_over=resolver.resolve_rollover(category.id, policy, period),
            )

        def fold(category: Category) -> CategoryNode:
            policy = policy_map.get(category.id, RolloverPolicy.NONE)
            children = tuple(
                fold(child) for child in _ordered(children_by_parent.get(category.id, ()))
            )
            if children:
                # Parents only report what their descendants add up to.
                facts = sum((child.facts for child in children), CategoryPeriodFacts())
                available = sum((child.available for child in children), ZERO)
            else:
                facts = leaf_facts(category)
                available = facts.available(category.is_income)
            return CategoryNode(
                category_id=category.id,
                name=category.name,
                parent_id=category.parent_id,
                display_order=category.display_order,
                is_income=category.is_income,
                rollover_policy=policy,
                facts=facts,
                available=available,
                children=children,
            )

        root_nodes = [fold(category) for category in _ordered(roots)]
        inflow = PeriodSection.from_roots([node for node in root_nodes if node.is_income])
        outflow = PeriodSection.from_roots([node for node in root_nodes if not node.is_income])

        available_pool = sum(
            (
                resolver.resolve_pool_contribution(category.id, period)
                for category in categories
                if policy_map.get(category.id) == RolloverPolicy.AVAILABLE_POOL
            ),
            ZERO,
        )

        budgetable = inflow.expected + available_pool
        total_budgeted = outflow.expected
        net_total_available = (
            source.sum_account_balances(sorted(included_account_ids, key=str))
            if included_account_ids
            else ZERO
        )
        summary = PeriodSummary(
            period_start=period.start,
            period_end=period.end,
            budgetable=budgetable,
            total_budgeted=total_budgeted,
            left_to_budget=budgetable - total_budgeted,
            net_total_available=net_total_available,
            recurring_expected=sum((node.recurring_expected for node in root_nodes), ZERO),
            available_pool=available_pool,
            total_rolled_over=sum((node.rolled_over for node in root_nodes), ZERO)
            + available_pool,
            inflow=inflow,
            outflow=outflow,
        )
        logger.info(
            "period_view_built",
            budget_id=str(budget.id),
            period_start=period.start.isoformat(),
            period_end=period.end.isoformat(),
            categories=len(categories),
            left_to_budget=str(summary.left_to_budget),
        )
        return summary


def iter_nodes(nodes: Iterable[CategoryNode]) -> Iterable[CategoryNode]:
    for node in nodes:
        yield node
        yield from iter_nodes(node.children)


def _ordered(categories: Iterable[Category]) -> List[Category]:
    return sorted(categories, key=lambda category: category.display_order)


def _require_recurrence(budget: Budget) -> RecurrenceConfig:
    if budget.recurrence is None:
        raise PeriodNotConfiguredError(budget.id)
    return budget.recurrence

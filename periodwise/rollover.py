from __future__ import annotations

from datetime import date
from decimal import Decimal
from typing import Dict, Tuple

import structlog

from periodwise.data_source import BudgetDataSource, RolloverPolicy
from periodwise.period_calculator import PeriodRange, RecurrenceConfig, compute_previous_period

logger = structlog.get_logger()

ZERO = Decimal("0")
MAX_ROLLOVER_DEPTH = 24


class RolloverResolver:
    """Carries unused category balances forward across periods.

    A period's rollover is the previous period's ``expected + rolled_over +
    activity``, which is itself defined against the period before it. The
    lookback is walked iteratively and stops after ``max_depth`` periods, so a
    budget without entry history still terminates with a finite sum.

    Reads are memoised per (category, period start) for the lifetime of the
    resolver, which is meant to be a single view build.
    """

    def __init__(
        self,
        data_source: BudgetDataSource,
        budget_id: object,
        config: RecurrenceConfig,
        max_depth: int = MAX_ROLLOVER_DEPTH,
    ) -> None:
        if max_depth < 0:
            raise ValueError("max_depth must not be negative.")
        self._data_source = data_source
        self._budget_id = budget_id
        self._config = config
        self.max_depth = max_depth
        self._previous: Dict[date, PeriodRange] = {}
        self._net: Dict[Tuple[object, date], Decimal] = {}

    def resolve_rollover(
        self,
        category_id: object,
        policy: RolloverPolicy,
        period: PeriodRange,
        depth: int = 0,
    ) -> Decimal:
        if policy == RolloverPolicy.NONE or depth >= self.max_depth:
            return ZERO
        carried = self._carried_balance(category_id, period, depth)
        if policy == RolloverPolicy.SAME_CATEGORY:
            # Overspending carries forward as a negative balance.
            return carried
        # AVAILABLE_POOL balances feed the workspace pool, not the category.
        return ZERO

    def resolve_pool_contribution(self, category_id: object, period: PeriodRange) -> Decimal:
        """Amount a pooled category adds to the available pool of ``period``.

        The previous period's own history is chained forward as if the
        category rolled into itself, even though its visible ``rolled_over``
        stays zero.
        """
        previous = self.previous_period(period)
        return self._period_net(category_id, previous) + self._carried_balance(
            category_id, previous, 0
        )

    def previous_period(self, period: PeriodRange) -> PeriodRange:
        previous = self._previous.get(period.start)
        if previous is None:
            previous = compute_previous_period(self._config, period)
            self._previous[period.start] = previous
        return previous

    def _carried_balance(self, category_id: object, period: PeriodRange, depth: int) -> Decimal:
        total = ZERO
        current = period
        for _ in range(depth, self.max_depth):
            current = self.previous_period(current)
            total += self._period_net(category_id, current)
        if depth < self.max_depth:
            logger.debug(
                "rollover_lookback_capped",
                category_id=str(category_id),
                oldest_period_start=current.start.isoformat(),
                depth=self.max_depth,
            )
        return total

    def _period_net(self, category_id: object, period: PeriodRange) -> Decimal:
        key = (category_id, period.start)
        cached = self._net.get(key)
        if cached is not None:
            return cached
        expected = self._data_source.find_entered_amount(
            self._budget_id, category_id, period.start
        )
        activity = self._data_source.sum_activity(
            self._budget_id, category_id, period.start, period.end
        )
        net = _coerce_amount(expected) + _coerce_amount(activity)
        self._net[key] = net
        return net


def _coerce_amount(amount) -> Decimal:
    if amount is None:
        return ZERO
    if isinstance(amount, Decimal):
        return amount
    return Decimal(str(amount))

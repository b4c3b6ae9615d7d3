import unittest
from datetime import date
from decimal import Decimal

from periodwise.data_source import RolloverPolicy
from periodwise.period_calculator import AnchorInMonth, FixedInterval, PeriodRange
from periodwise.rollover import MAX_ROLLOVER_DEPTH, RolloverResolver

BUDGET_ID = 1
GROCERIES = 10

MONTHLY = AnchorInMonth(anchor_day_1=1)
APRIL = PeriodRange(date(2026, 4, 1), date(2026, 4, 30))
MARCH = PeriodRange(date(2026, 3, 1), date(2026, 3, 31))


class HistoryDataSource:
    """Entered amounts and transactions for the rollover lookback only."""

    def __init__(self) -> None:
        self.entries = {}
        self.transactions = []
        self.entry_reads = 0
        self.activity_reads = 0

    def enter(self, category_id, period_start, amount) -> None:
        self.entries[(category_id, period_start)] = Decimal(amount)

    def spend(self, category_id, day, amount) -> None:
        self.transactions.append((category_id, day, Decimal(amount)))

    def find_entered_amount(self, budget_id, category_id, period_start):
        self.entry_reads += 1
        return self.entries.get((category_id, period_start))

    def sum_activity(self, budget_id, category_id, period_start, period_end):
        self.activity_reads += 1
        return sum(
            (
                amount
                for txn_category, day, amount in self.transactions
                if txn_category == category_id and period_start <= day <= period_end
            ),
            Decimal("0"),
        )


class RolloverResolverTests(unittest.TestCase):
    def setUp(self) -> None:
        self.source = HistoryDataSource()
        self.resolver = RolloverResolver(self.source, BUDGET_ID, MONTHLY)

    def test_none_policy_never_carries(self) -> None:
        self.source.enter(GROCERIES, date(2026, 3, 1), "100")

        rolled = self.resolver.resolve_rollover(GROCERIES, RolloverPolicy.NONE, APRIL)

        self.assertEqual(rolled, Decimal("0"))
        self.assertEqual(self.source.entry_reads, 0)

    def test_same_category_carries_unspent_balance(self) -> None:
        self.source.enter(GROCERIES, date(2026, 3, 1), "100")
        self.source.spend(GROCERIES, date(2026, 3, 12), "-40")
        self.source.spend(GROCERIES, date(2026, 4, 2), "-15")

        rolled = self.resolver.resolve_rollover(GROCERIES, RolloverPolicy.SAME_CATEGORY, APRIL)

        self.assertEqual(rolled, Decimal("60"))

    def test_same_category_carries_overspending_as_negative(self) -> None:
        self.source.enter(GROCERIES, date(2026, 3, 1), "50")
        self.source.spend(GROCERIES, date(2026, 3, 31), "-80")

        rolled = self.resolver.resolve_rollover(GROCERIES, RolloverPolicy.SAME_CATEGORY, APRIL)

        self.assertEqual(rolled, Decimal("-30"))

    def test_balance_chains_through_earlier_periods(self) -> None:
        self.source.enter(GROCERIES, date(2026, 2, 1), "100")
        self.source.spend(GROCERIES, date(2026, 2, 10), "-30")
        self.source.enter(GROCERIES, date(2026, 3, 1), "50")
        self.source.spend(GROCERIES, date(2026, 3, 10), "-20")

        rolled = self.resolver.resolve_rollover(GROCERIES, RolloverPolicy.SAME_CATEGORY, APRIL)

        self.assertEqual(rolled, Decimal("100"))

    def test_pooled_category_does_not_roll_into_itself(self) -> None:
        self.source.enter(GROCERIES, date(2026, 3, 1), "100")

        rolled = self.resolver.resolve_rollover(GROCERIES, RolloverPolicy.AVAILABLE_POOL, APRIL)

        self.assertEqual(rolled, Decimal("0"))

    def test_pool_contribution_chains_its_own_history(self) -> None:
        self.source.enter(GROCERIES, date(2026, 2, 1), "40")
        self.source.enter(GROCERIES, date(2026, 3, 1), "100")
        self.source.spend(GROCERIES, date(2026, 3, 5), "-70")

        contribution = self.resolver.resolve_pool_contribution(GROCERIES, APRIL)

        self.assertEqual(contribution, Decimal("70"))

    def test_lookback_stops_at_depth_cap(self) -> None:
        for month in (1, 2, 3):
            self.source.enter(GROCERIES, date(2026, month, 1), "10")
        capped = RolloverResolver(self.source, BUDGET_ID, MONTHLY, max_depth=2)

        self.assertEqual(
            capped.resolve_rollover(GROCERIES, RolloverPolicy.SAME_CATEGORY, APRIL),
            Decimal("20"),
        )
        self.assertEqual(
            self.resolver.resolve_rollover(GROCERIES, RolloverPolicy.SAME_CATEGORY, APRIL),
            Decimal("30"),
        )

    def test_pool_contribution_reaches_one_period_past_cap(self) -> None:
        for month in (1, 2, 3):
            self.source.enter(GROCERIES, date(2026, month, 1), "10")
        capped = RolloverResolver(self.source, BUDGET_ID, MONTHLY, max_depth=1)

        self.assertEqual(capped.resolve_pool_contribution(GROCERIES, APRIL), Decimal("20"))

    def test_depth_at_or_beyond_cap_returns_zero(self) -> None:
        self.source.enter(GROCERIES, date(2026, 3, 1), "100")

        rolled = self.resolver.resolve_rollover(
            GROCERIES, RolloverPolicy.SAME_CATEGORY, APRIL, depth=MAX_ROLLOVER_DEPTH
        )

        self.assertEqual(rolled, Decimal("0"))

    def test_no_history_terminates_with_zero(self) -> None:
        config = FixedInterval(anchor_date=date(2020, 1, 6), interval_days=7)
        resolver = RolloverResolver(self.source, BUDGET_ID, config)
        period = PeriodRange(date(2026, 3, 2), date(2026, 3, 8))

        rolled = resolver.resolve_rollover(GROCERIES, RolloverPolicy.SAME_CATEGORY, period)

        self.assertEqual(rolled, Decimal("0"))
        self.assertEqual(self.source.entry_reads, MAX_ROLLOVER_DEPTH)
        self.assertEqual(self.source.activity_reads, MAX_ROLLOVER_DEPTH)

    def test_reads_are_memoised_per_period(self) -> None:
        self.resolver.resolve_rollover(GROCERIES, RolloverPolicy.SAME_CATEGORY, APRIL)
        reads = self.source.entry_reads
        self.resolver.resolve_rollover(GROCERIES, RolloverPolicy.SAME_CATEGORY, MARCH)
        self.resolver.resolve_pool_contribution(GROCERIES, APRIL)

        # MARCH's lookback is already covered except for one older period.
        self.assertEqual(self.source.entry_reads, reads + 1)

    def test_previous_period_follows_configuration(self) -> None:
        semi_monthly = RolloverResolver(
            self.source, BUDGET_ID, AnchorInMonth(anchor_day_1=15, anchor_day_2=31)
        )

        self.assertEqual(
            semi_monthly.previous_period(PeriodRange(date(2025, 2, 28), date(2025, 3, 14))),
            PeriodRange(date(2025, 2, 15), date(2025, 2, 27)),
        )

    def test_rejects_negative_depth(self) -> None:
        with self.assertRaises(ValueError):
            RolloverResolver(self.source, BUDGET_ID, MONTHLY, max_depth=-1)


if __name__ == "__main__":
    unittest.main()

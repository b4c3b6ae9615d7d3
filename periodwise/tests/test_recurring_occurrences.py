import unittest
from datetime import date
from decimal import Decimal

from periodwise.recurring_occurrences import (
    RecurringItem,
    compute_occurrences,
    count_occurrences,
    expected_by_category,
)


def _item(**overrides) -> RecurringItem:
    values = dict(
        id=1,
        account_id=10,
        category_id=100,
        amount=Decimal("50"),
        frequency_granularity="month",
        frequency_quantity=1,
        anchor_dates=(date(2026, 1, 15),),
        start_date=date(2026, 1, 1),
    )
    values.update(overrides)
    return RecurringItem(**values)


class RecurringOccurrenceTests(unittest.TestCase):
    def test_monthly_item_has_one_occurrence_in_month(self) -> None:
        occurrences = compute_occurrences(_item(), date(2026, 3, 1), date(2026, 3, 31))

        self.assertEqual(occurrences, [date(2026, 3, 15)])

    def test_biweekly_item_has_two_occurrences_in_month(self) -> None:
        item = _item(
            frequency_granularity="week",
            frequency_quantity=2,
            anchor_dates=(date(2026, 1, 2),),
        )

        occurrences = compute_occurrences(item, date(2026, 2, 1), date(2026, 2, 28))

        self.assertEqual(occurrences, [date(2026, 2, 13), date(2026, 2, 27)])

    def test_weekly_item_expands_backward_from_later_anchor(self) -> None:
        item = _item(
            frequency_granularity="weekly",
            anchor_dates=(date(2026, 6, 5),),
        )

        occurrences = compute_occurrences(item, date(2026, 2, 1), date(2026, 2, 28))

        self.assertEqual(
            occurrences,
            [date(2026, 2, 6), date(2026, 2, 13), date(2026, 2, 20), date(2026, 2, 27)],
        )

    def test_yearly_item_only_in_its_month(self) -> None:
        item = _item(frequency_granularity="year", anchor_dates=(date(2026, 4, 10),))

        self.assertEqual(count_occurrences(item, date(2027, 3, 1), date(2027, 3, 31)), 0)
        self.assertEqual(
            compute_occurrences(item, date(2027, 4, 1), date(2027, 4, 30)),
            [date(2027, 4, 10)],
        )

    def test_end_date_before_range_yields_nothing(self) -> None:
        item = _item(end_date=date(2026, 2, 28))

        self.assertEqual(compute_occurrences(item, date(2026, 3, 1), date(2026, 3, 31)), [])

    def test_start_date_after_range_yields_nothing(self) -> None:
        item = _item(start_date=date(2026, 5, 1), anchor_dates=(date(2026, 5, 15),))

        self.assertEqual(compute_occurrences(item, date(2026, 3, 1), date(2026, 3, 31)), [])

    def test_daily_item_every_three_days(self) -> None:
        item = _item(
            frequency_granularity="day",
            frequency_quantity=3,
            anchor_dates=(date(2026, 3, 1),),
        )

        occurrences = compute_occurrences(item, date(2026, 3, 1), date(2026, 3, 10))

        self.assertEqual(
            occurrences,
            [date(2026, 3, 1), date(2026, 3, 4), date(2026, 3, 7), date(2026, 3, 10)],
        )

    def test_multiple_anchor_dates_are_merged_and_sorted(self) -> None:
        item = _item(anchor_dates=(date(2026, 1, 15), date(2026, 1, 1)))

        occurrences = compute_occurrences(item, date(2026, 3, 1), date(2026, 3, 31))

        self.assertEqual(occurrences, [date(2026, 3, 1), date(2026, 3, 15)])

    def test_month_end_anchor_clamps_without_drifting(self) -> None:
        item = _item(anchor_dates=(date(2026, 1, 31),))

        self.assertEqual(
            compute_occurrences(item, date(2026, 2, 1), date(2026, 4, 30)),
            [date(2026, 2, 28), date(2026, 3, 31), date(2026, 4, 30)],
        )

    def test_missing_anchor_dates_fall_back_to_start_date(self) -> None:
        item = _item(anchor_dates=(), start_date=date(2026, 1, 20))

        self.assertEqual(
            compute_occurrences(item, date(2026, 2, 1), date(2026, 2, 28)),
            [date(2026, 2, 20)],
        )

    def test_rejects_invalid_range_and_frequency(self) -> None:
        with self.assertRaises(ValueError):
            compute_occurrences(_item(), date(2026, 3, 31), date(2026, 3, 1))
        with self.assertRaises(ValueError):
            compute_occurrences(
                _item(frequency_granularity="fortnight"), date(2026, 3, 1), date(2026, 3, 31)
            )
        with self.assertRaises(ValueError):
            compute_occurrences(_item(frequency_quantity=0), date(2026, 3, 1), date(2026, 3, 31))


class ExpectedByCategoryTests(unittest.TestCase):
    def test_multiplies_amount_by_occurrences_and_sums_per_category(self) -> None:
        items = [
            _item(id=1, amount=Decimal("50")),
            _item(
                id=2,
                amount=Decimal("20"),
                frequency_granularity="week",
                anchor_dates=(date(2026, 3, 2),),
            ),
            _item(id=3, amount=Decimal("9.99"), category_id=200),
        ]

        totals = expected_by_category(items, date(2026, 3, 1), date(2026, 3, 31), {10})

        self.assertEqual(totals, {100: Decimal("150"), 200: Decimal("9.99")})

    def test_skips_inactive_uncategorized_and_unlinked_items(self) -> None:
        items = [
            _item(id=1, status="paused"),
            _item(id=2, category_id=None),
            _item(id=3, account_id=99),
        ]

        totals = expected_by_category(items, date(2026, 3, 1), date(2026, 3, 31), {10})

        self.assertEqual(totals, {})

    def test_uses_supplied_occurrence_counter(self) -> None:
        calls = []

        def counter(item, start, end):
            calls.append((item.id, start, end))
            return 2

        totals = expected_by_category(
            [_item()], date(2026, 3, 1), date(2026, 3, 15), {10}, occurrence_counter=counter
        )

        self.assertEqual(totals, {100: Decimal("100")})
        self.assertEqual(calls, [(1, date(2026, 3, 1), date(2026, 3, 15))])


if __name__ == "__main__":
    unittest.main()

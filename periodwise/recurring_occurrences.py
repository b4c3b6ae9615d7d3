from __future__ import annotations

from calendar import monthrange
from dataclasses import dataclass, field
from datetime import date, timedelta
from decimal import Decimal
from typing import Dict, Iterable, List, Optional, Set, Tuple

DAYS_PER_WEEK = 7
MONTHS_PER_YEAR = 12
SUPPORTED_GRANULARITIES = {"day", "week", "month", "year"}
GRANULARITY_ALIASES = {
    "daily": "day",
    "days": "day",
    "weekly": "week",
    "weeks": "week",
    "monthly": "month",
    "months": "month",
    "yearly": "year",
    "years": "year",
    "annual": "year",
}
ACTIVE_STATUS = "active"


@dataclass(frozen=True)
class RecurringItem:
    account_id: object
    amount: Decimal
    start_date: date
    frequency_granularity: str = "month"
    frequency_quantity: int = 1
    anchor_dates: Tuple[date, ...] = field(default_factory=tuple)
    category_id: Optional[object] = None
    end_date: Optional[date] = None
    status: str = ACTIVE_STATUS
    id: Optional[object] = None

    @property
    def is_active(self) -> bool:
        return self.status.strip().lower() == ACTIVE_STATUS


def compute_occurrences(
    item: RecurringItem,
    range_start: date,
    range_end: date,
) -> List[date]:
    """Return every scheduled date of ``item`` inside ``[range_start, range_end]``.

    Each anchor date is expanded forward and backward by the item's frequency.
    Only dates that also fall within the item's own ``[start_date, end_date]``
    lifetime are kept. The result is sorted and free of duplicates.
    """
    if range_start > range_end:
        raise ValueError("range_start must be on or before range_end.")
    if item.frequency_quantity < 1:
        raise ValueError("frequency_quantity must be at least 1.")
    granularity = _validate_granularity(item.frequency_granularity)

    window_start = max(range_start, item.start_date)
    window_end = range_end if item.end_date is None else min(range_end, item.end_date)
    if window_start > window_end:
        return []

    occurrences: Set[date] = set()
    for anchor in item.anchor_dates or (item.start_date,):
        if granularity in {"month", "year"}:
            step_months = item.frequency_quantity
            if granularity == "year":
                step_months *= MONTHS_PER_YEAR
            occurrences.update(
                _monthly_occurrences(anchor, step_months, window_start, window_end)
            )
        else:
            step_days = item.frequency_quantity
            if granularity == "week":
                step_days *= DAYS_PER_WEEK
            occurrences.update(
                _daily_occurrences(anchor, step_days, window_start, window_end)
            )
    return sorted(occurrences)


def count_occurrences(item: RecurringItem, range_start: date, range_end: date) -> int:
    return len(compute_occurrences(item, range_start, range_end))


def expected_by_category(
    items: Iterable[RecurringItem],
    range_start: date,
    range_end: date,
    included_account_ids: Set[object],
    occurrence_counter=count_occurrences,
) -> Dict[object, Decimal]:
    totals: Dict[object, Decimal] = {}
    for item in items:
        if not item.is_active:
            continue
        if item.category_id is None:
            continue
        if item.account_id not in included_account_ids:
            continue
        occurrences = occurrence_counter(item, range_start, range_end)
        if occurrences > 0:
            amount = _coerce_amount(item.amount) * occurrences
            totals[item.category_id] = totals.get(item.category_id, Decimal("0")) + amount
    return totals


def _daily_occurrences(
    anchor: date, step_days: int, window_start: date, window_end: date
) -> List[date]:
    # Smallest step index whose date is on or after window_start; may be negative.
    steps = -((anchor - window_start).days // step_days)
    current = anchor + timedelta(days=step_days * steps)
    dates: List[date] = []
    while current <= window_end:
        dates.append(current)
        current += timedelta(days=step_days)
    return dates


def _monthly_occurrences(
    anchor: date, step_months: int, window_start: date, window_end: date
) -> List[date]:
    months_between = (window_start.year - anchor.year) * MONTHS_PER_YEAR + (
        window_start.month - anchor.month
    )
    steps = months_between // step_months
    candidate = _add_months(anchor, steps * step_months)
    while candidate < window_start:
        steps += 1
        candidate = _add_months(anchor, steps * step_months)

    dates: List[date] = []
    while candidate <= window_end:
        dates.append(candidate)
        steps += 1
        candidate = _add_months(anchor, steps * step_months)
    return dates


def _add_months(start_date: date, months: int) -> date:
    total_month = start_date.month - 1 + months
    year = start_date.year + total_month // MONTHS_PER_YEAR
    month = total_month % MONTHS_PER_YEAR + 1
    last_day = monthrange(year, month)[1]
    return date(year, month, min(start_date.day, last_day))


def _validate_granularity(granularity: str) -> str:
    normalized = granularity.strip().lower()
    normalized = GRANULARITY_ALIASES.get(normalized, normalized)
    if normalized not in SUPPORTED_GRANULARITIES:
        raise ValueError("Only day, week, month, or year frequencies are supported.")
    return normalized


def _coerce_amount(amount: Decimal) -> Decimal:
    if isinstance(amount, Decimal):
        return amount
    return Decimal(str(amount))

from __future__ import annotations

from calendar import monthrange
from dataclasses import dataclass
from datetime import date, timedelta
from typing import Iterator, Optional, Union

from periodwise.errors import ConfigurationError

ONE_DAY = timedelta(days=1)
MIN_ANCHOR_DAY = 1
MAX_ANCHOR_DAY = 31


@dataclass(frozen=True)
class FixedInterval:
    anchor_date: date
    interval_days: int

    def __post_init__(self) -> None:
        if self.interval_days < 1:
            raise ConfigurationError("interval_days must be at least 1.")


@dataclass(frozen=True)
class AnchorInMonth:
    anchor_day_1: int
    anchor_day_2: Optional[int] = None

    def __post_init__(self) -> None:
        _validate_anchor_day("anchor_day_1", self.anchor_day_1)
        if self.anchor_day_2 is not None:
            _validate_anchor_day("anchor_day_2", self.anchor_day_2)
            if self.anchor_day_1 == self.anchor_day_2:
                raise ConfigurationError("anchor_day_1 and anchor_day_2 must be different.")

    @property
    def is_semi_monthly(self) -> bool:
        return self.anchor_day_2 is not None


RecurrenceConfig = Union[FixedInterval, AnchorInMonth]


@dataclass(frozen=True)
class PeriodRange:
    start: date
    end: date

    def contains(self, day: date) -> bool:
        return self.start <= day <= self.end

    @property
    def days(self) -> int:
        return (self.end - self.start).days + 1


def recurrence_from_fields(
    anchor_date: Optional[date] = None,
    interval_days: Optional[int] = None,
    anchor_day_1: Optional[int] = None,
    anchor_day_2: Optional[int] = None,
) -> RecurrenceConfig:
    """Build a recurrence config from the nullable columns a budget is stored with.

    Exactly one of the two modes must be present: ``anchor_date`` together with
    ``interval_days``, or ``anchor_day_1`` (optionally with ``anchor_day_2``).
    """
    has_fixed = anchor_date is not None and interval_days is not None
    has_anchor = anchor_day_1 is not None
    if not has_fixed and not has_anchor:
        raise ConfigurationError(
            "Budget must have period configuration: either anchor_day_1 "
            "or anchor_date + interval_days."
        )
    if has_fixed and has_anchor:
        raise ConfigurationError("Cannot mix anchor-in-month and fixed-interval modes.")
    if has_fixed:
        return FixedInterval(anchor_date=anchor_date, interval_days=interval_days)
    if anchor_day_2 is not None and anchor_day_1 is None:
        raise ConfigurationError("anchor_day_2 requires anchor_day_1.")
    return AnchorInMonth(anchor_day_1=anchor_day_1, anchor_day_2=anchor_day_2)


def compute_period(config: RecurrenceConfig, day: date) -> PeriodRange:
    if isinstance(config, FixedInterval):
        return _fixed_interval_period(day, config.anchor_date, config.interval_days)
    if config.anchor_day_2 is not None:
        return _dual_anchor_period(day, config.anchor_day_1, config.anchor_day_2)
    return _single_anchor_period(day, config.anchor_day_1)


def compute_previous_period(config: RecurrenceConfig, current: PeriodRange) -> PeriodRange:
    return compute_period(config, current.start - ONE_DAY)


def compute_next_period(config: RecurrenceConfig, current: PeriodRange) -> PeriodRange:
    return compute_period(config, current.end + ONE_DAY)


def compute_period_by_offset(
    config: RecurrenceConfig,
    offset: int,
    today: Optional[date] = None,
) -> PeriodRange:
    current = compute_period(config, today or date.today())
    step = compute_next_period if offset > 0 else compute_previous_period
    for _ in range(abs(offset)):
        current = step(config, current)
    return current


def iter_periods(
    config: RecurrenceConfig,
    first: PeriodRange,
    count: int,
) -> Iterator[PeriodRange]:
    current = first
    for index in range(count):
        if index:
            current = compute_next_period(config, current)
        yield current


def _fixed_interval_period(day: date, anchor_date: date, interval_days: int) -> PeriodRange:
    # Floor division rounds toward negative infinity for dates before the anchor.
    period_index = (day - anchor_date).days // interval_days
    start = anchor_date + timedelta(days=period_index * interval_days)
    end = start + timedelta(days=interval_days - 1)
    return PeriodRange(start=start, end=end)


def _single_anchor_period(day: date, anchor_day: int) -> PeriodRange:
    if day.day >= _clamp(anchor_day, day.year, day.month):
        start = _on_anchor(day.year, day.month, anchor_day)
    else:
        year, month = _shift_month(day.year, day.month, -1)
        start = _on_anchor(year, month, anchor_day)

    next_year, next_month = _shift_month(start.year, start.month, 1)
    end = _on_anchor(next_year, next_month, anchor_day) - ONE_DAY
    return PeriodRange(start=start, end=end)


def _dual_anchor_period(day: date, anchor_1: int, anchor_2: int) -> PeriodRange:
    # e.g. anchors 15 & 31: Jan 15-30, Jan 31-Feb 14, Feb 15-27, Feb 28-Mar 14
    lo = min(anchor_1, anchor_2)
    hi = max(anchor_1, anchor_2)
    clamped_lo = _clamp(lo, day.year, day.month)
    clamped_hi = _clamp(hi, day.year, day.month)

    if day.day >= clamped_hi:
        next_year, next_month = _shift_month(day.year, day.month, 1)
        start = day.replace(day=clamped_hi)
        end = _on_anchor(next_year, next_month, lo) - ONE_DAY
    elif day.day >= clamped_lo:
        start = day.replace(day=clamped_lo)
        end = day.replace(day=clamped_hi) - ONE_DAY
    else:
        prev_year, prev_month = _shift_month(day.year, day.month, -1)
        start = _on_anchor(prev_year, prev_month, hi)
        end = day.replace(day=clamped_lo) - ONE_DAY
    return PeriodRange(start=start, end=end)


def _clamp(anchor_day: int, year: int, month: int) -> int:
    return min(anchor_day, monthrange(year, month)[1])


def _on_anchor(year: int, month: int, anchor_day: int) -> date:
    return date(year, month, _clamp(anchor_day, year, month))


def _shift_month(year: int, month: int, months: int) -> tuple[int, int]:
    total_month = month - 1 + months
    return year + total_month // 12, total_month % 12 + 1


def _validate_anchor_day(name: str, value: int) -> None:
    if not MIN_ANCHOR_DAY <= value <= MAX_ANCHOR_DAY:
        raise ConfigurationError(f"{name} must be between {MIN_ANCHOR_DAY} and {MAX_ANCHOR_DAY}.")

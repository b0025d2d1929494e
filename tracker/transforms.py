from datetime import datetime, timedelta
from functools import reduce
from typing import Dict, Iterable, List, Mapping, NamedTuple, Optional, Tuple

from tracker.domain import EXPENSE, REVENUE, Transaction
from tracker.formatting import day_month_label, is_same_month, month_label, weekday_label


class Totals(NamedTuple):
    revenue: float
    expense: float

    @property
    def balance(self) -> float:
        return self.revenue - self.expense


class Bucket(NamedTuple):
    start: datetime
    end: datetime
    label: str
    revenue: float
    expense: float

    @property
    def balance(self) -> float:
        return self.revenue - self.expense


def totals_by_type(trans: Iterable[Transaction]) -> Totals:
    def step(acc: Tuple[float, float], t: Transaction) -> Tuple[float, float]:
        revenue, expense = acc
        if t.type == REVENUE:
            return revenue + t.amount, expense
        if t.type == EXPENSE:
            return revenue, expense + t.amount
        return acc

    return Totals(*reduce(step, trans, (0.0, 0.0)))


def balance(trans: Iterable[Transaction]) -> float:
    return totals_by_type(trans).balance


def of_type(trans: Iterable[Transaction], tx_type: str) -> Tuple[Transaction, ...]:
    return tuple(filter(lambda t: t.type == tx_type, trans))


def category_totals(trans: Iterable[Transaction], tx_type: str = EXPENSE) -> Dict[str, float]:
    totals: Dict[str, float] = {}
    for t in of_type(trans, tx_type):
        totals[t.category] = totals.get(t.category, 0.0) + t.amount
    return totals


def category_counts(trans: Iterable[Transaction], tx_type: str = EXPENSE) -> Dict[str, int]:
    counts: Dict[str, int] = {}
    for t in of_type(trans, tx_type):
        counts[t.category] = counts.get(t.category, 0) + 1
    return counts


def category_shares(totals: Mapping[str, float]) -> Dict[str, float]:
    grand_total = sum(totals.values())
    if grand_total <= 0:
        return {category: 0.0 for category in totals}
    return {category: value / grand_total for category, value in totals.items()}


def bucket_count_for(window_days: int) -> int:
    if window_days <= 7:
        count = 7
    elif window_days <= 30:
        count = 10
    else:
        count = 12
    return max(1, min(count, window_days))


def _label_for(start: datetime, window_days: int) -> str:
    if window_days <= 7:
        return weekday_label(start)
    if window_days <= 30:
        return day_month_label(start)
    return month_label(start)


def bucket_by_period(
    trans: Iterable[Transaction],
    window_days: int,
    bucket_count: Optional[int] = None,
    now: Optional[datetime] = None,
) -> List[Bucket]:
    """Split the trailing ``window_days`` ending at ``now`` into equal buckets.

    Each transaction lands in exactly one half-open ``[start, end)`` bucket;
    transactions outside the window are ignored.
    """
    if window_days <= 0:
        raise ValueError("window_days must be positive")
    now = now or datetime.now()
    count = bucket_count if bucket_count is not None else bucket_count_for(window_days)
    count = max(1, min(count, window_days))

    window_start = now - timedelta(days=window_days)
    step = timedelta(days=window_days) / count
    bounds = [window_start + step * i for i in range(count)] + [now]

    revenue = [0.0] * count
    expense = [0.0] * count
    for t in trans:
        if not window_start <= t.date < now:
            continue
        index = min(int((t.date - window_start) / step), count - 1)
        # float division of timedeltas can land one bucket off near a bound
        if t.date < bounds[index]:
            index -= 1
        elif t.date >= bounds[index + 1]:
            index += 1
        if t.type == REVENUE:
            revenue[index] += t.amount
        elif t.type == EXPENSE:
            expense[index] += t.amount

    return [
        Bucket(
            start=bounds[i],
            end=bounds[i + 1],
            label=_label_for(bounds[i], window_days),
            revenue=revenue[i],
            expense=expense[i],
        )
        for i in range(count)
    ]


def transactions_in_month(trans: Iterable[Transaction], now: Optional[datetime] = None) -> Tuple[Transaction, ...]:
    now = now or datetime.now()
    return tuple(t for t in trans if is_same_month(t.date, now))


def average_per_day(trans: Iterable[Transaction]) -> float:
    expenses = of_type(trans, EXPENSE)
    days = {t.date.date() for t in expenses}
    if not days:
        return 0.0
    return sum(t.amount for t in expenses) / len(days)


def months_between(oldest: datetime, newest: datetime) -> int:
    return (newest.year - oldest.year) * 12 + (newest.month - oldest.month)


def average_per_month(trans: Iterable[Transaction]) -> float:
    trans = tuple(trans)
    if not trans:
        return 0.0
    dates = [t.date for t in trans]
    months = max(1, months_between(min(dates), max(dates)))
    return totals_by_type(trans).expense / months

from collections import defaultdict
from itertools import islice
from operator import attrgetter
from typing import Callable, Iterable, Iterator, Optional, Tuple

from tracker.domain import EXPENSE, Transaction


def iter_transactions(
    trans: Iterable[Transaction], pred: Callable[[Transaction], bool]
) -> Iterator[Transaction]:
    for t in trans:
        if pred(t):
            yield t


def top_n(
    trans: Iterable[Transaction],
    n: int,
    tx_type: Optional[str] = EXPENSE,
    key: str = "amount",
) -> Tuple[Transaction, ...]:
    """Largest ``n`` transactions of ``tx_type`` by ``key``; ties keep their input order."""
    if n <= 0:
        return ()
    candidates = trans if tx_type is None else iter_transactions(trans, lambda t: t.type == tx_type)
    ranked = sorted(candidates, key=attrgetter(key), reverse=True)
    return tuple(islice(ranked, n))


def top_categories(trans: Iterable[Transaction], k: int) -> Iterator[Tuple[str, float]]:
    totals_by_category: dict[str, float] = defaultdict(float)

    for t in iter_transactions(trans, lambda t: t.type == EXPENSE):
        totals_by_category[t.category] += t.amount

    ordered = sorted(totals_by_category.items(), key=lambda item: item[1], reverse=True)

    for name, total in ordered[: max(0, k)]:
        yield name, total

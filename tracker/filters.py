from dataclasses import dataclass
from typing import Callable, Iterable, Optional, Tuple

from tracker.domain import Transaction

ALL = "all"

Predicate = Callable[[Transaction], bool]


@dataclass(frozen=True)
class TransactionQuery:
    text: Optional[str] = None
    type: Optional[str] = None
    category: Optional[str] = None


def _wildcard(value: Optional[str]) -> bool:
    return value is None or value == "" or value == ALL


def by_text(text: str) -> Predicate:
    needle = text.casefold()

    def _filter(t: Transaction) -> bool:
        return needle in t.description.casefold()

    return _filter


def by_type(tx_type: str) -> Predicate:
    def _filter(t: Transaction) -> bool:
        return t.type == tx_type

    return _filter


def by_category(category: str) -> Predicate:
    def _filter(t: Transaction) -> bool:
        return t.category == category

    return _filter


def matches_all(*preds: Predicate) -> Predicate:
    def _filter(t: Transaction) -> bool:
        return all(p(t) for p in preds)

    return _filter


def predicates_for(query: TransactionQuery) -> Tuple[Predicate, ...]:
    preds = []
    if query.text and query.text.strip():
        preds.append(by_text(query.text.strip()))
    if not _wildcard(query.type):
        preds.append(by_type(query.type))
    if not _wildcard(query.category):
        preds.append(by_category(query.category))
    return tuple(preds)


def filter_transactions(
    trans: Iterable[Transaction], query: TransactionQuery
) -> Tuple[Transaction, ...]:
    return tuple(filter(matches_all(*predicates_for(query)), trans))

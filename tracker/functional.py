from typing import Any, Callable, Generic, Iterable, List, Mapping, TypeVar

from tracker.domain import (
    FREQUENCIES,
    TRANSACTION_TYPES,
    Budget,
    Goal,
    RecurringRule,
    Transaction,
    generate_id,
    parse_amount,
    parse_datetime,
)

T = TypeVar('T')
U = TypeVar('U')
E = TypeVar('E')


class Maybe(Generic[T]):
    """Optional value: ``Some(x)`` or ``Nothing()``."""

    __slots__ = ()

    def is_some(self) -> bool:
        return isinstance(self, Some)

    def is_none(self) -> bool:
        return not self.is_some()

    def bind(self, f: Callable[[T], 'Maybe[U]']) -> 'Maybe[U]':
        return f(self.value) if isinstance(self, Some) else Nothing()

    def get_or_else(self, default: T) -> T:
        return self.value if isinstance(self, Some) else default


class Some(Maybe[T]):
    __slots__ = ("value",)

    def __init__(self, value: T):
        self.value = value

    def __repr__(self) -> str:
        return f"Some({self.value!r})"

    def __eq__(self, other) -> bool:
        return isinstance(other, Some) and self.value == other.value


class Nothing(Maybe[T]):
    __slots__ = ()

    def __repr__(self) -> str:
        return "Nothing()"

    def __eq__(self, other) -> bool:
        return isinstance(other, Nothing)


class Either(Generic[E, T]):
    """Validation outcome: ``Right(value)`` or ``Left(error)``."""

    __slots__ = ()

    def is_right(self) -> bool:
        return isinstance(self, Right)

    def is_left(self) -> bool:
        return not self.is_right()

    def get_or_else(self, default: T) -> T:
        return self.value if isinstance(self, Right) else default

    def get_error(self) -> E:
        if isinstance(self, Left):
            return self.error
        raise ValueError("Cannot get error from Right")


class Right(Either[E, T]):
    __slots__ = ("value",)

    def __init__(self, value: T):
        self.value = value

    def __repr__(self) -> str:
        return f"Right({self.value!r})"

    def __eq__(self, other) -> bool:
        return isinstance(other, Right) and self.value == other.value


class Left(Either[E, T]):
    __slots__ = ("error",)

    def __init__(self, error: E):
        self.error = error

    def __repr__(self) -> str:
        return f"Left({self.error!r})"

    def __eq__(self, other) -> bool:
        return isinstance(other, Left) and self.error == other.error


def safe_budget(budgets: Iterable[Budget], category: str) -> Maybe[Budget]:
    for b in budgets:
        if b.category == category:
            return Some(b)
    return Nothing()


def _positive_amount(value: Any) -> bool:
    if value is None:
        return False
    try:
        return parse_amount(value) > 0
    except (TypeError, ValueError):
        return False


def _blank(value: Any) -> bool:
    return not value or not str(value).strip()


def _invalid(kind: str, errors: List[str]) -> Left:
    return Left({
        "error": f"invalid_{kind}",
        "message": "; ".join(errors),
        "errors": errors,
    })


def validate_transaction(data: Mapping[str, Any]) -> Either[dict, Transaction]:
    errors = []
    if _blank(data.get("description")):
        errors.append("La description est requise")
    if not _positive_amount(data.get("amount")):
        errors.append("Le montant doit être supérieur à 0")
    if _blank(data.get("category")):
        errors.append("La catégorie est requise")
    if data.get("type") not in TRANSACTION_TYPES:
        errors.append("Le type de transaction est invalide")
    try:
        date = parse_datetime(data.get("date"))
    except (TypeError, ValueError):
        errors.append("La date est invalide")
    if errors:
        return _invalid("transaction", errors)

    return Right(Transaction(
        description=str(data["description"]).strip(),
        amount=parse_amount(data["amount"]),
        category=str(data["category"]).strip(),
        type=data["type"],
        date=date,
        id=str(data.get("id") or generate_id()),
    ))


def validate_goal(data: Mapping[str, Any]) -> Either[dict, Goal]:
    errors = []
    if _blank(data.get("name")):
        errors.append("Le nom de l'objectif est requis")
    if not _positive_amount(data.get("target")):
        errors.append("Le montant cible doit être supérieur à 0")
    if errors:
        return _invalid("goal", errors)
    return Right(Goal(name=str(data["name"]).strip(), target=parse_amount(data["target"])))


def validate_budget(data: Mapping[str, Any]) -> Either[dict, Budget]:
    errors = []
    if _blank(data.get("category")):
        errors.append("La catégorie est requise")
    if not _positive_amount(data.get("amount")):
        errors.append("Le montant du budget doit être supérieur à 0")
    if errors:
        return _invalid("budget", errors)
    return Right(Budget(category=str(data["category"]).strip(), amount=parse_amount(data["amount"])))


def validate_recurring(data: Mapping[str, Any]) -> Either[dict, RecurringRule]:
    errors = []
    if _blank(data.get("description")):
        errors.append("La description est requise")
    if not _positive_amount(data.get("amount")):
        errors.append("Le montant doit être supérieur à 0")
    if _blank(data.get("category")):
        errors.append("La catégorie est requise")
    if data.get("type") not in TRANSACTION_TYPES:
        errors.append("Le type de transaction est invalide")
    if data.get("frequency") not in FREQUENCIES:
        errors.append("La fréquence est invalide")
    if errors:
        return _invalid("recurring", errors)
    return Right(RecurringRule(
        description=str(data["description"]).strip(),
        amount=parse_amount(data["amount"]),
        category=str(data["category"]).strip(),
        type=data["type"],
        frequency=data["frequency"],
    ))

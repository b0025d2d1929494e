import math
import random
import string
import time
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Optional

REVENUE = "revenue"
EXPENSE = "expense"
TRANSACTION_TYPES = (REVENUE, EXPENSE)

WEEKLY = "weekly"
MONTHLY = "monthly"
YEARLY = "yearly"
FREQUENCIES = (WEEKLY, MONTHLY, YEARLY)

_ID_ALPHABET = string.digits + string.ascii_lowercase


def generate_id() -> str:
    # epoch milliseconds followed by 9 base-36 characters
    suffix = "".join(random.choices(_ID_ALPHABET, k=9))
    return f"{int(time.time() * 1000)}{suffix}"


def parse_amount(value: Any) -> float:
    """Finite float from a stored or typed amount; raises ``ValueError`` otherwise."""
    if isinstance(value, bool):
        raise ValueError(f"Unsupported amount: {value!r}")
    try:
        amount = float(value)
    except OverflowError as exc:
        raise ValueError(f"Amount out of range: {value!r}") from exc
    if not math.isfinite(amount):
        raise ValueError(f"Amount must be finite: {value!r}")
    return amount


def parse_datetime(value: Any) -> datetime:
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, (int, float)) and not isinstance(value, bool):
        try:
            return datetime.fromtimestamp(value / 1000)
        except (OverflowError, OSError) as exc:
            raise ValueError(f"Timestamp out of range: {value!r}") from exc
    elif isinstance(value, str):
        text = value.strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        parsed = datetime.fromisoformat(text)
    else:
        raise ValueError(f"Unsupported date value: {value!r}")
    if parsed.tzinfo is not None:
        try:
            parsed = parsed.astimezone().replace(tzinfo=None)
        except (OverflowError, OSError) as exc:
            raise ValueError(f"Date out of range: {value!r}") from exc
    return parsed


def format_iso(value: datetime) -> str:
    return value.isoformat(timespec="milliseconds")


@dataclass(frozen=True)
class Transaction:
    description: str
    amount: float
    category: str
    type: str       # "revenue" or "expense"
    date: datetime
    id: str = field(default_factory=generate_id)

    @property
    def is_expense(self) -> bool:
        return self.type == EXPENSE

    def to_dict(self) -> dict:
        return {
            "description": self.description,
            "amount": self.amount,
            "category": self.category,
            "type": self.type,
            "date": format_iso(self.date),
            "id": self.id,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "Transaction":
        return cls(
            description=str(data["description"]),
            amount=parse_amount(data["amount"]),
            category=str(data["category"]),
            type=str(data["type"]),
            date=parse_datetime(data["date"]),
            id=str(data.get("id") or generate_id()),
        )


@dataclass(frozen=True)
class Goal:
    name: str
    target: float
    achieved: bool = False  # derived on read, never stored as true
    created_at: datetime = field(default_factory=datetime.now)
    id: str = field(default_factory=generate_id)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "target": self.target,
            "achieved": False,
            "createdAt": format_iso(self.created_at),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "Goal":
        return cls(
            name=str(data["name"]),
            target=parse_amount(data["target"]),
            created_at=parse_datetime(data.get("createdAt") or datetime.now()),
            id=str(data.get("id") or generate_id()),
        )


@dataclass(frozen=True)
class Budget:
    category: str
    amount: float   # monthly limit
    created_at: datetime = field(default_factory=datetime.now)
    id: str = field(default_factory=generate_id)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "category": self.category,
            "amount": self.amount,
            "createdAt": format_iso(self.created_at),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "Budget":
        return cls(
            category=str(data["category"]),
            amount=parse_amount(data["amount"]),
            created_at=parse_datetime(data.get("createdAt") or datetime.now()),
            id=str(data.get("id") or generate_id()),
        )


@dataclass(frozen=True)
class RecurringRule:
    description: str
    amount: float
    category: str
    type: str
    frequency: str  # weekly / monthly / yearly
    created_at: datetime = field(default_factory=datetime.now)
    id: str = field(default_factory=generate_id)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "description": self.description,
            "amount": self.amount,
            "category": self.category,
            "type": self.type,
            "frequency": self.frequency,
            "createdAt": format_iso(self.created_at),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "RecurringRule":
        return cls(
            description=str(data["description"]),
            amount=parse_amount(data["amount"]),
            category=str(data["category"]),
            type=str(data["type"]),
            frequency=str(data["frequency"]),
            created_at=parse_datetime(data.get("createdAt") or datetime.now()),
            id=str(data.get("id") or generate_id()),
        )


@dataclass(frozen=True)
class Settings:
    pin: Optional[str] = None
    theme: str = "light"
    pin_length: int = 4
    lock_timeout: int = 5           # minutes, 0 disables auto-lock
    notifications: bool = True
    last_backup_reminder: Optional[datetime] = None

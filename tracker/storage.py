"""Record store backed by an injected key-value store.

The key-value store mirrors browser local storage: text values under
string keys.  Collections are JSON arrays; settings are scalars.  Reading
never raises: absent or malformed data falls back to empty collections
and default settings.
"""

from __future__ import annotations

import json
import logging
from dataclasses import replace
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional, Protocol, Tuple

from tracker.domain import Budget, Goal, RecurringRule, Settings, Transaction, format_iso, generate_id, parse_datetime
from tracker.errors import IndexOutOfRange
from tracker.events import STORAGE_WARNING, EventBus

logger = logging.getLogger(__name__)

TRANSACTIONS = "transactions"
GOALS = "goals"
BUDGETS = "budgets"
RECURRING = "recurring"

# collection kind -> (storage key, record type)
COLLECTIONS: Dict[str, Tuple[str, type]] = {
    TRANSACTIONS: ("transactions", Transaction),
    GOALS: ("goals", Goal),
    BUDGETS: ("budgets", Budget),
    RECURRING: ("recurringTransactions", RecurringRule),
}

PIN_KEY = "appPin"
THEME_KEY = "theme"
PIN_LENGTH_KEY = "pinLength"
LOCK_TIMEOUT_KEY = "lockTimeout"
NOTIFICATIONS_KEY = "notificationsEnabled"
BACKUP_REMINDER_KEY = "lastBackupReminder"

# settings field -> (storage key, encoder)
_SETTING_KEYS: Dict[str, Tuple[str, Callable[[Any], str]]] = {
    "pin": (PIN_KEY, str),
    "theme": (THEME_KEY, str),
    "pin_length": (PIN_LENGTH_KEY, lambda v: str(int(v))),
    "lock_timeout": (LOCK_TIMEOUT_KEY, lambda v: str(int(v))),
    "notifications": (NOTIFICATIONS_KEY, lambda v: json.dumps(bool(v))),
    "last_backup_reminder": (BACKUP_REMINDER_KEY, format_iso),
}


class KeyValueStore(Protocol):
    def get(self, key: str) -> Optional[str]: ...

    def set(self, key: str, value: str) -> bool: ...

    def remove(self, key: str) -> None: ...

    def clear(self) -> None: ...


class MemoryStore:
    """In-process key-value store."""

    def __init__(self, initial: Optional[Dict[str, str]] = None):
        self.data: Dict[str, str] = dict(initial or {})

    def get(self, key: str) -> Optional[str]:
        return self.data.get(key)

    def set(self, key: str, value: str) -> bool:
        self.data[key] = value
        return True

    def remove(self, key: str) -> None:
        self.data.pop(key, None)

    def clear(self) -> None:
        self.data.clear()


def _decode_list(raw: Optional[str], key: str) -> List[Any]:
    if raw is None:
        return []
    try:
        data = json.loads(raw)
    except (ValueError, TypeError, RecursionError):
        logger.warning("Ignoring malformed JSON under %r", key)
        return []
    if not isinstance(data, list):
        logger.warning("Ignoring non-list value under %r", key)
        return []
    return data


class RecordStore:
    """Owns the four collections and their round-trip through a key-value store.

    Mutators only touch memory; ``persist`` is the explicit write step.
    """

    def __init__(self, kv: KeyValueStore, bus: Optional[EventBus] = None):
        self.kv = kv
        self.bus = bus
        self._records: Dict[str, List[Any]] = {kind: [] for kind in COLLECTIONS}

    def load(self) -> None:
        for kind, (key, record_type) in COLLECTIONS.items():
            records = []
            for item in _decode_list(self.kv.get(key), key):
                try:
                    records.append(record_type.from_dict(item))
                except (KeyError, TypeError, ValueError, AttributeError, OverflowError, OSError):
                    logger.warning("Dropping malformed %s record: %r", kind, item)
            self._records[kind] = records

    def records(self, kind: str) -> Tuple[Any, ...]:
        return tuple(self._collection(kind))

    def add(self, kind: str, record: Any) -> Any:
        if not getattr(record, "id", None):
            record = replace(record, id=generate_id())
        self._collection(kind).append(record)
        return record

    def update(self, kind: str, index: int, patch: Dict[str, Any]) -> Any:
        records = self._collection(kind)
        self._check_index(kind, index)
        records[index] = replace(records[index], **patch)
        return records[index]

    def remove(self, kind: str, index: int) -> Any:
        records = self._collection(kind)
        self._check_index(kind, index)
        return records.pop(index)

    def replace_all(self, kind: str, records) -> None:
        self._records[self._kind(kind)] = list(records)

    def persist(self, kind: str) -> bool:
        key, _ = COLLECTIONS[self._kind(kind)]
        payload = json.dumps([r.to_dict() for r in self._records[kind]], ensure_ascii=False)
        return self._write(key, payload)

    def persist_all(self) -> bool:
        return all([self.persist(kind) for kind in COLLECTIONS])

    def load_settings(self, defaults: Optional[Settings] = None) -> Settings:
        defaults = defaults or Settings()
        pin = self.kv.get(PIN_KEY) or None
        theme = self.kv.get(THEME_KEY)
        return Settings(
            pin=pin if pin and pin.isdigit() else None,
            theme=theme if theme in ("light", "dark") else defaults.theme,
            pin_length=self._read_int(PIN_LENGTH_KEY, defaults.pin_length, 4, 6),
            lock_timeout=self._read_int(LOCK_TIMEOUT_KEY, defaults.lock_timeout, 0, None),
            notifications=self._read_bool(NOTIFICATIONS_KEY, defaults.notifications),
            last_backup_reminder=self._read_datetime(BACKUP_REMINDER_KEY),
        )

    def save_setting(self, name: str, value: Any) -> bool:
        key, encode = _SETTING_KEYS[name]
        if value is None:
            self.kv.remove(key)
            return True
        return self._write(key, encode(value))

    def _write(self, key: str, payload: str) -> bool:
        try:
            ok = self.kv.set(key, payload)
        except Exception as exc:  # backend errors such as a full quota
            ok = False
            reason = str(exc) or exc.__class__.__name__
        else:
            reason = "store refused the write"
        if ok is False:
            logger.warning("Could not persist %r: %s", key, reason)
            if self.bus is not None:
                self.bus.publish(STORAGE_WARNING, {"key": key, "reason": reason})
            return False
        return True

    def _read_int(self, key: str, default: int, low: int, high: Optional[int]) -> int:
        raw = self.kv.get(key)
        try:
            value = int(raw)
        except (TypeError, ValueError):
            return default
        if value < low or (high is not None and value > high):
            return default
        return value

    def _read_bool(self, key: str, default: bool) -> bool:
        raw = self.kv.get(key)
        if raw is None:
            return default
        try:
            value = json.loads(raw)
        except ValueError:
            return default
        return value if isinstance(value, bool) else default

    def _read_datetime(self, key: str) -> Optional[datetime]:
        raw = self.kv.get(key)
        if not raw:
            return None
        try:
            return parse_datetime(raw)
        except ValueError:
            return None

    def _kind(self, kind: str) -> str:
        if kind not in COLLECTIONS:
            raise KeyError(f"Unknown collection {kind!r}")
        return kind

    def _collection(self, kind: str) -> List[Any]:
        return self._records[self._kind(kind)]

    def _check_index(self, kind: str, index: int) -> None:
        size = len(self._records[kind])
        if not isinstance(index, int) or not 0 <= index < size:
            raise IndexOutOfRange(kind, index, size)

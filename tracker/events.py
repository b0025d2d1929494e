from datetime import datetime
from typing import Callable, Dict, List, NamedTuple

from tracker.tracking import budget_alert

__all__ = [
    'TRANSACTION_ADDED', 'BUDGET_ALERT', 'STORAGE_WARNING', 'DATA_CHANGED',
    'LOCK_STATE_CHANGED', 'LOCKOUT_TICK', 'Event', 'EventBus',
    'check_budget_handler', 'register_default_handlers',
]

TRANSACTION_ADDED = "TRANSACTION_ADDED"
BUDGET_ALERT = "BUDGET_ALERT"
STORAGE_WARNING = "STORAGE_WARNING"
DATA_CHANGED = "DATA_CHANGED"
LOCK_STATE_CHANGED = "LOCK_STATE_CHANGED"
LOCKOUT_TICK = "LOCKOUT_TICK"


class Event(NamedTuple):
    name: str
    ts: str
    payload: dict


Handler = Callable[[Event, dict], dict]


class EventBus:
    def __init__(self):
        self._subscribers: Dict[str, List[Handler]] = {}

    def subscribe(self, name: str, handler: Handler) -> None:
        self._subscribers.setdefault(name, []).append(handler)

    def publish(self, name: str, payload: dict) -> List[dict]:
        handlers = list(self._subscribers.get(name, ()))
        if not handlers:
            return []
        event = Event(name=name, ts=datetime.now().isoformat(), payload=payload)
        return [handler(event, payload) for handler in handlers]

    def unsubscribe(self, name: str, handler: Handler) -> None:
        if handler in self._subscribers.get(name, ()):
            self._subscribers[name].remove(handler)


def check_budget_handler(event: Event, payload: dict) -> dict:
    """Budget check for the category of the transaction just added.

    payload: ``transaction``, ``budgets``, ``transactions`` (including the
    new one) and ``now``.
    """
    alert = budget_alert(
        payload["transaction"],
        payload.get("budgets", ()),
        payload.get("transactions", ()),
        payload.get("now"),
    )
    return alert.get_or_else({})


def register_default_handlers(bus: EventBus) -> EventBus:
    bus.subscribe(TRANSACTION_ADDED, check_budget_handler)
    return bus

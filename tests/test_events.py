from datetime import datetime

from tracker.domain import EXPENSE, Budget, Transaction
from tracker.events import (
    BUDGET_ALERT, TRANSACTION_ADDED, Event, EventBus, check_budget_handler, register_default_handlers,
)

NOW = datetime(2025, 3, 15)


def budget_payload(amount):
    t = Transaction("Courses", amount, "Food", EXPENSE, NOW, id="t1")
    return {"transaction": t, "budgets": (Budget("Food", 1000.0),), "transactions": (t,), "now": NOW}


def test_subscribe_and_publish():
    bus = EventBus()
    seen = []

    def handler(event: Event, payload: dict) -> dict:
        seen.append(event.name)
        return {"processed": True}

    bus.subscribe(TRANSACTION_ADDED, handler)
    assert bus.publish(TRANSACTION_ADDED, {}) == [{"processed": True}]
    assert seen == [TRANSACTION_ADDED]
    assert bus.publish(BUDGET_ALERT, {}) == []


def test_unsubscribe():
    bus = EventBus()
    calls = []

    def handler(event, payload):
        calls.append(payload)
        return {}

    bus.subscribe(TRANSACTION_ADDED, handler)
    bus.publish(TRANSACTION_ADDED, {"n": 1})
    bus.unsubscribe(TRANSACTION_ADDED, handler)
    bus.unsubscribe(TRANSACTION_ADDED, handler)
    bus.publish(TRANSACTION_ADDED, {"n": 2})
    assert calls == [{"n": 1}]


def test_check_budget_handler_is_pure():
    event = Event(TRANSACTION_ADDED, NOW.isoformat(), {})
    payload = budget_payload(1500.0)
    first = check_budget_handler(event, payload)
    second = check_budget_handler(event, payload)
    assert first == second
    assert first["level"] == "overspent"
    assert first["over_budget"] == 500


def test_check_budget_handler_no_alert_under_threshold():
    event = Event(TRANSACTION_ADDED, NOW.isoformat(), {})
    assert check_budget_handler(event, budget_payload(100.0)) == {}


def test_register_default_handlers():
    bus = register_default_handlers(EventBus())
    results = bus.publish(TRANSACTION_ADDED, budget_payload(900.0))
    assert results[0]["level"] == "warning"

import asyncio
import json
from datetime import datetime, timedelta

import pytest

from tracker.config import TrackerConfig
from tracker.domain import EXPENSE, REVENUE
from tracker.errors import DuplicateCategory, ImportFormatError, IndexOutOfRange, StorageFailure, ValidationError
from tracker.events import BUDGET_ALERT, DATA_CHANGED, LOCK_STATE_CHANGED, STORAGE_WARNING
from tracker.filters import TransactionQuery
from tracker.pin import LockState
from tracker.services import FinanceTracker
from tracker.storage import MemoryStore
from tracker.tracking import OVERSPENT

NOW = datetime(2025, 3, 15, 12, 0)


class FakeClock:
    def __init__(self):
        self.now = 1000.0

    def __call__(self):
        return self.now


class BrokenStore(MemoryStore):
    def set(self, key, value):
        raise StorageFailure("quota exceeded")


def make_tracker(kv=None, **config):
    tracker = FinanceTracker(kv if kv is not None else MemoryStore(), TrackerConfig(**config), clock=FakeClock())
    tracker.load()
    return tracker


def add_scenario(tracker):
    tracker.add_transaction("Salaire", 5000, "Salaire", REVENUE, datetime(2025, 3, 1, 9), now=NOW)
    tracker.add_transaction("Courses", 2000, "Food", EXPENSE, datetime(2025, 3, 2, 9), now=NOW)
    tracker.add_transaction("Taxi", 1000, "Transport", EXPENSE, datetime(2025, 3, 3, 9), now=NOW)


def test_add_transaction_persists_immediately():
    kv = MemoryStore()
    tracker = make_tracker(kv)
    t, alerts = tracker.add_transaction("Courses", 2000, "Food", EXPENSE, datetime(2025, 3, 2), now=NOW)
    assert alerts == []
    stored = json.loads(kv.data["transactions"])
    assert stored[0]["id"] == t.id
    assert stored[0]["amount"] == 2000


def test_add_transaction_validation_error_leaves_state_untouched():
    kv = MemoryStore()
    tracker = make_tracker(kv)
    with pytest.raises(ValidationError) as info:
        tracker.add_transaction("", -5, "", "gift")
    assert "La description est requise" in info.value.messages
    assert tracker.transactions == ()
    assert "transactions" not in kv.data


def test_scenario_dashboard():
    tracker = make_tracker()
    add_scenario(tracker)
    report = tracker.dashboard(now=NOW, window_days=30)
    assert report["balance"] == 2000
    assert report["category_totals"] == {"Food": 2000, "Transport": 1000}
    top = report["top_expenses"][:1]
    assert [(t.category, t.type, t.amount) for t in top] == [("Food", EXPENSE, 2000)]
    assert len(report["buckets"]) == 10
    assert sum(b.expense for b in report["buckets"]) == 3000
    assert len(report["pie"]) == 2
    assert report["series"].max_value > 0


def test_budget_scenario_raises_overspent_alert():
    tracker = make_tracker()
    published = []
    tracker.bus.subscribe(BUDGET_ALERT, lambda e, p: published.append(p) or {})
    tracker.add_budget("Food", 1500)
    _, alerts = tracker.add_transaction("Courses", 2000, "Food", EXPENSE, datetime(2025, 3, 2), now=NOW)
    assert alerts[0]["level"] == OVERSPENT
    assert alerts[0]["over_budget"] == 500
    assert published == alerts
    status = tracker.budget_statuses(now=NOW)[0]
    assert status.status == OVERSPENT
    assert status.remaining == -500


def test_alerts_not_published_when_notifications_disabled():
    tracker = make_tracker()
    published = []
    tracker.bus.subscribe(BUDGET_ALERT, lambda e, p: published.append(p) or {})
    tracker.set_notifications(False)
    tracker.add_budget("Food", 1500)
    _, alerts = tracker.add_transaction("Courses", 2000, "Food", EXPENSE, datetime(2025, 3, 2), now=NOW)
    assert alerts
    assert published == []


def test_duplicate_budget_rejected():
    tracker = make_tracker()
    tracker.add_budget("Food", 1500)
    with pytest.raises(DuplicateCategory):
        tracker.add_budget("Food", 900)
    assert len(tracker.budgets) == 1


def test_edit_transaction():
    tracker = make_tracker()
    add_scenario(tracker)
    original = tracker.transactions[1]
    updated = tracker.edit_transaction(1, amount=2500, description="Marché")
    assert updated.id == original.id
    assert updated.amount == 2500
    assert updated.date == original.date
    assert tracker.transactions[1] == updated
    with pytest.raises(ValidationError):
        tracker.edit_transaction(1, amount=0)
    assert tracker.transactions[1].amount == 2500


def test_stale_index_commands_raise_without_mutation():
    tracker = make_tracker()
    add_scenario(tracker)
    for command in (tracker.delete_transaction, tracker.delete_goal, tracker.delete_budget, tracker.delete_recurring):
        with pytest.raises(IndexOutOfRange):
            command(7)
    with pytest.raises(IndexOutOfRange):
        tracker.edit_transaction(3, amount=1)
    assert len(tracker.transactions) == 3


def test_goals_and_recurring_rules():
    tracker = make_tracker()
    add_scenario(tracker)
    tracker.add_goal("Épargne", 4000)
    progress = tracker.goal_statuses()[0]
    assert progress.percent == 50
    rule = tracker.add_recurring("Loyer", 90000, "Logement", EXPENSE, "monthly")
    assert tracker.recurring == (rule,)
    # rules are templates: nothing gets posted
    assert len(tracker.transactions) == 3
    tracker.delete_goal(0)
    tracker.delete_recurring(0)
    assert tracker.goals == () and tracker.recurring == ()


def test_filter_through_controller():
    tracker = make_tracker()
    add_scenario(tracker)
    assert [t.description for t in tracker.filter(TransactionQuery(type=EXPENSE))] == ["Courses", "Taxi"]


def test_reload_from_same_store():
    kv = MemoryStore()
    tracker = make_tracker(kv)
    add_scenario(tracker)
    tracker.add_budget("Food", 1500)
    tracker.add_goal("Épargne", 4000)
    again = make_tracker(kv)
    assert again.transactions == tracker.transactions
    assert again.budgets[0].category == "Food"
    assert again.goals[0].name == "Épargne"


def test_storage_failure_keeps_memory_state():
    tracker = make_tracker(BrokenStore())
    warnings, changes = [], []
    tracker.bus.subscribe(STORAGE_WARNING, lambda e, p: warnings.append(p) or {})
    tracker.bus.subscribe(DATA_CHANGED, lambda e, p: changes.append(p) or {})
    tracker.add_transaction("Courses", 2000, "Food", EXPENSE, datetime(2025, 3, 2), now=NOW)
    assert len(tracker.transactions) == 1
    assert warnings
    assert changes[-1]["persisted"] is False


def test_import_export_round_trip():
    tracker = make_tracker()
    add_scenario(tracker)
    exported = tracker.export_json()
    before = tracker.dashboard(now=NOW)["totals"]

    other = make_tracker()
    other.add_transaction("À remplacer", 1, "X", EXPENSE, datetime(2025, 3, 1), now=NOW)
    assert other.import_transactions(exported) == 3
    assert [t.to_dict() for t in other.transactions] == [t.to_dict() for t in tracker.transactions]
    assert other.dashboard(now=NOW)["totals"] == before


def test_malformed_import_changes_nothing():
    tracker = make_tracker()
    add_scenario(tracker)
    with pytest.raises(ImportFormatError):
        tracker.import_transactions('{"oops": 1}')
    assert len(tracker.transactions) == 3


def test_export_csv_through_controller():
    tracker = make_tracker()
    add_scenario(tracker)
    assert tracker.export_csv().split("\n")[2] == '02/03/2025,"Courses",Food,expense,2000'


def test_clear_data():
    kv = MemoryStore()
    tracker = make_tracker(kv)
    add_scenario(tracker)
    tracker.add_budget("Food", 1)
    assert tracker.clear_data()
    assert tracker.transactions == () and tracker.budgets == ()
    assert json.loads(kv.data["transactions"]) == []


def test_pin_scenario_across_sessions():
    kv = MemoryStore()
    tracker = make_tracker(kv)
    assert tracker.lock.state is LockState.AWAITING_CREATION
    assert tracker.submit_pin("1234").accepted
    assert tracker.is_unlocked
    assert kv.data["appPin"] == "1234"

    session = make_tracker(kv)
    assert session.lock.state is LockState.LOCKED
    assert session.submit_pin("1234").accepted

    other = make_tracker(kv)
    result = other.submit_pin("0000")
    assert not result.accepted
    assert result.failed_attempts == 1


def test_lockout_through_controller():
    kv = MemoryStore({"appPin": "1234"})
    tracker = make_tracker(kv)
    for _ in range(5):
        tracker.submit_pin("9999")
    assert tracker.lock.state is LockState.LOCKED_OUT
    tracker.clock.now += 301
    assert tracker.tick() is LockState.LOCKED
    assert tracker.submit_pin("1234").accepted


def test_inactivity_lock_and_timeout_setting():
    kv = MemoryStore({"appPin": "1234"})
    tracker = make_tracker(kv)
    tracker.submit_pin("1234")
    tracker.clock.now += 200
    tracker.record_activity()
    tracker.clock.now += 200
    assert tracker.tick() is LockState.UNLOCKED
    tracker.set_lock_timeout(0)
    tracker.clock.now += 10 ** 5
    assert tracker.tick() is LockState.UNLOCKED
    assert kv.data["lockTimeout"] == "0"
    assert make_tracker(kv).lock.lock_timeout == 0


def test_change_pin_length_persists():
    kv = MemoryStore({"appPin": "1234"})
    tracker = make_tracker(kv)
    tracker.submit_pin("1234")
    assert tracker.change_pin_length("1234", 6).accepted
    assert "appPin" not in kv.data
    assert kv.data["pinLength"] == "6"
    assert tracker.submit_pin("123456").accepted
    assert make_tracker(kv).lock.pin_length == 6

    assert tracker.reset_pin("123456").accepted
    assert tracker.lock.state is LockState.AWAITING_CREATION


def test_settings_validation():
    tracker = make_tracker()
    with pytest.raises(ValidationError):
        tracker.set_theme("purple")
    with pytest.raises(ValidationError):
        tracker.set_lock_timeout(-1)
    assert tracker.set_theme("dark")
    assert tracker.settings.theme == "dark"


def test_backup_reminder():
    tracker = make_tracker()
    assert not tracker.backup_reminder_due(NOW)
    add_scenario(tracker)
    assert tracker.backup_reminder_due(NOW)
    tracker.mark_backup_reminded(NOW)
    assert not tracker.backup_reminder_due(NOW + timedelta(days=6))
    assert tracker.backup_reminder_due(NOW + timedelta(days=7))


def test_infinite_amount_rejected():
    tracker = make_tracker()
    with pytest.raises(ValidationError):
        tracker.add_transaction("x", float("inf"), "Food", EXPENSE, datetime(2025, 3, 2), now=NOW)
    assert tracker.dashboard(now=NOW)["category_shares"] == {}


def test_load_skips_out_of_range_records():
    kv = MemoryStore({"transactions": json.dumps([
        {"description": "Loin", "amount": 5, "category": "X", "type": "expense", "date": 10 ** 20},
        {"description": "Bus", "amount": 300, "category": "Transport", "type": "expense", "date": "2025-03-03"},
    ])})
    assert [t.description for t in make_tracker(kv).transactions] == ["Bus"]


def test_dashboard_top_categories():
    tracker = make_tracker()
    add_scenario(tracker)
    assert tracker.dashboard(now=NOW)["top_categories"] == [("Food", 2000), ("Transport", 1000)]


@pytest.mark.asyncio
async def test_search_later_runs_only_the_last_query():
    tracker = make_tracker(search_debounce=0.02)
    add_scenario(tracker)
    results = []
    for text in ("t", "ta", "taxi"):
        tracker.search_later(TransactionQuery(text=text), results.append)
    await asyncio.sleep(0.005)
    assert results == []
    await asyncio.sleep(0.06)
    assert [[t.description for t in r] for r in results] == [["Taxi"]]
    tracker.close()


@pytest.mark.asyncio
async def test_watch_dashboard_coalesces_redraws_after_changes():
    tracker = make_tracker(refresh_interval=0.05)
    drawn = []
    tracker.watch_dashboard({
        "pie": lambda report: drawn.append(("pie", report["count"])),
        "line": lambda report: drawn.append(("line", report["count"])),
    }, now=NOW)
    await asyncio.sleep(0.01)
    assert drawn == [("pie", 0), ("line", 0)]

    add_scenario(tracker)
    assert len(drawn) == 2
    await asyncio.sleep(0.1)
    assert drawn[2:] == [("pie", 3), ("line", 3)]
    tracker.close()


@pytest.mark.asyncio
async def test_failing_view_does_not_block_the_others():
    tracker = make_tracker(refresh_interval=0.0)
    drawn = []

    def broken(report):
        raise RuntimeError("canvas gone")

    tracker.watch_dashboard({"broken": broken, "line": lambda report: drawn.append(report["count"])}, now=NOW)
    await asyncio.sleep(0.01)
    assert drawn == [0]
    tracker.close()


@pytest.mark.asyncio
async def test_lock_timers_follow_controller_commands():
    kv = MemoryStore({"appPin": "1234"})
    tracker = make_tracker(kv, max_failed_attempts=2, lockout_seconds=0.05)
    changes = []
    tracker.bus.subscribe(LOCK_STATE_CHANGED, lambda e, p: changes.append(p["to"]) or {})
    timers = tracker.start_lock_timers(countdown_interval=0.01)

    tracker.submit_pin("0000")
    tracker.submit_pin("0000")
    assert tracker.lock.state is LockState.LOCKED_OUT
    assert timers.timers == 2
    await asyncio.sleep(0.1)
    assert tracker.lock.state is LockState.LOCKED
    assert timers.timers == 0

    assert tracker.submit_pin("1234").accepted
    assert timers.timers == 1
    tracker.lock_now()
    assert timers.timers == 0
    assert changes == [LockState.LOCKED_OUT, LockState.LOCKED, LockState.UNLOCKED, LockState.LOCKED]
    tracker.close()

"""Top-level controller owning the tracker state.

``FinanceTracker`` is the only object that mutates the record store.  Every
successful command persists the affected collection, then announces the
change on its event bus; all derived views are recomputed from the current
records on request.
"""

from __future__ import annotations

import logging
import time
from dataclasses import replace
from datetime import datetime, timedelta
from functools import partial
from typing import Any, Callable, Dict, List, Mapping, Optional, Tuple, Union

from tracker import charts, exchange
from tracker.config import TrackerConfig
from tracker.domain import Budget, Goal, RecurringRule, Settings, Transaction
from tracker.errors import IndexOutOfRange, ValidationError
from tracker.events import BUDGET_ALERT, DATA_CHANGED, TRANSACTION_ADDED, EventBus, register_default_handlers
from tracker.filters import TransactionQuery, filter_transactions
from tracker.functional import (
    Either,
    validate_budget,
    validate_goal,
    validate_recurring,
    validate_transaction,
)
from tracker.lazy import top_categories, top_n
from tracker.pin import LockState, PinLock, PinResult
from tracker.scheduling import Debouncer, LockTimers, RefreshScheduler, UpdateQueue
from tracker.storage import BUDGETS, GOALS, RECURRING, TRANSACTIONS, KeyValueStore, RecordStore
from tracker.tracking import BudgetStatus, GoalProgress, budget_status, ensure_unique_budget, goal_progress
from tracker.transforms import (
    average_per_day,
    average_per_month,
    bucket_by_period,
    category_counts,
    category_shares,
    category_totals,
    totals_by_type,
)

logger = logging.getLogger(__name__)


def _unwrap(result: Either[dict, Any]) -> Any:
    if result.is_left():
        raise ValidationError(result.get_error()["errors"])
    return result.get_or_else(None)


class FinanceTracker:
    def __init__(
        self,
        kv: KeyValueStore,
        config: Optional[TrackerConfig] = None,
        bus: Optional[EventBus] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.config = config or TrackerConfig()
        self.bus = bus or register_default_handlers(EventBus())
        self.store = RecordStore(kv, self.bus)
        self.clock = clock
        self.settings = Settings(
            pin_length=self.config.pin_length,
            lock_timeout=self.config.lock_timeout_minutes,
        )
        self.lock = PinLock.from_config(self.config)
        self._search: Optional[Debouncer] = None
        self._refresh: Optional[RefreshScheduler] = None
        self._updates: Optional[UpdateQueue] = None
        self._lock_timers: Optional[LockTimers] = None

    def load(self) -> None:
        self.store.load()
        self.settings = self.store.load_settings(self.settings)
        self.lock = PinLock.from_config(
            self.config,
            pin=self.settings.pin,
            pin_length=self.settings.pin_length,
            lock_timeout_minutes=self.settings.lock_timeout,
        )
        self._sync_lock()

    # --- read views

    @property
    def transactions(self) -> Tuple[Transaction, ...]:
        return self.store.records(TRANSACTIONS)

    @property
    def goals(self) -> Tuple[Goal, ...]:
        return self.store.records(GOALS)

    @property
    def budgets(self) -> Tuple[Budget, ...]:
        return self.store.records(BUDGETS)

    @property
    def recurring(self) -> Tuple[RecurringRule, ...]:
        return self.store.records(RECURRING)

    def filter(self, query: TransactionQuery) -> Tuple[Transaction, ...]:
        return filter_transactions(self.transactions, query)

    def budget_statuses(self, now: Optional[datetime] = None) -> List[BudgetStatus]:
        trans = self.transactions
        return [budget_status(b, trans, now) for b in self.budgets]

    def goal_statuses(self) -> List[GoalProgress]:
        trans = self.transactions
        return [goal_progress(g, trans) for g in self.goals]

    def dashboard(self, now: Optional[datetime] = None, window_days: int = 30, top: int = 5) -> Dict[str, Any]:
        """Every derived view the dashboard draws, computed from one snapshot of the records."""
        now = now or datetime.now()
        trans = self.transactions
        totals = totals_by_type(trans)
        expense_totals = category_totals(trans)
        buckets = bucket_by_period(trans, window_days, now=now)
        return {
            "totals": totals,
            "balance": totals.balance,
            "count": len(trans),
            "category_totals": expense_totals,
            "category_counts": category_counts(trans),
            "category_shares": category_shares(expense_totals),
            "top_expenses": top_n(trans, top),
            "top_categories": list(top_categories(trans, top)),
            "average_per_day": average_per_day(trans),
            "average_per_month": average_per_month(trans),
            "buckets": buckets,
            "pie": charts.pie_slices(expense_totals, self.config.pie_label_threshold),
            "series": charts.line_series(buckets),
            "budgets": [budget_status(b, trans, now) for b in self.budgets],
            "goals": [goal_progress(g, trans) for g in self.goals],
        }

    # --- scheduled views, driven by the running event loop

    def search_later(self, query: TransactionQuery,
                     on_results: Callable[[Tuple[Transaction, ...]], Any]) -> None:
        """Keystroke search: only the last query of a burst runs, ``search_debounce`` seconds after it."""
        if self._search is None:
            self._search = Debouncer(lambda q, done: done(self.filter(q)), self.config.search_debounce)
        self._search(query, on_results)

    def watch_dashboard(self, views: Mapping[str, Callable[[Dict[str, Any]], Any]],
                        **options: Any) -> RefreshScheduler:
        """Redraw ``views`` now and after every data change.

        Each redraw computes one report and hands it to every view, in the
        order given, on the next loop tick; a failing view is logged and the
        others still draw.  Redraws are coalesced, spaced
        ``refresh_interval`` apart and never overlap.  ``options`` are passed
        on to :meth:`dashboard`.
        """
        if self._refresh is not None:
            self._refresh.cancel()
        self._updates = UpdateQueue()
        ordered = list(views.items())

        def redraw() -> None:
            report = self.dashboard(**options)
            for rank, (name, view) in enumerate(ordered):
                self._updates.queue(name, partial(view, report), priority=len(ordered) - rank)
            self._updates.process()

        self._refresh = RefreshScheduler(redraw, self.config.refresh_interval)
        self._refresh.request()
        return self._refresh

    def request_refresh(self) -> None:
        if self._refresh is not None:
            self._refresh.request()

    def close(self) -> None:
        if self._search is not None:
            self._search.cancel()
        if self._refresh is not None:
            self._refresh.cancel()
            self._refresh = None
        if self._lock_timers is not None:
            self._lock_timers.close()
            self._lock_timers = None

    # --- commands

    def _commit(self, kind: str, action: str) -> bool:
        persisted = self.store.persist(kind)
        self.bus.publish(DATA_CHANGED, {"kind": kind, "action": action, "persisted": persisted})
        self.request_refresh()
        return persisted

    def add_transaction(
        self,
        description: str,
        amount: float,
        category: str,
        type: str,
        date: Optional[datetime] = None,
        now: Optional[datetime] = None,
    ) -> Tuple[Transaction, List[dict]]:
        """Validate, store and persist a transaction; returns it with any budget alerts raised."""
        t = _unwrap(validate_transaction({
            "description": description,
            "amount": amount,
            "category": category,
            "type": type,
            "date": date or datetime.now(),
        }))
        t = self.store.add(TRANSACTIONS, t)
        self._commit(TRANSACTIONS, "add")

        results = self.bus.publish(TRANSACTION_ADDED, {
            "transaction": t,
            "budgets": self.budgets,
            "transactions": self.transactions,
            "now": now or datetime.now(),
        })
        alerts = [r for r in results if r and r.get("level")]
        if self.settings.notifications:
            for alert in alerts:
                self.bus.publish(BUDGET_ALERT, alert)
        return t, alerts

    def edit_transaction(self, index: int, **fields: Any) -> Transaction:
        current = self.store.records(TRANSACTIONS)
        if not isinstance(index, int) or not 0 <= index < len(current):
            raise IndexOutOfRange(TRANSACTIONS, index, len(current))
        merged = {**current[index].to_dict(), **fields}
        merged["date"] = fields.get("date", current[index].date)
        t = _unwrap(validate_transaction(merged))
        updated = self.store.update(TRANSACTIONS, index, {
            "description": t.description,
            "amount": t.amount,
            "category": t.category,
            "type": t.type,
            "date": t.date,
        })
        self._commit(TRANSACTIONS, "update")
        return updated

    def delete_transaction(self, index: int) -> Transaction:
        removed = self.store.remove(TRANSACTIONS, index)
        self._commit(TRANSACTIONS, "remove")
        return removed

    def add_goal(self, name: str, target: float) -> Goal:
        goal = self.store.add(GOALS, _unwrap(validate_goal({"name": name, "target": target})))
        self._commit(GOALS, "add")
        return goal

    def delete_goal(self, index: int) -> Goal:
        removed = self.store.remove(GOALS, index)
        self._commit(GOALS, "remove")
        return removed

    def add_budget(self, category: str, amount: float) -> Budget:
        budget = _unwrap(validate_budget({"category": category, "amount": amount}))
        ensure_unique_budget(self.budgets, budget.category)
        budget = self.store.add(BUDGETS, budget)
        self._commit(BUDGETS, "add")
        return budget

    def delete_budget(self, index: int) -> Budget:
        removed = self.store.remove(BUDGETS, index)
        self._commit(BUDGETS, "remove")
        return removed

    def add_recurring(self, description: str, amount: float, category: str, type: str, frequency: str) -> RecurringRule:
        rule = _unwrap(validate_recurring({
            "description": description,
            "amount": amount,
            "category": category,
            "type": type,
            "frequency": frequency,
        }))
        rule = self.store.add(RECURRING, rule)
        self._commit(RECURRING, "add")
        return rule

    def delete_recurring(self, index: int) -> RecurringRule:
        removed = self.store.remove(RECURRING, index)
        self._commit(RECURRING, "remove")
        return removed

    def import_transactions(self, text: Union[str, bytes]) -> int:
        """Replace every transaction with the valid records of an exported file.

        Confirmation is the caller's job; a malformed file raises
        ``ImportFormatError`` before anything changes.
        """
        imported = exchange.parse_import(text)
        self.store.replace_all(TRANSACTIONS, imported)
        self._commit(TRANSACTIONS, "import")
        logger.info("Imported %d transaction(s)", len(imported))
        return len(imported)

    def export_json(self) -> str:
        return exchange.export_json(self.transactions)

    def export_csv(self) -> str:
        return exchange.export_csv(self.transactions)

    def clear_data(self) -> bool:
        for kind in (TRANSACTIONS, GOALS, BUDGETS, RECURRING):
            self.store.replace_all(kind, ())
        persisted = self.store.persist_all()
        logger.info("Cleared all records (persisted=%s)", persisted)
        self.bus.publish(DATA_CHANGED, {"kind": "all", "action": "clear", "persisted": persisted})
        self.request_refresh()
        return persisted

    # --- settings

    def _update_settings(self, name: str, value: Any) -> bool:
        self.settings = replace(self.settings, **{name: value})
        return self.store.save_setting(name, value)

    def set_theme(self, theme: str) -> bool:
        if theme not in ("light", "dark"):
            raise ValidationError(["Thème inconnu"])
        return self._update_settings("theme", theme)

    def set_notifications(self, enabled: bool) -> bool:
        return self._update_settings("notifications", bool(enabled))

    def set_lock_timeout(self, minutes: int) -> bool:
        if minutes < 0:
            raise ValidationError(["Le délai de verrouillage doit être positif"])
        self.lock.set_timeout(minutes)
        self._sync_lock()
        return self._update_settings("lock_timeout", int(minutes))

    def backup_reminder_due(self, now: Optional[datetime] = None) -> bool:
        if not self.transactions:
            return False
        last = self.settings.last_backup_reminder
        if last is None:
            return True
        return (now or datetime.now()) - last >= timedelta(days=self.config.backup_reminder_days)

    def mark_backup_reminded(self, now: Optional[datetime] = None) -> bool:
        return self._update_settings("last_backup_reminder", now or datetime.now())

    # --- PIN lock

    @property
    def is_unlocked(self) -> bool:
        return self.lock.is_unlocked

    def _save_pin(self) -> None:
        self._update_settings("pin", self.lock.pin)
        self._update_settings("pin_length", self.lock.pin_length)

    def submit_pin(self, candidate: str) -> PinResult:
        was_creating = self.lock.state is LockState.AWAITING_CREATION
        result = self.lock.submit(candidate, self.clock())
        if was_creating and result.accepted:
            self._save_pin()
        self._sync_lock()
        return result

    def reset_pin(self, current: str) -> PinResult:
        result = self.lock.reset_pin(current, self.clock())
        if result.accepted:
            self._save_pin()
        self._sync_lock()
        return result

    def change_pin_length(self, current: str, new_length: int) -> PinResult:
        result = self.lock.change_pin_length(current, new_length, self.clock())
        if result.accepted:
            self._save_pin()
        self._sync_lock()
        return result

    def lock_now(self) -> None:
        self.lock.lock()
        self._sync_lock()

    def record_activity(self) -> None:
        self.lock.record_activity(self.clock())
        self._sync_lock()

    def tick(self) -> LockState:
        return self.lock.tick(self.clock())

    def start_lock_timers(self, countdown_interval: float = 1.0) -> LockTimers:
        """Auto-lock and lockout countdown on the running event loop.

        State changes are published as ``LOCK_STATE_CHANGED`` and the
        countdown as ``LOCKOUT_TICK``.  From here on the loop clock replaces
        ``clock``.
        """
        if self._lock_timers is not None:
            self._lock_timers.close()
        self._lock_timers = LockTimers(self.lock, self.bus, countdown_interval=countdown_interval)
        self.clock = self._lock_timers.now
        self._lock_timers.sync()
        return self._lock_timers

    def _sync_lock(self) -> None:
        if self._lock_timers is not None:
            self._lock_timers.lock = self.lock
            self._lock_timers.sync()

from datetime import datetime
from typing import Iterable, NamedTuple, Optional

from tracker.domain import EXPENSE, Budget, Goal, Transaction
from tracker.errors import DuplicateCategory
from tracker.functional import Maybe, Nothing, Some, safe_budget
from tracker.transforms import balance, transactions_in_month

NORMAL = "normal"
WARNING = "warning"
OVERSPENT = "overspent"

WARNING_RATIO = 0.2


class BudgetStatus(NamedTuple):
    budget: Budget
    spent: float
    remaining: float
    percent: float
    status: str


class GoalProgress(NamedTuple):
    goal: Goal
    current: float
    percent: float
    remaining: float
    achieved: bool


def classify_budget(amount: float, spent: float) -> str:
    remaining = amount - spent
    if spent > amount:
        return OVERSPENT
    if remaining < amount * WARNING_RATIO:
        return WARNING
    return NORMAL


def month_spent(trans: Iterable[Transaction], category: str, now: Optional[datetime] = None) -> float:
    return sum(
        t.amount for t in transactions_in_month(trans, now)
        if t.type == EXPENSE and t.category == category
    )


def budget_status(budget: Budget, trans: Iterable[Transaction], now: Optional[datetime] = None) -> BudgetStatus:
    spent = month_spent(trans, budget.category, now)
    percent = spent / budget.amount * 100 if budget.amount > 0 else 0.0
    return BudgetStatus(
        budget=budget,
        spent=spent,
        remaining=budget.amount - spent,
        percent=percent,
        status=classify_budget(budget.amount, spent),
    )


def goal_progress(goal: Goal, trans: Iterable[Transaction]) -> GoalProgress:
    # savings are the whole-portfolio balance, not money earmarked for this goal
    current = balance(trans)
    percent = current / goal.target * 100 if goal.target > 0 else 0.0
    percent = min(max(percent, 0.0), 100.0)
    return GoalProgress(
        goal=goal,
        current=current,
        percent=percent,
        remaining=max(goal.target - current, 0.0),
        achieved=percent >= 100.0,
    )


def ensure_unique_budget(budgets: Iterable[Budget], category: str) -> None:
    if safe_budget(budgets, category).is_some():
        raise DuplicateCategory(category)


def budget_alert(
    t: Transaction,
    budgets: Iterable[Budget],
    trans: Iterable[Transaction],
    now: Optional[datetime] = None,
) -> Maybe[dict]:
    """Alert for the budget covering ``t``'s category, if that budget is now at risk."""
    if t.type != EXPENSE:
        return Nothing()

    def check(budget: Budget) -> Maybe[dict]:
        status = budget_status(budget, trans, now)
        if status.status == NORMAL:
            return Nothing()
        alert = {
            "level": status.status,
            "category": budget.category,
            "spent": status.spent,
            "limit": budget.amount,
            "remaining": status.remaining,
        }
        if status.status == OVERSPENT:
            alert["over_budget"] = status.spent - budget.amount
            alert["message"] = (
                f"Budget dépassé pour {budget.category} : "
                f"{alert['over_budget']:g} au-dessus de la limite"
            )
        else:
            alert["message"] = f"Budget {budget.category} bientôt atteint ({status.percent:.0f}%)"
        return Some(alert)

    return safe_budget(budgets, t.category).bind(check)

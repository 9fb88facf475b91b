from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
from typing import Iterable, Optional, Union

from amounts import AmountLike, to_amount
from models import Budget, BudgetPeriod
from periods import days_remaining, period_key

ZERO = Decimal("0")
HUNDRED = Decimal("100")


@dataclass(frozen=True)
class BudgetProgress:
    budget: Budget
    percentage: Decimal
    raw_percentage: Decimal
    remaining: Decimal
    is_over_budget: bool
    is_alert: bool
    days_remaining: Optional[int] = None


@dataclass(frozen=True)
class BudgetReset:
    spent: Decimal
    reset_key: str
    banked: Decimal

    def apply_to(self, budget: Budget) -> None:
        budget.spent = self.spent
        budget.last_reset_key = self.reset_key


@dataclass(frozen=True)
class BudgetSummary:
    active_count: int
    total_budgeted: Decimal
    total_spent: Decimal
    total_remaining: Decimal
    over_budget_count: int
    warning_count: int
    on_track_count: int


def progress(
    budget: Budget, now: Optional[Union[date, datetime]] = None
) -> BudgetProgress:
    amount = to_amount(budget.amount)
    spent = to_amount(budget.spent)
    raw = (spent / amount * HUNDRED) if amount > 0 else ZERO
    remaining_days = None
    if now is not None:
        remaining_days = days_remaining(budget.period, now)
    return BudgetProgress(
        budget=budget,
        # bar rendering range; the over-budget flag reads the raw figures
        percentage=min(max(raw, ZERO), HUNDRED),
        raw_percentage=raw,
        remaining=amount - spent,
        is_over_budget=spent > amount,
        is_alert=amount > 0 and raw >= budget.alert_threshold,
        days_remaining=remaining_days,
    )


def reset_period(
    budget: Budget, today: Union[date, datetime]
) -> Optional[BudgetReset]:
    """Start a new period for ``budget``.

    With rollover, unused allowance is banked as negative spending. Returns
    None when the budget was already reset in the period containing
    ``today``.
    """
    key = period_key(budget.period, today)
    if budget.last_reset_key == key:
        return None
    amount = to_amount(budget.amount)
    spent = to_amount(budget.spent)
    new_spent = ZERO
    if budget.rollover and spent < amount:
        new_spent = spent - amount
    return BudgetReset(spent=new_spent, reset_key=key, banked=-new_spent)


def apply_spending(
    budgets: Iterable[Budget], category: str, amount: AmountLike
) -> Optional[Budget]:
    """Credit ``amount`` to the first active budget for ``category``."""
    value = to_amount(amount)
    for budget in budgets:
        if budget.is_active and budget.category == category:
            budget.spent = to_amount(budget.spent) + value
            return budget
    return None


def over_budget(budgets: Iterable[Budget]) -> list[Budget]:
    return [
        budget
        for budget in budgets
        if budget.is_active and to_amount(budget.spent) > to_amount(budget.amount)
    ]


def summarize(rows: Iterable[BudgetProgress]) -> BudgetSummary:
    active = [row for row in rows if row.budget.is_active]
    total_budgeted = sum((to_amount(row.budget.amount) for row in active), ZERO)
    total_spent = sum((to_amount(row.budget.spent) for row in active), ZERO)
    over = sum(1 for row in active if row.is_over_budget)
    warning = sum(1 for row in active if not row.is_over_budget and row.is_alert)
    return BudgetSummary(
        active_count=len(active),
        total_budgeted=total_budgeted,
        total_spent=total_spent,
        total_remaining=total_budgeted - total_spent,
        over_budget_count=over,
        warning_count=warning,
        on_track_count=len(active) - over - warning,
    )


def matches_period(budget: Budget, period: Optional[BudgetPeriod]) -> bool:
    return period is None or BudgetPeriod(budget.period) == BudgetPeriod(period)

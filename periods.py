import math
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from typing import Optional, Union

from models import BudgetPeriod

DAY = timedelta(days=1)


@dataclass(frozen=True)
class Period:
    slug: str
    start: date
    end: date


def _as_date(value: Union[date, datetime]) -> date:
    return value.date() if isinstance(value, datetime) else value


def _month_end(year: int, month: int) -> date:
    if month == 12:
        return date(year, 12, 31)
    return date(year, month + 1, 1) - date.resolution


def period_bounds(period: BudgetPeriod, today: Union[date, datetime]) -> Period:
    """The budget window containing ``today``. Weeks run Monday to Sunday."""
    today = _as_date(today)
    period = BudgetPeriod(period)
    if period == BudgetPeriod.weekly:
        start = today - timedelta(days=today.weekday())
        return Period(period.value, start, start + timedelta(days=6))
    if period == BudgetPeriod.monthly:
        return Period(
            period.value, today.replace(day=1), _month_end(today.year, today.month)
        )
    if period == BudgetPeriod.quarterly:
        first_month = (today.month - 1) // 3 * 3 + 1
        return Period(
            period.value,
            date(today.year, first_month, 1),
            _month_end(today.year, first_month + 2),
        )
    return Period(period.value, date(today.year, 1, 1), date(today.year, 12, 31))


def period_key(period: BudgetPeriod, today: Union[date, datetime]) -> str:
    today = _as_date(today)
    period = BudgetPeriod(period)
    if period == BudgetPeriod.weekly:
        iso_year, iso_week, _ = today.isocalendar()
        return f"{iso_year:04d}-W{iso_week:02d}"
    if period == BudgetPeriod.monthly:
        return f"{today.year:04d}-{today.month:02d}"
    if period == BudgetPeriod.quarterly:
        return f"{today.year:04d}-Q{(today.month - 1) // 3 + 1}"
    return f"{today.year:04d}"


def days_remaining(period: BudgetPeriod, now: Union[date, datetime]) -> int:
    end = period_bounds(period, now).end
    if isinstance(now, datetime):
        # the boundary carries the same time of day as ``now``
        boundary = datetime.combine(end, now.time())
        diff = boundary - now
    else:
        diff = end - now
    return max(0, math.ceil(diff / DAY))


def resolve_period(
    period: Optional[str],
    start: Optional[str],
    end: Optional[str],
    *,
    today: Optional[date] = None,
) -> Period:
    """Resolve a transaction-list filter (``this_month``, ``last_month``, ...)."""
    today = today or date.today()
    if not period or period == "all":
        return Period("all", date(1970, 1, 1), today)
    if period == "last_month":
        first_this = today.replace(day=1)
        last_month_end = first_this - date.resolution
        return Period("last_month", last_month_end.replace(day=1), last_month_end)
    if period == "custom":
        if not start or not end:
            raise ValueError("Custom period requires start and end dates")
        start_date = date.fromisoformat(start)
        end_date = date.fromisoformat(end)
        if start_date > end_date:
            raise ValueError("Start date must be before end date")
        return Period("custom", start_date, end_date)
    if period in {"this_week", "this_quarter", "this_year"}:
        budget_period = {
            "this_week": BudgetPeriod.weekly,
            "this_quarter": BudgetPeriod.quarterly,
            "this_year": BudgetPeriod.yearly,
        }[period]
        bounds = period_bounds(budget_period, today)
        return Period(period, bounds.start, bounds.end)

    bounds = period_bounds(BudgetPeriod.monthly, today)
    return Period("this_month", bounds.start, bounds.end)

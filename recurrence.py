import math
from dataclasses import asdict, dataclass, field
from datetime import date, datetime, time, timedelta
from decimal import Decimal
from typing import Iterable, Optional, Union

from errors import InvalidAnchor, InvalidFrequency, ValidationError
from models import (
    Frequency,
    PaymentMethod,
    ReceiptStatus,
    RecurringObligation,
    TransactionStatus,
    TransactionType,
)

DAY = timedelta(days=1)

Moment = Union[date, datetime]

FREQUENCY_LABELS = {
    Frequency.daily: "Daily",
    Frequency.weekly: "Weekly",
    Frequency.biweekly: "Every 2 weeks",
    Frequency.monthly: "Monthly",
    Frequency.quarterly: "Quarterly",
    Frequency.yearly: "Yearly",
}

ANNUAL_OCCURRENCES = {
    Frequency.daily: 365,
    Frequency.weekly: 52,
    Frequency.biweekly: 26,
    Frequency.monthly: 12,
    Frequency.quarterly: 4,
    Frequency.yearly: 1,
}


def _as_date(value: Moment) -> date:
    return value.date() if isinstance(value, datetime) else value


def _as_datetime(value: Moment) -> datetime:
    if isinstance(value, datetime):
        return value
    return datetime.combine(value, time.min)


def parse_frequency(value: Union[str, Frequency]) -> Frequency:
    try:
        return Frequency(value)
    except ValueError as exc:
        raise InvalidFrequency(f"Unsupported frequency: {value!r}") from exc


def frequency_label(frequency: Union[str, Frequency]) -> str:
    return FREQUENCY_LABELS[parse_frequency(frequency)]


def validate_anchors(
    day_of_month: Optional[int] = None,
    day_of_week: Optional[int] = None,
    month_of_year: Optional[int] = None,
) -> None:
    if day_of_month is not None and not 1 <= day_of_month <= 31:
        raise InvalidAnchor(
            f"day_of_month must be between 1 and 31, got {day_of_month}"
        )
    if day_of_week is not None and not 0 <= day_of_week <= 6:
        raise InvalidAnchor(f"day_of_week must be between 0 and 6, got {day_of_week}")
    if month_of_year is not None and not 1 <= month_of_year <= 12:
        raise InvalidAnchor(
            f"month_of_year must be between 1 and 12, got {month_of_year}"
        )


def days_in_month(year: int, month: int) -> int:
    if month == 12:
        next_month = date(year + 1, 1, 1)
    else:
        next_month = date(year, month + 1, 1)
    return (next_month - date(year, month, 1)).days


def _add_months(base: date, months: int, *, desired_day: int) -> date:
    total_months = base.month - 1 + months
    year = base.year + total_months // 12
    month = total_months % 12 + 1
    return date(year, month, min(desired_day, days_in_month(year, month)))


def compute_next_occurrence(
    frequency: Union[str, Frequency],
    from_date: date,
    *,
    day_of_month: Optional[int] = None,
    day_of_week: Optional[int] = None,
    month_of_year: Optional[int] = None,
) -> date:
    """Next occurrence strictly after ``from_date``.

    Weekly and biweekly schedules step a fixed 7 or 14 days; ``day_of_week``
    is kept for display only. Month-based schedules clamp the day to the
    length of the target month, so an anchor of 31 lands on Feb 28/29.
    """
    frequency = parse_frequency(frequency)
    validate_anchors(day_of_month, day_of_week, month_of_year)
    from_date = _as_date(from_date)
    desired_day = day_of_month or from_date.day

    if frequency == Frequency.daily:
        next_date = from_date + DAY
    elif frequency == Frequency.weekly:
        next_date = from_date + timedelta(weeks=1)
    elif frequency == Frequency.biweekly:
        next_date = from_date + timedelta(weeks=2)
    elif frequency == Frequency.monthly:
        next_date = _add_months(from_date, 1, desired_day=desired_day)
    elif frequency == Frequency.quarterly:
        next_date = _add_months(from_date, 3, desired_day=desired_day)
    else:
        year = from_date.year + 1
        month = month_of_year or from_date.month
        next_date = date(year, month, min(desired_day, days_in_month(year, month)))

    assert next_date > from_date, f"{frequency.value} step went backwards"
    return next_date


def initial_next_due(
    frequency: Union[str, Frequency],
    start_date: date,
    now: Moment,
    *,
    day_of_month: Optional[int] = None,
    day_of_week: Optional[int] = None,
    month_of_year: Optional[int] = None,
) -> date:
    today = _as_date(now)
    if start_date > today:
        return start_date
    return compute_next_occurrence(
        frequency,
        today,
        day_of_month=day_of_month,
        day_of_week=day_of_week,
        month_of_year=month_of_year,
    )


def annualized_amount(amount: Decimal, frequency: Union[str, Frequency]) -> Decimal:
    return Decimal(amount) * ANNUAL_OCCURRENCES[parse_frequency(frequency)]


def monthly_equivalent(amount: Decimal, frequency: Union[str, Frequency]) -> Decimal:
    return (annualized_amount(amount, frequency) / 12).quantize(Decimal("0.01"))


@dataclass(frozen=True)
class ScheduleChange:
    next_due: Optional[date]
    is_active: bool
    last_processed: Optional[date]

    @property
    def ended(self) -> bool:
        return not self.is_active and self.next_due is None

    def apply_to(self, obligation: RecurringObligation) -> None:
        obligation.next_due = self.next_due
        obligation.is_active = self.is_active
        obligation.last_processed = self.last_processed


@dataclass(frozen=True)
class TransactionDraft:
    """An unsaved transaction produced by processing an obligation."""

    date: date
    amount: Decimal
    type: TransactionType
    payee: Optional[str]
    description: Optional[str]
    account: Optional[str]
    category: Optional[str]
    method: Optional[PaymentMethod]
    recurring_id: Optional[int]
    tags: list[str] = field(default_factory=list)
    status: TransactionStatus = TransactionStatus.pending
    receipt_status: ReceiptStatus = ReceiptStatus.na

    def as_dict(self) -> dict[str, object]:
        return asdict(self)


@dataclass(frozen=True)
class ProcessResult:
    change: ScheduleChange
    draft: TransactionDraft


def _anchors(obligation: RecurringObligation) -> dict[str, Optional[int]]:
    return {
        "day_of_month": obligation.day_of_month,
        "day_of_week": obligation.day_of_week,
        "month_of_year": obligation.month_of_year,
    }


def _bounded(
    obligation: RecurringObligation,
    next_date: date,
    *,
    is_active: bool,
    last_processed: Optional[date],
) -> ScheduleChange:
    if obligation.end_date and next_date > obligation.end_date:
        return ScheduleChange(
            next_due=None, is_active=False, last_processed=last_processed
        )
    return ScheduleChange(
        next_due=next_date, is_active=is_active, last_processed=last_processed
    )


def _advance(
    obligation: RecurringObligation, today: date, last_processed: Optional[date]
) -> ScheduleChange:
    next_date = compute_next_occurrence(
        obligation.frequency, today, **_anchors(obligation)
    )
    return _bounded(
        obligation, next_date, is_active=True, last_processed=last_processed
    )


def build_draft(obligation: RecurringObligation, today: date) -> TransactionDraft:
    return TransactionDraft(
        date=today,
        amount=obligation.amount,
        type=obligation.type,
        payee=obligation.payee,
        description=obligation.description or obligation.name,
        account=obligation.account,
        category=obligation.category,
        method=obligation.method,
        recurring_id=obligation.id,
        tags=list(obligation.tags or []),
    )


def process(obligation: RecurringObligation, now: Moment) -> Optional[ProcessResult]:
    """Book the current occurrence and move the schedule forward.

    Returns None for an inactive obligation; the record is not touched.
    """
    if not obligation.is_active:
        return None
    today = _as_date(now)
    change = _advance(obligation, today, last_processed=today)
    return ProcessResult(change=change, draft=build_draft(obligation, today))


def skip(obligation: RecurringObligation, now: Moment) -> Optional[ScheduleChange]:
    if not obligation.is_active:
        return None
    return _advance(obligation, _as_date(now), obligation.last_processed)


def reschedule(
    obligation: RecurringObligation,
    now: Moment,
    *,
    is_active: Optional[bool] = None,
) -> ScheduleChange:
    """Recompute the schedule after an edit of frequency, anchors or dates."""
    validate_anchors(**_anchors(obligation))
    next_date = initial_next_due(
        obligation.frequency, obligation.start_date, now, **_anchors(obligation)
    )
    return _bounded(
        obligation,
        next_date,
        is_active=obligation.is_active if is_active is None else is_active,
        last_processed=obligation.last_processed,
    )


def activate(obligation: RecurringObligation, now: Moment) -> ScheduleChange:
    return reschedule(obligation, now, is_active=True)


def deactivate(obligation: RecurringObligation) -> ScheduleChange:
    return ScheduleChange(
        next_due=obligation.next_due,
        is_active=False,
        last_processed=obligation.last_processed,
    )


@dataclass(frozen=True)
class UpcomingObligation:
    obligation: RecurringObligation
    due_date: date
    days_until_due: int
    raw_days_until_due: int

    @property
    def is_overdue(self) -> bool:
        return self.raw_days_until_due < 0


def upcoming(
    obligations: Iterable[RecurringObligation],
    now: Moment,
    lookahead_days: int,
) -> list[UpcomingObligation]:
    if lookahead_days < 0:
        raise ValidationError("lookahead_days must not be negative")
    now_dt = _as_datetime(now)
    cutoff = now_dt + timedelta(days=lookahead_days)

    items: list[UpcomingObligation] = []
    for obligation in obligations:
        if not obligation.is_active or obligation.next_due is None:
            continue
        due_at = _as_datetime(obligation.next_due)
        if due_at > cutoff:
            continue
        raw = math.ceil((due_at - now_dt) / DAY)
        items.append(
            UpcomingObligation(
                obligation=obligation,
                due_date=obligation.next_due,
                days_until_due=max(0, raw),
                raw_days_until_due=raw,
            )
        )
    items.sort(key=lambda item: (item.days_until_due, item.obligation.name or ""))
    return items


def due_for_processing(
    obligations: Iterable[RecurringObligation], now: Moment
) -> list[RecurringObligation]:
    """Active auto-process obligations whose next due date has arrived."""
    today = _as_date(now)
    due = [
        obligation
        for obligation in obligations
        if obligation.is_active
        and obligation.auto_process
        and obligation.next_due is not None
        and obligation.next_due <= today
    ]
    due.sort(key=lambda obligation: (obligation.next_due, obligation.name or ""))
    return due

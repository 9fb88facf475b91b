from __future__ import annotations

import logging
from datetime import datetime
from decimal import Decimal
from typing import Iterable, Optional, Union

from sqlalchemy import delete, or_, select, update
from sqlalchemy.orm import Session

import ledger
import recurrence
from amounts import AmountLike, to_amount
from config import get_settings, local_now
from errors import NotFound, StaleRecord, ValidationError
from models import (
    Budget,
    BudgetPeriod,
    Frequency,
    RecurringObligation,
    Transaction,
    TransactionType,
)
from periods import Period, period_key
from recurrence import TransactionDraft, UpcomingObligation
from schemas import BudgetIn, RecurringObligationIn

logger = logging.getLogger(__name__)

Record = Union[RecurringObligation, Budget]


def _check_version(record: Record, expected_version: Optional[int]) -> None:
    if expected_version is not None and record.version != expected_version:
        raise StaleRecord(
            type(record).__name__, record.id, expected_version, record.version
        )


def _check_dates(start, end) -> None:
    if start and end and end < start:
        raise ValidationError("End date must not be before start date")


# editing any of these moves the schedule; other edits keep next_due
SCHEDULE_FIELDS = (
    "frequency",
    "day_of_month",
    "day_of_week",
    "month_of_year",
    "start_date",
    "end_date",
)


def _schedule_fields(obligation: RecurringObligation) -> tuple:
    return tuple(getattr(obligation, field) for field in SCHEDULE_FIELDS)


class TransactionService:
    def __init__(self, session: Session) -> None:
        self.session = session

    def create_from_draft(
        self, draft: TransactionDraft, *, commit: bool = True
    ) -> Transaction:
        txn = Transaction(**draft.as_dict())
        self.session.add(txn)
        self.session.flush()
        if commit:
            self.session.commit()
            self.session.refresh(txn)
        logger.info(
            f"transaction_created: id={txn.id} recurring_id={txn.recurring_id} "
            f"amount={txn.amount} date={txn.date.isoformat()}"
        )
        return txn

    def get(self, transaction_id: int) -> Transaction:
        txn = self.session.get(Transaction, transaction_id)
        if not txn:
            raise NotFound("Transaction not found")
        return txn

    def list(
        self,
        period: Optional[Period] = None,
        *,
        recurring_id: Optional[int] = None,
    ) -> list[Transaction]:
        stmt = select(Transaction).order_by(
            Transaction.date.desc(), Transaction.id.desc()
        )
        if period:
            stmt = stmt.where(Transaction.date.between(period.start, period.end))
        if recurring_id is not None:
            stmt = stmt.where(Transaction.recurring_id == recurring_id)
        return list(self.session.scalars(stmt).all())

    def delete(self, transaction_id: int) -> None:
        self.session.delete(self.get(transaction_id))
        self.session.commit()
        logger.info(f"transaction_deleted: id={transaction_id}")

    def unlink_recurring(self, recurring_ids: Iterable[int]) -> int:
        ids = list(recurring_ids)
        if not ids:
            return 0
        result = self.session.execute(
            update(Transaction)
            .where(Transaction.recurring_id.in_(ids))
            .values(recurring_id=None)
        )
        return result.rowcount or 0


class RecurringObligationService:
    def __init__(self, session: Session) -> None:
        self.session = session

    def get(self, obligation_id: int) -> RecurringObligation:
        obligation = self.session.get(RecurringObligation, obligation_id)
        if not obligation:
            raise NotFound("Recurring obligation not found")
        return obligation

    def list(
        self,
        *,
        active_only: bool = False,
        frequency: Optional[Frequency] = None,
        type: Optional[TransactionType] = None,
        query: Optional[str] = None,
    ) -> list[RecurringObligation]:
        stmt = select(RecurringObligation).order_by(
            RecurringObligation.next_due.is_(None),
            RecurringObligation.next_due,
            RecurringObligation.name,
        )
        if active_only:
            stmt = stmt.where(RecurringObligation.is_active.is_(True))
        if frequency:
            stmt = stmt.where(RecurringObligation.frequency == frequency)
        if type:
            stmt = stmt.where(RecurringObligation.type == type)
        if query:
            like = f"%{query.strip()}%"
            stmt = stmt.where(
                or_(
                    RecurringObligation.name.ilike(like),
                    RecurringObligation.payee.ilike(like),
                    RecurringObligation.category.ilike(like),
                )
            )
        return list(self.session.scalars(stmt).all())

    @staticmethod
    def _validate(data: RecurringObligationIn) -> Decimal:
        recurrence.parse_frequency(data.frequency)
        recurrence.validate_anchors(
            data.day_of_month, data.day_of_week, data.month_of_year
        )
        _check_dates(data.start_date, data.end_date)
        return to_amount(data.amount)

    def create(
        self, data: RecurringObligationIn, now: Optional[datetime] = None
    ) -> RecurringObligation:
        now = now or local_now()
        amount = self._validate(data)
        fields = data.model_dump()
        fields["amount"] = amount
        obligation = RecurringObligation(**fields)
        obligation.last_processed = None
        recurrence.reschedule(obligation, now).apply_to(obligation)
        self.session.add(obligation)
        self.session.commit()
        self.session.refresh(obligation)
        logger.info(
            f"recurring_created: id={obligation.id} "
            f"frequency={obligation.frequency.value} next_due={obligation.next_due}"
        )
        return obligation

    def update(
        self,
        obligation_id: int,
        data: RecurringObligationIn,
        now: Optional[datetime] = None,
        *,
        expected_version: Optional[int] = None,
    ) -> RecurringObligation:
        now = now or local_now()
        obligation = self.get(obligation_id)
        _check_version(obligation, expected_version)
        amount = self._validate(data)
        before = _schedule_fields(obligation)
        for field, value in data.model_dump().items():
            setattr(obligation, field, value)
        obligation.amount = amount
        rescheduled = _schedule_fields(obligation) != before or (
            obligation.is_active and obligation.next_due is None
        )
        if rescheduled:
            recurrence.reschedule(obligation, now).apply_to(obligation)
        self.session.commit()
        self.session.refresh(obligation)
        logger.info(
            f"recurring_updated: id={obligation.id} next_due={obligation.next_due} "
            f"rescheduled={rescheduled} active={obligation.is_active}"
        )
        return obligation

    def delete(self, obligation_id: int) -> None:
        obligation = self.get(obligation_id)
        unlinked = TransactionService(self.session).unlink_recurring([obligation.id])
        self.session.delete(obligation)
        self.session.commit()
        logger.info(f"recurring_deleted: id={obligation_id} unlinked={unlinked}")

    def bulk_delete(self, obligation_ids: Iterable[int]) -> int:
        ids = list(obligation_ids)
        if not ids:
            return 0
        TransactionService(self.session).unlink_recurring(ids)
        result = self.session.execute(
            delete(RecurringObligation).where(RecurringObligation.id.in_(ids))
        )
        self.session.commit()
        count = result.rowcount or 0
        logger.info(f"recurring_bulk_deleted: requested={len(ids)} deleted={count}")
        return count

    def process(
        self,
        obligation_id: int,
        now: Optional[datetime] = None,
        *,
        expected_version: Optional[int] = None,
    ) -> tuple[RecurringObligation, Optional[Transaction]]:
        now = now or local_now()
        obligation = self.get(obligation_id)
        _check_version(obligation, expected_version)
        result = recurrence.process(obligation, now)
        if result is None:
            logger.info(f"recurring_process: id={obligation_id} skipped=inactive")
            return obligation, None
        result.change.apply_to(obligation)
        txn = TransactionService(self.session).create_from_draft(
            result.draft, commit=False
        )
        self.session.commit()
        self.session.refresh(obligation)
        self.session.refresh(txn)
        logger.info(
            f"recurring_process: id={obligation_id} transaction_id={txn.id} "
            f"next_due={obligation.next_due} ended={result.change.ended}"
        )
        return obligation, txn

    def skip(
        self,
        obligation_id: int,
        now: Optional[datetime] = None,
        *,
        expected_version: Optional[int] = None,
    ) -> tuple[RecurringObligation, bool]:
        now = now or local_now()
        obligation = self.get(obligation_id)
        _check_version(obligation, expected_version)
        change = recurrence.skip(obligation, now)
        if change is None:
            logger.info(f"recurring_skip: id={obligation_id} skipped=inactive")
            return obligation, False
        change.apply_to(obligation)
        self.session.commit()
        self.session.refresh(obligation)
        logger.info(
            f"recurring_skip: id={obligation_id} next_due={obligation.next_due} "
            f"ended={change.ended}"
        )
        return obligation, True

    def deactivate(
        self, obligation_id: int, *, expected_version: Optional[int] = None
    ) -> RecurringObligation:
        obligation = self.get(obligation_id)
        _check_version(obligation, expected_version)
        recurrence.deactivate(obligation).apply_to(obligation)
        self.session.commit()
        self.session.refresh(obligation)
        logger.info(f"recurring_deactivated: id={obligation_id}")
        return obligation

    def activate(
        self,
        obligation_id: int,
        now: Optional[datetime] = None,
        *,
        expected_version: Optional[int] = None,
    ) -> RecurringObligation:
        now = now or local_now()
        obligation = self.get(obligation_id)
        _check_version(obligation, expected_version)
        recurrence.activate(obligation, now).apply_to(obligation)
        self.session.commit()
        self.session.refresh(obligation)
        logger.info(
            f"recurring_activated: id={obligation_id} next_due={obligation.next_due} "
            f"active={obligation.is_active}"
        )
        return obligation

    def upcoming(
        self, now: Optional[datetime] = None, days: Optional[int] = None
    ) -> list[UpcomingObligation]:
        now = now or local_now()
        if days is None:
            days = get_settings().upcoming_days
        return recurrence.upcoming(self.list(active_only=True), now, days)

    def process_due(self, now: Optional[datetime] = None) -> list[Transaction]:
        """Process every auto-process obligation that has come due.

        Each obligation is booked once per call; the schedule then moves to
        the next occurrence after ``now``.
        """
        now = now or local_now()
        created: list[Transaction] = []
        for obligation in recurrence.due_for_processing(
            self.list(active_only=True), now
        ):
            _, txn = self.process(obligation.id, now)
            if txn is not None:
                created.append(txn)
        logger.info(f"recurring_process_due: processed={len(created)}")
        return created

    def summary(self, now: Optional[datetime] = None) -> dict[str, object]:
        now = now or local_now()
        active = self.list(active_only=True)

        annual = {kind: Decimal("0") for kind in TransactionType}
        monthly = dict(annual)
        for obligation in active:
            annual[obligation.type] += recurrence.annualized_amount(
                obligation.amount, obligation.frequency
            )
            monthly[obligation.type] += recurrence.monthly_equivalent(
                obligation.amount, obligation.frequency
            )

        window = recurrence.upcoming(active, now, 7)
        monthly_income = monthly[TransactionType.credit]
        monthly_expenses = monthly[TransactionType.debit]
        return {
            "active_count": len(active),
            "monthly_income": monthly_income,
            "monthly_expenses": monthly_expenses,
            "monthly_net": monthly_income - monthly_expenses,
            "annualized_income": annual[TransactionType.credit],
            "annualized_expenses": annual[TransactionType.debit],
            "due_this_week": len(window),
            "overdue_count": sum(1 for item in window if item.is_overdue),
        }


class BudgetService:
    def __init__(self, session: Session) -> None:
        self.session = session

    def get(self, budget_id: int) -> Budget:
        budget = self.session.get(Budget, budget_id)
        if not budget:
            raise NotFound("Budget not found")
        return budget

    def list(
        self,
        *,
        active_only: bool = False,
        period: Optional[BudgetPeriod] = None,
        query: Optional[str] = None,
    ) -> list[Budget]:
        # id order is creation order, which first-match attribution relies on
        stmt = select(Budget).order_by(Budget.id)
        if active_only:
            stmt = stmt.where(Budget.is_active.is_(True))
        if period:
            stmt = stmt.where(Budget.period == period)
        if query:
            like = f"%{query.strip()}%"
            stmt = stmt.where(or_(Budget.name.ilike(like), Budget.category.ilike(like)))
        return list(self.session.scalars(stmt).all())

    def create(self, data: BudgetIn, now: Optional[datetime] = None) -> Budget:
        now = now or local_now()
        _check_dates(data.start_date, data.end_date)
        fields = data.model_dump()
        fields["amount"] = to_amount(data.amount)
        budget = Budget(
            **fields,
            spent=Decimal("0"),
            last_reset_key=period_key(data.period, now),
        )
        self.session.add(budget)
        self.session.commit()
        self.session.refresh(budget)
        logger.info(
            f"budget_created: id={budget.id} category={budget.category} "
            f"period={budget.period.value} amount={budget.amount}"
        )
        return budget

    def update(
        self,
        budget_id: int,
        data: BudgetIn,
        now: Optional[datetime] = None,
        *,
        expected_version: Optional[int] = None,
    ) -> Budget:
        now = now or local_now()
        budget = self.get(budget_id)
        _check_version(budget, expected_version)
        _check_dates(data.start_date, data.end_date)
        amount = to_amount(data.amount)
        period_changed = BudgetPeriod(budget.period) != data.period
        for field, value in data.model_dump().items():
            setattr(budget, field, value)
        budget.amount = amount
        if period_changed:
            budget.last_reset_key = period_key(data.period, now)
        self.session.commit()
        self.session.refresh(budget)
        logger.info(f"budget_updated: id={budget.id} period_changed={period_changed}")
        return budget

    def delete(self, budget_id: int) -> None:
        self.session.delete(self.get(budget_id))
        self.session.commit()
        logger.info(f"budget_deleted: id={budget_id}")

    def bulk_delete(self, budget_ids: Iterable[int]) -> int:
        ids = list(budget_ids)
        if not ids:
            return 0
        result = self.session.execute(delete(Budget).where(Budget.id.in_(ids)))
        self.session.commit()
        count = result.rowcount or 0
        logger.info(f"budget_bulk_deleted: requested={len(ids)} deleted={count}")
        return count

    def progress(
        self, now: Optional[datetime] = None, *, include_inactive: bool = False
    ) -> list[ledger.BudgetProgress]:
        now = now or local_now()
        budgets = self.list(active_only=not include_inactive)
        return [ledger.progress(budget, now) for budget in budgets]

    def summary(self, now: Optional[datetime] = None) -> ledger.BudgetSummary:
        return ledger.summarize(self.progress(now))

    def over_budget(self) -> list[Budget]:
        return ledger.over_budget(self.list(active_only=True))

    def apply_spending(self, category: str, amount: AmountLike) -> Optional[Budget]:
        budget = ledger.apply_spending(self.list(active_only=True), category, amount)
        if budget is None:
            logger.info(f"budget_spending: category={category} matched=none")
            return None
        self.session.commit()
        self.session.refresh(budget)
        logger.info(
            f"budget_spending: category={category} budget_id={budget.id} "
            f"spent={budget.spent}"
        )
        return budget

    def reset(
        self,
        budget_id: int,
        now: Optional[datetime] = None,
        *,
        expected_version: Optional[int] = None,
    ) -> tuple[Budget, bool]:
        now = now or local_now()
        budget = self.get(budget_id)
        _check_version(budget, expected_version)
        change = ledger.reset_period(budget, now)
        if change is None:
            logger.info(f"budget_reset: id={budget_id} skipped=already_reset")
            return budget, False
        change.apply_to(budget)
        self.session.commit()
        self.session.refresh(budget)
        logger.info(
            f"budget_reset: id={budget_id} key={change.reset_key} "
            f"banked={change.banked}"
        )
        return budget, True

    def reset_all(
        self, now: Optional[datetime] = None, period: Optional[BudgetPeriod] = None
    ) -> list[Budget]:
        now = now or local_now()
        reset: list[Budget] = []
        for budget in self.list():
            if not ledger.matches_period(budget, period):
                continue
            change = ledger.reset_period(budget, now)
            if change is None:
                continue
            change.apply_to(budget)
            reset.append(budget)
        self.session.commit()
        period_label = period.value if period else "all"
        logger.info(f"budget_reset_all: period={period_label} reset={len(reset)}")
        return reset

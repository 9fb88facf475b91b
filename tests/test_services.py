from datetime import date, datetime
from decimal import Decimal

import pytest
from sqlalchemy import create_engine, select
from sqlalchemy.orm import sessionmaker
from sqlalchemy.orm.exc import StaleDataError

from database import Base
from errors import InvalidAnchor, NotFound, StaleRecord, ValidationError
from models import (
    BudgetPeriod,
    Frequency,
    ReceiptStatus,
    RecurringObligation,
    Transaction,
    TransactionStatus,
    TransactionType,
)
from schemas import BudgetIn, RecurringObligationIn
from services import BudgetService, RecurringObligationService, TransactionService

NOW = datetime(2024, 3, 1, 9, 0)


def make_session():
    engine = create_engine(
        "sqlite+pysqlite:///:memory:", connect_args={"check_same_thread": False}
    )
    Base.metadata.create_all(engine)
    SessionLocal = sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)
    return SessionLocal()


def _obligation_in(**overrides) -> RecurringObligationIn:
    fields = dict(
        name="Streaming",
        payee="StreamCo",
        amount=Decimal("15.99"),
        type=TransactionType.debit,
        category="Entertainment",
        account="Credit Card",
        frequency=Frequency.monthly,
        day_of_month=15,
        start_date=date(2024, 1, 15),
        end_date=None,
    )
    fields.update(overrides)
    return RecurringObligationIn(**fields)


def _budget_in(**overrides) -> BudgetIn:
    fields = dict(
        name="Groceries",
        category="Groceries",
        amount=Decimal("500"),
        period=BudgetPeriod.monthly,
        rollover=True,
    )
    fields.update(overrides)
    return BudgetIn(**fields)


def test_create_computes_initial_next_due():
    session = make_session()
    service = RecurringObligationService(session)

    started = service.create(_obligation_in(), now=NOW)
    assert started.next_due == date(2024, 4, 15)
    assert started.last_processed is None
    assert started.version == 1

    future = service.create(
        _obligation_in(name="Gym", start_date=date(2024, 6, 1)), now=NOW
    )
    assert future.next_due == date(2024, 6, 1)


def test_create_rejects_bad_anchor_without_persisting():
    session = make_session()
    service = RecurringObligationService(session)

    with pytest.raises(InvalidAnchor):
        service.create(_obligation_in(day_of_month=32), now=NOW)
    with pytest.raises(ValidationError):
        service.create(_obligation_in(end_date=date(2023, 1, 1)), now=NOW)

    assert service.list() == []


def test_update_reschedules_and_leaves_record_on_failure():
    session = make_session()
    service = RecurringObligationService(session)
    obligation = service.create(_obligation_in(), now=NOW)

    with pytest.raises(InvalidAnchor):
        service.update(obligation.id, _obligation_in(month_of_year=0), now=NOW)
    assert service.get(obligation.id).next_due == date(2024, 4, 15)

    updated = service.update(
        obligation.id, _obligation_in(frequency=Frequency.weekly), now=NOW
    )
    assert updated.next_due == date(2024, 3, 8)
    assert updated.version == 2


def test_process_books_transaction_and_advances():
    session = make_session()
    service = RecurringObligationService(session)
    obligation = service.create(_obligation_in(), now=NOW)

    processed_at = datetime(2024, 3, 15, 7, 0)
    obligation, txn = service.process(obligation.id, processed_at)

    assert txn is not None
    assert txn.recurring_id == obligation.id
    assert txn.date == date(2024, 3, 15)
    assert txn.amount == Decimal("15.99")
    assert txn.status == TransactionStatus.pending
    assert txn.receipt_status == ReceiptStatus.na
    assert txn.description == "Streaming"
    assert obligation.next_due == date(2024, 4, 15)
    assert obligation.last_processed == date(2024, 3, 15)

    history = TransactionService(session).list(recurring_id=obligation.id)
    assert [t.id for t in history] == [txn.id]


def test_process_past_end_date_ends_schedule():
    session = make_session()
    service = RecurringObligationService(session)
    obligation = service.create(
        _obligation_in(day_of_month=None, end_date=date(2024, 3, 1)),
        now=datetime(2024, 2, 1, 9, 0),
    )

    obligation, txn = service.process(obligation.id, datetime(2024, 2, 20, 9, 0))

    assert txn is not None
    assert obligation.is_active is False
    assert obligation.next_due is None


def test_process_inactive_returns_nothing():
    session = make_session()
    service = RecurringObligationService(session)
    obligation = service.create(_obligation_in(is_active=False), now=NOW)
    before = (obligation.next_due, obligation.version)

    obligation, txn = service.process(obligation.id, NOW)

    assert txn is None
    assert (obligation.next_due, obligation.version) == before
    assert session.scalars(select(Transaction)).all() == []


def test_skip_does_not_book():
    session = make_session()
    service = RecurringObligationService(session)
    obligation = service.create(_obligation_in(), now=NOW)

    obligation, skipped = service.skip(obligation.id, datetime(2024, 3, 15, 9, 0))

    assert skipped is True
    assert obligation.next_due == date(2024, 4, 15)
    assert obligation.last_processed is None
    assert session.scalars(select(Transaction)).all() == []


def test_stale_version_rejected():
    session = make_session()
    service = RecurringObligationService(session)
    obligation = service.create(_obligation_in(), now=NOW)
    service.process(obligation.id, NOW, expected_version=1)

    with pytest.raises(StaleRecord):
        service.process(obligation.id, NOW, expected_version=1)


def test_deactivate_then_activate():
    session = make_session()
    service = RecurringObligationService(session)
    obligation = service.create(_obligation_in(), now=NOW)

    paused = service.deactivate(obligation.id)
    assert paused.is_active is False
    assert service.upcoming(NOW, 30) == []

    resumed = service.activate(obligation.id, datetime(2024, 4, 20, 9, 0))
    assert resumed.is_active is True
    assert resumed.next_due == date(2024, 5, 15)


def test_delete_unlinks_generated_transactions():
    session = make_session()
    service = RecurringObligationService(session)
    obligation = service.create(_obligation_in(), now=NOW)
    _, txn = service.process(obligation.id, NOW)

    service.delete(obligation.id)

    with pytest.raises(NotFound):
        service.get(obligation.id)
    kept = TransactionService(session).get(txn.id)
    session.refresh(kept)
    assert kept.recurring_id is None


def test_bulk_delete():
    session = make_session()
    service = RecurringObligationService(session)
    ids = [
        service.create(_obligation_in(name=name), now=NOW).id
        for name in ("A", "B", "C")
    ]

    assert service.bulk_delete(ids[:2]) == 2
    assert [o.name for o in service.list()] == ["C"]


def test_upcoming_and_summary():
    session = make_session()
    service = RecurringObligationService(session)
    service.create(
        _obligation_in(name="Rent", day_of_month=3, start_date=date(2024, 3, 3)),
        now=NOW,
    )
    service.create(
        _obligation_in(
            name="Salary",
            type=TransactionType.credit,
            amount=Decimal("2000"),
            frequency=Frequency.biweekly,
            day_of_month=None,
        ),
        now=NOW,
    )

    items = service.upcoming(NOW, 7)
    assert [item.obligation.name for item in items] == ["Rent"]
    assert items[0].days_until_due == 2

    summary = service.summary(NOW)
    assert summary["active_count"] == 2
    assert summary["monthly_income"] == Decimal("4333.33")
    assert summary["monthly_expenses"] == Decimal("15.99")
    assert summary["due_this_week"] == 1
    assert summary["overdue_count"] == 0


def test_process_due_only_touches_auto_process():
    session = make_session()
    service = RecurringObligationService(session)
    starts = date(2024, 3, 10)
    auto = service.create(
        _obligation_in(name="Auto", auto_process=True, start_date=starts), now=NOW
    )
    manual = service.create(_obligation_in(name="Manual", start_date=starts), now=NOW)

    created = service.process_due(datetime(2024, 3, 16, 9, 0))

    assert [t.recurring_id for t in created] == [auto.id]
    assert service.get(auto.id).next_due == date(2024, 4, 15)
    assert service.get(manual.id).next_due == starts


def test_budget_create_records_current_period():
    session = make_session()
    budget = BudgetService(session).create(_budget_in(), now=NOW)
    assert budget.spent == Decimal("0")
    assert budget.last_reset_key == "2024-03"


def test_budget_spending_and_rollover_reset():
    session = make_session()
    service = BudgetService(session)
    budget = service.create(_budget_in(), now=NOW)

    service.apply_spending("Groceries", Decimal("300"))
    budget, did_reset = service.reset(budget.id, datetime(2024, 4, 1, 0, 5))
    assert did_reset is True
    assert budget.spent == Decimal("-200")
    assert budget.last_reset_key == "2024-04"

    budget, did_reset = service.reset(budget.id, datetime(2024, 4, 2, 9, 0))
    assert did_reset is False
    assert budget.spent == Decimal("-200")

    service.apply_spending("Groceries", 250)
    assert service.get(budget.id).spent == Decimal("50")


def test_budget_apply_spending_first_match():
    session = make_session()
    service = BudgetService(session)
    first = service.create(_budget_in(name="Food"), now=NOW)
    second = service.create(_budget_in(name="Food backup"), now=NOW)

    credited = service.apply_spending("Groceries", "12.00")

    assert credited.id == first.id
    assert service.get(second.id).spent == Decimal("0")
    assert service.apply_spending("Travel", 5) is None


def test_budget_reset_all_by_period():
    session = make_session()
    service = BudgetService(session)
    monthly = service.create(_budget_in(rollover=False), now=NOW)
    weekly = service.create(
        _budget_in(name="Coffee", category="Coffee", period=BudgetPeriod.weekly),
        now=NOW,
    )
    service.apply_spending("Groceries", 100)
    service.apply_spending("Coffee", 10)

    reset = service.reset_all(datetime(2024, 4, 1, 9, 0), BudgetPeriod.monthly)

    assert [b.id for b in reset] == [monthly.id]
    assert service.get(monthly.id).spent == Decimal("0")
    assert service.get(weekly.id).spent == Decimal("10")


def test_budget_progress_and_summary():
    session = make_session()
    service = BudgetService(session)
    service.create(_budget_in(amount=Decimal("100")), now=NOW)
    service.apply_spending("Groceries", 150)

    (row,) = service.progress(datetime(2024, 3, 10, 9, 0))
    assert row.percentage == Decimal("100")
    assert row.is_over_budget is True
    assert row.days_remaining == 21

    summary = service.summary(NOW)
    assert summary.over_budget_count == 1
    assert [b.category for b in service.over_budget()] == ["Groceries"]


def test_budget_update_with_new_period_restarts_key():
    session = make_session()
    service = BudgetService(session)
    budget = service.create(_budget_in(), now=NOW)

    updated = service.update(
        budget.id,
        _budget_in(period=BudgetPeriod.quarterly),
        now=NOW,
        expected_version=budget.version,
    )

    assert updated.period == BudgetPeriod.quarterly
    assert updated.last_reset_key == "2024-Q1"
    with pytest.raises(StaleRecord):
        service.update(budget.id, _budget_in(), now=NOW, expected_version=1)


def test_budget_bulk_delete():
    session = make_session()
    service = BudgetService(session)
    ids = [service.create(_budget_in(name=n), now=NOW).id for n in ("A", "B")]
    assert service.bulk_delete(ids) == 2
    assert service.list() == []


def test_recurring_obligation_rows_keep_decimal_amounts():
    session = make_session()
    service = RecurringObligationService(session)
    obligation = service.create(_obligation_in(amount=Decimal("0.10")), now=NOW)
    session.expire_all()
    stored = session.get(RecurringObligation, obligation.id)
    assert stored.amount == Decimal("0.10")


def test_transaction_delete():
    session = make_session()
    service = RecurringObligationService(session)
    obligation = service.create(_obligation_in(), now=NOW)
    _, txn = service.process(obligation.id, NOW)

    transactions = TransactionService(session)
    transactions.delete(txn.id)

    with pytest.raises(NotFound):
        transactions.get(txn.id)
    assert service.get(obligation.id).last_processed == NOW.date()


def test_update_without_schedule_change_keeps_due_date():
    session = make_session()
    service = RecurringObligationService(session)
    obligation = service.create(_obligation_in(), now=NOW)
    late = datetime(2024, 4, 20, 9, 0)

    renamed = service.update(
        obligation.id,
        _obligation_in(name="Video", amount=Decimal("17.99")),
        now=late,
    )

    assert renamed.next_due == date(2024, 4, 15)
    assert renamed.name == "Video"
    (item,) = service.upcoming(late, 7)
    assert item.is_overdue
    assert item.raw_days_until_due == -5


def test_update_reactivating_ended_obligation_reschedules():
    session = make_session()
    service = RecurringObligationService(session)
    obligation = service.create(
        _obligation_in(day_of_month=None, end_date=date(2024, 3, 1)),
        now=datetime(2024, 2, 1, 9, 0),
    )
    obligation, _ = service.process(obligation.id, datetime(2024, 2, 20, 9, 0))
    assert obligation.next_due is None

    revived = service.update(
        obligation.id,
        _obligation_in(day_of_month=None, end_date=None),
        now=datetime(2024, 2, 21, 9, 0),
    )

    assert revived.is_active is True
    assert revived.next_due == date(2024, 3, 21)


def test_concurrent_writes_detected_by_version(tmp_path):
    engine = create_engine(f"sqlite+pysqlite:///{tmp_path / 'ledger.db'}")
    Base.metadata.create_all(engine)
    SessionLocal = sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)
    first, second = SessionLocal(), SessionLocal()

    obligation = RecurringObligationService(first).create(_obligation_in(), now=NOW)
    stale = second.get(RecurringObligation, obligation.id)
    RecurringObligationService(first).skip(obligation.id, NOW)

    stale.name = "Renamed elsewhere"
    with pytest.raises(StaleDataError):
        second.commit()

    second.rollback()
    assert RecurringObligationService(first).get(obligation.id).version == 2
    first.close()
    second.close()

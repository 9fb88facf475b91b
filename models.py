from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Optional

from sqlalchemy import (
    JSON,
    Boolean,
    CheckConstraint,
    Date,
    DateTime,
    Enum as SAEnum,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
)
from sqlalchemy.orm import Mapped, mapped_column

from database import Base


class TransactionType(str, Enum):
    credit = "credit"
    debit = "debit"


class Frequency(str, Enum):
    daily = "daily"
    weekly = "weekly"
    biweekly = "biweekly"
    monthly = "monthly"
    quarterly = "quarterly"
    yearly = "yearly"


class PaymentMethod(str, Enum):
    card = "card"
    cash = "cash"
    transfer = "transfer"
    check = "check"
    direct_debit = "direct_debit"
    other = "other"


class TransactionStatus(str, Enum):
    pending = "pending"
    cleared = "cleared"
    reconciled = "reconciled"


class ReceiptStatus(str, Enum):
    na = "n/a"
    missing = "missing"
    attached = "attached"


RECEIPT_STATUS_ENUM = SAEnum(
    ReceiptStatus,
    name="receiptstatus",
    values_callable=lambda enum_cls: [member.value for member in enum_cls],
)


class BudgetPeriod(str, Enum):
    weekly = "weekly"
    monthly = "monthly"
    quarterly = "quarterly"
    yearly = "yearly"


MONEY = Numeric(12, 2, asdecimal=True)


class TimestampMixin:
    created_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False
    )


class RecurringObligation(Base, TimestampMixin):
    __tablename__ = "recurring_obligations"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    name: Mapped[str] = mapped_column(String(120), nullable=False)
    payee: Mapped[Optional[str]] = mapped_column(String(120))
    description: Mapped[Optional[str]] = mapped_column(Text)
    amount: Mapped[Decimal] = mapped_column(MONEY, nullable=False)
    type: Mapped[TransactionType] = mapped_column(
        SAEnum(TransactionType), nullable=False
    )
    category: Mapped[str] = mapped_column(
        String(100), nullable=False, default="Uncategorized"
    )
    account: Mapped[str] = mapped_column(String(100), nullable=False, default="Default")
    destination_account: Mapped[Optional[str]] = mapped_column(String(100))
    method: Mapped[PaymentMethod] = mapped_column(
        SAEnum(PaymentMethod), nullable=False, default=PaymentMethod.card
    )
    tags: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)

    frequency: Mapped[Frequency] = mapped_column(SAEnum(Frequency), nullable=False)
    day_of_month: Mapped[Optional[int]] = mapped_column(Integer)
    day_of_week: Mapped[Optional[int]] = mapped_column(Integer)
    month_of_year: Mapped[Optional[int]] = mapped_column(Integer)

    start_date: Mapped[date] = mapped_column(Date, nullable=False)
    end_date: Mapped[Optional[date]] = mapped_column(Date)
    next_due: Mapped[Optional[date]] = mapped_column(Date)
    last_processed: Mapped[Optional[date]] = mapped_column(Date)

    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    auto_process: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    variable_amount: Mapped[bool] = mapped_column(
        Boolean, default=False, nullable=False
    )

    version: Mapped[int] = mapped_column(Integer, nullable=False)

    __mapper_args__ = {"version_id_col": version}

    __table_args__ = (
        CheckConstraint(
            "day_of_month IS NULL OR day_of_month BETWEEN 1 AND 31",
            name="ck_obligation_day_of_month",
        ),
        CheckConstraint(
            "day_of_week IS NULL OR day_of_week BETWEEN 0 AND 6",
            name="ck_obligation_day_of_week",
        ),
        CheckConstraint(
            "month_of_year IS NULL OR month_of_year BETWEEN 1 AND 12",
            name="ck_obligation_month_of_year",
        ),
        Index("ix_obligations_active_next_due", "is_active", "next_due"),
    )


class Budget(Base, TimestampMixin):
    __tablename__ = "budgets"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    name: Mapped[str] = mapped_column(String(120), nullable=False)
    category: Mapped[str] = mapped_column(String(100), nullable=False)
    amount: Mapped[Decimal] = mapped_column(MONEY, nullable=False)
    spent: Mapped[Decimal] = mapped_column(MONEY, nullable=False, default=Decimal("0"))
    period: Mapped[BudgetPeriod] = mapped_column(
        SAEnum(BudgetPeriod), nullable=False, default=BudgetPeriod.monthly
    )
    rollover: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    alert_threshold: Mapped[int] = mapped_column(Integer, default=80, nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    color: Mapped[Optional[str]] = mapped_column(String(9))
    note: Mapped[Optional[str]] = mapped_column(Text)
    start_date: Mapped[Optional[date]] = mapped_column(Date)
    end_date: Mapped[Optional[date]] = mapped_column(Date)
    last_reset_key: Mapped[Optional[str]] = mapped_column(String(16))

    version: Mapped[int] = mapped_column(Integer, nullable=False)

    __mapper_args__ = {"version_id_col": version}

    __table_args__ = (
        CheckConstraint("amount >= 0", name="ck_budget_amount_positive"),
        CheckConstraint(
            "alert_threshold BETWEEN 0 AND 100", name="ck_budget_alert_threshold"
        ),
        Index("ix_budgets_category_active", "category", "is_active"),
    )


class Transaction(Base, TimestampMixin):
    __tablename__ = "transactions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    date: Mapped[date] = mapped_column(Date, nullable=False)
    amount: Mapped[Decimal] = mapped_column(MONEY, nullable=False)
    type: Mapped[TransactionType] = mapped_column(
        SAEnum(TransactionType), nullable=False
    )
    payee: Mapped[Optional[str]] = mapped_column(String(120))
    description: Mapped[Optional[str]] = mapped_column(Text)
    account: Mapped[Optional[str]] = mapped_column(String(100))
    category: Mapped[Optional[str]] = mapped_column(String(100))
    method: Mapped[Optional[PaymentMethod]] = mapped_column(SAEnum(PaymentMethod))
    tags: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)
    status: Mapped[TransactionStatus] = mapped_column(
        SAEnum(TransactionStatus), nullable=False, default=TransactionStatus.pending
    )
    receipt_status: Mapped[ReceiptStatus] = mapped_column(
        RECEIPT_STATUS_ENUM, nullable=False, default=ReceiptStatus.na
    )
    recurring_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("recurring_obligations.id", ondelete="SET NULL")
    )

    __table_args__ = (
        Index("ix_transactions_date", "date"),
        Index("ix_transactions_recurring", "recurring_id"),
    )

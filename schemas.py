from datetime import date, datetime
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, computed_field

import recurrence
from config import get_settings
from models import (
    BudgetPeriod,
    Frequency,
    PaymentMethod,
    ReceiptStatus,
    TransactionStatus,
    TransactionType,
)


class RecurringObligationIn(BaseModel):
    name: str = Field(..., min_length=1, max_length=120)
    payee: Optional[str] = Field(default=None, max_length=120)
    description: Optional[str] = None
    amount: Decimal = Field(..., ge=0)
    type: TransactionType = TransactionType.debit
    category: str = Field(default="Uncategorized", min_length=1, max_length=100)
    account: str = Field(default="Default", min_length=1, max_length=100)
    destination_account: Optional[str] = Field(default=None, max_length=100)
    method: PaymentMethod = PaymentMethod.card
    tags: list[str] = Field(default_factory=list)
    frequency: Frequency
    # range checks happen in the service so they surface as InvalidAnchor
    day_of_month: Optional[int] = None
    day_of_week: Optional[int] = None
    month_of_year: Optional[int] = None
    start_date: date
    end_date: Optional[date] = None
    is_active: bool = True
    auto_process: bool = False
    variable_amount: bool = False


class RecurringObligationOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    payee: Optional[str]
    description: Optional[str]
    amount: Decimal
    type: TransactionType
    category: str
    account: str
    destination_account: Optional[str]
    method: PaymentMethod
    tags: list[str]
    frequency: Frequency
    day_of_month: Optional[int]
    day_of_week: Optional[int]
    month_of_year: Optional[int]
    start_date: date
    end_date: Optional[date]
    next_due: Optional[date]
    last_processed: Optional[date]
    is_active: bool
    auto_process: bool
    variable_amount: bool
    version: int

    @computed_field
    @property
    def frequency_label(self) -> str:
        return recurrence.frequency_label(self.frequency)


class TransactionOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    date: date
    amount: Decimal
    type: TransactionType
    payee: Optional[str]
    description: Optional[str]
    account: Optional[str]
    category: Optional[str]
    method: Optional[PaymentMethod]
    tags: list[str]
    status: TransactionStatus
    receipt_status: ReceiptStatus
    recurring_id: Optional[int]
    created_at: datetime


class ProcessOut(BaseModel):
    processed: bool
    ended: bool = False
    obligation: RecurringObligationOut
    transaction: Optional[TransactionOut] = None


class UpcomingOut(BaseModel):
    obligation: RecurringObligationOut
    due_date: date
    days_until_due: int
    raw_days_until_due: int
    is_overdue: bool


class RecurringSummaryOut(BaseModel):
    active_count: int
    monthly_income: Decimal
    monthly_expenses: Decimal
    monthly_net: Decimal
    annualized_income: Decimal
    annualized_expenses: Decimal
    due_this_week: int
    overdue_count: int


class BudgetIn(BaseModel):
    name: str = Field(..., min_length=1, max_length=120)
    category: str = Field(..., min_length=1, max_length=100)
    amount: Decimal = Field(..., ge=0)
    period: BudgetPeriod = BudgetPeriod.monthly
    rollover: bool = False
    alert_threshold: int = Field(
        default_factory=lambda: get_settings().alert_threshold, ge=0, le=100
    )
    is_active: bool = True
    color: Optional[str] = Field(default=None, max_length=9)
    note: Optional[str] = None
    start_date: Optional[date] = None
    end_date: Optional[date] = None


class BudgetOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    category: str
    amount: Decimal
    spent: Decimal
    period: BudgetPeriod
    rollover: bool
    alert_threshold: int
    is_active: bool
    color: Optional[str]
    note: Optional[str]
    start_date: Optional[date]
    end_date: Optional[date]
    last_reset_key: Optional[str]
    version: int


class BudgetProgressOut(BaseModel):
    budget: BudgetOut
    percentage: Decimal
    raw_percentage: Decimal
    remaining: Decimal
    is_over_budget: bool
    is_alert: bool
    days_remaining: Optional[int]


class BudgetSummaryOut(BaseModel):
    active_count: int
    total_budgeted: Decimal
    total_spent: Decimal
    total_remaining: Decimal
    over_budget_count: int
    warning_count: int
    on_track_count: int


class SpendingIn(BaseModel):
    category: str = Field(..., min_length=1, max_length=100)
    amount: Decimal


class ResetIn(BaseModel):
    period: Optional[BudgetPeriod] = None


class BulkDeleteIn(BaseModel):
    ids: list[int] = Field(..., min_length=1)

"""initial schema: recurring obligations, budgets, transactions

Revision ID: 202610191200
Revises:
Create Date: 2026-10-19 12:00:00.000000

"""

from alembic import op
import sqlalchemy as sa


revision = "202610191200"
down_revision = None
branch_labels = None
depends_on = None

TRANSACTION_TYPE = sa.Enum("credit", "debit", name="transactiontype")
PAYMENT_METHOD = sa.Enum(
    "card",
    "cash",
    "transfer",
    "check",
    "direct_debit",
    "other",
    name="paymentmethod",
)
MONEY = sa.Numeric(12, 2)


def upgrade():
    op.create_table(
        "recurring_obligations",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("name", sa.String(length=120), nullable=False),
        sa.Column("payee", sa.String(length=120)),
        sa.Column("description", sa.Text()),
        sa.Column("amount", MONEY, nullable=False),
        sa.Column("type", TRANSACTION_TYPE, nullable=False),
        sa.Column("category", sa.String(length=100), nullable=False),
        sa.Column("account", sa.String(length=100), nullable=False),
        sa.Column("destination_account", sa.String(length=100)),
        sa.Column("method", PAYMENT_METHOD, nullable=False),
        sa.Column("tags", sa.JSON(), nullable=False),
        sa.Column(
            "frequency",
            sa.Enum(
                "daily",
                "weekly",
                "biweekly",
                "monthly",
                "quarterly",
                "yearly",
                name="frequency",
            ),
            nullable=False,
        ),
        sa.Column("day_of_month", sa.Integer()),
        sa.Column("day_of_week", sa.Integer()),
        sa.Column("month_of_year", sa.Integer()),
        sa.Column("start_date", sa.Date(), nullable=False),
        sa.Column("end_date", sa.Date()),
        sa.Column("next_due", sa.Date()),
        sa.Column("last_processed", sa.Date()),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column(
            "auto_process", sa.Boolean(), nullable=False, server_default=sa.false()
        ),
        sa.Column(
            "variable_amount", sa.Boolean(), nullable=False, server_default=sa.false()
        ),
        sa.Column("version", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.CheckConstraint(
            "day_of_month IS NULL OR day_of_month BETWEEN 1 AND 31",
            name="ck_obligation_day_of_month",
        ),
        sa.CheckConstraint(
            "day_of_week IS NULL OR day_of_week BETWEEN 0 AND 6",
            name="ck_obligation_day_of_week",
        ),
        sa.CheckConstraint(
            "month_of_year IS NULL OR month_of_year BETWEEN 1 AND 12",
            name="ck_obligation_month_of_year",
        ),
    )
    op.create_index(
        "ix_obligations_active_next_due",
        "recurring_obligations",
        ["is_active", "next_due"],
    )

    op.create_table(
        "budgets",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("name", sa.String(length=120), nullable=False),
        sa.Column("category", sa.String(length=100), nullable=False),
        sa.Column("amount", MONEY, nullable=False),
        sa.Column("spent", MONEY, nullable=False, server_default="0"),
        sa.Column(
            "period",
            sa.Enum("weekly", "monthly", "quarterly", "yearly", name="budgetperiod"),
            nullable=False,
        ),
        sa.Column("rollover", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("alert_threshold", sa.Integer(), nullable=False, server_default="80"),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("color", sa.String(length=9)),
        sa.Column("note", sa.Text()),
        sa.Column("start_date", sa.Date()),
        sa.Column("end_date", sa.Date()),
        sa.Column("last_reset_key", sa.String(length=16)),
        sa.Column("version", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.CheckConstraint("amount >= 0", name="ck_budget_amount_positive"),
        sa.CheckConstraint(
            "alert_threshold BETWEEN 0 AND 100", name="ck_budget_alert_threshold"
        ),
    )
    op.create_index(
        "ix_budgets_category_active", "budgets", ["category", "is_active"]
    )

    op.create_table(
        "transactions",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("date", sa.Date(), nullable=False),
        sa.Column("amount", MONEY, nullable=False),
        sa.Column("type", TRANSACTION_TYPE, nullable=False),
        sa.Column("payee", sa.String(length=120)),
        sa.Column("description", sa.Text()),
        sa.Column("account", sa.String(length=100)),
        sa.Column("category", sa.String(length=100)),
        sa.Column("method", PAYMENT_METHOD),
        sa.Column("tags", sa.JSON(), nullable=False),
        sa.Column(
            "status",
            sa.Enum("pending", "cleared", "reconciled", name="transactionstatus"),
            nullable=False,
        ),
        sa.Column(
            "receipt_status",
            sa.Enum("n/a", "missing", "attached", name="receiptstatus"),
            nullable=False,
        ),
        sa.Column(
            "recurring_id",
            sa.Integer(),
            sa.ForeignKey("recurring_obligations.id", ondelete="SET NULL"),
        ),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
    )
    op.create_index("ix_transactions_date", "transactions", ["date"])
    op.create_index("ix_transactions_recurring", "transactions", ["recurring_id"])


def downgrade():
    op.drop_index("ix_transactions_recurring", table_name="transactions")
    op.drop_index("ix_transactions_date", table_name="transactions")
    op.drop_table("transactions")
    op.drop_index("ix_budgets_category_active", table_name="budgets")
    op.drop_table("budgets")
    op.drop_index("ix_obligations_active_next_due", table_name="recurring_obligations")
    op.drop_table("recurring_obligations")

"""initial ledger schema

Revision ID: 202610190900
Revises:
Create Date: 2026-10-19 09:00:00.000000

"""

from alembic import op
import sqlalchemy as sa


revision = "202610190900"
down_revision = None
branch_labels = None
depends_on = None


def _entry_columns() -> list[sa.Column]:
    return [
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("amount_cents", sa.Integer(), nullable=False),
        sa.Column("date_time", sa.DateTime(), nullable=False),
        sa.Column("description", sa.Text()),
        sa.Column("receipt", sa.Text()),
        sa.Column("currency", sa.String(length=3), nullable=False, server_default="INR"),
        sa.Column("is_trashed", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
    ]


def upgrade():
    op.create_table(
        "expenses",
        *_entry_columns(),
        sa.Column("category", sa.String(length=100), nullable=False),
        sa.Column("payment_method", sa.String(length=50)),
        sa.CheckConstraint("amount_cents > 0", name="ck_expenses_amount_positive"),
        sqlite_autoincrement=True,
    )
    op.create_index(
        "ix_expenses_trashed_date_time", "expenses", ["is_trashed", "date_time"]
    )
    op.create_index(
        "ix_expenses_trashed_category", "expenses", ["is_trashed", "category"]
    )

    op.create_table(
        "incomes",
        *_entry_columns(),
        sa.Column("source", sa.String(length=100), nullable=False),
        sa.CheckConstraint("amount_cents > 0", name="ck_incomes_amount_positive"),
        sqlite_autoincrement=True,
    )
    op.create_index(
        "ix_incomes_trashed_date_time", "incomes", ["is_trashed", "date_time"]
    )
    op.create_index("ix_incomes_trashed_source", "incomes", ["is_trashed", "source"])


def downgrade():
    op.drop_index("ix_incomes_trashed_source", table_name="incomes")
    op.drop_index("ix_incomes_trashed_date_time", table_name="incomes")
    op.drop_table("incomes")
    op.drop_index("ix_expenses_trashed_category", table_name="expenses")
    op.drop_index("ix_expenses_trashed_date_time", table_name="expenses")
    op.drop_table("expenses")

"""categories taxonomy

Revision ID: 202610191200
Revises: 202610190900
Create Date: 2026-10-19 12:00:00.000000

"""

from alembic import op
import sqlalchemy as sa


revision = "202610191200"
down_revision = "202610190900"
branch_labels = None
depends_on = None


def upgrade():
    op.create_table(
        "categories",
        sa.Column("name", sa.String(length=100), nullable=False),
        sa.Column(
            "type",
            sa.Enum("expense", "income", name="entrykind"),
            nullable=False,
        ),
        sa.Column("label", sa.String(length=100), nullable=False),
        sa.Column("icon", sa.String(length=50), nullable=False),
        sa.Column("color", sa.String(length=7), nullable=False),
        sa.Column("enabled", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("is_custom", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint("name", "type", name="pk_categories"),
    )


def downgrade():
    op.drop_table("categories")

"""cashback ledger schema

Revision ID: 202410181200
Revises:
Create Date: 2024-10-18 12:00:00.000000

"""

from alembic import op
import sqlalchemy as sa


revision = "202410181200"
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    op.create_table(
        "banks",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column(
            "created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()
        ),
        sa.UniqueConstraint("name", name="uq_banks_name"),
    )

    op.create_table(
        "categories",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column(
            "created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()
        ),
        sa.UniqueConstraint("name", name="uq_categories_name"),
    )

    op.create_table(
        "cashback_months",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("user_id", sa.BigInteger(), nullable=False),
        sa.Column("month", sa.Date(), nullable=False),
        sa.Column(
            "created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()
        ),
        sa.UniqueConstraint("user_id", "month", name="uq_cashback_month_user_month"),
    )
    op.create_index(
        "ix_cashback_months_user_id", "cashback_months", ["user_id"], unique=False
    )

    op.create_table(
        "bank_cashback_categories",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column(
            "cashback_month_id",
            sa.Integer(),
            sa.ForeignKey("cashback_months.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("bank_id", sa.Integer(), sa.ForeignKey("banks.id"), nullable=False),
        sa.Column(
            "category_id",
            sa.Integer(),
            sa.ForeignKey("categories.id"),
            nullable=False,
        ),
        sa.Column("percent", sa.Float(), nullable=False),
        sa.UniqueConstraint(
            "cashback_month_id",
            "bank_id",
            "category_id",
            name="uq_bank_cashback_month_bank_category",
        ),
        sa.CheckConstraint(
            "percent >= 0 AND percent <= 100", name="ck_bank_cashback_percent_range"
        ),
    )
    op.create_index(
        "ix_bank_cashback_categories_cashback_month_id",
        "bank_cashback_categories",
        ["cashback_month_id"],
        unique=False,
    )


def downgrade():
    op.drop_index(
        "ix_bank_cashback_categories_cashback_month_id",
        table_name="bank_cashback_categories",
    )
    op.drop_table("bank_cashback_categories")
    op.drop_index("ix_cashback_months_user_id", table_name="cashback_months")
    op.drop_table("cashback_months")
    op.drop_table("categories")
    op.drop_table("banks")

"""initial schema

Revision ID: 202601050900
Revises:
Create Date: 2026-01-05 09:00:00.000000

"""

from alembic import op
import sqlalchemy as sa


revision = "202601050900"
down_revision = None
branch_labels = None
depends_on = None


KIND = sa.Enum("asset", "liability", name="accountkind")
OWNER = sa.Enum("me", "spouse", "joint", name="ownertype")


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
    ]


def upgrade():
    op.create_table(
        "categories",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("name", sa.String(length=100), nullable=False),
        sa.Column("kind", KIND, nullable=False),
        sa.Column("icon", sa.String(length=60)),
        sa.Column("color", sa.String(length=20)),
        *_timestamps(),
    )
    op.create_index("ix_categories_name", "categories", ["name"])

    op.create_table(
        "accounts",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("legacy_id", sa.String(length=64)),
        sa.Column("name", sa.String(length=120), nullable=False),
        sa.Column("bank", sa.String(length=120), nullable=False, server_default=""),
        sa.Column(
            "category_id", sa.Integer(), sa.ForeignKey("categories.id"), nullable=False
        ),
        sa.Column("owner", OWNER, nullable=False, server_default="me"),
        sa.Column("kind", KIND, nullable=False),
        sa.Column("notes", sa.Text()),
        *_timestamps(),
    )
    op.create_index("ix_accounts_legacy_id", "accounts", ["legacy_id"])
    op.create_index("ix_accounts_category_id", "accounts", ["category_id"])
    op.create_index("ix_accounts_kind", "accounts", ["kind"])
    op.create_index("ix_accounts_bank", "accounts", ["bank"])
    op.create_index("ix_accounts_owner", "accounts", ["owner"])

    op.create_table(
        "balances",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column(
            "account_id",
            sa.Integer(),
            sa.ForeignKey("accounts.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("date", sa.Date(), nullable=False),
        sa.Column("value", sa.Float(), nullable=False),
        *_timestamps(),
        sa.UniqueConstraint("account_id", "date", name="uq_balance_account_date"),
    )
    op.create_index("ix_balances_account_id", "balances", ["account_id"])
    op.create_index("ix_balances_account_date", "balances", ["account_id", "date"])

    op.create_table(
        "transactions",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("legacy_id", sa.String(length=64)),
        sa.Column(
            "account_id",
            sa.Integer(),
            sa.ForeignKey("accounts.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("date", sa.Date(), nullable=False),
        sa.Column("amount", sa.Float(), nullable=False),
        sa.Column("description", sa.Text(), nullable=False, server_default=""),
        *_timestamps(),
    )
    op.create_index("ix_transactions_legacy_id", "transactions", ["legacy_id"])
    op.create_index(
        "ix_transactions_account_date", "transactions", ["account_id", "date"]
    )

    op.create_table(
        "monthly_snapshots",
        sa.Column("month", sa.String(length=7), primary_key=True),
        sa.Column("assets_total", sa.Float(), nullable=False, server_default="0"),
        sa.Column("liabilities_total", sa.Float(), nullable=False, server_default="0"),
        sa.Column("net_worth", sa.Float(), nullable=False, server_default="0"),
        sa.Column("created_at", sa.DateTime(), nullable=False),
    )

    op.create_table(
        "category_snapshots",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("month", sa.String(length=7), nullable=False),
        sa.Column("category_id", sa.Integer(), nullable=False),
        sa.Column("kind", KIND, nullable=False),
        sa.Column("total", sa.Float(), nullable=False, server_default="0"),
    )
    op.create_index(
        "ix_category_snapshots_month_category",
        "category_snapshots",
        ["month", "category_id"],
    )
    op.create_index(
        "ix_category_snapshots_category_id", "category_snapshots", ["category_id"]
    )

    op.create_table(
        "profile",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("user_name", sa.String(length=80)),
        sa.Column("spouse_name", sa.String(length=80)),
        sa.Column("user_color", sa.String(length=20)),
        sa.Column("spouse_color", sa.String(length=20)),
        *_timestamps(),
    )


def downgrade():
    op.drop_table("profile")
    op.drop_index(
        "ix_category_snapshots_category_id", table_name="category_snapshots"
    )
    op.drop_index(
        "ix_category_snapshots_month_category", table_name="category_snapshots"
    )
    op.drop_table("category_snapshots")
    op.drop_table("monthly_snapshots")
    op.drop_index("ix_transactions_account_date", table_name="transactions")
    op.drop_index("ix_transactions_legacy_id", table_name="transactions")
    op.drop_table("transactions")
    op.drop_index("ix_balances_account_date", table_name="balances")
    op.drop_index("ix_balances_account_id", table_name="balances")
    op.drop_table("balances")
    for name in (
        "ix_accounts_owner",
        "ix_accounts_bank",
        "ix_accounts_kind",
        "ix_accounts_category_id",
        "ix_accounts_legacy_id",
    ):
        op.drop_index(name, table_name="accounts")
    op.drop_table("accounts")
    op.drop_index("ix_categories_name", table_name="categories")
    op.drop_table("categories")

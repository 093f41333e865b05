"""sync account kind from category

Revision ID: 202601120900
Revises: 202601050900
Create Date: 2026-01-12 09:00:00.000000

"""

from __future__ import annotations

from alembic import op


revision = "202601120900"
down_revision = "202601050900"
branch_labels = None
depends_on = None


def upgrade() -> None:
    # Rows already in sync are left untouched, so re-running is harmless.
    op.execute(
        "UPDATE accounts SET kind = ("
        "SELECT categories.kind FROM categories "
        "WHERE categories.id = accounts.category_id"
        ") WHERE kind <> ("
        "SELECT categories.kind FROM categories "
        "WHERE categories.id = accounts.category_id"
        ")"
    )


def downgrade() -> None:
    pass

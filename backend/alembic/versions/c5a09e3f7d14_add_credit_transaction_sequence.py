"""add per-account sequence to credit_transactions

Revision ID: c5a09e3f7d14
Revises: 8f3b2d6e1a57
Create Date: 2026-10-17 11:00:00.000000

"""

from typing import Sequence, Union

import sqlalchemy as sa

from alembic import op

# revision identifiers, used by Alembic.
revision: str = "c5a09e3f7d14"
down_revision: Union[str, None] = "8f3b2d6e1a57"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.add_column(
        "credit_balances",
        sa.Column("transaction_count", sa.Integer(), nullable=False, server_default="0"),
    )
    op.add_column(
        "credit_transactions",
        sa.Column("sequence", sa.Integer(), nullable=False, server_default="0"),
    )

    # Number existing rows in write order per account
    op.execute(
        """
        UPDATE credit_transactions AS t
        SET sequence = ordered.position
        FROM (
            SELECT id, row_number() OVER (PARTITION BY account_id ORDER BY created_at, id) AS position
            FROM credit_transactions
        ) AS ordered
        WHERE t.id = ordered.id
        """
    )
    op.execute(
        """
        UPDATE credit_balances AS b
        SET transaction_count = (
            SELECT count(*) FROM credit_transactions AS t WHERE t.account_id = b.account_id
        )
        """
    )
    op.create_index(
        "ix_credit_transactions_account_sequence",
        "credit_transactions",
        ["account_id", "sequence"],
    )


def downgrade() -> None:
    op.drop_index("ix_credit_transactions_account_sequence", table_name="credit_transactions")
    op.drop_column("credit_transactions", "sequence")
    op.drop_column("credit_balances", "transaction_count")

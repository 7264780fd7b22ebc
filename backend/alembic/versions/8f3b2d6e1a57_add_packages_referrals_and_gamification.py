"""add credit packages, purchase orders, referrals and gamification tables

Revision ID: 8f3b2d6e1a57
Revises: 4c1e9a7d2b30
Create Date: 2026-09-21 15:30:00.000000

"""

from typing import Sequence, Union

import sqlalchemy as sa

from alembic import op

# revision identifiers, used by Alembic.
revision: str = "8f3b2d6e1a57"
down_revision: Union[str, None] = "4c1e9a7d2b30"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "credit_packages",
        sa.Column("id", sa.UUID(), nullable=False),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("description", sa.String(length=500), nullable=True),
        sa.Column("credits", sa.Integer(), nullable=False),
        sa.Column("bonus_credits", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("price_cop", sa.Integer(), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default="true"),
        sa.Column("display_order", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("created_at", sa.DateTime(), server_default=sa.text("now()"), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )

    op.create_table(
        "credit_purchase_orders",
        sa.Column("id", sa.UUID(), nullable=False),
        sa.Column("order_id", sa.String(length=100), nullable=False),
        sa.Column("account_id", sa.UUID(), nullable=False),
        sa.Column("package_id", sa.UUID(), nullable=False),
        sa.Column("credits", sa.Integer(), nullable=False),
        sa.Column("price_cop", sa.Integer(), nullable=False),
        sa.Column(
            "status",
            sa.Enum("pending", "completed", name="purchase_order_status"),
            nullable=False,
            server_default="pending",
        ),
        sa.Column("payment_transaction_id", sa.String(length=255), nullable=True),
        sa.Column("created_at", sa.DateTime(), server_default=sa.text("now()"), nullable=False),
        sa.Column("completed_at", sa.DateTime(), nullable=True),
        sa.ForeignKeyConstraint(["account_id"], ["accounts.id"]),
        sa.ForeignKeyConstraint(["package_id"], ["credit_packages.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(
        "ix_credit_purchase_orders_order_id", "credit_purchase_orders", ["order_id"], unique=True
    )
    op.create_index("ix_credit_purchase_orders_account_id", "credit_purchase_orders", ["account_id"])

    # referred_id is unique: an account can be referred only once
    op.create_table(
        "referrals",
        sa.Column("id", sa.UUID(), nullable=False),
        sa.Column("referrer_id", sa.UUID(), nullable=False),
        sa.Column("referred_id", sa.UUID(), nullable=True),
        sa.Column("referral_code", sa.String(length=32), nullable=False),
        sa.Column(
            "status",
            sa.Enum("pending", "credited", name="referral_status"),
            nullable=False,
            server_default="pending",
        ),
        sa.Column("credits_awarded_referrer", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("credits_awarded_referred", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("created_at", sa.DateTime(), server_default=sa.text("now()"), nullable=False),
        sa.Column("credited_at", sa.DateTime(), nullable=True),
        sa.ForeignKeyConstraint(["referrer_id"], ["accounts.id"]),
        sa.ForeignKeyConstraint(["referred_id"], ["accounts.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_referrals_referral_code", "referrals", ["referral_code"], unique=True)
    op.create_index("ix_referrals_referrer_id", "referrals", ["referrer_id"])
    op.create_index("ix_referrals_referred_id", "referrals", ["referred_id"], unique=True)

    op.create_table(
        "gamification_tasks",
        sa.Column("id", sa.UUID(), nullable=False),
        sa.Column("task_key", sa.String(length=100), nullable=False),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("description", sa.String(length=500), nullable=True),
        sa.Column(
            "task_type",
            sa.Enum("onetime", "daily", "weekly", "achievement", name="gamification_task_type"),
            nullable=False,
            server_default="onetime",
        ),
        sa.Column("credit_reward", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("max_completions", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("badge_name", sa.String(length=255), nullable=True),
        sa.Column("completion_criteria", sa.JSON(), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default="true"),
        sa.Column("display_order", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("created_at", sa.DateTime(), server_default=sa.text("now()"), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("task_key"),
    )

    op.create_table(
        "gamification_progress",
        sa.Column("id", sa.UUID(), nullable=False),
        sa.Column("account_id", sa.UUID(), nullable=False),
        sa.Column("task_id", sa.UUID(), nullable=False),
        sa.Column(
            "status",
            sa.Enum("pending", "completed", "claimed", name="gamification_progress_status"),
            nullable=False,
            server_default="pending",
        ),
        sa.Column("completion_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("claim_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("progress_data", sa.JSON(), nullable=True),
        sa.Column("started_at", sa.DateTime(), server_default=sa.text("now()"), nullable=False),
        sa.Column("completed_at", sa.DateTime(), nullable=True),
        sa.Column("claimed_at", sa.DateTime(), nullable=True),
        sa.ForeignKeyConstraint(["account_id"], ["accounts.id"]),
        sa.ForeignKeyConstraint(["task_id"], ["gamification_tasks.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("account_id", "task_id", name="uq_gamification_progress_account_task"),
    )
    op.create_index(
        "ix_gamification_progress_account_id", "gamification_progress", ["account_id"]
    )


def downgrade() -> None:
    op.drop_index("ix_gamification_progress_account_id", table_name="gamification_progress")
    op.drop_table("gamification_progress")
    op.drop_table("gamification_tasks")

    op.drop_index("ix_referrals_referred_id", table_name="referrals")
    op.drop_index("ix_referrals_referrer_id", table_name="referrals")
    op.drop_index("ix_referrals_referral_code", table_name="referrals")
    op.drop_table("referrals")

    op.drop_index("ix_credit_purchase_orders_account_id", table_name="credit_purchase_orders")
    op.drop_index("ix_credit_purchase_orders_order_id", table_name="credit_purchase_orders")
    op.drop_table("credit_purchase_orders")
    op.drop_table("credit_packages")

    op.execute("DROP TYPE IF EXISTS gamification_progress_status")
    op.execute("DROP TYPE IF EXISTS gamification_task_type")
    op.execute("DROP TYPE IF EXISTS referral_status")
    op.execute("DROP TYPE IF EXISTS purchase_order_status")

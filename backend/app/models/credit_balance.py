import uuid
from datetime import date, datetime

from sqlalchemy import CheckConstraint, Date, DateTime, ForeignKey, Index, Integer, func
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.core.database import Base


class CreditBalance(Base):
    """Account credit balance, one row per account.

    Only the ledger store writes the balance columns, and always in a single
    statement, so the CHECK constraints hold for every committed row.
    """

    __tablename__ = "credit_balances"
    __table_args__ = (
        Index("ix_credit_balances_account_id", "account_id", unique=True),
        CheckConstraint("current_balance >= 0", name="ck_credit_balances_non_negative"),
        CheckConstraint(
            "current_balance = total_earned - total_spent",
            name="ck_credit_balances_reconciled",
        ),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    account_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("accounts.id"), nullable=False
    )
    current_balance: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    total_earned: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    total_spent: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    # Ledger rows written for this account, source of CreditTransaction.sequence
    transaction_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    last_purchase_at: Mapped[datetime | None] = mapped_column(DateTime)
    current_streak: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    longest_streak: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    last_activity_date: Mapped[date | None] = mapped_column(Date)
    created_at: Mapped[datetime] = mapped_column(server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(
        server_default=func.now(), onupdate=func.now()
    )

    account: Mapped["Account"] = relationship(back_populates="credit_balance")

    def __repr__(self) -> str:
        return f"<CreditBalance account={self.account_id} balance={self.current_balance}>"

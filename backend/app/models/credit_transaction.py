import uuid
from datetime import UTC, datetime

from sqlalchemy import JSON, DateTime, Enum, ForeignKey, Index, Integer, String, func
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column

from app.core.database import Base


def _utcnow() -> datetime:
    return datetime.now(UTC).replace(tzinfo=None)


TRANSACTION_TYPES = ("purchase", "consumption", "admin_grant", "referral", "bonus")


class CreditTransaction(Base):
    """Immutable log of credit changes.

    ``amount`` is signed (negative for consumption) and ``balance_after`` is
    the account balance produced by this row.
    """

    __tablename__ = "credit_transactions"
    __table_args__ = (
        Index("ix_credit_transactions_account_id", "account_id"),
        Index("ix_credit_transactions_type", "transaction_type"),
        Index("ix_credit_transactions_reference", "reference_type", "reference_id"),
        Index("ix_credit_transactions_created_at", "created_at"),
        Index("ix_credit_transactions_account_sequence", "account_id", "sequence"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    account_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("accounts.id"), nullable=False
    )
    transaction_type: Mapped[str] = mapped_column(
        Enum(*TRANSACTION_TYPES, name="credit_transaction_type"),
        nullable=False,
    )
    amount: Mapped[int] = mapped_column(Integer, nullable=False)
    balance_after: Mapped[int] = mapped_column(Integer, nullable=False)
    # Per-account write order, assigned under the balance row lock
    sequence: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    reference_type: Mapped[str | None] = mapped_column(String(50))
    reference_id: Mapped[str | None] = mapped_column(String(255))
    description: Mapped[str | None] = mapped_column(String(500))
    details: Mapped[dict | None] = mapped_column("metadata", JSON)
    # Microsecond timestamps keep same-second rows in write order
    created_at: Mapped[datetime] = mapped_column(
        DateTime, default=_utcnow, server_default=func.now(), nullable=False
    )

    def __repr__(self) -> str:
        return f"<CreditTransaction {self.transaction_type} {self.amount}>"

import uuid
from datetime import datetime

from sqlalchemy import DateTime, Enum, ForeignKey, Index, Integer, String, func
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column

from app.core.database import Base


class CreditPurchaseOrder(Base):
    """Checkout order for a credit package.

    Moves pending -> completed exactly once, when the payment is confirmed.
    """

    __tablename__ = "credit_purchase_orders"
    __table_args__ = (
        Index("ix_credit_purchase_orders_order_id", "order_id", unique=True),
        Index("ix_credit_purchase_orders_account_id", "account_id"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    order_id: Mapped[str] = mapped_column(String(100), nullable=False)
    account_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("accounts.id"), nullable=False
    )
    package_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("credit_packages.id"), nullable=False
    )
    credits: Mapped[int] = mapped_column(Integer, nullable=False)
    price_cop: Mapped[int] = mapped_column(Integer, nullable=False)
    status: Mapped[str] = mapped_column(
        Enum("pending", "completed", name="purchase_order_status"),
        nullable=False,
        default="pending",
        server_default="pending",
    )
    payment_transaction_id: Mapped[str | None] = mapped_column(String(255))
    created_at: Mapped[datetime] = mapped_column(server_default=func.now())
    completed_at: Mapped[datetime | None] = mapped_column(DateTime)

    def __repr__(self) -> str:
        return f"<CreditPurchaseOrder {self.order_id} ({self.status})>"

import uuid
from datetime import datetime

from sqlalchemy import Boolean, CheckConstraint, Integer, String, func
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column

from app.core.database import Base


class CreditToolCost(Base):
    """Credit price of a billable tool, keyed by ``tool_type``."""

    __tablename__ = "credit_tool_costs"
    __table_args__ = (
        CheckConstraint("credit_cost >= 0", name="ck_credit_tool_costs_non_negative"),
    )

    id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    tool_type: Mapped[str] = mapped_column(String(100), nullable=False, unique=True)
    tool_name: Mapped[str] = mapped_column(String(255), nullable=False)
    credit_cost: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    description: Mapped[str | None] = mapped_column(String(500))
    is_active: Mapped[bool] = mapped_column(
        Boolean, default=True, server_default="true", nullable=False
    )
    created_at: Mapped[datetime] = mapped_column(server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(server_default=func.now(), onupdate=func.now())

    def __repr__(self) -> str:
        return f"<CreditToolCost {self.tool_type}={self.credit_cost}>"

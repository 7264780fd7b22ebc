import uuid
from datetime import datetime

from sqlalchemy import DateTime, Enum, ForeignKey, Index, Integer, String, func
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column

from app.core.database import Base


class Referral(Base):
    """A referral code owned by ``referrer_id``.

    ``referred_id`` stays NULL until the code is redeemed, at which point the
    row moves pending -> credited and is never reused.
    """

    __tablename__ = "referrals"
    __table_args__ = (
        Index("ix_referrals_referral_code", "referral_code", unique=True),
        Index("ix_referrals_referrer_id", "referrer_id"),
        Index("ix_referrals_referred_id", "referred_id", unique=True),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    referrer_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("accounts.id"), nullable=False
    )
    referred_id: Mapped[uuid.UUID | None] = mapped_column(
        UUID(as_uuid=True), ForeignKey("accounts.id")
    )
    referral_code: Mapped[str] = mapped_column(String(32), nullable=False)
    status: Mapped[str] = mapped_column(
        Enum("pending", "credited", name="referral_status"),
        nullable=False,
        default="pending",
        server_default="pending",
    )
    credits_awarded_referrer: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    credits_awarded_referred: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    created_at: Mapped[datetime] = mapped_column(server_default=func.now())
    credited_at: Mapped[datetime | None] = mapped_column(DateTime)

    def __repr__(self) -> str:
        return f"<Referral {self.referral_code} ({self.status})>"

import uuid
from datetime import datetime

from sqlalchemy import (
    JSON,
    Boolean,
    DateTime,
    Enum,
    ForeignKey,
    Index,
    Integer,
    String,
    UniqueConstraint,
    func,
)
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.core.database import Base


class GamificationTask(Base):
    """A task that rewards credits when claimed."""

    __tablename__ = "gamification_tasks"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    task_key: Mapped[str] = mapped_column(String(100), nullable=False, unique=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str | None] = mapped_column(String(500))
    task_type: Mapped[str] = mapped_column(
        Enum("onetime", "daily", "weekly", "achievement", name="gamification_task_type"),
        nullable=False,
        server_default="onetime",
    )
    credit_reward: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    # Number of times the reward may be claimed per account
    max_completions: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    badge_name: Mapped[str | None] = mapped_column(String(255))
    completion_criteria: Mapped[dict | None] = mapped_column(JSON)
    is_active: Mapped[bool] = mapped_column(
        Boolean, default=True, server_default="true", nullable=False
    )
    display_order: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    created_at: Mapped[datetime] = mapped_column(server_default=func.now())

    progress: Mapped[list["GamificationProgress"]] = relationship(back_populates="task")

    def __repr__(self) -> str:
        return f"<GamificationTask {self.task_key}>"


class GamificationProgress(Base):
    """Per-account task state: pending -> completed -> claimed."""

    __tablename__ = "gamification_progress"
    __table_args__ = (
        UniqueConstraint("account_id", "task_id", name="uq_gamification_progress_account_task"),
        Index("ix_gamification_progress_account_id", "account_id"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    account_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("accounts.id"), nullable=False
    )
    task_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("gamification_tasks.id"), nullable=False
    )
    status: Mapped[str] = mapped_column(
        Enum("pending", "completed", "claimed", name="gamification_progress_status"),
        nullable=False,
        default="pending",
        server_default="pending",
    )
    completion_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    claim_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    progress_data: Mapped[dict | None] = mapped_column(JSON)
    started_at: Mapped[datetime] = mapped_column(server_default=func.now())
    completed_at: Mapped[datetime | None] = mapped_column(DateTime)
    claimed_at: Mapped[datetime | None] = mapped_column(DateTime)

    task: Mapped["GamificationTask"] = relationship(back_populates="progress")

    def __repr__(self) -> str:
        return f"<GamificationProgress task={self.task_id} {self.status}>"

import uuid
from datetime import datetime
from typing import Literal

from pydantic import BaseModel, ConfigDict

ProgressStatus = Literal["pending", "completed", "claimed"]


class TaskAccountRequest(BaseModel):
    account_id: uuid.UUID


class TaskCompleteRequest(BaseModel):
    account_id: uuid.UUID
    progress_data: dict | None = None


class TaskProgressResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    task_key: str
    name: str
    task_type: Literal["onetime", "daily", "weekly", "achievement"]
    credit_reward: int
    max_completions: int
    badge_name: str | None
    status: ProgressStatus
    completion_count: int
    claim_count: int
    completed_at: datetime | None
    claimed_at: datetime | None


class TaskProgressUpdateResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    account_id: uuid.UUID
    status: ProgressStatus
    completion_count: int
    claim_count: int
    completed_at: datetime | None


class TaskClaimResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    status: Literal["credited", "already_processed"]
    task_key: str
    account_id: uuid.UUID
    credits_awarded: int
    new_balance: int | None
    claim_count: int


class GamificationStats(BaseModel):
    completed_tasks: int
    total_tasks: int
    completion_percentage: int


class EarnedBadge(BaseModel):
    name: str
    task_key: str
    claimed_at: datetime | None


class LevelResponse(BaseModel):
    level: int
    name: str
    badge: str
    min_credits: int


class GamificationSummaryResponse(BaseModel):
    account_id: uuid.UUID
    tasks: list[TaskProgressResponse]
    stats: GamificationStats
    badges: list[EarnedBadge]
    total_earned: int
    level: LevelResponse
    levels: list[LevelResponse]

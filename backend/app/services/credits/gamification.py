"""Gamification task rewards.

Completion criteria are judged by an external checker; this module only
tracks per-account progress and pays the reward. Progress moves
pending -> completed -> claimed, and credits are paid only on the
completed -> claimed edge, once per allowed completion (``max_completions``).
"""

import logging
import uuid
from datetime import datetime, time, timedelta

from sqlalchemy import or_, select, update
from sqlalchemy.orm import Session

from app.core.config import settings
from app.models.credit_balance import CreditBalance
from app.models.gamification import GamificationProgress, GamificationTask
from app.services.credits.exceptions import AlreadyProcessedError, InvalidReferenceError
from app.services.credits.ledger import (
    insert_if_absent,
    publish_changes,
    require_account,
    stage_delta,
    unit_of_work,
    utcnow,
)
from app.services.credits.notifier import RealtimeNotifier
from app.services.credits.results import LedgerEntry, TaskClaimResult

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def get_active_task(db: Session, task_key: str) -> GamificationTask:
    task = db.execute(
        select(GamificationTask).where(
            GamificationTask.task_key == task_key,
            GamificationTask.is_active.is_(True),
        )
    ).scalar_one_or_none()
    if task is None:
        raise InvalidReferenceError(f"Task {task_key} not found or inactive")
    return task


def get_or_create_progress(db: Session, account_id: uuid.UUID, task: GamificationTask) -> GamificationProgress:
    insert_if_absent(
        db,
        GamificationProgress,
        {
            "id": uuid.uuid4(),
            "account_id": account_id,
            "task_id": task.id,
            "status": "pending",
            "completion_count": 0,
            "claim_count": 0,
        },
        ["account_id", "task_id"],
    )
    return db.execute(
        select(GamificationProgress)
        .where(
            GamificationProgress.account_id == account_id,
            GamificationProgress.task_id == task.id,
        )
        .execution_options(populate_existing=True)
    ).scalar_one()


def period_start(task_type: str, now: datetime) -> datetime | None:
    """Start of the current completion period, or None for unperiodic tasks.

    Daily periods start at midnight UTC, weekly periods on Sunday midnight UTC.
    """
    midnight = datetime.combine(now.date(), time.min)
    if task_type == "daily":
        return midnight
    if task_type == "weekly":
        # date.weekday(): Monday == 0 ... Sunday == 6
        return midnight - timedelta(days=(now.weekday() + 1) % 7)
    return None


def task_reward(task: GamificationTask) -> int:
    """Credit reward for ``task``, honouring ``TASK_REWARD_OVERRIDES``."""
    return settings.TASK_REWARD_OVERRIDES.get(task.task_key, task.credit_reward)


def mark_completed(
    db: Session,
    progress: GamificationProgress,
    task: GamificationTask,
    progress_data: dict | None = None,
) -> bool:
    """Move progress to ``completed`` if it still has completions left.

    A claimed task is re-opened while ``claim_count < max_completions``;
    daily and weekly tasks only once their last completion falls before the
    current period. Returns True if the row changed.
    """
    now = utcnow()
    values = {
        "status": "completed",
        "completion_count": GamificationProgress.completion_count + 1,
        "completed_at": now,
    }
    if progress_data is not None:
        values["progress_data"] = progress_data

    conditions = [
        GamificationProgress.id == progress.id,
        GamificationProgress.status.in_(("pending", "claimed")),
        GamificationProgress.claim_count < task.max_completions,
    ]
    start = period_start(task.task_type, now)
    if start is not None:
        conditions.append(
            or_(
                GamificationProgress.completed_at.is_(None),
                GamificationProgress.completed_at < start,
            )
        )

    result = db.execute(
        update(GamificationProgress)
        .where(*conditions)
        .values(**values)
        .execution_options(synchronize_session=False)
    )
    return result.rowcount == 1


def claim_progress(db: Session, progress: GamificationProgress, task: GamificationTask) -> bool:
    """Flip ``completed -> claimed``. Returns True only for the caller that won the flip."""
    result = db.execute(
        update(GamificationProgress)
        .where(
            GamificationProgress.id == progress.id,
            GamificationProgress.status == "completed",
            GamificationProgress.claim_count < task.max_completions,
        )
        .values(
            status="claimed",
            claim_count=GamificationProgress.claim_count + 1,
            claimed_at=utcnow(),
        )
        .execution_options(synchronize_session=False)
    )
    return result.rowcount == 1


def stage_task_reward(
    db: Session,
    account_id: uuid.UUID,
    task: GamificationTask,
    description: str | None = None,
) -> LedgerEntry | None:
    """Complete and claim ``task`` inside the caller's transaction.

    Raises AlreadyProcessedError if no claim is left. Returns the reward
    entry, or None for a zero-reward task.
    """
    progress = get_or_create_progress(db, account_id, task)
    mark_completed(db, progress, task)
    if not claim_progress(db, progress, task):
        raise AlreadyProcessedError(f"Task {task.task_key} already claimed by account {account_id}")

    reward = task_reward(task)
    if reward <= 0:
        return None
    return stage_delta(
        db,
        account_id,
        reward,
        "bonus",
        reference_type="task",
        reference_id=task.task_key,
        description=description or f"Task completed: {task.name}",
    )


def _claim_count(db: Session, account_id: uuid.UUID, task: GamificationTask) -> int:
    count = db.execute(
        select(GamificationProgress.claim_count).where(
            GamificationProgress.account_id == account_id,
            GamificationProgress.task_id == task.id,
        )
    ).scalar_one_or_none()
    return count or 0


# ---------------------------------------------------------------------------
# Entry points
# ---------------------------------------------------------------------------


def record_task_completion(
    db: Session,
    account_id: uuid.UUID,
    task_key: str,
    progress_data: dict | None = None,
) -> GamificationProgress:
    """Record that the external checker found ``task_key`` completed."""
    task = get_active_task(db, task_key)
    require_account(db, account_id)

    with unit_of_work(db):
        progress = get_or_create_progress(db, account_id, task)
        changed = mark_completed(db, progress, task, progress_data)

    db.refresh(progress)
    if changed:
        logger.info("Task %s completed by account %s", task_key, account_id)
    return progress


def claim_task(
    db: Session,
    account_id: uuid.UUID,
    task_key: str,
    *,
    notifier: RealtimeNotifier | None = None,
) -> TaskClaimResult:
    """Pay the reward for ``task_key``.

    The caller has already verified completion. Repeated claims beyond
    ``max_completions``, or within the current day or week for periodic
    tasks, return ``already_processed`` without crediting.
    """
    task = get_active_task(db, task_key)
    require_account(db, account_id)

    try:
        with unit_of_work(db):
            entry = stage_task_reward(db, account_id, task)
    except AlreadyProcessedError:
        logger.info("Task %s already claimed by account %s", task_key, account_id)
        return TaskClaimResult(
            status="already_processed",
            task_key=task_key,
            account_id=account_id,
            claim_count=_claim_count(db, account_id, task),
        )

    if entry is not None:
        publish_changes(db, notifier, [entry])

    credits_awarded = entry.transaction.amount if entry is not None else 0
    logger.info(
        "Task %s claimed by account %s (reward: %d)",
        task_key,
        account_id,
        credits_awarded,
    )
    return TaskClaimResult(
        status="credited",
        task_key=task_key,
        account_id=account_id,
        credits_awarded=credits_awarded,
        new_balance=entry.new_balance if entry is not None else None,
        claim_count=_claim_count(db, account_id, task),
    )


def list_task_progress(db: Session, account_id: uuid.UUID) -> list[dict]:
    """Return active tasks merged with the account's progress."""
    tasks = db.execute(
        select(GamificationTask)
        .where(GamificationTask.is_active.is_(True))
        .order_by(GamificationTask.display_order, GamificationTask.task_key)
    ).scalars().all()
    progress_by_task = {
        progress.task_id: progress
        for progress in db.execute(
            select(GamificationProgress).where(GamificationProgress.account_id == account_id)
        ).scalars()
    }

    items = []
    for task in tasks:
        progress = progress_by_task.get(task.id)
        items.append(
            {
                "task_key": task.task_key,
                "name": task.name,
                "task_type": task.task_type,
                "credit_reward": task_reward(task),
                "max_completions": task.max_completions,
                "badge_name": task.badge_name,
                "status": progress.status if progress else "pending",
                "completion_count": progress.completion_count if progress else 0,
                "claim_count": progress.claim_count if progress else 0,
                "completed_at": progress.completed_at if progress else None,
                "claimed_at": progress.claimed_at if progress else None,
            }
        )
    return items


def current_level(total_earned: int) -> dict:
    """Highest configured level whose ``min_credits`` is reached."""
    levels = sorted(settings.GAMIFICATION_LEVELS, key=lambda level: level.min_credits)
    reached = levels[0] if levels else None
    for level in levels:
        if total_earned >= level.min_credits:
            reached = level
    if reached is None:
        return {"level": 1, "name": "Novice", "badge": "seedling", "min_credits": 0}
    return reached.model_dump()


def get_gamification_summary(db: Session, account_id: uuid.UUID) -> dict:
    """Tasks with progress plus completion stats, earned badges and level."""
    require_account(db, account_id)
    tasks = list_task_progress(db, account_id)

    completed = [task for task in tasks if task["status"] in ("completed", "claimed")]
    total = len(tasks)
    badges = [
        {"name": task["badge_name"], "task_key": task["task_key"], "claimed_at": task["claimed_at"]}
        for task in tasks
        if task["status"] == "claimed" and task["badge_name"]
    ]

    total_earned = db.execute(
        select(CreditBalance.total_earned).where(CreditBalance.account_id == account_id)
    ).scalar_one_or_none() or 0

    return {
        "account_id": account_id,
        "tasks": tasks,
        "stats": {
            "completed_tasks": len(completed),
            "total_tasks": total,
            "completion_percentage": round(len(completed) / total * 100) if total else 0,
        },
        "badges": badges,
        "total_earned": total_earned,
        "level": current_level(total_earned),
        "levels": [level.model_dump() for level in settings.GAMIFICATION_LEVELS],
    }

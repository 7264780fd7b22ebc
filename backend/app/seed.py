"""Seed the database with tool costs, credit packages, and gamification tasks."""

from sqlalchemy import select

from app.core.config import settings
from app.core.database import SessionLocal
from app.models import CreditPackage, CreditToolCost, GamificationTask

SEED_TOOL_COSTS = [
    {"tool_type": "chat", "tool_name": "Chat assistant", "credit_cost": 1},
    {"tool_type": "document_analysis", "tool_name": "Document analysis", "credit_cost": 3},
    {"tool_type": "image_generation", "tool_name": "Image generation", "credit_cost": 5},
    {"tool_type": "voice_realtime", "tool_name": "Realtime voice session", "credit_cost": 10},
    {"tool_type": "report_export", "tool_name": "Report export", "credit_cost": 0},
]

SEED_PACKAGES = [
    {"name": "Starter", "credits": 100, "bonus_credits": 0, "price_cop": 20000, "display_order": 1},
    {"name": "Professional", "credits": 500, "bonus_credits": 50, "price_cop": 90000, "display_order": 2},
    {"name": "Business", "credits": 1500, "bonus_credits": 250, "price_cop": 250000, "display_order": 3},
]

SEED_TASKS = [
    {
        "task_key": settings.FIRST_PURCHASE_TASK_KEY,
        "name": "First purchase",
        "description": "Buy your first credit package",
        "task_type": "onetime",
        "credit_reward": 25,
        "badge_name": "Supporter",
        "completion_criteria": {"event": "purchase"},
        "display_order": 1,
    },
    {
        "task_key": "complete_profile",
        "name": "Complete your profile",
        "description": "Fill in every profile field",
        "task_type": "onetime",
        "credit_reward": 10,
        "completion_criteria": {"event": "profile_completed"},
        "display_order": 2,
    },
    {
        "task_key": "image_explorer",
        "name": "Image explorer",
        "description": "Generate 10 images",
        "task_type": "achievement",
        "credit_reward": 15,
        "badge_name": "Explorer",
        "completion_criteria": {"tool_type": "image_generation", "min_uses": 10},
        "display_order": 3,
    },
    {
        "task_key": "daily_login",
        "name": "Daily check-in",
        "description": "Use any tool on five different days",
        "task_type": "daily",
        "credit_reward": 2,
        "max_completions": 5,
        "completion_criteria": {"event": "daily_activity"},
        "display_order": 4,
    },
]


def seed_catalog() -> dict[str, int]:
    """Insert missing seed rows. Returns how many rows of each kind were created."""
    db = SessionLocal()
    created = {"tool_costs": 0, "packages": 0, "tasks": 0}
    try:
        existing_tools = set(db.execute(select(CreditToolCost.tool_type)).scalars())
        for data in SEED_TOOL_COSTS:
            if data["tool_type"] not in existing_tools:
                db.add(CreditToolCost(**data))
                created["tool_costs"] += 1

        existing_packages = set(db.execute(select(CreditPackage.name)).scalars())
        for data in SEED_PACKAGES:
            if data["name"] not in existing_packages:
                db.add(CreditPackage(**data))
                created["packages"] += 1

        existing_tasks = set(db.execute(select(GamificationTask.task_key)).scalars())
        for data in SEED_TASKS:
            if data["task_key"] not in existing_tasks:
                db.add(GamificationTask(**data))
                created["tasks"] += 1

        db.commit()
        return created
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()


if __name__ == "__main__":
    counts = seed_catalog()
    for kind, count in counts.items():
        print(f"Created {count} {kind}")

"""Consumption engine: gate billable tool usage behind the account balance."""

import logging
import uuid
from datetime import date, timedelta

from sqlalchemy.orm import Session

from app.services.credits.catalog import ToolCostCatalog
from app.services.credits.exceptions import InsufficientBalanceError
from app.services.credits.ledger import (
    get_balance,
    locked_balance,
    publish_changes,
    stage_delta,
    unit_of_work,
    utcnow,
)
from app.services.credits.notifier import RealtimeNotifier
from app.services.credits.results import ConsumeResult

logger = logging.getLogger(__name__)


def _touch_streak(db: Session, account_id: uuid.UUID, today: date) -> None:
    """Update activity streak fields on the (already locked) balance row."""
    balance = locked_balance(db, account_id)
    last = balance.last_activity_date

    if last == today:
        return
    if last == today - timedelta(days=1):
        balance.current_streak += 1
    else:
        balance.current_streak = 1
    balance.longest_streak = max(balance.longest_streak, balance.current_streak)
    balance.last_activity_date = today
    db.flush()


def consume(
    db: Session,
    account_id: uuid.UUID,
    tool_type: str,
    metadata: dict | None = None,
    *,
    catalog: ToolCostCatalog,
    notifier: RealtimeNotifier | None = None,
) -> ConsumeResult:
    """Charge ``account_id`` for one use of ``tool_type``.

    Free (zero-cost, unknown, or inactive) tools are allowed without touching
    the ledger. An insufficient balance is returned as ``allowed=False`` with
    the required and available amounts; the balance is left unchanged.
    """
    tool = catalog.get(tool_type)
    cost = tool.credit_cost if tool is not None else 0
    tool_name = tool.tool_name if tool is not None else None

    if cost == 0:
        balance = get_balance(db, account_id)
        logger.info("Tool %s is free, no credits consumed for account %s", tool_type, account_id)
        return ConsumeResult(
            allowed=True,
            tool_type=tool_type,
            required=0,
            current_balance=balance.current_balance,
            new_balance=balance.current_balance,
            tool_name=tool_name,
        )

    try:
        with unit_of_work(db):
            entry = stage_delta(
                db,
                account_id,
                -cost,
                "consumption",
                reference_type="tool",
                reference_id=tool_type,
                description=f"Used {tool_name}",
                metadata=metadata or {},
            )
            _touch_streak(db, account_id, utcnow().date())
    except InsufficientBalanceError as exc:
        logger.warning(
            "Insufficient credits for account %s on %s: required %d, available %d",
            account_id,
            tool_type,
            exc.required,
            exc.available,
        )
        return ConsumeResult(
            allowed=False,
            tool_type=tool_type,
            required=cost,
            current_balance=exc.available,
            tool_name=tool_name,
        )

    publish_changes(db, notifier, [entry])
    logger.info(
        "Consumed %d credits for account %s on %s (new balance: %d)",
        cost,
        account_id,
        tool_type,
        entry.new_balance,
    )
    return ConsumeResult(
        allowed=True,
        tool_type=tool_type,
        required=cost,
        current_balance=entry.new_balance,
        new_balance=entry.new_balance,
        credits_consumed=cost,
        tool_name=tool_name,
        transaction_id=entry.transaction.id,
    )

"""Admin credit grants.

Grants carry no idempotency key: every call is a new grant, so automated
callers must not blindly retry a grant whose outcome is unknown.
"""

import logging
import uuid

from sqlalchemy.orm import Session

from app.core.config import settings
from app.services.credits.ledger import apply_delta
from app.services.credits.notifier import RealtimeNotifier
from app.services.credits.results import GrantResult

logger = logging.getLogger(__name__)


def grant_credits(
    db: Session,
    account_id: uuid.UUID,
    amount: int,
    reason: str | None = None,
    *,
    granted_by: str | None = None,
    notifier: RealtimeNotifier | None = None,
) -> GrantResult:
    """Add ``amount`` credits to an account on behalf of an admin."""
    if amount <= 0:
        raise ValueError("amount must be positive")
    if amount > settings.MAX_GRANT_CREDITS:
        raise ValueError(f"amount must not exceed {settings.MAX_GRANT_CREDITS}")

    entry = apply_delta(
        db,
        account_id,
        amount,
        "admin_grant",
        reference_type="admin",
        reference_id=granted_by,
        description=reason or f"Admin grant: {amount} credits",
        metadata={"granted_by": granted_by} if granted_by else None,
        notifier=notifier,
    )

    logger.info("Admin %s granted %d credits to account %s", granted_by or "unknown", amount, account_id)
    return GrantResult(
        account_id=account_id,
        credits_granted=amount,
        new_balance=entry.new_balance,
        transaction_id=entry.transaction.id,
    )

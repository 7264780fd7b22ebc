"""Credit packages, purchase orders, and payment-confirmed crediting.

A purchase order is created at checkout and completed exactly once when the
payment is confirmed. The pending -> completed flip and the credit commit
together, so duplicate payment callbacks for the same ``order_id`` are no-ops.
"""

import logging
import secrets
import uuid

from sqlalchemy import func, select, update
from sqlalchemy.orm import Session

from app.core.config import settings
from app.models.credit_balance import CreditBalance
from app.models.credit_package import CreditPackage
from app.models.gamification import GamificationTask
from app.models.purchase_order import CreditPurchaseOrder
from app.services.credits.exceptions import AlreadyProcessedError, InvalidReferenceError
from app.services.credits.gamification import stage_task_reward, task_reward
from app.services.credits.ledger import (
    publish_changes,
    require_account,
    stage_delta,
    unit_of_work,
    utcnow,
)
from app.services.credits.notifier import RealtimeNotifier
from app.services.credits.results import LedgerEntry, PurchaseResult

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Packages and orders
# ---------------------------------------------------------------------------


def list_packages(db: Session) -> list[CreditPackage]:
    """Return active credit packages in display order."""
    return (
        db.execute(
            select(CreditPackage)
            .where(CreditPackage.is_active.is_(True))
            .order_by(CreditPackage.display_order, CreditPackage.credits)
        )
        .scalars()
        .all()
    )


def _new_order_id(account_id: uuid.UUID) -> str:
    timestamp = int(utcnow().timestamp() * 1000)
    return f"{settings.CREDIT_ORDER_PREFIX}{account_id.hex[:8].upper()}-{timestamp}-{secrets.token_hex(2).upper()}"


def create_purchase_order(
    db: Session,
    account_id: uuid.UUID,
    package_id: uuid.UUID,
) -> CreditPurchaseOrder:
    """Open a pending order for ``package_id`` at checkout."""
    require_account(db, account_id)
    package = db.get(CreditPackage, package_id)
    if package is None or not package.is_active:
        raise InvalidReferenceError(f"Package {package_id} not found or inactive")

    order = CreditPurchaseOrder(
        order_id=_new_order_id(account_id),
        account_id=account_id,
        package_id=package.id,
        credits=package.total_credits,
        price_cop=package.price_cop,
    )
    db.add(order)
    db.commit()
    db.refresh(order)

    logger.info(
        "Created purchase order %s for account %s (%d credits)",
        order.order_id,
        account_id,
        order.credits,
    )
    return order


def get_purchase_order(db: Session, order_id: str) -> CreditPurchaseOrder:
    """Look up a credit order by its external id.

    Raises InvalidReferenceError for ids without the credit-order prefix or
    with no matching order.
    """
    normalized = (order_id or "").strip()
    if not normalized.startswith(settings.CREDIT_ORDER_PREFIX):
        raise InvalidReferenceError(f"{order_id!r} is not a credit purchase order")

    order = db.execute(
        select(CreditPurchaseOrder)
        .where(CreditPurchaseOrder.order_id == normalized)
        .execution_options(populate_existing=True)
    ).scalar_one_or_none()
    if order is None:
        raise InvalidReferenceError(f"Purchase order {normalized} not found")
    return order


# ---------------------------------------------------------------------------
# Crediting
# ---------------------------------------------------------------------------


def _stage_first_purchase_bonus(db: Session, account_id: uuid.UUID) -> LedgerEntry | None:
    completed_orders = db.execute(
        select(func.count())
        .select_from(CreditPurchaseOrder)
        .where(
            CreditPurchaseOrder.account_id == account_id,
            CreditPurchaseOrder.status == "completed",
        )
    ).scalar_one()
    if completed_orders != 1:
        return None

    task = db.execute(
        select(GamificationTask).where(
            GamificationTask.task_key == settings.FIRST_PURCHASE_TASK_KEY,
            GamificationTask.is_active.is_(True),
        )
    ).scalar_one_or_none()
    if task is None or task_reward(task) <= 0:
        return None

    try:
        return stage_task_reward(db, account_id, task, description="First purchase bonus")
    except AlreadyProcessedError:
        return None


def credit_purchase(
    db: Session,
    order_id: str,
    *,
    payment_transaction_id: str | None = None,
    notifier: RealtimeNotifier | None = None,
) -> PurchaseResult:
    """Credit a confirmed payment for ``order_id``.

    Safe to call repeatedly for the same order: only the call that flips the
    order to ``completed`` credits the account. The account's first completed
    purchase also pays the first-purchase task reward as a ``bonus``.
    """
    order = get_purchase_order(db, order_id)
    order_id = order.order_id
    account_id = order.account_id
    credits = order.credits
    package_id = order.package_id

    if order.status == "completed":
        logger.info("Order %s already processed, skipping", order_id)
        return PurchaseResult(status="already_processed", order_id=order_id, account_id=account_id)

    try:
        with unit_of_work(db):
            now = utcnow()
            flipped = db.execute(
                update(CreditPurchaseOrder)
                .where(
                    CreditPurchaseOrder.order_id == order_id,
                    CreditPurchaseOrder.status == "pending",
                )
                .values(
                    status="completed",
                    completed_at=now,
                    payment_transaction_id=payment_transaction_id,
                )
                .execution_options(synchronize_session=False)
            )
            if flipped.rowcount != 1:
                raise AlreadyProcessedError(f"Order {order_id} already completed")

            entries = [
                stage_delta(
                    db,
                    account_id,
                    credits,
                    "purchase",
                    reference_type="purchase_order",
                    reference_id=order_id,
                    description=f"Purchase of {credits} credits",
                    metadata={
                        "package_id": str(package_id),
                        "payment_transaction_id": payment_transaction_id,
                    },
                )
            ]
            db.execute(
                update(CreditBalance)
                .where(CreditBalance.account_id == account_id)
                .values(last_purchase_at=now)
                .execution_options(synchronize_session=False)
            )

            bonus = _stage_first_purchase_bonus(db, account_id)
            if bonus is not None:
                entries.append(bonus)
    except AlreadyProcessedError:
        logger.info("Order %s completed concurrently, skipping", order_id)
        return PurchaseResult(status="already_processed", order_id=order_id, account_id=account_id)

    publish_changes(db, notifier, entries)

    bonus_credits = bonus.transaction.amount if bonus is not None else 0
    new_balance = entries[-1].new_balance
    logger.info(
        "Credited %d credits (+%d bonus) to account %s for order %s (new balance: %d)",
        credits,
        bonus_credits,
        account_id,
        order_id,
        new_balance,
    )
    return PurchaseResult(
        status="credited",
        order_id=order_id,
        account_id=account_id,
        credits_added=credits,
        bonus_credits=bonus_credits,
        new_balance=new_balance,
        transaction_ids=[entry.transaction.id for entry in entries],
    )

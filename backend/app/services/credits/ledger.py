"""Ledger store: balances, the transaction log, and the delta primitive.

Every balance change goes through ``stage_delta``: a single conditional
UPDATE adjusts ``current_balance`` together with ``total_earned`` or
``total_spent`` and refuses to go below zero, then the transaction row is
written with the resulting ``balance_after``. The UPDATE holds the balance
row lock until commit, so concurrent writers for one account serialize and
the logged ``balance_after`` values match some serial order.
"""

import logging
import uuid
from collections.abc import Iterable, Iterator
from contextlib import contextmanager
from datetime import UTC, datetime

from sqlalchemy import func, select, update
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session

from app.models.account import Account
from app.models.credit_balance import CreditBalance
from app.models.credit_transaction import CreditTransaction
from app.services.credits.exceptions import (
    InsufficientBalanceError,
    InvalidReferenceError,
    StoreUnavailableError,
)
from app.services.credits.notifier import RealtimeNotifier, balance_changed_event
from app.services.credits.results import BalanceSnapshot, LedgerEntry, ReconciliationReport

logger = logging.getLogger(__name__)

_UPSERT_INSERTS = {
    "postgresql": pg_insert,
    "sqlite": sqlite_insert,
}


def utcnow() -> datetime:
    return datetime.now(UTC).replace(tzinfo=None)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


@contextmanager
def unit_of_work(db: Session) -> Iterator[None]:
    """Commit on success, roll back on any error.

    Database connectivity failures surface as StoreUnavailableError; nothing
    from the failed block stays visible.
    """
    try:
        yield
        db.commit()
    except OperationalError as exc:
        db.rollback()
        logger.error("Credits store unavailable: %s", exc)
        raise StoreUnavailableError("Credits store unavailable, retry later") from exc
    except Exception:
        db.rollback()
        raise


def insert_if_absent(db: Session, model: type, values: dict, conflict_columns: list[str]) -> None:
    """INSERT ... ON CONFLICT DO NOTHING for the current dialect."""
    dialect = db.get_bind().dialect.name
    try:
        insert_fn = _UPSERT_INSERTS[dialect]
    except KeyError:
        raise NotImplementedError(f"Upsert not supported for dialect {dialect!r}")
    db.execute(insert_fn(model).values(**values).on_conflict_do_nothing(index_elements=conflict_columns))


def require_account(db: Session, account_id: uuid.UUID) -> Account:
    account = db.get(Account, account_id)
    if account is None:
        raise InvalidReferenceError(f"Account {account_id} not found")
    return account


def _ensure_balance_row(db: Session, account_id: uuid.UUID) -> None:
    insert_if_absent(
        db,
        CreditBalance,
        {
            "id": uuid.uuid4(),
            "account_id": account_id,
            "current_balance": 0,
            "total_earned": 0,
            "total_spent": 0,
            "transaction_count": 0,
            "current_streak": 0,
            "longest_streak": 0,
        },
        ["account_id"],
    )


def locked_balance(db: Session, account_id: uuid.UUID) -> CreditBalance:
    """Re-read the balance row inside the current transaction."""
    return db.execute(
        select(CreditBalance)
        .where(CreditBalance.account_id == account_id)
        .execution_options(populate_existing=True)
    ).scalar_one()


def _snapshot(balance: CreditBalance) -> BalanceSnapshot:
    return BalanceSnapshot(
        account_id=balance.account_id,
        current_balance=balance.current_balance,
        total_earned=balance.total_earned,
        total_spent=balance.total_spent,
        last_purchase_at=balance.last_purchase_at,
        current_streak=balance.current_streak,
        longest_streak=balance.longest_streak,
        last_activity_date=balance.last_activity_date,
    )


# ---------------------------------------------------------------------------
# Balance queries
# ---------------------------------------------------------------------------


def get_balance(db: Session, account_id: uuid.UUID) -> BalanceSnapshot:
    """Return the account balance, or a zero snapshot if none exists yet."""
    balance = db.execute(
        select(CreditBalance)
        .where(CreditBalance.account_id == account_id)
        .execution_options(populate_existing=True)
    ).scalar_one_or_none()
    if balance is None:
        return BalanceSnapshot(account_id=account_id)
    return _snapshot(balance)


def get_transaction_history(
    db: Session,
    account_id: uuid.UUID,
    page: int = 1,
    page_size: int = 20,
) -> tuple[list[CreditTransaction], int]:
    """Return paginated transaction history for an account, newest first."""
    base = select(CreditTransaction).where(CreditTransaction.account_id == account_id)
    count_query = (
        select(func.count())
        .select_from(CreditTransaction)
        .where(CreditTransaction.account_id == account_id)
    )

    total = db.execute(count_query).scalar_one()
    offset = (page - 1) * page_size
    transactions = (
        db.execute(
            base.order_by(CreditTransaction.sequence.desc(), CreditTransaction.created_at.desc())
            .offset(offset)
            .limit(page_size)
        )
        .scalars()
        .all()
    )

    return transactions, total


def reconcile_balance(db: Session, account_id: uuid.UUID) -> ReconciliationReport:
    """Compare the stored balance and aggregates against the transaction log."""
    balance = get_balance(db, account_id)
    transaction_sum, transaction_count = db.execute(
        select(func.coalesce(func.sum(CreditTransaction.amount), 0), func.count(CreditTransaction.id))
        .where(CreditTransaction.account_id == account_id)
    ).one()

    report = ReconciliationReport(
        account_id=account_id,
        current_balance=balance.current_balance,
        total_earned=balance.total_earned,
        total_spent=balance.total_spent,
        transaction_sum=int(transaction_sum),
        transaction_count=int(transaction_count),
    )
    if not report.consistent:
        logger.warning(
            "Ledger drift for account %s: balance=%d earned=%d spent=%d log_sum=%d",
            account_id,
            report.current_balance,
            report.total_earned,
            report.total_spent,
            report.transaction_sum,
        )
    return report


# ---------------------------------------------------------------------------
# Mutations
# ---------------------------------------------------------------------------


def stage_delta(
    db: Session,
    account_id: uuid.UUID,
    amount: int,
    transaction_type: str,
    *,
    reference_type: str | None = None,
    reference_id: str | None = None,
    description: str | None = None,
    metadata: dict | None = None,
) -> LedgerEntry:
    """Adjust the balance and append a transaction without committing.

    Callers own the surrounding ``unit_of_work`` so several deltas and status
    flips can commit together.
    """
    if amount == 0:
        raise ValueError("amount must be non-zero")

    require_account(db, account_id)
    _ensure_balance_row(db, account_id)

    values = {
        "current_balance": CreditBalance.current_balance + amount,
        "transaction_count": CreditBalance.transaction_count + 1,
    }
    if amount > 0:
        values["total_earned"] = CreditBalance.total_earned + amount
    else:
        values["total_spent"] = CreditBalance.total_spent - amount

    result = db.execute(
        update(CreditBalance)
        .where(
            CreditBalance.account_id == account_id,
            CreditBalance.current_balance + amount >= 0,
        )
        .values(**values)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        available = db.execute(
            select(CreditBalance.current_balance).where(CreditBalance.account_id == account_id)
        ).scalar_one()
        raise InsufficientBalanceError(required=-amount, available=available)

    balance = locked_balance(db, account_id)
    transaction = CreditTransaction(
        account_id=account_id,
        transaction_type=transaction_type,
        amount=amount,
        balance_after=balance.current_balance,
        sequence=balance.transaction_count,
        reference_type=reference_type,
        reference_id=reference_id,
        description=description,
        details=metadata,
    )
    db.add(transaction)
    db.flush()

    return LedgerEntry(transaction=transaction, new_balance=balance.current_balance)


def publish_changes(
    db: Session,
    notifier: RealtimeNotifier | None,
    entries: Iterable[LedgerEntry],
) -> None:
    """Announce committed entries to realtime subscribers."""
    for entry in entries:
        db.refresh(entry.transaction)
        if notifier is None:
            continue
        notifier.publish(
            entry.transaction.account_id,
            balance_changed_event(
                entry.transaction.account_id,
                entry.transaction.id,
                entry.transaction.transaction_type,
            ),
        )


def apply_delta(
    db: Session,
    account_id: uuid.UUID,
    amount: int,
    transaction_type: str,
    *,
    reference_type: str | None = None,
    reference_id: str | None = None,
    description: str | None = None,
    metadata: dict | None = None,
    notifier: RealtimeNotifier | None = None,
) -> LedgerEntry:
    """Atomically change an account balance and log the transaction.

    Raises InsufficientBalanceError for a debit larger than the balance,
    InvalidReferenceError for an unknown account, and StoreUnavailableError
    when the database cannot be reached. Nothing is written on failure.
    """
    with unit_of_work(db):
        entry = stage_delta(
            db,
            account_id,
            amount,
            transaction_type,
            reference_type=reference_type,
            reference_id=reference_id,
            description=description,
            metadata=metadata,
        )

    publish_changes(db, notifier, [entry])
    logger.info(
        "Applied %s %+d to account %s (new balance: %d)",
        transaction_type,
        amount,
        account_id,
        entry.new_balance,
    )
    return entry

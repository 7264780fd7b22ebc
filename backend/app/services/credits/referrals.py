"""Referral codes and redemption.

Redeeming a code first flips the referral row pending -> credited with a
conditional UPDATE, then credits both accounts, all in one commit. A code
can be credited once, an account can be referred once (unique
``referred_id``), and an account cannot redeem its own code.
"""

import logging
import secrets
import uuid

from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.core.config import settings
from app.models.referral import Referral
from app.services.credits.exceptions import (
    AlreadyProcessedError,
    InvalidReferenceError,
    ReferralCodeAllocationError,
    SelfReferralError,
)
from app.services.credits.ledger import (
    publish_changes,
    require_account,
    stage_delta,
    unit_of_work,
    utcnow,
)
from app.services.credits.notifier import RealtimeNotifier
from app.services.credits.results import ReferralResult

logger = logging.getLogger(__name__)

MAX_CODE_ATTEMPTS = 5


def _random_code() -> str:
    return f"{settings.REFERRAL_CODE_PREFIX}{secrets.token_hex(4).upper()}"


def _find_by_code(db: Session, code: str) -> Referral | None:
    return db.execute(
        select(Referral)
        .where(Referral.referral_code == code)
        .execution_options(populate_existing=True)
    ).scalar_one_or_none()


def _find_by_referred(db: Session, account_id: uuid.UUID) -> Referral | None:
    return db.execute(
        select(Referral)
        .where(Referral.referred_id == account_id)
        .execution_options(populate_existing=True)
    ).scalar_one_or_none()


def get_or_create_referral_code(db: Session, account_id: uuid.UUID) -> Referral:
    """Return the account's unused referral code, creating one if needed.

    The first code is derived from the account id; later codes (after the
    first has been used) fall back to random suffixes.
    """
    require_account(db, account_id)

    existing = db.execute(
        select(Referral)
        .where(
            Referral.referrer_id == account_id,
            Referral.referred_id.is_(None),
            Referral.status == "pending",
        )
        .order_by(Referral.created_at)
        .limit(1)
    ).scalar_one_or_none()
    if existing is not None:
        return existing

    for attempt in range(MAX_CODE_ATTEMPTS):
        code = (
            f"{settings.REFERRAL_CODE_PREFIX}{account_id.hex[:8].upper()}"
            if attempt == 0
            else _random_code()
        )
        if _find_by_code(db, code) is not None:
            continue

        referral = Referral(referrer_id=account_id, referral_code=code)
        db.add(referral)
        try:
            db.commit()
        except IntegrityError:
            db.rollback()
            continue

        db.refresh(referral)
        logger.info("Created referral code %s for account %s", code, account_id)
        return referral

    logger.error("Gave up allocating a referral code for account %s after %d attempts", account_id, MAX_CODE_ATTEMPTS)
    raise ReferralCodeAllocationError(f"Could not allocate a referral code for account {account_id}")


def _already_processed(referral: Referral, account_id: uuid.UUID) -> ReferralResult:
    return ReferralResult(
        status="already_processed",
        referral_code=referral.referral_code,
        referrer_id=referral.referrer_id,
        referred_id=account_id,
    )


def redeem_referral_code(
    db: Session,
    account_id: uuid.UUID,
    code: str,
    *,
    notifier: RealtimeNotifier | None = None,
) -> ReferralResult:
    """Redeem ``code`` for the newly registered ``account_id``.

    Raises InvalidReferenceError for unknown codes or codes used by another
    account, and SelfReferralError for the referrer's own code. Re-redeeming
    by the same account returns ``already_processed``.
    """
    require_account(db, account_id)
    normalized = (code or "").strip().upper()

    referral = _find_by_code(db, normalized)
    if referral is None:
        raise InvalidReferenceError(f"Referral code {normalized} not found")
    if referral.referrer_id == account_id:
        raise SelfReferralError("Cannot use your own referral code")
    if referral.referred_id is not None:
        if referral.referred_id == account_id:
            return _already_processed(referral, account_id)
        raise InvalidReferenceError(f"Referral code {normalized} already used")

    prior = _find_by_referred(db, account_id)
    if prior is not None:
        logger.info("Account %s was already referred with %s", account_id, prior.referral_code)
        return _already_processed(prior, account_id)

    referral_id = referral.id
    referrer_id = referral.referrer_id
    referrer_credits = settings.REFERRER_CREDITS
    referred_credits = settings.REFERRED_CREDITS

    try:
        with unit_of_work(db):
            flipped = db.execute(
                update(Referral)
                .where(
                    Referral.id == referral_id,
                    Referral.status == "pending",
                    Referral.referred_id.is_(None),
                )
                .values(
                    referred_id=account_id,
                    status="credited",
                    credits_awarded_referrer=referrer_credits,
                    credits_awarded_referred=referred_credits,
                    credited_at=utcnow(),
                )
                .execution_options(synchronize_session=False)
            )
            if flipped.rowcount != 1:
                raise AlreadyProcessedError(f"Referral code {normalized} already credited")

            entries = []
            if referrer_credits > 0:
                entries.append(
                    stage_delta(
                        db,
                        referrer_id,
                        referrer_credits,
                        "referral",
                        reference_type="referral",
                        reference_id=str(referral_id),
                        description="Referral bonus for inviting a colleague",
                    )
                )
            if referred_credits > 0:
                entries.append(
                    stage_delta(
                        db,
                        account_id,
                        referred_credits,
                        "referral",
                        reference_type="referral",
                        reference_id=str(referral_id),
                        description="Welcome bonus for using a referral code",
                    )
                )
    except (AlreadyProcessedError, IntegrityError):
        # Lost a race: either this code or this account was credited first.
        current = _find_by_code(db, normalized)
        if current is not None and current.referred_id == account_id:
            return _already_processed(current, account_id)
        prior = _find_by_referred(db, account_id)
        if prior is not None:
            return _already_processed(prior, account_id)
        raise InvalidReferenceError(f"Referral code {normalized} already used")

    publish_changes(db, notifier, entries)

    referred_entry = next(
        (entry for entry in entries if entry.transaction.account_id == account_id),
        None,
    )
    logger.info(
        "Referral %s credited: referrer %s +%d, referred %s +%d",
        normalized,
        referrer_id,
        referrer_credits,
        account_id,
        referred_credits,
    )
    return ReferralResult(
        status="credited",
        referral_code=normalized,
        referrer_id=referrer_id,
        referred_id=account_id,
        credits_awarded_referrer=referrer_credits,
        credits_awarded_referred=referred_credits,
        new_balance=referred_entry.new_balance if referred_entry is not None else None,
    )


def get_referral_stats(db: Session, account_id: uuid.UUID) -> dict:
    """Return the credited referrals made by ``account_id``."""
    referrals = (
        db.execute(
            select(Referral)
            .where(
                Referral.referrer_id == account_id,
                Referral.referred_id.is_not(None),
            )
            .order_by(Referral.credited_at.desc())
        )
        .scalars()
        .all()
    )
    total_credits = db.execute(
        select(func.coalesce(func.sum(Referral.credits_awarded_referrer), 0)).where(
            Referral.referrer_id == account_id,
            Referral.referred_id.is_not(None),
        )
    ).scalar_one()

    return {
        "account_id": account_id,
        "total_referrals": len(referrals),
        "total_credits_earned": int(total_credits),
        "referrals": referrals,
    }

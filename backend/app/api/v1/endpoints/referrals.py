"""Referral program API: share a code, redeem it once, see what it earned."""

import uuid

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from app.api.v1.dependencies import get_notifier
from app.core.database import get_db
from app.schemas.referrals import (
    ReferralCodeRequest,
    ReferralCodeResponse,
    ReferralRedeemRequest,
    ReferralRedeemResponse,
    ReferralStatsResponse,
)
from app.services.credits import (
    InvalidReferenceError,
    RealtimeNotifier,
    ReferralCodeAllocationError,
    SelfReferralError,
    get_or_create_referral_code,
    get_referral_stats,
    redeem_referral_code,
)

router = APIRouter()


@router.post("/code", response_model=ReferralCodeResponse)
def get_referral_code(
    payload: ReferralCodeRequest,
    db: Session = Depends(get_db),
):
    """Return the account's shareable referral code, creating it on first request."""
    try:
        return get_or_create_referral_code(db, payload.account_id)
    except InvalidReferenceError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    except ReferralCodeAllocationError as exc:
        raise HTTPException(status_code=409, detail=str(exc)) from exc


@router.post("/redeem", response_model=ReferralRedeemResponse)
def redeem_referral(
    payload: ReferralRedeemRequest,
    db: Session = Depends(get_db),
    notifier: RealtimeNotifier = Depends(get_notifier),
):
    """Credit both sides of a referral.

    - 404 for unknown codes or codes already used by another account.
    - 400 when an account redeems its own code.
    - 200 with ``already_processed`` when the account was already referred.
    """
    try:
        result = redeem_referral_code(
            db,
            payload.account_id,
            payload.referral_code,
            notifier=notifier,
        )
    except SelfReferralError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    except InvalidReferenceError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    return ReferralRedeemResponse.model_validate(result)


@router.get("/stats", response_model=ReferralStatsResponse)
def referral_stats(
    account_id: uuid.UUID = Query(...),
    db: Session = Depends(get_db),
):
    return get_referral_stats(db, account_id)

import uuid
from datetime import datetime
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field


class ReferralCodeRequest(BaseModel):
    account_id: uuid.UUID


class ReferralCodeResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    referral_code: str
    referrer_id: uuid.UUID
    status: Literal["pending", "credited"]


class ReferralRedeemRequest(BaseModel):
    account_id: uuid.UUID
    referral_code: str = Field(..., min_length=1, max_length=32)


class ReferralRedeemResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    status: Literal["credited", "already_processed"]
    referral_code: str
    referrer_id: uuid.UUID
    referred_id: uuid.UUID
    credits_awarded_referrer: int
    credits_awarded_referred: int
    new_balance: int | None


class ReferralResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    referral_code: str
    referred_id: uuid.UUID | None
    status: Literal["pending", "credited"]
    credits_awarded_referrer: int
    credited_at: datetime | None


class ReferralStatsResponse(BaseModel):
    account_id: uuid.UUID
    total_referrals: int
    total_credits_earned: int
    referrals: list[ReferralResponse]

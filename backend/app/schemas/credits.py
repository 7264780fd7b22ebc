import uuid
from datetime import date, datetime
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

from app.core.config import settings

CreditTransactionType = Literal["purchase", "consumption", "admin_grant", "referral", "bonus"]
AwardStatus = Literal["credited", "already_processed"]


# ---------------------------------------------------------------------------
# Balance
# ---------------------------------------------------------------------------


class CreditBalanceResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    account_id: uuid.UUID
    current_balance: int
    total_earned: int
    total_spent: int
    last_purchase_at: datetime | None
    current_streak: int
    longest_streak: int
    last_activity_date: date | None


class ReconciliationResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    account_id: uuid.UUID
    current_balance: int
    total_earned: int
    total_spent: int
    transaction_sum: int
    transaction_count: int
    consistent: bool


# ---------------------------------------------------------------------------
# Transaction history
# ---------------------------------------------------------------------------


class CreditTransactionResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    account_id: uuid.UUID
    transaction_type: CreditTransactionType
    amount: int
    balance_after: int
    sequence: int
    reference_type: str | None
    reference_id: str | None
    description: str | None
    created_at: datetime


class CreditHistoryResponse(BaseModel):
    items: list[CreditTransactionResponse]
    total: int
    page: int
    page_size: int


# ---------------------------------------------------------------------------
# Tool costs & consumption
# ---------------------------------------------------------------------------


class ToolCostResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    tool_type: str
    tool_name: str
    credit_cost: int
    description: str | None


class ToolCostRefreshResponse(BaseModel):
    tools_loaded: int


class ConsumeRequest(BaseModel):
    account_id: uuid.UUID
    tool_type: str = Field(..., min_length=1, max_length=100)
    metadata: dict | None = None


class ConsumeResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    allowed: bool
    tool_type: str
    tool_name: str | None
    required: int
    current_balance: int
    new_balance: int | None
    credits_consumed: int
    transaction_id: uuid.UUID | None


# ---------------------------------------------------------------------------
# Admin grant
# ---------------------------------------------------------------------------


class CreditGrantRequest(BaseModel):
    account_id: uuid.UUID
    amount: int = Field(..., gt=0, le=settings.MAX_GRANT_CREDITS)
    reason: str | None = Field(None, max_length=500)
    granted_by: str | None = Field(None, max_length=255)


class CreditGrantResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    account_id: uuid.UUID
    credits_granted: int
    new_balance: int
    transaction_id: uuid.UUID


# ---------------------------------------------------------------------------
# Packages & purchases
# ---------------------------------------------------------------------------


class CreditPackageResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    name: str
    description: str | None
    credits: int
    bonus_credits: int
    total_credits: int
    price_cop: int
    display_order: int


class PurchaseOrderCreateRequest(BaseModel):
    account_id: uuid.UUID
    package_id: uuid.UUID


class PurchaseOrderResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    order_id: str
    account_id: uuid.UUID
    package_id: uuid.UUID
    credits: int
    price_cop: int
    status: Literal["pending", "completed"]
    payment_transaction_id: str | None
    created_at: datetime
    completed_at: datetime | None


class PurchaseCompleteRequest(BaseModel):
    payment_transaction_id: str | None = Field(None, max_length=255)


class PurchaseCompleteResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    status: AwardStatus
    order_id: str
    account_id: uuid.UUID
    credits_added: int
    bonus_credits: int
    new_balance: int | None
    transaction_ids: list[uuid.UUID]

"""Typed results returned by the credits ledger entry points."""

import uuid
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Literal

from app.models.credit_transaction import CreditTransaction

AwardStatus = Literal["credited", "already_processed"]


@dataclass(frozen=True)
class BalanceSnapshot:
    account_id: uuid.UUID
    current_balance: int = 0
    total_earned: int = 0
    total_spent: int = 0
    last_purchase_at: datetime | None = None
    current_streak: int = 0
    longest_streak: int = 0
    last_activity_date: date | None = None


@dataclass(frozen=True)
class LedgerEntry:
    """A committed (or flushed) balance change and the log row recording it."""

    transaction: CreditTransaction
    new_balance: int


@dataclass(frozen=True)
class ConsumeResult:
    """Outcome of a consumption attempt.

    ``allowed=False`` is the insufficient-credits case: ``required`` and
    ``current_balance`` tell the caller how many more credits are needed.
    """

    allowed: bool
    tool_type: str
    required: int
    current_balance: int
    new_balance: int | None = None
    credits_consumed: int = 0
    tool_name: str | None = None
    transaction_id: uuid.UUID | None = None

    @property
    def shortfall(self) -> int:
        return 0 if self.allowed else max(self.required - self.current_balance, 0)


@dataclass(frozen=True)
class GrantResult:
    account_id: uuid.UUID
    credits_granted: int
    new_balance: int
    transaction_id: uuid.UUID


@dataclass(frozen=True)
class PurchaseResult:
    status: AwardStatus
    order_id: str
    account_id: uuid.UUID
    credits_added: int = 0
    bonus_credits: int = 0
    new_balance: int | None = None
    transaction_ids: list[uuid.UUID] = field(default_factory=list)


@dataclass(frozen=True)
class ReferralResult:
    status: AwardStatus
    referral_code: str
    referrer_id: uuid.UUID
    referred_id: uuid.UUID
    credits_awarded_referrer: int = 0
    credits_awarded_referred: int = 0
    new_balance: int | None = None


@dataclass(frozen=True)
class TaskClaimResult:
    status: AwardStatus
    task_key: str
    account_id: uuid.UUID
    credits_awarded: int = 0
    new_balance: int | None = None
    claim_count: int = 0


@dataclass(frozen=True)
class ReconciliationReport:
    account_id: uuid.UUID
    current_balance: int
    total_earned: int
    total_spent: int
    transaction_sum: int
    transaction_count: int

    @property
    def consistent(self) -> bool:
        return (
            self.current_balance >= 0
            and self.current_balance == self.total_earned - self.total_spent
            and self.current_balance == self.transaction_sum
        )

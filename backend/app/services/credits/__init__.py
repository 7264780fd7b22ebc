"""Credits ledger and the engines that move credits in and out of it.

Public API:
    - ToolCostCatalog: Cached tool prices, passed to ``consume``.
    - RealtimeNotifier: Account-scoped pub/sub for balance changes.
    - get_balance / get_transaction_history / reconcile_balance: Ledger queries.
    - apply_delta: The single balance mutation primitive.
    - consume: Charge an account for a tool use.
    - grant_credits: Admin grant.
    - create_purchase_order / credit_purchase: Package checkout and payment crediting.
    - get_or_create_referral_code / redeem_referral_code: Referral program.
    - record_task_completion / claim_task: Gamification rewards.
    - get_gamification_summary: Task stats, earned badges, and level.
"""

from app.services.credits.awards import grant_credits
from app.services.credits.catalog import ToolCost, ToolCostCatalog
from app.services.credits.consumption import consume
from app.services.credits.exceptions import (
    AlreadyProcessedError,
    CreditsError,
    InsufficientBalanceError,
    InvalidReferenceError,
    ReferralCodeAllocationError,
    SelfReferralError,
    StoreUnavailableError,
)
from app.services.credits.gamification import (
    claim_task,
    get_gamification_summary,
    list_task_progress,
    record_task_completion,
)
from app.services.credits.ledger import (
    apply_delta,
    get_balance,
    get_transaction_history,
    reconcile_balance,
)
from app.services.credits.notifier import RealtimeNotifier
from app.services.credits.purchases import (
    create_purchase_order,
    credit_purchase,
    get_purchase_order,
    list_packages,
)
from app.services.credits.referrals import (
    get_or_create_referral_code,
    get_referral_stats,
    redeem_referral_code,
)
from app.services.credits.results import (
    BalanceSnapshot,
    ConsumeResult,
    GrantResult,
    LedgerEntry,
    PurchaseResult,
    ReconciliationReport,
    ReferralResult,
    TaskClaimResult,
)

__all__ = [
    "AlreadyProcessedError",
    "BalanceSnapshot",
    "ConsumeResult",
    "CreditsError",
    "GrantResult",
    "InsufficientBalanceError",
    "InvalidReferenceError",
    "LedgerEntry",
    "PurchaseResult",
    "RealtimeNotifier",
    "ReconciliationReport",
    "ReferralCodeAllocationError",
    "ReferralResult",
    "SelfReferralError",
    "StoreUnavailableError",
    "TaskClaimResult",
    "ToolCost",
    "ToolCostCatalog",
    "apply_delta",
    "claim_task",
    "consume",
    "create_purchase_order",
    "credit_purchase",
    "get_balance",
    "get_gamification_summary",
    "get_or_create_referral_code",
    "get_purchase_order",
    "get_referral_stats",
    "get_transaction_history",
    "grant_credits",
    "list_packages",
    "list_task_progress",
    "reconcile_balance",
    "record_task_completion",
    "redeem_referral_code",
]

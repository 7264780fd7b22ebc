from app.models.account import Account
from app.models.credit_balance import CreditBalance
from app.models.credit_package import CreditPackage
from app.models.credit_transaction import CreditTransaction
from app.models.gamification import GamificationProgress, GamificationTask
from app.models.purchase_order import CreditPurchaseOrder
from app.models.referral import Referral
from app.models.tool_cost import CreditToolCost

__all__ = [
    "Account",
    "CreditBalance",
    "CreditPackage",
    "CreditPurchaseOrder",
    "CreditToolCost",
    "CreditTransaction",
    "GamificationProgress",
    "GamificationTask",
    "Referral",
]

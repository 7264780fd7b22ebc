"""Credits ledger exceptions."""


class CreditsError(Exception):
    """Base exception for credits ledger operations."""


class InsufficientBalanceError(CreditsError):
    """Raised when a debit would take an account balance below zero."""

    def __init__(self, required: int, available: int) -> None:
        self.required = required
        self.available = available
        super().__init__(f"Insufficient credits: required {required}, available {available}")


class AlreadyProcessedError(CreditsError):
    """Raised when an idempotency guard finds the work already done."""


class InvalidReferenceError(CreditsError):
    """Raised when a referenced account, order, code, or task does not exist or is unusable."""


class SelfReferralError(InvalidReferenceError):
    """Raised when an account tries to redeem its own referral code."""


class StoreUnavailableError(CreditsError):
    """Raised when the database fails mid-operation. Safe to retry."""


class ReferralCodeAllocationError(CreditsError):
    """Raised when every generated referral code collided with an existing one."""

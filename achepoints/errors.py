from typing import Optional


class LedgerServiceError(Exception):
    pass


class PhysicianNotFound(LedgerServiceError):
    pass


class NoPointsAvailable(LedgerServiceError):
    pass


class BenefitNotFound(LedgerServiceError):
    pass


class BenefitInactive(LedgerServiceError):
    pass


class InsufficientBalance(LedgerServiceError):
    def __init__(self, message: str, balance: Optional[int] = None, required: Optional[int] = None):
        super().__init__(message)
        self.balance = balance
        self.required = required


class StorageFailure(LedgerServiceError):
    """The backing store is unavailable or failed mid-transaction. Safe to retry."""

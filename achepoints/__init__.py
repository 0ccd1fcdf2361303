"""
AchePoints ledger for physician loyalty

This module provides:
- Monthly point balances per physician, with no carry-over between months
- Prescription accruals (1 point, 2 for remote regions) and a lifetime counter
- Benefit catalog lookup annotated with what the physician can afford
- Atomic redemptions that never overdraw a balance
- In-memory and SQLAlchemy-backed stores
"""

from .models import (
    Region,
    RedemptionStatus,
    Physician,
    LedgerPeriod,
    Benefit,
    Redemption,
)
from .periods import Period
from .service import LedgerService

__all__ = [
    "Region",
    "RedemptionStatus",
    "Physician",
    "LedgerPeriod",
    "Benefit",
    "Redemption",
    "Period",
    "LedgerService",
]

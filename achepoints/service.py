import logging
from datetime import datetime, timezone
from typing import Callable, Optional
from uuid import UUID, uuid4

from .errors import (
    LedgerServiceError,
    PhysicianNotFound,
    NoPointsAvailable,
    BenefitNotFound,
    BenefitInactive,
    InsufficientBalance,
    StorageFailure,
)
from .models import (
    Region,
    RedemptionStatus,
    Redemption,
    AccrualResponse,
    RedemptionResponse,
    BenefitAvailability,
    PointsSummary,
    RedemptionHistoryResponse,
)
from .periods import Period
from .storage import InMemoryStorage

__all__ = [
    "LedgerService",
    "LedgerServiceError",
    "PhysicianNotFound",
    "NoPointsAvailable",
    "BenefitNotFound",
    "BenefitInactive",
    "InsufficientBalance",
    "StorageFailure",
]

log = logging.getLogger("achepoints.ledger")

ALL_CATEGORIES = "todas"


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class LedgerService:
    """Points accrual, redemption and catalog lookup over a ledger store.

    ``storage`` is either an ``InMemoryStorage`` or a ``SqlStorage``; both
    hand out a unit of work from ``transaction()``. ``clock`` returns the
    current time and only decides which period a request falls in.
    """

    def __init__(self, storage=None, clock: Optional[Callable[[], datetime]] = None):
        self.storage = storage or InMemoryStorage()
        self.clock = clock or _utc_now

    def current_period(self) -> Period:
        return Period.from_datetime(self.clock())

    def record_prescription_accrual(self, physician_id: str, region) -> AccrualResponse:
        region = Region(region)
        delta = region.accrual_points
        period = self.current_period()

        with self.storage.transaction() as tx:
            if tx.get_physician(physician_id) is None:
                raise PhysicianNotFound(f"Physician {physician_id} not found")
            tx.adjust_balance(physician_id, period, delta)
            ledger_period = tx.increment_prescription_count(physician_id, period)
            physician = tx.increment_lifetime_total(physician_id, delta)

        log.info(
            "Accrued %d point(s) for physician %s in %s (balance=%d, lifetime=%d)",
            delta, physician_id, period, ledger_period.balance, physician.lifetime_points,
        )
        return AccrualResponse(
            physician_id=physician_id,
            period=period.label,
            points_added=delta,
            period_balance=ledger_period.balance,
            lifetime_total=physician.lifetime_points,
        )

    def redeem_benefit(self, physician_id: str, benefit_id: UUID) -> RedemptionResponse:
        period = self.current_period()

        try:
            with self.storage.transaction() as tx:
                ledger_period = tx.get_period(physician_id, period)
                if ledger_period is None or ledger_period.balance <= 0:
                    raise NoPointsAvailable(f"No points available in {period}")

                benefit = tx.get_benefit(benefit_id)
                if benefit is None:
                    raise BenefitNotFound(f"Benefit {benefit_id} not found")
                if not benefit.active:
                    raise BenefitInactive(f"Benefit {benefit_id} is not available for redemption")
                if ledger_period.balance < benefit.cost:
                    raise InsufficientBalance(
                        f"Balance {ledger_period.balance} is below the benefit cost {benefit.cost}",
                        balance=ledger_period.balance,
                        required=benefit.cost,
                    )

                # Rechecks the balance in the same statement that writes it; a
                # concurrent redemption that drained the period fails here.
                updated = tx.adjust_balance(physician_id, period, -benefit.cost)
                redemption = tx.append_redemption(Redemption(
                    id=uuid4(),
                    period_id=updated.id,
                    benefit_id=benefit.id,
                    points_charged=benefit.cost,
                    status=RedemptionStatus.COMPLETED,
                    created_at=self.clock(),
                ))
        except (NoPointsAvailable, BenefitNotFound, BenefitInactive, InsufficientBalance) as e:
            log.warning("Redemption of %s rejected for physician %s: %s", benefit_id, physician_id, e)
            raise

        log.info(
            "Physician %s redeemed %s for %d point(s), %d left in %s",
            physician_id, benefit.name, benefit.cost, updated.balance, period,
        )
        return RedemptionResponse(
            redemption=redemption,
            benefit=benefit,
            remaining_balance=updated.balance,
            message="Benefit redeemed successfully",
        )

    def list_available_benefits(self, physician_id: str, category: Optional[str] = None) -> list[BenefitAvailability]:
        if not category or category == ALL_CATEGORIES:
            category = None
        period = self.current_period()

        with self.storage.transaction() as tx:
            ledger_period = tx.get_period(physician_id, period)
            benefits = tx.list_benefits(category=category, active_only=True)

        balance = ledger_period.balance if ledger_period else 0
        return [
            BenefitAvailability(benefit=b, available=b.cost <= balance, points_available=balance)
            for b in benefits
        ]

    def get_points_summary(self, physician_id: str) -> PointsSummary:
        now = self.clock()
        period = Period.from_datetime(now)

        with self.storage.transaction() as tx:
            physician = tx.get_physician(physician_id)
            if physician is None:
                raise PhysicianNotFound(f"Physician {physician_id} not found")
            ledger_period = tx.get_period(physician_id, period)
            redemptions = tx.list_redemptions(physician_id, period=period)

        return PointsSummary(
            physician_id=physician.id,
            name=physician.name,
            region=physician.region,
            lifetime_points=physician.lifetime_points,
            period=period.label,
            balance=ledger_period.balance if ledger_period else 0,
            prescriptions_issued=ledger_period.prescription_count if ledger_period else 0,
            days_until_expiry=period.days_remaining(now.date()),
            redemptions=redemptions,
        )

    def get_redemption_history(self, physician_id: str) -> RedemptionHistoryResponse:
        with self.storage.transaction() as tx:
            if tx.get_physician(physician_id) is None:
                raise PhysicianNotFound(f"Physician {physician_id} not found")
            entries = tx.list_redemptions(physician_id)

        return RedemptionHistoryResponse(
            physician_id=physician_id,
            entries=entries,
            total_count=len(entries),
        )

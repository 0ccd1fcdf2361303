import copy
import threading
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Iterator, Optional
from uuid import UUID, uuid4

from .errors import InsufficientBalance, PhysicianNotFound
from .models import (
    Benefit,
    LedgerPeriod,
    Physician,
    Redemption,
    RedemptionHistoryEntry,
    Region,
)
from .periods import Period

_MISSING = object()


def _now() -> datetime:
    return datetime.now(timezone.utc)


class InMemoryStorage:
    """Process-local ledger store.

    Every public method runs under one re-entrant lock, so a balance check and
    the write that depends on it can never interleave with another thread.
    ``transaction()`` holds the lock for the whole block. Inside it each write
    first records the prior value of the row it touches, and those rows are
    put back if the block raises. Reads record nothing.
    """

    def __init__(self, seed: bool = True):
        self.physicians: dict[str, dict] = {}
        self.ledger_periods: dict[UUID, dict] = {}
        self.benefits: dict[UUID, dict] = {}
        self.redemptions: dict[UUID, dict] = {}
        self.period_index: dict[tuple[str, str], UUID] = {}
        self._lock = threading.RLock()
        self._undo: Optional[list] = None
        if seed:
            from .seed import seed_demo_data
            seed_demo_data(self)

    @contextmanager
    def transaction(self) -> Iterator["InMemoryStorage"]:
        with self._lock:
            if self._undo is not None:
                # Nested: the outermost transaction owns the undo log.
                yield self
                return
            self._undo = []
            try:
                yield self
            except BaseException:
                self._rollback()
                raise
            finally:
                self._undo = None

    def _remember(self, table: str, key) -> None:
        if self._undo is None:
            return
        previous = getattr(self, table).get(key, _MISSING)
        if previous is not _MISSING:
            previous = copy.deepcopy(previous)
        self._undo.append((table, key, previous))

    def _rollback(self) -> None:
        for table, key, previous in reversed(self._undo):
            rows = getattr(self, table)
            if previous is _MISSING:
                rows.pop(key, None)
            else:
                rows[key] = previous

    # Physicians

    def add_physician(self, id: str, name: str, region: Region = Region.NORMAL, lifetime_points: int = 0) -> Physician:
        with self._lock:
            data = {
                "id": id, "name": name, "region": Region(region),
                "lifetime_points": lifetime_points, "created_at": _now(),
            }
            physician = Physician(**data)
            self._remember("physicians", id)
            self.physicians[id] = data
            return physician

    def get_physician(self, physician_id: str) -> Optional[Physician]:
        with self._lock:
            data = self.physicians.get(physician_id)
            return Physician(**data) if data else None

    def increment_lifetime_total(self, physician_id: str, delta: int) -> Physician:
        if delta < 0:
            raise ValueError("Lifetime total can only grow")
        with self._lock:
            if physician_id not in self.physicians:
                raise PhysicianNotFound(f"Physician {physician_id} not found")
            self._remember("physicians", physician_id)
            data = self.physicians[physician_id]
            data["lifetime_points"] += delta
            return Physician(**data)

    # Catalog

    def add_benefit(
        self,
        name: str,
        description: str,
        category: str,
        cost: int,
        id: Optional[UUID] = None,
        image_url: Optional[str] = None,
        active: bool = True,
    ) -> Benefit:
        with self._lock:
            benefit = Benefit(
                id=id or uuid4(), name=name, description=description, category=category,
                cost=cost, image_url=image_url, active=active,
            )
            self._remember("benefits", benefit.id)
            self.benefits[benefit.id] = benefit.model_dump()
            return benefit

    def get_benefit(self, benefit_id: UUID) -> Optional[Benefit]:
        with self._lock:
            data = self.benefits.get(benefit_id)
            return Benefit(**data) if data else None

    def list_benefits(self, category: Optional[str] = None, active_only: bool = True) -> list[Benefit]:
        with self._lock:
            benefits = [
                Benefit(**b) for b in self.benefits.values()
                if (not active_only or b["active"]) and (category is None or b["category"] == category)
            ]
        benefits.sort(key=lambda b: (b.cost, b.name))
        return benefits

    # Ledger periods

    def get_period(self, physician_id: str, period: Period) -> Optional[LedgerPeriod]:
        with self._lock:
            period_id = self.period_index.get((physician_id, period.label))
            if period_id is None:
                return None
            return LedgerPeriod(**self.ledger_periods[period_id])

    def get_or_create_period(self, physician_id: str, period: Period) -> LedgerPeriod:
        with self._lock:
            key = (physician_id, period.label)
            period_id = self.period_index.get(key)
            if period_id is None:
                now = _now()
                period_id = uuid4()
                self._remember("ledger_periods", period_id)
                self._remember("period_index", key)
                self.ledger_periods[period_id] = {
                    "id": period_id, "physician_id": physician_id,
                    "period_label": period.label, "balance": 0, "prescription_count": 0,
                    "created_at": now, "updated_at": now,
                }
                self.period_index[key] = period_id
            return LedgerPeriod(**self.ledger_periods[period_id])

    def adjust_balance(self, physician_id: str, period: Period, delta: int) -> LedgerPeriod:
        with self._lock:
            current = self.get_or_create_period(physician_id, period)
            new_balance = current.balance + delta
            if new_balance < 0:
                raise InsufficientBalance(
                    f"Balance {current.balance} cannot cover {-delta} points",
                    balance=current.balance,
                    required=-delta,
                )
            self._remember("ledger_periods", current.id)
            data = self.ledger_periods[current.id]
            data["balance"] = new_balance
            data["updated_at"] = _now()
            return LedgerPeriod(**data)

    def increment_prescription_count(self, physician_id: str, period: Period) -> LedgerPeriod:
        with self._lock:
            current = self.get_or_create_period(physician_id, period)
            self._remember("ledger_periods", current.id)
            data = self.ledger_periods[current.id]
            data["prescription_count"] += 1
            return LedgerPeriod(**data)

    # Redemptions

    def append_redemption(self, redemption: Redemption) -> Redemption:
        with self._lock:
            if redemption.id in self.redemptions:
                raise ValueError(f"Redemption {redemption.id} already recorded")
            self._remember("redemptions", redemption.id)
            self.redemptions[redemption.id] = redemption.model_dump()
            return redemption

    def list_redemptions(self, physician_id: str, period: Optional[Period] = None) -> list[RedemptionHistoryEntry]:
        with self._lock:
            entries = []
            for data in self.redemptions.values():
                ledger_period = self.ledger_periods[data["period_id"]]
                if ledger_period["physician_id"] != physician_id:
                    continue
                if period is not None and ledger_period["period_label"] != period.label:
                    continue
                entries.append(RedemptionHistoryEntry(
                    redemption=Redemption(**data),
                    benefit=Benefit(**self.benefits[data["benefit_id"]]),
                    period=ledger_period["period_label"],
                ))
        entries.sort(key=lambda e: e.redemption.created_at, reverse=True)
        return entries

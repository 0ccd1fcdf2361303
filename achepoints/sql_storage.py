"""
Relational ledger store on SQLAlchemy.

Tables:
- physicians: identity, region and the lifetime points counter
- ledger_periods: one balance and prescription count per physician per calendar month
- benefits: the redeemable catalog
- redemptions: append-only history; rows are never updated or deleted

Balance changes are a single conditional UPDATE whose WHERE clause carries the
non-negative check, so two transactions racing on the same period cannot both
pass it.
"""

import logging
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Iterator, Optional
from uuid import UUID, uuid4

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    DateTime,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
    Uuid,
    create_engine,
    select,
    update,
)
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session, declarative_base, sessionmaker
from sqlalchemy.pool import StaticPool

from .errors import InsufficientBalance, LedgerServiceError, PhysicianNotFound, StorageFailure
from .models import (
    Benefit,
    LedgerPeriod,
    Physician,
    Redemption,
    RedemptionHistoryEntry,
    Region,
)
from .periods import Period

log = logging.getLogger("achepoints.storage")

Base = declarative_base()


def _now() -> datetime:
    return datetime.now(timezone.utc)


class PhysicianRow(Base):
    __tablename__ = "physicians"
    __table_args__ = (
        CheckConstraint("lifetime_points >= 0", name="ck_physicians_lifetime_points"),
    )

    id = Column(String(64), primary_key=True)
    name = Column(String(255), nullable=False)
    region = Column(String(16), nullable=False, default=Region.NORMAL.value)
    lifetime_points = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime(timezone=True), nullable=False, default=_now)


class LedgerPeriodRow(Base):
    __tablename__ = "ledger_periods"
    __table_args__ = (
        UniqueConstraint("physician_id", "period_label", name="uq_ledger_periods_physician_period"),
        CheckConstraint("balance >= 0", name="ck_ledger_periods_balance"),
    )

    id = Column(Uuid, primary_key=True, default=uuid4)
    physician_id = Column(String(64), ForeignKey("physicians.id"), nullable=False, index=True)
    period_label = Column(String(7), nullable=False)
    balance = Column(Integer, nullable=False, default=0)
    prescription_count = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime(timezone=True), nullable=False, default=_now)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=_now)


class BenefitRow(Base):
    __tablename__ = "benefits"
    __table_args__ = (
        UniqueConstraint("name", "category", name="uq_benefits_name_category"),
        CheckConstraint("cost > 0", name="ck_benefits_cost"),
    )

    id = Column(Uuid, primary_key=True, default=uuid4)
    name = Column(String(255), nullable=False)
    description = Column(Text, nullable=False)
    category = Column(String(64), nullable=False, index=True)
    cost = Column(Integer, nullable=False)
    image_url = Column(String(512), nullable=True)
    active = Column(Boolean, nullable=False, default=True)


class RedemptionRow(Base):
    __tablename__ = "redemptions"

    id = Column(Uuid, primary_key=True, default=uuid4)
    period_id = Column(Uuid, ForeignKey("ledger_periods.id"), nullable=False, index=True)
    benefit_id = Column(Uuid, ForeignKey("benefits.id"), nullable=False)
    points_charged = Column(Integer, nullable=False)
    status = Column(String(16), nullable=False)
    # Immutable - no updated_at
    created_at = Column(DateTime(timezone=True), nullable=False, default=_now)


class SqlTransaction:
    """Ledger operations bound to one session. Obtain through ``SqlStorage.transaction()``."""

    def __init__(self, session: Session):
        self.session = session

    # Physicians

    def add_physician(self, id: str, name: str, region: Region = Region.NORMAL, lifetime_points: int = 0) -> Physician:
        row = PhysicianRow(id=id, name=name, region=Region(region).value, lifetime_points=lifetime_points, created_at=_now())
        self.session.add(row)
        self.session.flush()
        return Physician.model_validate(row)

    def get_physician(self, physician_id: str) -> Optional[Physician]:
        row = self.session.execute(
            select(PhysicianRow)
            .where(PhysicianRow.id == physician_id)
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        return Physician.model_validate(row) if row else None

    def increment_lifetime_total(self, physician_id: str, delta: int) -> Physician:
        if delta < 0:
            raise ValueError("Lifetime total can only grow")
        result = self.session.execute(
            update(PhysicianRow)
            .where(PhysicianRow.id == physician_id)
            .values(lifetime_points=PhysicianRow.lifetime_points + delta)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            raise PhysicianNotFound(f"Physician {physician_id} not found")
        return self.get_physician(physician_id)

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
        benefit = Benefit(
            id=id or uuid4(), name=name, description=description, category=category,
            cost=cost, image_url=image_url, active=active,
        )
        self.session.add(BenefitRow(**benefit.model_dump()))
        self.session.flush()
        return benefit

    def get_benefit(self, benefit_id: UUID) -> Optional[Benefit]:
        row = self.session.get(BenefitRow, benefit_id)
        return Benefit.model_validate(row) if row else None

    def list_benefits(self, category: Optional[str] = None, active_only: bool = True) -> list[Benefit]:
        stmt = select(BenefitRow)
        if active_only:
            stmt = stmt.where(BenefitRow.active.is_(True))
        if category is not None:
            stmt = stmt.where(BenefitRow.category == category)
        stmt = stmt.order_by(BenefitRow.cost.asc(), BenefitRow.name.asc())
        return [Benefit.model_validate(row) for row in self.session.execute(stmt).scalars()]

    # Ledger periods

    def get_period(self, physician_id: str, period: Period) -> Optional[LedgerPeriod]:
        row = self.session.execute(
            select(LedgerPeriodRow)
            .where(
                LedgerPeriodRow.physician_id == physician_id,
                LedgerPeriodRow.period_label == period.label,
            )
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        return LedgerPeriod.model_validate(row) if row else None

    def get_or_create_period(self, physician_id: str, period: Period) -> LedgerPeriod:
        now = _now()
        values = {
            "id": uuid4(), "physician_id": physician_id, "period_label": period.label,
            "balance": 0, "prescription_count": 0, "created_at": now, "updated_at": now,
        }
        dialect = self.session.get_bind().dialect.name
        if dialect == "postgresql":
            stmt = pg_insert(LedgerPeriodRow).values(**values).on_conflict_do_nothing(
                index_elements=["physician_id", "period_label"]
            )
            self.session.execute(stmt)
        elif dialect == "sqlite":
            stmt = sqlite_insert(LedgerPeriodRow).values(**values).on_conflict_do_nothing(
                index_elements=["physician_id", "period_label"]
            )
            self.session.execute(stmt)
        elif self.get_period(physician_id, period) is None:
            try:
                with self.session.begin_nested():
                    self.session.add(LedgerPeriodRow(**values))
            except IntegrityError:
                log.warning("Detected race when creating ledger period %s/%s", physician_id, period)
        return self.get_period(physician_id, period)

    def adjust_balance(self, physician_id: str, period: Period, delta: int) -> LedgerPeriod:
        current = self.get_or_create_period(physician_id, period)
        result = self.session.execute(
            update(LedgerPeriodRow)
            .where(
                LedgerPeriodRow.id == current.id,
                LedgerPeriodRow.balance + delta >= 0,
            )
            .values(balance=LedgerPeriodRow.balance + delta, updated_at=_now())
            .execution_options(synchronize_session=False)
        )
        latest = self.get_period(physician_id, period)
        if result.rowcount != 1:
            raise InsufficientBalance(
                f"Balance {latest.balance} cannot cover {-delta} points",
                balance=latest.balance,
                required=-delta,
            )
        return latest

    def increment_prescription_count(self, physician_id: str, period: Period) -> LedgerPeriod:
        stmt = (
            update(LedgerPeriodRow)
            .where(
                LedgerPeriodRow.physician_id == physician_id,
                LedgerPeriodRow.period_label == period.label,
            )
            .values(prescription_count=LedgerPeriodRow.prescription_count + 1)
            .execution_options(synchronize_session=False)
        )
        if self.session.execute(stmt).rowcount != 1:
            self.get_or_create_period(physician_id, period)
            self.session.execute(stmt)
        return self.get_period(physician_id, period)

    # Redemptions

    def append_redemption(self, redemption: Redemption) -> Redemption:
        data = redemption.model_dump()
        data["status"] = redemption.status.value
        self.session.add(RedemptionRow(**data))
        self.session.flush()
        return redemption

    def list_redemptions(self, physician_id: str, period: Optional[Period] = None) -> list[RedemptionHistoryEntry]:
        stmt = (
            select(RedemptionRow, BenefitRow, LedgerPeriodRow.period_label)
            .join(LedgerPeriodRow, RedemptionRow.period_id == LedgerPeriodRow.id)
            .join(BenefitRow, RedemptionRow.benefit_id == BenefitRow.id)
            .where(LedgerPeriodRow.physician_id == physician_id)
        )
        if period is not None:
            stmt = stmt.where(LedgerPeriodRow.period_label == period.label)
        stmt = stmt.order_by(RedemptionRow.created_at.desc())
        return [
            RedemptionHistoryEntry(
                redemption=Redemption.model_validate(redemption),
                benefit=Benefit.model_validate(benefit),
                period=label,
            )
            for redemption, benefit, label in self.session.execute(stmt).all()
        ]


class SqlStorage:
    def __init__(self, engine: Engine, seed: bool = False):
        self.engine = engine
        self._session_factory = sessionmaker(bind=engine, expire_on_commit=False)
        if seed:
            from .seed import seed_demo_data
            # Seeding needs the tables; create_all skips the ones that exist.
            self.create_schema()
            seed_demo_data(self)

    @classmethod
    def from_url(cls, url: str, seed: bool = False) -> "SqlStorage":
        if url in ("sqlite://", "sqlite+pysqlite://") or (url.startswith("sqlite") and ":memory:" in url):
            engine = create_engine(url, connect_args={"check_same_thread": False}, poolclass=StaticPool)
        else:
            engine = create_engine(url, pool_pre_ping=True)
        return cls(engine, seed=seed)

    def create_schema(self) -> None:
        Base.metadata.create_all(self.engine)

    @contextmanager
    def transaction(self) -> Iterator[SqlTransaction]:
        session = self._session_factory()
        try:
            yield SqlTransaction(session)
            session.commit()
        except LedgerServiceError:
            session.rollback()
            raise
        except SQLAlchemyError as e:
            session.rollback()
            log.exception("Ledger store transaction failed")
            raise StorageFailure("Ledger store is unavailable") from e
        except BaseException:
            session.rollback()
            raise
        finally:
            session.close()

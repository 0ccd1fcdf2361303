from datetime import datetime
from enum import Enum
from typing import Optional
from uuid import UUID
from pydantic import BaseModel, Field, ConfigDict

from .periods import Period


class Region(str, Enum):
    NORMAL = "normal"
    REMOTE = "remote"

    @classmethod
    def _missing_(cls, value):
        if not isinstance(value, str):
            return None
        normalized = value.strip().lower()
        # Registration forms store the Portuguese label for remote regions.
        if normalized == "remota":
            return cls.REMOTE
        for member in cls:
            if member.value == normalized:
                return member
        return None

    @property
    def accrual_points(self) -> int:
        return 2 if self is Region.REMOTE else 1


class RedemptionStatus(str, Enum):
    COMPLETED = "completed"
    # Reserved; nothing transitions a redemption into these yet.
    PENDING = "pending"
    CANCELLED = "cancelled"


class Physician(BaseModel):
    id: str
    name: str
    region: Region = Region.NORMAL
    lifetime_points: int = Field(default=0, ge=0)
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class LedgerPeriod(BaseModel):
    id: UUID
    physician_id: str
    period_label: str
    balance: int = Field(..., ge=0)
    prescription_count: int = Field(default=0, ge=0)
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)

    @property
    def period(self) -> Period:
        return Period.parse(self.period_label)


class Benefit(BaseModel):
    id: UUID
    name: str
    description: str
    category: str
    cost: int = Field(..., gt=0)
    image_url: Optional[str] = None
    active: bool = True

    model_config = ConfigDict(from_attributes=True)


class Redemption(BaseModel):
    id: UUID
    period_id: UUID
    benefit_id: UUID
    points_charged: int = Field(..., gt=0)
    status: RedemptionStatus = RedemptionStatus.COMPLETED
    created_at: datetime

    model_config = ConfigDict(from_attributes=True, frozen=True)


class AccrualRequest(BaseModel):
    region: Region = Field(..., description="Region classifier of the prescribing physician")

    model_config = ConfigDict(json_schema_extra={
        "example": {"region": "remote"}
    })


class AccrualResponse(BaseModel):
    physician_id: str
    period: str
    points_added: int
    period_balance: int
    lifetime_total: int


class RedeemRequest(BaseModel):
    benefit_id: UUID

    model_config = ConfigDict(json_schema_extra={
        "example": {"benefit_id": "5b0c3f6e-6d1e-4f7a-9d61-7f5a2e1c0a11"}
    })


class RedemptionResponse(BaseModel):
    redemption: Redemption
    benefit: Benefit
    remaining_balance: int
    message: str


class BenefitAvailability(BaseModel):
    benefit: Benefit
    available: bool
    points_available: int


class RedemptionHistoryEntry(BaseModel):
    redemption: Redemption
    benefit: Benefit
    period: str


class PointsSummary(BaseModel):
    physician_id: str
    name: str
    region: Region
    lifetime_points: int
    period: str
    balance: int
    prescriptions_issued: int
    days_until_expiry: int
    redemptions: list[RedemptionHistoryEntry]


class RedemptionHistoryResponse(BaseModel):
    physician_id: str
    entries: list[RedemptionHistoryEntry]
    total_count: int

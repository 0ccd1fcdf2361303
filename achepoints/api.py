from uuid import UUID
from typing import Optional
from fastapi import Depends, FastAPI, HTTPException, status
from fastapi.middleware.cors import CORSMiddleware

from .config import build_clock, build_storage, configure_logging, load_settings
from .models import (
    AccrualRequest, AccrualResponse, RedeemRequest, RedemptionResponse,
    BenefitAvailability, PointsSummary, RedemptionHistoryResponse,
)
from .service import (
    LedgerService, PhysicianNotFound, NoPointsAvailable, BenefitNotFound,
    BenefitInactive, InsufficientBalance, StorageFailure,
)

settings = load_settings()
configure_logging(settings)

app = FastAPI(
    title="AchePoints API",
    description="Physician loyalty points: prescription accruals, benefit catalog and redemptions",
    version="1.0.0",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=list(settings.cors_origins),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

ledger_service = LedgerService(build_storage(settings), clock=build_clock(settings))


def get_ledger_service() -> LedgerService:
    return ledger_service


def _storage_unavailable() -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        detail="Points ledger is temporarily unavailable, try again later",
    )


@app.get("/health", tags=["System"])
def health_check():
    return {"status": "healthy", "service": "achepoints"}


@app.post(
    "/physicians/{physician_id}/accruals",
    response_model=AccrualResponse,
    status_code=status.HTTP_201_CREATED,
    tags=["Points"],
)
def record_accrual(
    physician_id: str,
    request: AccrualRequest,
    service: LedgerService = Depends(get_ledger_service),
) -> AccrualResponse:
    try:
        return service.record_prescription_accrual(physician_id, request.region)
    except PhysicianNotFound:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"Physician {physician_id} not found")
    except StorageFailure:
        raise _storage_unavailable()


@app.get("/physicians/{physician_id}/points", response_model=PointsSummary, tags=["Points"])
def get_points(physician_id: str, service: LedgerService = Depends(get_ledger_service)) -> PointsSummary:
    try:
        return service.get_points_summary(physician_id)
    except PhysicianNotFound:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"Physician {physician_id} not found")
    except StorageFailure:
        raise _storage_unavailable()


@app.get("/physicians/{physician_id}/benefits", response_model=list[BenefitAvailability], tags=["Benefits"])
def list_benefits(
    physician_id: str,
    category: Optional[str] = None,
    service: LedgerService = Depends(get_ledger_service),
) -> list[BenefitAvailability]:
    try:
        return service.list_available_benefits(physician_id, category)
    except StorageFailure:
        raise _storage_unavailable()


@app.post(
    "/physicians/{physician_id}/redemptions",
    response_model=RedemptionResponse,
    status_code=status.HTTP_201_CREATED,
    tags=["Redemptions"],
)
def redeem_benefit(
    physician_id: str,
    request: RedeemRequest,
    service: LedgerService = Depends(get_ledger_service),
) -> RedemptionResponse:
    try:
        return service.redeem_benefit(physician_id, request.benefit_id)
    except BenefitNotFound:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"Benefit {request.benefit_id} not found")
    except NoPointsAvailable:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="No points available in the current period")
    except BenefitInactive:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="This benefit is not available for redemption")
    except InsufficientBalance:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Not enough points to redeem this benefit")
    except StorageFailure:
        raise _storage_unavailable()


@app.get("/physicians/{physician_id}/redemptions", response_model=RedemptionHistoryResponse, tags=["Redemptions"])
def get_redemptions(physician_id: str, service: LedgerService = Depends(get_ledger_service)) -> RedemptionHistoryResponse:
    try:
        return service.get_redemption_history(physician_id)
    except PhysicianNotFound:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"Physician {physician_id} not found")
    except StorageFailure:
        raise _storage_unavailable()


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)

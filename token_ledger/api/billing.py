"""
Billing endpoints.

Called by the billing webhook adapter once it has verified and
de-duplicated a provider event (checkout completed, invoice paid).
"""

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from token_ledger.exceptions import LedgerError
from token_ledger.models.base import get_db
from token_ledger.services.settlement_service import SettlementService
from token_ledger.schemas.settlement import (
    BalanceAdjustmentRequest,
    BalanceAdjustmentResult,
    SubscriptionCreditRequest,
    SubscriptionCreditResult,
)

router = APIRouter(prefix="/billing", tags=["Billing"])


@router.post(
    "/subscription-credits",
    response_model=SubscriptionCreditResult,
    status_code=201,
)
def credit_subscription(
    request: SubscriptionCreditRequest,
    db: Session = Depends(get_db),
):
    """Credit a company with its plan's monthly tokens."""
    service = SettlementService(db)
    try:
        result = service.credit_subscription(request)
        db.commit()
        return result
    except LedgerError as e:
        db.rollback()
        raise HTTPException(status_code=e.status_code, detail=e.to_detail())


@router.post(
    "/adjustments",
    response_model=BalanceAdjustmentResult,
    status_code=201,
)
def adjust_company_balance(
    request: BalanceAdjustmentRequest,
    db: Session = Depends(get_db),
):
    """Admin correction, written as a new ADMIN_ADJUSTMENT entry."""
    service = SettlementService(db)
    try:
        result = service.adjust_company_balance(request)
        db.commit()
        return result
    except LedgerError as e:
        db.rollback()
        raise HTTPException(status_code=e.status_code, detail=e.to_detail())

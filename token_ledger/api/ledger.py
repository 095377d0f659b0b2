"""
Ledger API endpoints.

Read only: balances, the reporting listing, per-reason totals and
chain verification. Nothing here writes to the ledger; writes
happen through the settlement and withdrawal endpoints.
"""

from datetime import datetime

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from token_ledger.exceptions import LedgerError
from token_ledger.models.base import get_db
from token_ledger.models.enums import LedgerDirection, LedgerReason, SubjectKind
from token_ledger.services.ledger_service import LedgerService
from token_ledger.schemas.ledger import (
    BalanceResponse,
    ChainReport,
    LedgerEntryResponse,
    LedgerPage,
    LedgerQuery,
    ReasonTotal,
)

router = APIRouter(prefix="/ledger", tags=["Ledger"])


def ledger_query(
    company_id: int | None = None,
    user_id: int | None = None,
    ticket_id: int | None = None,
    direction: LedgerDirection | None = None,
    reason: LedgerReason | None = None,
    created_from: datetime | None = Query(default=None, alias="from"),
    created_to: datetime | None = Query(default=None, alias="to"),
    page: int = Query(default=1, ge=1),
    page_size: int | None = Query(default=None, ge=1),
) -> LedgerQuery:
    return LedgerQuery(
        company_id=company_id,
        user_id=user_id,
        ticket_id=ticket_id,
        direction=direction,
        reason=reason,
        created_from=created_from,
        created_to=created_to,
        page=page,
        page_size=page_size,
    )


@router.get("/entries", response_model=LedgerPage)
def list_entries(
    query: LedgerQuery = Depends(ledger_query),
    db: Session = Depends(get_db),
):
    """
    List entries newest first, with credit/debit totals over
    the whole filtered set.
    """
    return LedgerService(db).query_entries(query)


@router.get("/totals", response_model=list[ReasonTotal])
def totals_by_reason(
    query: LedgerQuery = Depends(ledger_query),
    db: Session = Depends(get_db),
):
    """Per reason and direction sums for analytics."""
    return LedgerService(db).totals_by_reason(query)


@router.get(
    "/companies/{company_id}/balance",
    response_model=BalanceResponse,
)
def company_balance(
    company_id: int,
    db: Session = Depends(get_db),
):
    service = LedgerService(db)
    try:
        balance = service.balances.company_balance(company_id)
    except LedgerError as e:
        raise HTTPException(status_code=e.status_code, detail=e.to_detail())
    return BalanceResponse(
        subject_kind=SubjectKind.COMPANY,
        subject_id=company_id,
        balance=balance,
    )


@router.get(
    "/designers/{user_id}/balance",
    response_model=BalanceResponse,
)
def designer_balance(
    user_id: int,
    db: Session = Depends(get_db),
):
    """Balance is derived from the designer's entries on every call."""
    service = LedgerService(db)
    try:
        balance = service.balances.designer_balance(user_id)
    except LedgerError as e:
        raise HTTPException(status_code=e.status_code, detail=e.to_detail())
    return BalanceResponse(
        subject_kind=SubjectKind.USER,
        subject_id=user_id,
        balance=balance,
    )


@router.get(
    "/companies/{company_id}/entries",
    response_model=list[LedgerEntryResponse],
)
def company_entries(
    company_id: int,
    db: Session = Depends(get_db),
):
    """A company's own entries in ledger order."""
    service = LedgerService(db)
    try:
        service.balances.get_company(company_id)
    except LedgerError as e:
        raise HTTPException(status_code=e.status_code, detail=e.to_detail())
    return service.entries_for_company(company_id)


@router.get(
    "/designers/{user_id}/entries",
    response_model=list[LedgerEntryResponse],
)
def designer_entries(
    user_id: int,
    db: Session = Depends(get_db),
):
    service = LedgerService(db)
    try:
        service.balances.get_user(user_id)
    except LedgerError as e:
        raise HTTPException(status_code=e.status_code, detail=e.to_detail())
    return service.entries_for_user(user_id)


@router.get(
    "/companies/{company_id}/verify",
    response_model=ChainReport,
)
def verify_company_chain(
    company_id: int,
    db: Session = Depends(get_db),
):
    """Replay the company's snapshots and compare with the cached balance."""
    try:
        return LedgerService(db).verify_chain(SubjectKind.COMPANY, company_id)
    except LedgerError as e:
        raise HTTPException(status_code=e.status_code, detail=e.to_detail())


@router.get(
    "/designers/{user_id}/verify",
    response_model=ChainReport,
)
def verify_designer_chain(
    user_id: int,
    db: Session = Depends(get_db),
):
    try:
        return LedgerService(db).verify_chain(SubjectKind.USER, user_id)
    except LedgerError as e:
        raise HTTPException(status_code=e.status_code, detail=e.to_detail())


@router.get(
    "/tickets/{ticket_id}/entries",
    response_model=list[LedgerEntryResponse],
)
def ticket_entries(
    ticket_id: int,
    db: Session = Depends(get_db),
):
    """The company debit and designer payout a ticket settled."""
    return LedgerService(db).entries_for_ticket(ticket_id)

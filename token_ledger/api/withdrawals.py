"""
Withdrawal API endpoints.

Designers file requests against their derived balance; admins move
them through PENDING -> APPROVED -> PAID or PENDING -> REJECTED.
Notifications go out only after the transition has committed.
"""

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from token_ledger.exceptions import LedgerError
from token_ledger.models.base import get_db
from token_ledger.models.enums import WithdrawalStatus
from token_ledger.services.notification_service import (
    WITHDRAWAL_APPROVED,
    WITHDRAWAL_PAID,
    WITHDRAWAL_REJECTED,
    Notification,
    NotificationDispatcher,
    get_dispatcher,
)
from token_ledger.services.withdrawal_service import WithdrawalService
from token_ledger.schemas.withdrawal import (
    DesignerWithdrawals,
    WithdrawalActionRequest,
    WithdrawalAdminAction,
    WithdrawalCreate,
    WithdrawalOverview,
    WithdrawalReject,
    WithdrawalResponse,
    WithdrawalTransitionResult,
)

router = APIRouter(tags=["Withdrawals"])

_EVENTS = {
    WithdrawalStatus.APPROVED: (WITHDRAWAL_APPROVED, "Withdrawal approved"),
    WithdrawalStatus.REJECTED: (WITHDRAWAL_REJECTED, "Withdrawal rejected"),
    WithdrawalStatus.PAID: (WITHDRAWAL_PAID, "Withdrawal paid"),
}


def _notify(
    background_tasks: BackgroundTasks,
    dispatcher: NotificationDispatcher,
    result: WithdrawalTransitionResult,
) -> None:
    withdrawal = result.withdrawal
    event_type, title = _EVENTS[withdrawal.status]
    background_tasks.add_task(dispatcher.dispatch, Notification(
        event_type=event_type,
        user_id=withdrawal.designer_id,
        title=title,
        message=f"Your withdrawal of {withdrawal.amount_tokens} tokens is now {withdrawal.status.value}",
        payload={"withdrawal_id": withdrawal.id},
    ))


# --- Designer side ---

@router.post(
    "/designers/{designer_id}/withdrawals",
    response_model=WithdrawalResponse,
    status_code=201,
)
def request_withdrawal(
    designer_id: int,
    request: WithdrawalCreate,
    db: Session = Depends(get_db),
):
    """File a PENDING withdrawal. No tokens move until approval."""
    service = WithdrawalService(db)
    try:
        withdrawal = service.request_withdrawal(designer_id, request)
        db.commit()
        return withdrawal
    except LedgerError as e:
        db.rollback()
        raise HTTPException(status_code=e.status_code, detail=e.to_detail())


@router.get(
    "/designers/{designer_id}/withdrawals",
    response_model=DesignerWithdrawals,
)
def list_designer_withdrawals(
    designer_id: int,
    page: int = Query(default=1, ge=1),
    page_size: int = Query(default=20, ge=1),
    db: Session = Depends(get_db),
):
    service = WithdrawalService(db)
    try:
        return service.list_for_designer(designer_id, page, page_size)
    except LedgerError as e:
        raise HTTPException(status_code=e.status_code, detail=e.to_detail())


# --- Admin side ---

@router.get("/admin/withdrawals", response_model=WithdrawalOverview)
def admin_overview(
    limit: int = Query(default=200, ge=1),
    db: Session = Depends(get_db),
):
    return WithdrawalService(db).admin_overview(limit)


@router.get(
    "/admin/withdrawals/{withdrawal_id}",
    response_model=WithdrawalResponse,
)
def get_withdrawal(
    withdrawal_id: int,
    db: Session = Depends(get_db),
):
    try:
        return WithdrawalService(db).get_withdrawal(withdrawal_id)
    except LedgerError as e:
        raise HTTPException(status_code=e.status_code, detail=e.to_detail())


@router.post(
    "/admin/withdrawals/{withdrawal_id}/approve",
    response_model=WithdrawalTransitionResult,
)
def approve_withdrawal(
    withdrawal_id: int,
    request: WithdrawalAdminAction,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    dispatcher: NotificationDispatcher = Depends(get_dispatcher),
):
    """Approve and debit the designer in one transaction."""
    service = WithdrawalService(db)
    try:
        result = service.approve(withdrawal_id, request.actor)
        db.commit()
    except LedgerError as e:
        db.rollback()
        raise HTTPException(status_code=e.status_code, detail=e.to_detail())
    _notify(background_tasks, dispatcher, result)
    return result


@router.post(
    "/admin/withdrawals/{withdrawal_id}/reject",
    response_model=WithdrawalTransitionResult,
)
def reject_withdrawal(
    withdrawal_id: int,
    request: WithdrawalReject,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    dispatcher: NotificationDispatcher = Depends(get_dispatcher),
):
    service = WithdrawalService(db)
    try:
        result = service.reject(withdrawal_id, request.actor, request.reason)
        db.commit()
    except LedgerError as e:
        db.rollback()
        raise HTTPException(status_code=e.status_code, detail=e.to_detail())
    _notify(background_tasks, dispatcher, result)
    return result


@router.post(
    "/admin/withdrawals/{withdrawal_id}/mark-paid",
    response_model=WithdrawalTransitionResult,
)
def mark_withdrawal_paid(
    withdrawal_id: int,
    request: WithdrawalAdminAction,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    dispatcher: NotificationDispatcher = Depends(get_dispatcher),
):
    """Record the external payment. Writes no ledger entry."""
    service = WithdrawalService(db)
    try:
        result = service.mark_paid(withdrawal_id, request.actor)
        db.commit()
    except LedgerError as e:
        db.rollback()
        raise HTTPException(status_code=e.status_code, detail=e.to_detail())
    _notify(background_tasks, dispatcher, result)
    return result


@router.patch(
    "/admin/withdrawals",
    response_model=WithdrawalTransitionResult,
)
def apply_withdrawal_action(
    request: WithdrawalActionRequest,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    dispatcher: NotificationDispatcher = Depends(get_dispatcher),
):
    """Single entry point taking {withdrawal_id, action}."""
    service = WithdrawalService(db)
    try:
        result = service.apply_action(
            request.withdrawal_id, request.action, request.actor, request.reason
        )
        db.commit()
    except LedgerError as e:
        db.rollback()
        raise HTTPException(status_code=e.status_code, detail=e.to_detail())
    _notify(background_tasks, dispatcher, result)
    return result

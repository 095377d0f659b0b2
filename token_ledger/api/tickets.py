"""
Ticket settlement endpoints.

Called by the ticket workflow when a ticket is created with a
priced job type, and when it moves to done.
"""

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException
from sqlalchemy.orm import Session

from token_ledger.exceptions import LedgerError
from token_ledger.models.base import get_db
from token_ledger.services.notification_service import (
    TICKET_COMPLETED,
    Notification,
    NotificationDispatcher,
    get_dispatcher,
)
from token_ledger.services.settlement_service import SettlementService
from token_ledger.schemas.settlement import (
    TicketCompletionResult,
    TicketCreateRequest,
    TicketCreateResult,
    TicketResponse,
)

router = APIRouter(prefix="/tickets", tags=["Tickets"])


@router.post("", response_model=TicketCreateResult, status_code=201)
def create_ticket(
    request: TicketCreateRequest,
    db: Session = Depends(get_db),
):
    """Create a ticket and debit its job type cost from the company."""
    service = SettlementService(db)
    try:
        result = service.create_ticket(request)
        db.commit()
        return result
    except LedgerError as e:
        db.rollback()
        raise HTTPException(status_code=e.status_code, detail=e.to_detail())


@router.post("/{ticket_id}/complete", response_model=TicketCompletionResult)
def complete_ticket(
    ticket_id: int,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    dispatcher: NotificationDispatcher = Depends(get_dispatcher),
):
    """
    Complete a ticket and pay its designer.

    A repeated call answers 200 with already_completed=true and
    changes nothing.
    """
    service = SettlementService(db)
    try:
        result = service.complete_ticket(ticket_id)
        db.commit()
    except LedgerError as e:
        db.rollback()
        raise HTTPException(status_code=e.status_code, detail=e.to_detail())

    if not result.already_completed and result.ticket.designer_id is not None:
        background_tasks.add_task(dispatcher.dispatch, Notification(
            event_type=TICKET_COMPLETED,
            user_id=result.ticket.designer_id,
            title="Ticket completed",
            message=f'"{result.ticket.title}" has been marked as done',
            payload={"ticket_id": result.ticket.id},
        ))
    return result


@router.get("/{ticket_id}", response_model=TicketResponse)
def get_ticket(
    ticket_id: int,
    db: Session = Depends(get_db),
):
    try:
        return SettlementService(db).get_ticket(ticket_id)
    except LedgerError as e:
        raise HTTPException(status_code=e.status_code, detail=e.to_detail())

"""
Pydantic schemas for settlement operations.
"""

from datetime import datetime

from pydantic import BaseModel, Field

from token_ledger.models.enums import LedgerDirection, TicketStatus


class TicketCreateRequest(BaseModel):
    company_id: int
    title: str = Field(min_length=1, max_length=255)
    job_type_id: int | None = None
    quantity: int = Field(default=1, ge=1, le=100)
    designer_id: int | None = None
    created_by_id: int | None = None
    token_cost_override: int | None = Field(default=None, ge=0)
    designer_payout_override: int | None = Field(default=None, ge=0)


class TicketResponse(BaseModel):
    id: int
    title: str
    company_id: int
    job_type_id: int | None
    designer_id: int | None
    quantity: int
    company_ticket_number: int
    token_cost_override: int | None
    designer_payout_override: int | None
    status: TicketStatus
    completed_at: datetime | None
    created_at: datetime

    model_config = {"from_attributes": True}


class TicketCreateResult(BaseModel):
    ticket: TicketResponse
    ledger_entry_id: int | None
    tokens_debited: int
    company_balance_after: int


class TicketCompletionResult(BaseModel):
    ticket: TicketResponse
    designer_ledger_entry_id: int | None
    designer_balance_after: int | None
    already_completed: bool


class SubscriptionCreditRequest(BaseModel):
    """
    Issued by the billing adapter after it has de-duplicated the
    provider event.
    """
    company_id: int
    plan_id: int
    is_first_activation: bool
    provider_event_id: str = Field(min_length=1, max_length=255)
    provider_session_id: str | None = None
    provider_invoice_id: str | None = None
    provider_customer_id: str | None = None
    provider_subscription_id: str | None = None


class SubscriptionCreditResult(BaseModel):
    company_id: int
    plan_id: int
    credited: bool
    tokens_credited: int
    ledger_entry_id: int | None
    company_balance_after: int


class BalanceAdjustmentRequest(BaseModel):
    company_id: int
    direction: LedgerDirection
    amount: int = Field(gt=0)
    notes: str = Field(min_length=1, max_length=2000)
    actor: str = Field(min_length=1, max_length=255)
    ticket_reference: str | None = None


class BalanceAdjustmentResult(BaseModel):
    company_id: int
    ledger_entry_id: int
    company_balance_after: int

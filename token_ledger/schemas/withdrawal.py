"""
Pydantic schemas for the withdrawal workflow.
"""

from datetime import datetime
from typing import Any

from pydantic import AliasChoices, BaseModel, Field

from token_ledger.models.enums import WithdrawalAction, WithdrawalStatus
from token_ledger.schemas.ledger import Pagination


class WithdrawalCreate(BaseModel):
    amount_tokens: int = Field(gt=0)
    notes: str | None = Field(default=None, max_length=2000)


class WithdrawalReject(BaseModel):
    actor: str = Field(min_length=1, max_length=255)
    reason: str | None = Field(default=None, max_length=2000)


class WithdrawalAdminAction(BaseModel):
    """Admin action on a withdrawal, by id."""
    actor: str = Field(min_length=1, max_length=255)


class WithdrawalActionRequest(BaseModel):
    """Generic dispatcher payload: one action, one withdrawal."""
    withdrawal_id: int
    action: WithdrawalAction
    actor: str = Field(min_length=1, max_length=255)
    reason: str | None = Field(default=None, max_length=2000)


class WithdrawalResponse(BaseModel):
    id: int
    designer_id: int
    amount_tokens: int
    status: WithdrawalStatus
    notes: str | None
    metadata: dict[str, Any] = Field(
        default_factory=dict,
        validation_alias=AliasChoices("meta", "metadata"),
    )
    created_at: datetime
    approved_at: datetime | None
    paid_at: datetime | None

    model_config = {"from_attributes": True}


class WithdrawalTransitionResult(BaseModel):
    withdrawal: WithdrawalResponse
    ledger_entry_id: int | None = None
    designer_balance_after: int | None = None


class DesignerWithdrawals(BaseModel):
    designer_id: int
    balance: int
    pagination: Pagination
    withdrawals: list[WithdrawalResponse]


class WithdrawalStats(BaseModel):
    total_requested: int
    total_paid: int
    pending_count: int
    withdrawals_count: int


class WithdrawalOverview(BaseModel):
    stats: WithdrawalStats
    withdrawals: list[WithdrawalResponse]

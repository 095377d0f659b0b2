"""
Pydantic schemas for ledger operations.

These define the contract of the Ledger Store: what an entry must
look like before it is appended, and what reporting callers get
back. They are separate from the database models because the API
shape and the storage shape differ.
"""

import uuid
from datetime import datetime
from typing import Any, NamedTuple

from pydantic import (
    AliasChoices, BaseModel, ConfigDict, Field, model_validator,
)

from token_ledger.models.enums import LedgerDirection, LedgerReason, SubjectKind


# --- Per-reason metadata ---
# Each reason has its own payload shape. Unknown keys are rejected
# so reporting can rely on them.

class _Metadata(BaseModel):
    model_config = ConfigDict(extra="forbid")


class JobRequestMetadata(_Metadata):
    job_type_id: int
    unit_cost: int = Field(gt=0)
    quantity: int = Field(ge=1)
    company_ticket_number: int
    created_by_user_id: int | None = None
    cost_override: int | None = None


class DesignerPayoutMetadata(_Metadata):
    job_type_id: int
    quantity: int = Field(default=1, ge=1)
    payout_override: int | None = None


class SubscriptionMetadata(_Metadata):
    provider_event_id: str = Field(min_length=1)
    plan_id: int
    provider_session_id: str | None = None
    provider_invoice_id: str | None = None
    provider_customer_id: str | None = None
    provider_subscription_id: str | None = None


class WithdrawalMetadata(_Metadata):
    withdrawal_id: int
    actor: str = Field(min_length=1)


class AdjustmentMetadata(_Metadata):
    actor: str = Field(min_length=1)
    ticket_reference: str | None = None


class ReasonRule(NamedTuple):
    """What a reason code allows: owner kind, direction(s), payload."""
    subject_kind: SubjectKind
    directions: frozenset[LedgerDirection]
    metadata_schema: type[_Metadata]


_BOTH = frozenset({LedgerDirection.CREDIT, LedgerDirection.DEBIT})
_CREDIT = frozenset({LedgerDirection.CREDIT})
_DEBIT = frozenset({LedgerDirection.DEBIT})

REASON_RULES: dict[LedgerReason, ReasonRule] = {
    LedgerReason.JOB_REQUEST_CREATED: ReasonRule(
        subject_kind=SubjectKind.COMPANY, directions=_DEBIT,
        metadata_schema=JobRequestMetadata,
    ),
    LedgerReason.DESIGNER_JOB_PAYOUT: ReasonRule(
        subject_kind=SubjectKind.USER, directions=_CREDIT,
        metadata_schema=DesignerPayoutMetadata,
    ),
    LedgerReason.SUBSCRIPTION_INITIAL_CREDIT: ReasonRule(
        subject_kind=SubjectKind.COMPANY, directions=_CREDIT,
        metadata_schema=SubscriptionMetadata,
    ),
    LedgerReason.SUBSCRIPTION_RENEWAL: ReasonRule(
        subject_kind=SubjectKind.COMPANY, directions=_CREDIT,
        metadata_schema=SubscriptionMetadata,
    ),
    LedgerReason.WITHDRAW: ReasonRule(
        subject_kind=SubjectKind.USER, directions=_DEBIT,
        metadata_schema=WithdrawalMetadata,
    ),
    LedgerReason.WITHDRAWAL_PAID: ReasonRule(
        subject_kind=SubjectKind.USER, directions=_DEBIT,
        metadata_schema=WithdrawalMetadata,
    ),
    LedgerReason.ADMIN_ADJUSTMENT: ReasonRule(
        subject_kind=SubjectKind.COMPANY, directions=_BOTH,
        metadata_schema=AdjustmentMetadata,
    ),
}


# --- Request Schemas ---

class LedgerEntryCreate(BaseModel):
    """
    One entry to append.

    balance_before and balance_after come from the caller, who read
    the balance inside the current transaction. The Ledger Store
    recomputes the arithmetic instead of trusting them.
    """
    subject_kind: SubjectKind
    company_id: int | None = None
    user_id: int | None = None
    ticket_id: int | None = None
    withdrawal_id: int | None = None
    direction: LedgerDirection
    amount: int = Field(gt=0)
    reason: LedgerReason
    notes: str | None = Field(default=None, max_length=2000)
    metadata: dict[str, Any] = Field(default_factory=dict)
    balance_before: int
    balance_after: int

    @model_validator(mode="after")
    def subject_must_be_set(self) -> "LedgerEntryCreate":
        if self.subject_kind == SubjectKind.COMPANY and self.company_id is None:
            raise ValueError("company entries require company_id")
        if self.subject_kind == SubjectKind.USER and self.user_id is None:
            raise ValueError("user entries require user_id")
        return self


class LedgerQuery(BaseModel):
    """Filters for the reporting listing."""
    company_id: int | None = None
    user_id: int | None = None
    ticket_id: int | None = None
    direction: LedgerDirection | None = None
    reason: LedgerReason | None = None
    created_from: datetime | None = None
    created_to: datetime | None = None
    page: int = Field(default=1, ge=1)
    page_size: int | None = Field(default=None, ge=1)


# --- Response Schemas ---

class LedgerEntryResponse(BaseModel):
    """Single entry in API responses."""
    id: int
    external_id: uuid.UUID
    subject_kind: SubjectKind
    company_id: int | None
    user_id: int | None
    ticket_id: int | None
    withdrawal_id: int | None
    direction: LedgerDirection
    amount: int
    reason: LedgerReason
    notes: str | None
    metadata: dict[str, Any] = Field(
        default_factory=dict,
        validation_alias=AliasChoices("meta", "metadata"),
    )
    balance_before: int
    balance_after: int
    created_at: datetime

    model_config = {"from_attributes": True}


class LedgerSummary(BaseModel):
    total_credit: int
    total_debit: int
    net: int


class Pagination(BaseModel):
    page: int
    page_size: int
    total_count: int
    total_pages: int


class LedgerPage(BaseModel):
    """Response for the reporting listing."""
    pagination: Pagination
    summary: LedgerSummary
    entries: list[LedgerEntryResponse]


class ReasonTotal(BaseModel):
    reason: LedgerReason
    direction: LedgerDirection
    entry_count: int
    total_amount: int


class ChainReport(BaseModel):
    """
    Result of replaying a subject's entries.

    is_consistent is False when a snapshot does not follow from the
    previous one, or when the cached balance disagrees with the
    derived one.
    """
    subject_kind: SubjectKind
    subject_id: int
    entry_count: int
    derived_balance: int
    cached_balance: int | None = None
    first_break_entry_id: int | None = None
    break_field: str | None = None
    expected_value: int | None = None
    actual_value: int | None = None
    is_consistent: bool


class BalanceResponse(BaseModel):
    subject_kind: SubjectKind
    subject_id: int
    balance: int

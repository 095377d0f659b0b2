"""
Settlement service — the business operations that move tokens.

Each operation:
1. Locks and reads the affected balance inside the caller's transaction
2. Validates business rules (sufficient balance, idempotency)
3. Appends the ledger entry through LedgerService
4. Updates the company balance cache, when a company is the subject

If anything fails, the exception propagates and the caller rolls
back: no partial entry and no partial cache update survives.
The caller controls the commit.
"""

import logging
from datetime import datetime
from typing import NamedTuple

from sqlalchemy import select, func
from sqlalchemy.orm import Session

from token_ledger.exceptions import (
    InsufficientBalance,
    LedgerValidationError,
    SubjectNotFound,
)
from token_ledger.models import (
    AuditLog,
    Company,
    JobType,
    LedgerEntry,
    Plan,
    Ticket,
    UserAccount,
)
from token_ledger.models.enums import (
    BillingStatus,
    LedgerDirection,
    LedgerReason,
    SubjectKind,
    TicketStatus,
    UserRole,
)
from token_ledger.schemas.ledger import LedgerEntryCreate
from token_ledger.schemas.settlement import (
    BalanceAdjustmentRequest,
    BalanceAdjustmentResult,
    SubscriptionCreditRequest,
    SubscriptionCreditResult,
    TicketCompletionResult,
    TicketCreateRequest,
    TicketCreateResult,
    TicketResponse,
)
from token_ledger.services.ledger_service import LedgerService, expected_balance_after

logger = logging.getLogger(__name__)


class EffectiveTokenValues(NamedTuple):
    cost: int
    payout: int
    is_overridden: bool


def effective_token_values(
    job_type: JobType | None,
    quantity: int,
    cost_override: int | None = None,
    payout_override: int | None = None,
) -> EffectiveTokenValues:
    """
    What a ticket charges the company and pays its designer.

    Job type price times quantity, unless the ticket carries an
    override, which replaces the total. A ticket without a job type
    is free.
    """
    if job_type is None:
        return EffectiveTokenValues(0, 0, False)
    cost = (
        cost_override if cost_override is not None
        else job_type.token_cost * quantity
    )
    payout = (
        payout_override if payout_override is not None
        else job_type.designer_payout_tokens * quantity
    )
    return EffectiveTokenValues(
        cost,
        payout,
        cost_override is not None or payout_override is not None,
    )


class SettlementService:

    def __init__(self, db: Session):
        self.db = db
        self.ledger_service = LedgerService(db)
        self.balances = self.ledger_service.balances

    # --- Company side ---

    def _post_company_entry(
        self,
        company: Company,
        direction: LedgerDirection,
        amount: int,
        reason: LedgerReason,
        notes: str,
        metadata: dict,
        ticket_id: int | None = None,
        user_id: int | None = None,
    ) -> LedgerEntry:
        """
        Append a company entry and move the cache with it.

        The company row must already be locked by the caller.
        """
        balance_before = company.token_balance
        balance_after = expected_balance_after(balance_before, direction, amount)
        if balance_after < 0:
            logger.warning(
                "insufficient company balance: company=%s available=%s requested=%s",
                company.id, balance_before, amount,
            )
            raise InsufficientBalance(balance_before, amount, f"company:{company.id}")

        entry = self.ledger_service.append(LedgerEntryCreate(
            subject_kind=SubjectKind.COMPANY,
            company_id=company.id,
            user_id=user_id,
            ticket_id=ticket_id,
            direction=direction,
            amount=amount,
            reason=reason,
            notes=notes,
            metadata=metadata,
            balance_before=balance_before,
            balance_after=balance_after,
        ))
        company.token_balance = balance_after
        self.db.flush()
        return entry

    def create_ticket(self, request: TicketCreateRequest) -> TicketCreateResult:
        """
        Ticket-Create Debit.

        Creates the ticket and debits its effective cost from the company
        in the same transaction. A ticket without a job type, or with a
        cost override of 0, is free and writes no entry.
        """
        company = self.balances.get_company(request.company_id, lock=True)

        job_type = None
        if request.job_type_id is not None:
            job_type = self.db.get(JobType, request.job_type_id)
            if not job_type:
                raise SubjectNotFound("JobType", request.job_type_id)
            if not job_type.is_active:
                raise LedgerValidationError(
                    f"Job type {job_type.id} is not active",
                    {"job_type_id": job_type.id},
                )

        if request.designer_id is not None:
            designer = self.db.get(UserAccount, request.designer_id)
            if not designer:
                raise SubjectNotFound("User", request.designer_id)
            if designer.role != UserRole.DESIGNER:
                raise LedgerValidationError(
                    f"User {designer.id} is not a designer",
                    {"user_id": designer.id, "role": designer.role.value},
                )

        cost = effective_token_values(
            job_type,
            request.quantity,
            cost_override=request.token_cost_override,
            payout_override=request.designer_payout_override,
        ).cost
        if cost > company.token_balance:
            logger.warning(
                "ticket refused: company=%s available=%s cost=%s",
                company.id, company.token_balance, cost,
            )
            raise InsufficientBalance(
                company.token_balance, cost, f"company:{company.id}"
            )

        # The company row is locked, so the next number is stable.
        last_number = self.db.execute(
            select(func.max(Ticket.company_ticket_number))
            .where(Ticket.company_id == company.id)
        ).scalar()

        ticket = Ticket(
            title=request.title,
            company_id=company.id,
            job_type_id=job_type.id if job_type else None,
            designer_id=request.designer_id,
            created_by_id=request.created_by_id,
            quantity=request.quantity,
            company_ticket_number=(last_number or 0) + 1,
            token_cost_override=request.token_cost_override,
            designer_payout_override=request.designer_payout_override,
            status=TicketStatus.TODO,
        )
        self.db.add(ticket)
        self.db.flush()

        entry = None
        if cost > 0:
            entry = self._post_company_entry(
                company,
                LedgerDirection.DEBIT,
                cost,
                LedgerReason.JOB_REQUEST_CREATED,
                notes=f"New ticket created: {ticket.title}",
                metadata={
                    "job_type_id": job_type.id,
                    "unit_cost": job_type.token_cost,
                    "quantity": request.quantity,
                    "company_ticket_number": ticket.company_ticket_number,
                    "created_by_user_id": request.created_by_id,
                    "cost_override": request.token_cost_override,
                },
                ticket_id=ticket.id,
            )

        return TicketCreateResult(
            ticket=TicketResponse.model_validate(ticket),
            ledger_entry_id=entry.id if entry else None,
            tokens_debited=cost,
            company_balance_after=company.token_balance,
        )

    def credit_subscription(
        self, request: SubscriptionCreditRequest
    ) -> SubscriptionCreditResult:
        """
        Subscription Credit.

        Credits the plan's monthly allowance. The billing adapter has
        already de-duplicated the provider event; the event id is kept
        in the entry metadata for audit.
        """
        company = self.balances.get_company(request.company_id, lock=True)
        plan = self.db.get(Plan, request.plan_id)
        if not plan:
            raise SubjectNotFound("Plan", request.plan_id)
        if not plan.is_active:
            raise LedgerValidationError(
                f"Plan {plan.id} is not active", {"plan_id": plan.id}
            )

        company.plan_id = plan.id
        company.billing_status = BillingStatus.ACTIVE
        if request.provider_subscription_id:
            company.subscription_ref = request.provider_subscription_id

        reason = (
            LedgerReason.SUBSCRIPTION_INITIAL_CREDIT
            if request.is_first_activation
            else LedgerReason.SUBSCRIPTION_RENEWAL
        )

        entry = None
        if plan.monthly_tokens > 0:
            entry = self._post_company_entry(
                company,
                LedgerDirection.CREDIT,
                plan.monthly_tokens,
                reason,
                notes=(
                    "Initial subscription credit"
                    if request.is_first_activation
                    else "Monthly subscription renewal credit"
                ),
                metadata={
                    "provider_event_id": request.provider_event_id,
                    "plan_id": plan.id,
                    "provider_session_id": request.provider_session_id,
                    "provider_invoice_id": request.provider_invoice_id,
                    "provider_customer_id": request.provider_customer_id,
                    "provider_subscription_id": request.provider_subscription_id,
                },
            )
        else:
            logger.info(
                "plan %s has no monthly tokens, nothing credited to company %s",
                plan.id, company.id,
            )

        self.db.add(AuditLog(
            event_type=f"SUBSCRIPTION_{'ACTIVATED' if request.is_first_activation else 'RENEWED'}",
            actor="billing",
            details=(
                f"company={company.id} plan={plan.id} "
                f"event={request.provider_event_id} "
                f"credited={plan.monthly_tokens if entry else 0}"
            ),
        ))
        self.db.flush()

        return SubscriptionCreditResult(
            company_id=company.id,
            plan_id=plan.id,
            credited=entry is not None,
            tokens_credited=entry.amount if entry else 0,
            ledger_entry_id=entry.id if entry else None,
            company_balance_after=company.token_balance,
        )

    def adjust_company_balance(
        self, request: BalanceAdjustmentRequest
    ) -> BalanceAdjustmentResult:
        """
        Admin correction, written as a new entry.

        Entries are never edited; a wrong balance is fixed by a
        compensating ADMIN_ADJUSTMENT with an explanation.
        """
        company = self.balances.get_company(request.company_id, lock=True)
        entry = self._post_company_entry(
            company,
            request.direction,
            request.amount,
            LedgerReason.ADMIN_ADJUSTMENT,
            notes=request.notes,
            metadata={
                "actor": request.actor,
                "ticket_reference": request.ticket_reference,
            },
        )
        self.db.add(AuditLog(
            event_type="BALANCE_ADJUSTED",
            actor=request.actor,
            details=(
                f"company={company.id} {request.direction.value} "
                f"{request.amount}: {request.notes}"
            ),
        ))
        self.db.flush()
        return BalanceAdjustmentResult(
            company_id=company.id,
            ledger_entry_id=entry.id,
            company_balance_after=company.token_balance,
        )

    # --- Designer side ---

    def _find_payout(self, ticket_id: int) -> LedgerEntry | None:
        return self.db.execute(
            select(LedgerEntry).where(
                LedgerEntry.ticket_id == ticket_id,
                LedgerEntry.reason == LedgerReason.DESIGNER_JOB_PAYOUT,
            ).limit(1)
        ).scalar_one_or_none()

    def complete_ticket(self, ticket_id: int) -> TicketCompletionResult:
        """
        Ticket-Complete Settlement.

        Credits the assigned designer with the effective payout and
        marks the ticket DONE. The company was debited when the ticket
        was created and is never debited again here.

        Idempotent: a ticket that is already DONE, or that already has
        a payout entry, returns already_completed=True and writes
        nothing.
        """
        ticket = self.db.execute(
            select(Ticket).where(Ticket.id == ticket_id).with_for_update()
        ).scalar_one_or_none()
        if not ticket:
            raise SubjectNotFound("Ticket", ticket_id)

        existing = self._find_payout(ticket.id)
        if ticket.status == TicketStatus.DONE or existing:
            logger.info("ticket %s already completed, payout not re-applied", ticket.id)
            return TicketCompletionResult(
                ticket=TicketResponse.model_validate(ticket),
                designer_ledger_entry_id=existing.id if existing else None,
                designer_balance_after=existing.balance_after if existing else None,
                already_completed=True,
            )

        job_type = ticket.job_type
        payout = effective_token_values(
            job_type,
            ticket.quantity,
            cost_override=ticket.token_cost_override,
            payout_override=ticket.designer_payout_override,
        ).payout

        entry = None
        if ticket.designer_id is not None and payout > 0:
            balance_before = self.balances.designer_balance(
                ticket.designer_id, lock=True
            )
            entry = self.ledger_service.append(LedgerEntryCreate(
                subject_kind=SubjectKind.USER,
                user_id=ticket.designer_id,
                company_id=ticket.company_id,
                ticket_id=ticket.id,
                direction=LedgerDirection.CREDIT,
                amount=payout,
                reason=LedgerReason.DESIGNER_JOB_PAYOUT,
                notes=f"Designer payout for ticket {ticket.id}",
                metadata={
                    "job_type_id": job_type.id,
                    "quantity": ticket.quantity,
                    "payout_override": ticket.designer_payout_override,
                },
                balance_before=balance_before,
                balance_after=balance_before + payout,
            ))

        ticket.status = TicketStatus.DONE
        ticket.completed_at = datetime.utcnow()
        self.db.flush()

        return TicketCompletionResult(
            ticket=TicketResponse.model_validate(ticket),
            designer_ledger_entry_id=entry.id if entry else None,
            designer_balance_after=entry.balance_after if entry else None,
            already_completed=False,
        )

    def get_ticket(self, ticket_id: int) -> Ticket:
        ticket = self.db.get(Ticket, ticket_id)
        if not ticket:
            raise SubjectNotFound("Ticket", ticket_id)
        return ticket

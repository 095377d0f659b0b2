"""
Withdrawal service — a designer's payout request and its lifecycle.

    PENDING --approve--> APPROVED --mark_paid--> PAID
    PENDING --reject---> REJECTED

Tokens are debited exactly once, at approval (reason WITHDRAW).
That reserves the funds so the designer cannot request the same
tokens twice. mark_paid only records the external payment and writes
no ledger entry.

Every transition locks the withdrawal row, re-checks the status
inside the transaction and merges its context into the metadata.
The caller controls the commit.
"""

import logging
import math
from datetime import datetime

from sqlalchemy import select, func
from sqlalchemy.orm import Session

from token_ledger.exceptions import (
    InsufficientBalance,
    InvalidTransition,
    LedgerValidationError,
    MinimumWithdrawalNotMet,
    SubjectNotFound,
)
from token_ledger.models import AuditLog, Withdrawal
from token_ledger.models.enums import (
    LedgerDirection,
    LedgerReason,
    SubjectKind,
    UserRole,
    WithdrawalAction,
    WithdrawalStatus,
)
from token_ledger.schemas.ledger import LedgerEntryCreate, Pagination
from token_ledger.schemas.withdrawal import (
    DesignerWithdrawals,
    WithdrawalCreate,
    WithdrawalOverview,
    WithdrawalResponse,
    WithdrawalStats,
    WithdrawalTransitionResult,
)
from token_ledger.services.app_settings_service import AppSettingsService
from token_ledger.services.ledger_service import LedgerService

logger = logging.getLogger(__name__)

MAX_ADMIN_WITHDRAWALS = 200
MAX_DESIGNER_PAGE_SIZE = 100


class WithdrawalService:

    def __init__(self, db: Session):
        self.db = db
        self.ledger_service = LedgerService(db)
        self.balances = self.ledger_service.balances
        self.app_settings = AppSettingsService(db)

    def _get_locked(self, withdrawal_id: int) -> Withdrawal:
        withdrawal = self.db.execute(
            select(Withdrawal)
            .where(Withdrawal.id == withdrawal_id)
            .with_for_update()
        ).scalar_one_or_none()
        if not withdrawal:
            raise SubjectNotFound("Withdrawal", withdrawal_id)
        return withdrawal

    def _require_transition(
        self, withdrawal: Withdrawal, target: WithdrawalStatus
    ) -> None:
        if not withdrawal.can_transition_to(target):
            logger.warning(
                "withdrawal %s: refused %s -> %s",
                withdrawal.id, withdrawal.status.value, target.value,
            )
            raise InvalidTransition(withdrawal.status.value, target.value)

    def _audit(self, event_type: str, actor: str, withdrawal: Withdrawal, extra: str = "") -> None:
        self.db.add(AuditLog(
            event_type=event_type,
            actor=actor,
            details=(
                f"withdrawal={withdrawal.id} designer={withdrawal.designer_id} "
                f"amount={withdrawal.amount_tokens}{extra}"
            ),
        ))

    # --- Designer side ---

    def request_withdrawal(
        self, designer_id: int, request: WithdrawalCreate
    ) -> Withdrawal:
        """
        File a PENDING withdrawal.

        The balance check here is a courtesy so the designer gets an
        early answer; approval checks again against the balance at
        that time.
        """
        designer = self.balances.get_user(designer_id, lock=True)
        if designer.role != UserRole.DESIGNER:
            raise LedgerValidationError(
                f"User {designer.id} is not a designer",
                {"user_id": designer.id, "role": designer.role.value},
            )

        minimum = self.app_settings.min_withdrawal_tokens()
        if request.amount_tokens < minimum:
            raise MinimumWithdrawalNotMet(minimum, request.amount_tokens)

        balance = self.balances.designer_balance(designer.id)
        if request.amount_tokens > balance:
            logger.warning(
                "withdrawal request refused: designer=%s available=%s requested=%s",
                designer.id, balance, request.amount_tokens,
            )
            raise InsufficientBalance(
                balance, request.amount_tokens, f"user:{designer.id}"
            )

        withdrawal = Withdrawal(
            designer_id=designer.id,
            amount_tokens=request.amount_tokens,
            status=WithdrawalStatus.PENDING,
            notes=request.notes,
            meta={"requested_balance_at_time": balance},
        )
        self.db.add(withdrawal)
        self.db.flush()
        logger.info(
            "withdrawal %s requested: designer=%s amount=%s",
            withdrawal.id, designer.id, withdrawal.amount_tokens,
        )
        return withdrawal

    def list_for_designer(
        self, designer_id: int, page: int = 1, page_size: int = 20
    ) -> DesignerWithdrawals:
        page = max(page, 1)
        page_size = min(max(page_size, 1), MAX_DESIGNER_PAGE_SIZE)
        balance = self.balances.designer_balance(designer_id)

        total_count = self.db.execute(
            select(func.count(Withdrawal.id))
            .where(Withdrawal.designer_id == designer_id)
        ).scalar()
        withdrawals = self.db.execute(
            select(Withdrawal)
            .where(Withdrawal.designer_id == designer_id)
            .order_by(Withdrawal.created_at.desc(), Withdrawal.id.desc())
            .offset((page - 1) * page_size)
            .limit(page_size)
        ).scalars().all()

        return DesignerWithdrawals(
            designer_id=designer_id,
            balance=balance,
            pagination=Pagination(
                page=page,
                page_size=page_size,
                total_count=total_count,
                total_pages=max(1, math.ceil(total_count / page_size)),
            ),
            withdrawals=[WithdrawalResponse.model_validate(w) for w in withdrawals],
        )

    # --- Admin side ---

    def approve(self, withdrawal_id: int, actor: str) -> WithdrawalTransitionResult:
        """
        PENDING -> APPROVED, debiting the designer.

        The balance is re-read under lock: it may have changed since
        the request was filed.
        """
        withdrawal = self._get_locked(withdrawal_id)
        self._require_transition(withdrawal, WithdrawalStatus.APPROVED)

        balance = self.balances.designer_balance(withdrawal.designer_id, lock=True)
        if withdrawal.amount_tokens > balance:
            logger.warning(
                "withdrawal %s approval refused: available=%s requested=%s",
                withdrawal.id, balance, withdrawal.amount_tokens,
            )
            raise InsufficientBalance(
                balance, withdrawal.amount_tokens, f"user:{withdrawal.designer_id}"
            )

        entry = self.ledger_service.append(LedgerEntryCreate(
            subject_kind=SubjectKind.USER,
            user_id=withdrawal.designer_id,
            withdrawal_id=withdrawal.id,
            direction=LedgerDirection.DEBIT,
            amount=withdrawal.amount_tokens,
            reason=LedgerReason.WITHDRAW,
            notes=f"Withdrawal approved (id: {withdrawal.id})",
            metadata={"withdrawal_id": withdrawal.id, "actor": actor},
            balance_before=balance,
            balance_after=balance - withdrawal.amount_tokens,
        ))

        withdrawal.status = WithdrawalStatus.APPROVED
        withdrawal.approved_at = datetime.utcnow()
        withdrawal.merge_meta(ledger_entry_id=entry.id, approved_by=actor)
        self._audit("WITHDRAWAL_APPROVED", actor, withdrawal, f" entry={entry.id}")
        self.db.flush()

        return WithdrawalTransitionResult(
            withdrawal=WithdrawalResponse.model_validate(withdrawal),
            ledger_entry_id=entry.id,
            designer_balance_after=entry.balance_after,
        )

    def reject(
        self, withdrawal_id: int, actor: str, reason: str | None = None
    ) -> WithdrawalTransitionResult:
        """PENDING -> REJECTED. No tokens move."""
        withdrawal = self._get_locked(withdrawal_id)
        self._require_transition(withdrawal, WithdrawalStatus.REJECTED)

        withdrawal.status = WithdrawalStatus.REJECTED
        withdrawal.approved_at = None
        withdrawal.merge_meta(admin_reject_reason=reason, rejected_by=actor)
        self._audit("WITHDRAWAL_REJECTED", actor, withdrawal, f" reason={reason!r}")
        self.db.flush()
        logger.info("withdrawal %s rejected by %s", withdrawal.id, actor)

        return WithdrawalTransitionResult(
            withdrawal=WithdrawalResponse.model_validate(withdrawal),
        )

    def mark_paid(self, withdrawal_id: int, actor: str) -> WithdrawalTransitionResult:
        """APPROVED -> PAID. The debit already happened at approval."""
        withdrawal = self._get_locked(withdrawal_id)
        self._require_transition(withdrawal, WithdrawalStatus.PAID)

        withdrawal.status = WithdrawalStatus.PAID
        withdrawal.paid_at = datetime.utcnow()
        withdrawal.merge_meta(paid_by=actor)
        self._audit("WITHDRAWAL_PAID", actor, withdrawal)
        self.db.flush()
        logger.info("withdrawal %s marked paid by %s", withdrawal.id, actor)

        return WithdrawalTransitionResult(
            withdrawal=WithdrawalResponse.model_validate(withdrawal),
            ledger_entry_id=withdrawal.meta.get("ledger_entry_id"),
        )

    def apply_action(
        self,
        withdrawal_id: int,
        action: WithdrawalAction,
        actor: str,
        reason: str | None = None,
    ) -> WithdrawalTransitionResult:
        """Dispatch an admin action to its transition."""
        if action == WithdrawalAction.APPROVE:
            return self.approve(withdrawal_id, actor)
        if action == WithdrawalAction.REJECT:
            return self.reject(withdrawal_id, actor, reason)
        return self.mark_paid(withdrawal_id, actor)

    def get_withdrawal(self, withdrawal_id: int) -> Withdrawal:
        withdrawal = self.db.get(Withdrawal, withdrawal_id)
        if not withdrawal:
            raise SubjectNotFound("Withdrawal", withdrawal_id)
        return withdrawal

    def admin_overview(self, limit: int = MAX_ADMIN_WITHDRAWALS) -> WithdrawalOverview:
        """Most recent withdrawals with headline stats over them."""
        withdrawals = self.db.execute(
            select(Withdrawal)
            .order_by(Withdrawal.created_at.desc(), Withdrawal.id.desc())
            .limit(min(max(limit, 1), MAX_ADMIN_WITHDRAWALS))
        ).scalars().all()

        return WithdrawalOverview(
            stats=WithdrawalStats(
                total_requested=sum(w.amount_tokens for w in withdrawals),
                total_paid=sum(
                    w.amount_tokens for w in withdrawals
                    if w.status == WithdrawalStatus.PAID
                ),
                pending_count=sum(
                    1 for w in withdrawals
                    if w.status == WithdrawalStatus.PENDING
                ),
                withdrawals_count=len(withdrawals),
            ),
            withdrawals=[WithdrawalResponse.model_validate(w) for w in withdrawals],
        )

"""
Tests for the WithdrawalService.

Tests cover:
- Requesting: role, minimum amount and balance checks
- The lifecycle PENDING -> APPROVED -> PAID with a single debit
- Rejection and illegal transitions
- Designer listing and the admin overview
"""

import pytest
from sqlalchemy import select

from token_ledger.exceptions import (
    InsufficientBalance,
    InvalidTransition,
    LedgerValidationError,
    MinimumWithdrawalNotMet,
    SubjectNotFound,
)
from token_ledger.models import LedgerEntry, Withdrawal
from token_ledger.models.enums import (
    LedgerDirection,
    LedgerReason,
    UserRole,
    WithdrawalAction,
    WithdrawalStatus,
)
from token_ledger.schemas.directory import UserCreate
from token_ledger.schemas.withdrawal import WithdrawalCreate
from token_ledger.services.app_settings_service import (
    MIN_WITHDRAWAL_TOKENS,
    AppSettingsService,
)
from token_ledger.services.balance_service import BalanceResolver
from token_ledger.services.directory_service import DirectoryService
from token_ledger.services.withdrawal_service import WithdrawalService


def request(service, designer, amount, notes=None):
    withdrawal = service.request_withdrawal(
        designer.id, WithdrawalCreate(amount_tokens=amount, notes=notes)
    )
    service.db.commit()
    return withdrawal


def withdraw_entries(db_session, designer):
    return db_session.execute(
        select(LedgerEntry).where(
            LedgerEntry.user_id == designer.id,
            LedgerEntry.reason.in_([LedgerReason.WITHDRAW, LedgerReason.WITHDRAWAL_PAID]),
        )
    ).scalars().all()


# --- Request Tests ---

class TestRequestWithdrawal:

    def test_request_is_pending_and_moves_no_tokens(self, db_session, make_designer):
        designer = make_designer(balance=100)
        service = WithdrawalService(db_session)

        withdrawal = request(service, designer, 40, notes="March earnings")

        assert withdrawal.status == WithdrawalStatus.PENDING
        assert withdrawal.meta == {"requested_balance_at_time": 100}
        assert withdrawal.notes == "March earnings"
        assert BalanceResolver(db_session).designer_balance(designer.id) == 100

    def test_below_minimum_rejected(self, db_session, make_designer):
        designer = make_designer(balance=100)

        with pytest.raises(MinimumWithdrawalNotMet) as exc:
            request(WithdrawalService(db_session), designer, 19)
        assert exc.value.details["min_withdrawal_tokens"] == 20

    def test_minimum_follows_app_setting(self, db_session, make_designer):
        designer = make_designer(balance=100)
        AppSettingsService(db_session).set_setting(MIN_WITHDRAWAL_TOKENS, "50", "admin")
        db_session.commit()

        with pytest.raises(MinimumWithdrawalNotMet):
            request(WithdrawalService(db_session), designer, 40)

    def test_more_than_balance_rejected(self, db_session, make_designer):
        designer = make_designer(balance=30)

        with pytest.raises(InsufficientBalance) as exc:
            request(WithdrawalService(db_session), designer, 31)
        assert exc.value.details["available_balance"] == 30

    def test_non_designer_rejected(self, db_session):
        customer = DirectoryService(db_session).create_user(UserCreate(
            email="customer@example.com", role=UserRole.CUSTOMER,
        ))
        db_session.commit()

        with pytest.raises(LedgerValidationError, match="not a designer"):
            request(WithdrawalService(db_session), customer, 20)


# --- Lifecycle Tests ---

class TestLifecycle:

    def test_approve_then_pay_debits_once(self, db_session, make_designer):
        designer = make_designer(balance=100)
        service = WithdrawalService(db_session)
        withdrawal = request(service, designer, 40)

        approved = service.approve(withdrawal.id, "admin@example.com")
        db_session.commit()

        assert approved.withdrawal.status == WithdrawalStatus.APPROVED
        assert approved.withdrawal.approved_at is not None
        assert approved.designer_balance_after == 60
        assert BalanceResolver(db_session).designer_balance(designer.id) == 60

        paid = service.mark_paid(withdrawal.id, "admin@example.com")
        db_session.commit()

        assert paid.withdrawal.status == WithdrawalStatus.PAID
        assert paid.withdrawal.paid_at is not None
        assert paid.ledger_entry_id == approved.ledger_entry_id
        assert BalanceResolver(db_session).designer_balance(designer.id) == 60

        entries = withdraw_entries(db_session, designer)
        assert len(entries) == 1
        assert entries[0].reason == LedgerReason.WITHDRAW
        assert entries[0].direction == LedgerDirection.DEBIT
        assert entries[0].withdrawal_id == withdrawal.id
        assert entries[0].balance_before == 100
        assert entries[0].balance_after == 60

    def test_approval_merges_metadata(self, db_session, make_designer):
        designer = make_designer(balance=100)
        service = WithdrawalService(db_session)
        withdrawal = request(service, designer, 40)

        result = service.approve(withdrawal.id, "admin@example.com")
        db_session.commit()

        assert result.withdrawal.metadata == {
            "requested_balance_at_time": 100,
            "ledger_entry_id": result.ledger_entry_id,
            "approved_by": "admin@example.com",
        }

    def test_approval_rechecks_balance(self, db_session, make_designer):
        designer = make_designer(balance=50)
        service = WithdrawalService(db_session)
        first = request(service, designer, 30)
        second = request(service, designer, 30)
        service.approve(first.id, "admin@example.com")
        db_session.commit()

        with pytest.raises(InsufficientBalance):
            service.approve(second.id, "admin@example.com")
        db_session.rollback()

        assert db_session.get(Withdrawal, second.id).status == WithdrawalStatus.PENDING
        assert BalanceResolver(db_session).designer_balance(designer.id) == 20

    def test_approving_approved_withdrawal_fails(self, db_session, make_designer):
        designer = make_designer(balance=100)
        service = WithdrawalService(db_session)
        withdrawal = request(service, designer, 40)
        service.approve(withdrawal.id, "admin@example.com")
        db_session.commit()

        with pytest.raises(InvalidTransition) as exc:
            service.approve(withdrawal.id, "admin@example.com")
        db_session.rollback()

        assert exc.value.details == {
            "current_status": "APPROVED",
            "target_status": "APPROVED",
        }
        assert BalanceResolver(db_session).designer_balance(designer.id) == 60
        assert len(withdraw_entries(db_session, designer)) == 1

    def test_reject_keeps_tokens_and_records_reason(self, db_session, make_designer):
        designer = make_designer(balance=100)
        service = WithdrawalService(db_session)
        withdrawal = request(service, designer, 40)

        result = service.reject(withdrawal.id, "admin@example.com", "Missing bank details")
        db_session.commit()

        assert result.withdrawal.status == WithdrawalStatus.REJECTED
        assert result.withdrawal.approved_at is None
        assert result.withdrawal.metadata["admin_reject_reason"] == "Missing bank details"
        assert result.withdrawal.metadata["rejected_by"] == "admin@example.com"
        assert result.withdrawal.metadata["requested_balance_at_time"] == 100
        assert BalanceResolver(db_session).designer_balance(designer.id) == 100

    @pytest.mark.parametrize("action", [
        WithdrawalAction.APPROVE,
        WithdrawalAction.REJECT,
        WithdrawalAction.MARK_PAID,
    ])
    def test_terminal_states_refuse_everything(self, db_session, make_designer, action):
        designer = make_designer(balance=100)
        service = WithdrawalService(db_session)
        withdrawal = request(service, designer, 40)
        service.reject(withdrawal.id, "admin@example.com")
        db_session.commit()

        with pytest.raises(InvalidTransition):
            service.apply_action(withdrawal.id, action, "admin@example.com")
        db_session.rollback()

        assert db_session.get(Withdrawal, withdrawal.id).status == WithdrawalStatus.REJECTED

    def test_pending_cannot_be_marked_paid(self, db_session, make_designer):
        designer = make_designer(balance=100)
        service = WithdrawalService(db_session)
        withdrawal = request(service, designer, 40)

        with pytest.raises(InvalidTransition, match="PENDING to PAID"):
            service.mark_paid(withdrawal.id, "admin@example.com")

    def test_apply_action_dispatches(self, db_session, make_designer):
        designer = make_designer(balance=100)
        service = WithdrawalService(db_session)
        withdrawal = request(service, designer, 40)

        result = service.apply_action(
            withdrawal.id, WithdrawalAction.APPROVE, "admin@example.com"
        )
        db_session.commit()

        assert result.withdrawal.status == WithdrawalStatus.APPROVED
        assert result.ledger_entry_id is not None

    def test_unknown_withdrawal_rejected(self, db_session):
        with pytest.raises(SubjectNotFound):
            WithdrawalService(db_session).approve(404, "admin@example.com")


# --- Listing Tests ---

class TestListings:

    def test_designer_listing_is_paginated(self, db_session, make_designer):
        designer = make_designer(balance=100)
        service = WithdrawalService(db_session)
        for _ in range(3):
            request(service, designer, 20)

        listing = service.list_for_designer(designer.id, page=1, page_size=2)

        assert listing.balance == 100
        assert listing.pagination.total_count == 3
        assert listing.pagination.total_pages == 2
        assert len(listing.withdrawals) == 2

    def test_admin_overview_stats(self, db_session, make_designer):
        designer = make_designer(balance=100)
        service = WithdrawalService(db_session)
        paid = request(service, designer, 30)
        request(service, designer, 20)
        service.approve(paid.id, "admin@example.com")
        service.mark_paid(paid.id, "admin@example.com")
        db_session.commit()

        overview = service.admin_overview()

        assert overview.stats.withdrawals_count == 2
        assert overview.stats.total_requested == 50
        assert overview.stats.total_paid == 30
        assert overview.stats.pending_count == 1

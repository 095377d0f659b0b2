"""
Tests for the LedgerService.

Tests cover:
- Reason rules (owner kind, direction, metadata shape)
- Arithmetic and chain checks on append
- Immutability of stored entries
- Chain verification and drift detection
- The reporting listing and per-reason totals
"""

import pytest
from pydantic import ValidationError
from sqlalchemy import select, func

from token_ledger.exceptions import (
    InvariantViolation,
    LedgerError,
    LedgerValidationError,
    SubjectNotFound,
)
from token_ledger.models import LedgerEntry
from token_ledger.models.enums import LedgerDirection, LedgerReason, SubjectKind
from token_ledger.services.ledger_service import LedgerService
from token_ledger.schemas.ledger import LedgerEntryCreate, LedgerQuery
from token_ledger.schemas.settlement import TicketCreateRequest
from token_ledger.services.settlement_service import SettlementService


# --- Helpers ---

def adjustment(company_id, direction, amount, before, after):
    """A company ADMIN_ADJUSTMENT entry with explicit snapshots."""
    return LedgerEntryCreate(
        subject_kind=SubjectKind.COMPANY,
        company_id=company_id,
        direction=direction,
        amount=amount,
        reason=LedgerReason.ADMIN_ADJUSTMENT,
        notes="test adjustment",
        metadata={"actor": "tests"},
        balance_before=before,
        balance_after=after,
    )


def count_entries(db_session):
    return db_session.execute(select(func.count(LedgerEntry.id))).scalar()


# --- Reason Rule Tests ---

class TestReasonRules:

    def test_valid_entry_is_appended(self, db_session, make_company):
        company = make_company()
        service = LedgerService(db_session)

        entry = service.append(
            adjustment(company.id, LedgerDirection.CREDIT, 10, 0, 10)
        )
        db_session.commit()

        assert entry.id is not None
        assert entry.external_id is not None
        assert entry.reason_version == 1
        assert entry.meta == {"actor": "tests"}
        assert entry.signed_amount == 10

    def test_reason_on_wrong_subject_kind_rejected(self, db_session, make_company):
        company = make_company()
        service = LedgerService(db_session)

        with pytest.raises(LedgerValidationError, match="applies to USER"):
            service.append(LedgerEntryCreate(
                subject_kind=SubjectKind.COMPANY,
                company_id=company.id,
                direction=LedgerDirection.DEBIT,
                amount=5,
                reason=LedgerReason.WITHDRAW,
                metadata={"withdrawal_id": 1, "actor": "tests"},
                balance_before=0,
                balance_after=-5,
            ))

    def test_disallowed_direction_rejected(self, db_session, make_company):
        company = make_company()
        service = LedgerService(db_session)

        with pytest.raises(LedgerValidationError, match="does not allow CREDIT"):
            service.append(LedgerEntryCreate(
                subject_kind=SubjectKind.COMPANY,
                company_id=company.id,
                direction=LedgerDirection.CREDIT,
                amount=5,
                reason=LedgerReason.JOB_REQUEST_CREATED,
                metadata={
                    "job_type_id": 1,
                    "unit_cost": 5,
                    "quantity": 1,
                    "company_ticket_number": 1,
                },
                balance_before=0,
                balance_after=5,
            ))

    def test_unknown_metadata_key_rejected(self, db_session, make_designer):
        designer = make_designer()
        service = LedgerService(db_session)

        with pytest.raises(LedgerValidationError, match="Invalid metadata") as exc:
            service.append(LedgerEntryCreate(
                subject_kind=SubjectKind.USER,
                user_id=designer.id,
                direction=LedgerDirection.CREDIT,
                amount=4,
                reason=LedgerReason.DESIGNER_JOB_PAYOUT,
                metadata={"job_type_id": 1, "bonus": True},
                balance_before=0,
                balance_after=4,
            ))
        assert exc.value.details["errors"]

    def test_missing_subject_rejected(self, db_session):
        service = LedgerService(db_session)

        with pytest.raises(SubjectNotFound):
            service.append(
                adjustment(999, LedgerDirection.CREDIT, 10, 0, 10)
            )

    def test_company_entry_requires_company_id(self):
        with pytest.raises(ValidationError, match="require company_id"):
            LedgerEntryCreate(
                subject_kind=SubjectKind.COMPANY,
                direction=LedgerDirection.CREDIT,
                amount=1,
                reason=LedgerReason.ADMIN_ADJUSTMENT,
                metadata={"actor": "tests"},
                balance_before=0,
                balance_after=1,
            )

    def test_zero_amount_rejected(self):
        with pytest.raises(ValidationError):
            adjustment(1, LedgerDirection.CREDIT, 0, 0, 0)


# --- Arithmetic Tests ---

class TestArithmetic:

    def test_wrong_balance_after_is_invariant_violation(self, db_session, make_company):
        company = make_company()
        service = LedgerService(db_session)

        with pytest.raises(InvariantViolation) as exc:
            service.append(
                adjustment(company.id, LedgerDirection.CREDIT, 10, 0, 11)
            )
        assert exc.value.context["expected_balance_after"] == 10
        assert count_entries(db_session) == 0

    def test_negative_balance_is_invariant_violation(self, db_session, make_company):
        company = make_company()
        service = LedgerService(db_session)

        with pytest.raises(InvariantViolation, match="negative"):
            service.append(
                adjustment(company.id, LedgerDirection.DEBIT, 10, 0, -10)
            )
        assert count_entries(db_session) == 0

    def test_first_entry_must_start_from_zero(self, db_session, make_company):
        company = make_company()
        service = LedgerService(db_session)

        with pytest.raises(InvariantViolation, match="previous entry"):
            service.append(
                adjustment(company.id, LedgerDirection.CREDIT, 10, 5, 15)
            )

    def test_entry_must_chain_from_previous(self, db_session, make_company):
        company = make_company()
        service = LedgerService(db_session)
        service.append(adjustment(company.id, LedgerDirection.CREDIT, 10, 0, 10))
        db_session.commit()

        with pytest.raises(InvariantViolation) as exc:
            service.append(
                adjustment(company.id, LedgerDirection.CREDIT, 5, 12, 17)
            )
        assert exc.value.context["previous_balance_after"] == 10

    def test_invariant_violation_is_not_a_business_error(self):
        assert not issubclass(InvariantViolation, LedgerError)


# --- Immutability Tests ---

class TestImmutability:

    def test_entry_cannot_be_updated(self, db_session, make_company):
        make_company(balance=20)
        entry = db_session.execute(select(LedgerEntry)).scalar_one()

        entry.amount = 999
        with pytest.raises(RuntimeError, match="immutable"):
            db_session.flush()
        db_session.rollback()

        assert db_session.get(LedgerEntry, entry.id).amount == 20

    def test_entry_cannot_be_deleted(self, db_session, make_company):
        make_company(balance=20)
        entry = db_session.execute(select(LedgerEntry)).scalar_one()

        db_session.delete(entry)
        with pytest.raises(RuntimeError, match="cannot be deleted"):
            db_session.flush()
        db_session.rollback()

        assert count_entries(db_session) == 1


# --- Chain Verification Tests ---

class TestVerifyChain:

    def test_settled_company_is_consistent(self, db_session, make_company, make_job_type):
        company = make_company(balance=50)
        job_type = make_job_type(token_cost=15)
        settlement = SettlementService(db_session)
        settlement.create_ticket(TicketCreateRequest(
            company_id=company.id, title="Logo", job_type_id=job_type.id,
        ))
        db_session.commit()

        report = LedgerService(db_session).verify_chain(SubjectKind.COMPANY, company.id)

        assert report.is_consistent is True
        assert report.entry_count == 2
        assert report.derived_balance == 35
        assert report.cached_balance == 35
        assert report.first_break_entry_id is None

    def test_cache_drift_is_reported(self, db_session, make_company):
        company = make_company()
        # Appending directly leaves the cached balance behind.
        LedgerService(db_session).append(
            adjustment(company.id, LedgerDirection.CREDIT, 10, 0, 10)
        )
        db_session.commit()

        report = LedgerService(db_session).verify_chain(SubjectKind.COMPANY, company.id)

        assert report.is_consistent is False
        assert report.derived_balance == 10
        assert report.cached_balance == 0
        assert report.first_break_entry_id is None

    def test_designer_chain_has_no_cache(self, db_session, make_designer):
        designer = make_designer(balance=30)

        report = LedgerService(db_session).verify_chain(SubjectKind.USER, designer.id)

        assert report.is_consistent is True
        assert report.cached_balance is None
        assert report.derived_balance == 30

    def test_unknown_subject_raises(self, db_session):
        with pytest.raises(SubjectNotFound):
            LedgerService(db_session).verify_chain(SubjectKind.USER, 404)


# --- Reporting Tests ---

class TestQueryEntries:

    def _seed(self, db_session, make_company, make_job_type):
        company = make_company(balance=100)
        job_type = make_job_type(token_cost=10)
        settlement = SettlementService(db_session)
        for n in range(3):
            settlement.create_ticket(TicketCreateRequest(
                company_id=company.id, title=f"Ticket {n}", job_type_id=job_type.id,
            ))
        db_session.commit()
        return company

    def test_summary_covers_whole_filtered_set(self, db_session, make_company, make_job_type):
        company = self._seed(db_session, make_company, make_job_type)

        page = LedgerService(db_session).query_entries(
            LedgerQuery(company_id=company.id, page_size=2)
        )

        assert page.pagination.total_count == 4
        assert page.pagination.total_pages == 2
        assert len(page.entries) == 2
        assert page.summary.total_credit == 100
        assert page.summary.total_debit == 30
        assert page.summary.net == 70

    def test_newest_entries_first(self, db_session, make_company, make_job_type):
        company = self._seed(db_session, make_company, make_job_type)

        page = LedgerService(db_session).query_entries(LedgerQuery(company_id=company.id))

        ids = [e.id for e in page.entries]
        assert ids == sorted(ids, reverse=True)

    def test_filter_by_reason(self, db_session, make_company, make_job_type):
        company = self._seed(db_session, make_company, make_job_type)

        page = LedgerService(db_session).query_entries(LedgerQuery(
            company_id=company.id, reason=LedgerReason.JOB_REQUEST_CREATED,
        ))

        assert page.pagination.total_count == 3
        assert all(e.direction == LedgerDirection.DEBIT for e in page.entries)
        assert page.entries[0].metadata["unit_cost"] == 10

    def test_page_size_is_capped(self, db_session, make_company, make_job_type):
        self._seed(db_session, make_company, make_job_type)

        page = LedgerService(db_session).query_entries(LedgerQuery(page_size=10_000))

        assert page.pagination.page_size == 200

    def test_totals_by_reason(self, db_session, make_company, make_job_type):
        company = self._seed(db_session, make_company, make_job_type)

        totals = LedgerService(db_session).totals_by_reason(
            LedgerQuery(company_id=company.id)
        )

        by_reason = {t.reason: t for t in totals}
        assert by_reason[LedgerReason.JOB_REQUEST_CREATED].entry_count == 3
        assert by_reason[LedgerReason.JOB_REQUEST_CREATED].total_amount == 30
        assert by_reason[LedgerReason.ADMIN_ADJUSTMENT].total_amount == 100

"""
Ledger service — the append-only store of token movements.

This service enforces the fundamental rules:
1. Amounts are positive; the direction carries the sign
2. Every reason code has a fixed owner kind, direction and payload
3. balance_after follows from balance_before, and balance_before
   follows from the subject's previous entry
4. Entries are immutable (append-only)

No other service writes to the ledger directly. Settlement and
withdrawal operations build a LedgerEntryCreate and hand it here.
"""

import logging
import math

from pydantic import ValidationError
from sqlalchemy import select, func, case
from sqlalchemy.orm import Session

from token_ledger.config import get_settings
from token_ledger.exceptions import (
    InvariantViolation,
    LedgerValidationError,
    SubjectNotFound,
)
from token_ledger.models import Company, LedgerEntry, UserAccount
from token_ledger.models.enums import (
    LEDGER_REASON_VERSION,
    LedgerDirection,
    SubjectKind,
)
from token_ledger.schemas.ledger import (
    REASON_RULES,
    ChainReport,
    LedgerEntryCreate,
    LedgerEntryResponse,
    LedgerPage,
    LedgerQuery,
    LedgerSummary,
    Pagination,
    ReasonTotal,
)
from token_ledger.services.balance_service import BalanceResolver

logger = logging.getLogger(__name__)


def expected_balance_after(
    balance_before: int, direction: LedgerDirection, amount: int
) -> int:
    if direction == LedgerDirection.CREDIT:
        return balance_before + amount
    return balance_before - amount


class LedgerService:
    """
    All ledger writes pass through append().

    The service takes a database session as a constructor argument,
    so the caller controls the transaction boundary.
    """

    def __init__(self, db: Session):
        self.db = db
        self.balances = BalanceResolver(db)

    # --- Writes ---

    def append(self, request: LedgerEntryCreate) -> LedgerEntry:
        """
        Append one immutable entry.

        Validation problems raise LedgerValidationError or
        SubjectNotFound. Arithmetic problems raise InvariantViolation:
        they mean a caller computed a balance wrongly, which is a bug.
        Nothing is written in either case.
        """
        rule = REASON_RULES[request.reason]

        if request.subject_kind != rule.subject_kind:
            raise LedgerValidationError(
                f"Reason {request.reason.value} applies to "
                f"{rule.subject_kind.value} balances, "
                f"not {request.subject_kind.value}",
                {"reason": request.reason.value},
            )
        if request.direction not in rule.directions:
            raise LedgerValidationError(
                f"Reason {request.reason.value} does not allow "
                f"{request.direction.value} entries",
                {"reason": request.reason.value},
            )

        try:
            metadata = rule.metadata_schema.model_validate(request.metadata)
        except ValidationError as e:
            raise LedgerValidationError(
                f"Invalid metadata for reason {request.reason.value}",
                {"errors": e.errors(include_url=False, include_context=False)},
            ) from e

        subject_id = self._resolve_subject(request)
        self._check_arithmetic(request, subject_id)

        entry = LedgerEntry(
            subject_kind=request.subject_kind,
            company_id=request.company_id,
            user_id=request.user_id,
            ticket_id=request.ticket_id,
            withdrawal_id=request.withdrawal_id,
            direction=request.direction,
            amount=request.amount,
            reason=request.reason,
            reason_version=LEDGER_REASON_VERSION,
            notes=request.notes,
            meta=metadata.model_dump(exclude_none=True),
            balance_before=request.balance_before,
            balance_after=request.balance_after,
        )
        self.db.add(entry)
        self.db.flush()

        logger.info(
            "ledger entry %s: %s %s %s %s tokens (%s), balance %s -> %s",
            entry.id,
            request.subject_kind.value,
            subject_id,
            request.direction.value,
            request.amount,
            request.reason.value,
            request.balance_before,
            request.balance_after,
        )
        return entry

    def _resolve_subject(self, request: LedgerEntryCreate) -> int:
        if request.subject_kind == SubjectKind.COMPANY:
            if not self.db.get(Company, request.company_id):
                raise SubjectNotFound("Company", request.company_id)
            return request.company_id
        if not self.db.get(UserAccount, request.user_id):
            raise SubjectNotFound("User", request.user_id)
        return request.user_id

    def _check_arithmetic(self, request: LedgerEntryCreate, subject_id: int) -> None:
        context = {
            "subject_kind": request.subject_kind.value,
            "subject_id": subject_id,
            "direction": request.direction.value,
            "amount": request.amount,
            "reason": request.reason.value,
            "balance_before": request.balance_before,
            "balance_after": request.balance_after,
        }

        expected = expected_balance_after(
            request.balance_before, request.direction, request.amount
        )
        if expected != request.balance_after:
            self._violation("balance_after does not follow from balance_before",
                            {**context, "expected_balance_after": expected})

        if request.balance_after < 0:
            self._violation("entry would make the balance negative", context)

        previous = self._last_entry(request.subject_kind, subject_id)
        chained_from = previous.balance_after if previous else 0
        if request.balance_before != chained_from:
            self._violation(
                "balance_before does not match the previous entry",
                {
                    **context,
                    "previous_entry_id": previous.id if previous else None,
                    "previous_balance_after": chained_from,
                },
            )

    @staticmethod
    def _violation(message: str, context: dict) -> None:
        logger.error("ledger invariant violated: %s %s", message, context)
        raise InvariantViolation(message, context)

    def _last_entry(self, subject_kind: SubjectKind, subject_id: int) -> LedgerEntry | None:
        return self.db.execute(
            select(LedgerEntry)
            .where(*self._subject_filter(subject_kind, subject_id))
            .order_by(LedgerEntry.id.desc())
            .limit(1)
        ).scalar_one_or_none()

    @staticmethod
    def _subject_filter(subject_kind: SubjectKind, subject_id: int) -> list:
        owner_column = (
            LedgerEntry.company_id
            if subject_kind == SubjectKind.COMPANY
            else LedgerEntry.user_id
        )
        return [
            LedgerEntry.subject_kind == subject_kind,
            owner_column == subject_id,
        ]

    # --- Reads ---

    def entries_for_subject(
        self, subject_kind: SubjectKind, subject_id: int
    ) -> list[LedgerEntry]:
        """Return a subject's own entries in ledger order (oldest first)."""
        entries = self.db.execute(
            select(LedgerEntry)
            .where(*self._subject_filter(subject_kind, subject_id))
            .order_by(LedgerEntry.id)
        ).scalars().all()
        return list(entries)

    def entries_for_company(self, company_id: int) -> list[LedgerEntry]:
        return self.entries_for_subject(SubjectKind.COMPANY, company_id)

    def entries_for_user(self, user_id: int) -> list[LedgerEntry]:
        return self.entries_for_subject(SubjectKind.USER, user_id)

    def entries_for_ticket(self, ticket_id: int) -> list[LedgerEntry]:
        entries = self.db.execute(
            select(LedgerEntry)
            .where(LedgerEntry.ticket_id == ticket_id)
            .order_by(LedgerEntry.id)
        ).scalars().all()
        return list(entries)

    def verify_chain(self, subject_kind: SubjectKind, subject_id: int) -> ChainReport:
        """
        Replay a subject's entries and report the first break.

        Read only. Drift is reported, never repaired here.
        """
        if subject_kind == SubjectKind.COMPANY:
            cached = self.balances.company_balance(subject_id)
        else:
            self.balances.get_user(subject_id)
            cached = None

        running = 0
        report = ChainReport(
            subject_kind=subject_kind,
            subject_id=subject_id,
            entry_count=0,
            derived_balance=0,
            cached_balance=cached,
            is_consistent=True,
        )
        for entry in self.entries_for_subject(subject_kind, subject_id):
            report.entry_count += 1
            if report.first_break_entry_id is None:
                if entry.balance_before != running:
                    self._mark_break(report, entry, "balance_before", running, entry.balance_before)
                elif entry.balance_after != running + entry.signed_amount:
                    self._mark_break(
                        report, entry, "balance_after",
                        running + entry.signed_amount, entry.balance_after,
                    )
            running += entry.signed_amount

        report.derived_balance = running
        report.is_consistent = (
            report.first_break_entry_id is None
            and (cached is None or cached == running)
        )
        if not report.is_consistent:
            logger.error("ledger chain inconsistent: %s", report.model_dump())
        return report

    @staticmethod
    def _mark_break(report, entry, field, expected, actual) -> None:
        report.first_break_entry_id = entry.id
        report.break_field = field
        report.expected_value = expected
        report.actual_value = actual

    def query_entries(self, query: LedgerQuery) -> LedgerPage:
        """
        Reporting listing: filtered, paginated, newest first, with
        credit/debit totals over the whole filtered set.
        """
        settings = get_settings()
        page_size = query.page_size or settings.DEFAULT_PAGE_SIZE
        page_size = min(max(page_size, 1), settings.MAX_PAGE_SIZE)
        filters = self._query_filters(query)

        total_count = self.db.execute(
            select(func.count(LedgerEntry.id)).where(*filters)
        ).scalar()

        total_credit, total_debit = self.db.execute(
            select(
                func.coalesce(func.sum(case(
                    (LedgerEntry.direction == LedgerDirection.CREDIT, LedgerEntry.amount),
                    else_=0,
                )), 0),
                func.coalesce(func.sum(case(
                    (LedgerEntry.direction == LedgerDirection.DEBIT, LedgerEntry.amount),
                    else_=0,
                )), 0),
            ).where(*filters)
        ).one()

        entries = self.db.execute(
            select(LedgerEntry)
            .where(*filters)
            .order_by(LedgerEntry.created_at.desc(), LedgerEntry.id.desc())
            .offset((query.page - 1) * page_size)
            .limit(page_size)
        ).scalars().all()

        return LedgerPage(
            pagination=Pagination(
                page=query.page,
                page_size=page_size,
                total_count=total_count,
                total_pages=max(1, math.ceil(total_count / page_size)),
            ),
            summary=LedgerSummary(
                total_credit=int(total_credit),
                total_debit=int(total_debit),
                net=int(total_credit) - int(total_debit),
            ),
            entries=[LedgerEntryResponse.model_validate(e) for e in entries],
        )

    def totals_by_reason(self, query: LedgerQuery) -> list[ReasonTotal]:
        """Per reason and direction sums, for analytics."""
        rows = self.db.execute(
            select(
                LedgerEntry.reason,
                LedgerEntry.direction,
                func.count(LedgerEntry.id),
                func.coalesce(func.sum(LedgerEntry.amount), 0),
            )
            .where(*self._query_filters(query))
            .group_by(LedgerEntry.reason, LedgerEntry.direction)
            .order_by(LedgerEntry.reason, LedgerEntry.direction)
        ).all()
        return [
            ReasonTotal(
                reason=reason,
                direction=direction,
                entry_count=count,
                total_amount=int(total),
            )
            for reason, direction, count, total in rows
        ]

    @staticmethod
    def _query_filters(query: LedgerQuery) -> list:
        filters = []
        if query.company_id is not None:
            filters.append(LedgerEntry.company_id == query.company_id)
        if query.user_id is not None:
            filters.append(LedgerEntry.user_id == query.user_id)
        if query.ticket_id is not None:
            filters.append(LedgerEntry.ticket_id == query.ticket_id)
        if query.direction is not None:
            filters.append(LedgerEntry.direction == query.direction)
        if query.reason is not None:
            filters.append(LedgerEntry.reason == query.reason)
        if query.created_from is not None:
            filters.append(LedgerEntry.created_at >= query.created_from)
        if query.created_to is not None:
            filters.append(LedgerEntry.created_at <= query.created_to)
        return filters

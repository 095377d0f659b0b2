"""
Token ledger entry model.

Each entry is one signed token movement for exactly one balance
owner (a company or a designer). Entries are immutable: once
posted, they are never modified or deleted. balance_before and
balance_after snapshot the owner's balance around the entry, so a
subject's entries form a chain that can be replayed.
"""

import uuid
from datetime import datetime

from sqlalchemy import (
    Integer, DateTime, ForeignKey, Text, JSON, Index,
    CheckConstraint, Enum as SAEnum, Uuid, event, text,
)
from sqlalchemy.orm import Mapped, mapped_column

from token_ledger.models.base import Base
from token_ledger.models.enums import LedgerDirection, LedgerReason, SubjectKind


class LedgerEntry(Base):
    """
    An immutable token movement.

    The balance-owner is named by subject_kind. company_id and
    user_id may both be stamped for cross-reference (a designer
    payout carries the paying company), but only the one matching
    subject_kind owns the balance change.
    """

    __tablename__ = "token_ledger"
    __table_args__ = (
        CheckConstraint("amount > 0", name="ck_token_ledger_amount_positive"),
        CheckConstraint(
            "company_id IS NOT NULL OR user_id IS NOT NULL",
            name="ck_token_ledger_has_subject",
        ),
        # A ticket pays its designer at most once.
        Index(
            "uq_token_ledger_ticket_payout",
            "ticket_id",
            unique=True,
            postgresql_where=text("reason = 'DESIGNER_JOB_PAYOUT'"),
            sqlite_where=text("reason = 'DESIGNER_JOB_PAYOUT'"),
        ),
        Index("ix_token_ledger_company_created", "company_id", "created_at"),
        Index("ix_token_ledger_user_created", "user_id", "created_at"),
    )

    id: Mapped[int] = mapped_column(primary_key=True)
    external_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, unique=True, nullable=False, default=uuid.uuid4
    )
    subject_kind: Mapped[SubjectKind] = mapped_column(
        SAEnum(SubjectKind, name="subject_kind_enum"),
        nullable=False,
    )
    company_id: Mapped[int | None] = mapped_column(
        ForeignKey("companies.id"), nullable=True
    )
    user_id: Mapped[int | None] = mapped_column(
        ForeignKey("user_accounts.id"), nullable=True
    )
    ticket_id: Mapped[int | None] = mapped_column(
        ForeignKey("tickets.id"), nullable=True, index=True
    )
    # A withdrawal is debited at most once.
    withdrawal_id: Mapped[int | None] = mapped_column(
        ForeignKey("withdrawals.id"), nullable=True, unique=True
    )
    direction: Mapped[LedgerDirection] = mapped_column(
        SAEnum(LedgerDirection, name="ledger_direction_enum"),
        nullable=False,
    )
    amount: Mapped[int] = mapped_column(Integer, nullable=False)
    reason: Mapped[LedgerReason] = mapped_column(
        SAEnum(LedgerReason, name="ledger_reason_enum"),
        nullable=False,
        index=True,
    )
    reason_version: Mapped[int] = mapped_column(
        Integer, nullable=False, default=1
    )
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    # "metadata" is reserved on declarative classes
    meta: Mapped[dict] = mapped_column(
        "metadata", JSON, nullable=False, default=dict
    )
    balance_before: Mapped[int] = mapped_column(Integer, nullable=False)
    balance_after: Mapped[int] = mapped_column(Integer, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime, nullable=False, default=datetime.utcnow, index=True
    )

    @property
    def signed_amount(self) -> int:
        if self.direction == LedgerDirection.CREDIT:
            return self.amount
        return -self.amount

    def __repr__(self) -> str:
        owner = self.company_id if self.subject_kind == SubjectKind.COMPANY else self.user_id
        return (
            f"<LedgerEntry {self.subject_kind.value}:{owner} "
            f"{self.direction.value} {self.amount} {self.reason.value}>"
        )


@event.listens_for(LedgerEntry, "before_update")
def _reject_update(mapper, connection, target):
    raise RuntimeError(f"Ledger entries are immutable (entry {target.id})")


@event.listens_for(LedgerEntry, "before_delete")
def _reject_delete(mapper, connection, target):
    raise RuntimeError(f"Ledger entries cannot be deleted (entry {target.id})")

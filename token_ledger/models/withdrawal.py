"""
Withdrawal model.

A designer's request to turn earned tokens into an external payout.
The status has a state machine; invalid transitions are rejected
by the withdrawal service using VALID_TRANSITIONS below.

meta accumulates context across transitions (balance at request
time, ledger entry id, rejection reason, actors). It is merged on
every transition, never replaced wholesale.
"""

from datetime import datetime

from sqlalchemy import (
    Integer, DateTime, ForeignKey, Text, JSON, CheckConstraint,
    Enum as SAEnum,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from token_ledger.models.base import Base
from token_ledger.models.enums import WithdrawalStatus


# Valid state transitions: the source of truth for the state machine
VALID_TRANSITIONS: dict[WithdrawalStatus, set[WithdrawalStatus]] = {
    WithdrawalStatus.PENDING: {
        WithdrawalStatus.APPROVED,
        WithdrawalStatus.REJECTED,
    },
    WithdrawalStatus.APPROVED: {WithdrawalStatus.PAID},
    WithdrawalStatus.REJECTED: set(),  # Terminal
    WithdrawalStatus.PAID: set(),  # Terminal
}


class Withdrawal(Base):
    __tablename__ = "withdrawals"
    __table_args__ = (
        CheckConstraint("amount_tokens > 0", name="ck_withdrawals_amount"),
    )

    id: Mapped[int] = mapped_column(primary_key=True)
    designer_id: Mapped[int] = mapped_column(
        ForeignKey("user_accounts.id"), nullable=False, index=True
    )
    amount_tokens: Mapped[int] = mapped_column(Integer, nullable=False)
    status: Mapped[WithdrawalStatus] = mapped_column(
        SAEnum(
            WithdrawalStatus,
            name="withdrawal_status_enum",
            create_constraint=True,
        ),
        nullable=False,
        default=WithdrawalStatus.PENDING,
        index=True,
    )
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    meta: Mapped[dict] = mapped_column(
        "metadata", JSON, nullable=False, default=dict
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime, nullable=False, default=datetime.utcnow
    )
    approved_at: Mapped[datetime | None] = mapped_column(
        DateTime, nullable=True, default=None
    )
    paid_at: Mapped[datetime | None] = mapped_column(
        DateTime, nullable=True, default=None
    )

    designer: Mapped["UserAccount"] = relationship()

    def can_transition_to(self, new_status: WithdrawalStatus) -> bool:
        """Check if a state transition is valid."""
        return new_status in VALID_TRANSITIONS.get(self.status, set())

    def merge_meta(self, **values) -> None:
        # Assign a new dict so the JSON column is marked dirty.
        self.meta = {**(self.meta or {}), **values}

    def __repr__(self) -> str:
        return (
            f"<Withdrawal {self.id} {self.amount_tokens} tokens "
            f"({self.status.value})>"
        )

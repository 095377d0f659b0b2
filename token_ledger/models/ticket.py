"""
Ticket model.

Only the fields the token engine needs: who pays, who earns,
what it costs, and whether it is done.
"""

from datetime import datetime

from sqlalchemy import (
    String, Integer, DateTime, ForeignKey, UniqueConstraint,
    CheckConstraint, Enum as SAEnum,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from token_ledger.models.base import Base
from token_ledger.models.enums import TicketStatus


class Ticket(Base):
    __tablename__ = "tickets"
    __table_args__ = (
        UniqueConstraint(
            "company_id", "company_ticket_number",
            name="uq_tickets_company_number",
        ),
        CheckConstraint("quantity >= 1", name="ck_tickets_quantity"),
        CheckConstraint(
            "token_cost_override IS NULL OR token_cost_override >= 0",
            name="ck_tickets_cost_override",
        ),
        CheckConstraint(
            "designer_payout_override IS NULL OR designer_payout_override >= 0",
            name="ck_tickets_payout_override",
        ),
    )

    id: Mapped[int] = mapped_column(primary_key=True)
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    company_id: Mapped[int] = mapped_column(
        ForeignKey("companies.id"), nullable=False, index=True
    )
    job_type_id: Mapped[int | None] = mapped_column(
        ForeignKey("job_types.id"), nullable=True
    )
    designer_id: Mapped[int | None] = mapped_column(
        ForeignKey("user_accounts.id"), nullable=True, index=True
    )
    created_by_id: Mapped[int | None] = mapped_column(
        ForeignKey("user_accounts.id"), nullable=True
    )
    quantity: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    company_ticket_number: Mapped[int] = mapped_column(Integer, nullable=False)
    # Replace the job type price for this ticket only. 0 makes it free.
    token_cost_override: Mapped[int | None] = mapped_column(
        Integer, nullable=True
    )
    designer_payout_override: Mapped[int | None] = mapped_column(
        Integer, nullable=True
    )
    status: Mapped[TicketStatus] = mapped_column(
        SAEnum(TicketStatus, name="ticket_status_enum", create_constraint=True),
        nullable=False,
        default=TicketStatus.TODO,
    )
    completed_at: Mapped[datetime | None] = mapped_column(
        DateTime, nullable=True
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime, nullable=False, default=datetime.utcnow
    )

    company: Mapped["Company"] = relationship()
    job_type: Mapped["JobType | None"] = relationship()

    def __repr__(self) -> str:
        return f"<Ticket {self.id} {self.title!r} ({self.status.value})>"

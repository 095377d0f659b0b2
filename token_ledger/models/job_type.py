"""
Job type model.

A job type prices a piece of creative work twice: what the
company pays when it requests the job (token_cost) and what
the designer earns when the job is done (designer_payout_tokens).
"""

from datetime import datetime

from sqlalchemy import String, Integer, Boolean, DateTime, Text, CheckConstraint
from sqlalchemy.orm import Mapped, mapped_column

from token_ledger.models.base import Base


class JobType(Base):
    __tablename__ = "job_types"
    __table_args__ = (
        CheckConstraint("token_cost > 0", name="ck_job_types_token_cost"),
        CheckConstraint(
            "designer_payout_tokens >= 0",
            name="ck_job_types_designer_payout",
        ),
    )

    id: Mapped[int] = mapped_column(primary_key=True)
    name: Mapped[str] = mapped_column(String(100), unique=True, nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    token_cost: Mapped[int] = mapped_column(Integer, nullable=False)
    designer_payout_tokens: Mapped[int] = mapped_column(
        Integer, nullable=False, default=0
    )
    is_active: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=True
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime, nullable=False, default=datetime.utcnow
    )

    def __repr__(self) -> str:
        return (
            f"<JobType {self.name} cost={self.token_cost} "
            f"payout={self.designer_payout_tokens}>"
        )

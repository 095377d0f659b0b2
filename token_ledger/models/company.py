"""
Company model.

The paying customer. token_balance is a cached projection of the
company's ledger entries: it is read on every ticket creation, so
it lives on the row instead of being summed each time.

The cache is only ever written by the settlement service, inside
the same transaction as the ledger entry that justifies the new
value.
"""

from datetime import datetime

from sqlalchemy import (
    String, Integer, DateTime, ForeignKey, CheckConstraint,
    Enum as SAEnum,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from token_ledger.models.base import Base
from token_ledger.models.enums import BillingStatus


class Company(Base):
    __tablename__ = "companies"
    __table_args__ = (
        CheckConstraint("token_balance >= 0", name="ck_companies_token_balance"),
    )

    id: Mapped[int] = mapped_column(primary_key=True)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    slug: Mapped[str] = mapped_column(String(100), unique=True, nullable=False)
    plan_id: Mapped[int | None] = mapped_column(
        ForeignKey("plans.id"), nullable=True
    )
    token_balance: Mapped[int] = mapped_column(
        Integer, nullable=False, default=0
    )
    billing_status: Mapped[BillingStatus | None] = mapped_column(
        SAEnum(BillingStatus, name="billing_status_enum"),
        nullable=True,
    )
    subscription_ref: Mapped[str | None] = mapped_column(
        String(255), nullable=True, index=True
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime, nullable=False, default=datetime.utcnow
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow
    )

    plan: Mapped["Plan | None"] = relationship()

    def __repr__(self) -> str:
        return f"<Company {self.slug} balance={self.token_balance}>"

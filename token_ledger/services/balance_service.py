"""
Balance resolver — answers "how many tokens does this subject have?"

Companies: the cached token_balance column, read on the hot path
(every ticket creation).
Designers: always derived as sum(CREDIT) - sum(DEBIT) over their
own entries. There is no second copy to drift.

Pass lock=True whenever the balance is about to be used for a
mutation. The subject's row is then selected FOR UPDATE, so two
concurrent operations on the same subject serialize instead of
both acting on the same stale value.
"""

from sqlalchemy import select, func, case
from sqlalchemy.orm import Session

from token_ledger.exceptions import SubjectNotFound
from token_ledger.models import Company, LedgerEntry, UserAccount
from token_ledger.models.enums import LedgerDirection, SubjectKind


def signed_sum():
    """SUM(+amount for CREDIT, -amount for DEBIT), 0 when empty."""
    return func.coalesce(
        func.sum(
            case(
                (LedgerEntry.direction == LedgerDirection.CREDIT, LedgerEntry.amount),
                else_=-LedgerEntry.amount,
            )
        ),
        0,
    )


class BalanceResolver:

    def __init__(self, db: Session):
        self.db = db

    def get_company(self, company_id: int, lock: bool = False) -> Company:
        stmt = select(Company).where(Company.id == company_id)
        if lock:
            stmt = stmt.with_for_update()
        company = self.db.execute(stmt).scalar_one_or_none()
        if not company:
            raise SubjectNotFound("Company", company_id)
        return company

    def get_user(self, user_id: int, lock: bool = False) -> UserAccount:
        stmt = select(UserAccount).where(UserAccount.id == user_id)
        if lock:
            stmt = stmt.with_for_update()
        user = self.db.execute(stmt).scalar_one_or_none()
        if not user:
            raise SubjectNotFound("User", user_id)
        return user

    def company_balance(self, company_id: int, lock: bool = False) -> int:
        """Read the cached balance."""
        return self.get_company(company_id, lock=lock).token_balance

    def designer_balance(self, user_id: int, lock: bool = False) -> int:
        """
        Derive a designer's balance from the ledger.

        Only entries the user owns count. A company entry that merely
        stamps the user for cross-reference does not.
        """
        self.get_user(user_id, lock=lock)
        return int(self.db.execute(
            select(signed_sum()).where(
                LedgerEntry.user_id == user_id,
                LedgerEntry.subject_kind == SubjectKind.USER,
            )
        ).scalar())

    def derived_company_balance(self, company_id: int) -> int:
        """Sum of the company's own entries, for reconciling the cache."""
        return int(self.db.execute(
            select(signed_sum()).where(
                LedgerEntry.company_id == company_id,
                LedgerEntry.subject_kind == SubjectKind.COMPANY,
            )
        ).scalar())

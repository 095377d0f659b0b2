"""
Database models package.

All models must be imported here so that Alembic can discover
them through Base.metadata when generating migrations.
"""

from token_ledger.models.base import Base
from token_ledger.models.enums import (
    LEDGER_REASON_VERSION,
    LedgerDirection,
    LedgerReason,
    SubjectKind,
    WithdrawalStatus,
    WithdrawalAction,
    TicketStatus,
    UserRole,
    BillingStatus,
)
from token_ledger.models.audit_log import AuditLog
from token_ledger.models.app_setting import AppSetting
from token_ledger.models.plan import Plan
from token_ledger.models.job_type import JobType
from token_ledger.models.company import Company
from token_ledger.models.user_account import UserAccount
from token_ledger.models.ticket import Ticket
from token_ledger.models.withdrawal import Withdrawal
from token_ledger.models.ledger_entry import LedgerEntry

__all__ = [
    "Base",
    "LEDGER_REASON_VERSION",
    "LedgerDirection",
    "LedgerReason",
    "SubjectKind",
    "WithdrawalStatus",
    "WithdrawalAction",
    "TicketStatus",
    "UserRole",
    "BillingStatus",
    "AuditLog",
    "AppSetting",
    "Plan",
    "JobType",
    "Company",
    "UserAccount",
    "Ticket",
    "Withdrawal",
    "LedgerEntry",
]

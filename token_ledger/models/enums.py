"""
Shared enumerations for database models.

Mapping Python enums to database enums means an unknown
direction, reason or status is rejected by the database,
not just by Python validation.
"""

import enum


# Bump when a reason code is added, so reporting queries can
# tell which vocabulary a row was written under.
LEDGER_REASON_VERSION = 1


class LedgerDirection(str, enum.Enum):
    """Sign of a ledger entry. Amounts themselves are always positive."""
    CREDIT = "CREDIT"
    DEBIT = "DEBIT"


class LedgerReason(str, enum.Enum):
    """Closed set of business codes for a token movement."""
    JOB_REQUEST_CREATED = "JOB_REQUEST_CREATED"
    DESIGNER_JOB_PAYOUT = "DESIGNER_JOB_PAYOUT"
    SUBSCRIPTION_INITIAL_CREDIT = "SUBSCRIPTION_INITIAL_CREDIT"
    SUBSCRIPTION_RENEWAL = "SUBSCRIPTION_RENEWAL"
    WITHDRAW = "WITHDRAW"
    # Kept for historical rows; the engine debits at approval only.
    WITHDRAWAL_PAID = "WITHDRAWAL_PAID"
    ADMIN_ADJUSTMENT = "ADMIN_ADJUSTMENT"


class SubjectKind(str, enum.Enum):
    """Which kind of balance owner an entry affects."""
    COMPANY = "COMPANY"
    USER = "USER"


class WithdrawalStatus(str, enum.Enum):
    PENDING = "PENDING"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"
    PAID = "PAID"


class WithdrawalAction(str, enum.Enum):
    APPROVE = "APPROVE"
    REJECT = "REJECT"
    MARK_PAID = "MARK_PAID"


class TicketStatus(str, enum.Enum):
    TODO = "TODO"
    IN_PROGRESS = "IN_PROGRESS"
    IN_REVIEW = "IN_REVIEW"
    DONE = "DONE"


class UserRole(str, enum.Enum):
    CUSTOMER = "CUSTOMER"
    DESIGNER = "DESIGNER"
    SITE_ADMIN = "SITE_ADMIN"


class BillingStatus(str, enum.Enum):
    ACTIVE = "ACTIVE"
    PAST_DUE = "PAST_DUE"
    CANCELED = "CANCELED"

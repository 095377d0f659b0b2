"""Business logic services."""

from token_ledger.services.balance_service import BalanceResolver
from token_ledger.services.ledger_service import LedgerService
from token_ledger.services.settlement_service import SettlementService
from token_ledger.services.withdrawal_service import WithdrawalService
from token_ledger.services.directory_service import DirectoryService
from token_ledger.services.app_settings_service import AppSettingsService

__all__ = [
    "BalanceResolver",
    "LedgerService",
    "SettlementService",
    "WithdrawalService",
    "DirectoryService",
    "AppSettingsService",
]

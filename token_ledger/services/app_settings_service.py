"""
Admin-editable runtime settings.

Only whitelisted keys can be stored. Readers fall back to the
environment configuration when a key is unset or unparseable.
"""

import logging
import re

from sqlalchemy import select
from sqlalchemy.orm import Session

from token_ledger.config import get_settings
from token_ledger.exceptions import LedgerValidationError, SubjectNotFound
from token_ledger.models import AppSetting, AuditLog

logger = logging.getLogger(__name__)

MIN_WITHDRAWAL_TOKENS = "MIN_WITHDRAWAL_TOKENS"

ALLOWED_KEYS = frozenset({MIN_WITHDRAWAL_TOKENS})


class AppSettingsService:

    def __init__(self, db: Session):
        self.db = db

    def _check_key(self, key: str) -> None:
        if key not in ALLOWED_KEYS:
            raise LedgerValidationError(
                f"Unknown setting key '{key}'",
                {"allowed_keys": sorted(ALLOWED_KEYS)},
            )

    def get_setting(self, key: str) -> AppSetting:
        self._check_key(key)
        setting = self.db.get(AppSetting, key)
        if not setting:
            raise SubjectNotFound("AppSetting", key)
        return setting

    def list_settings(self) -> list[AppSetting]:
        return list(self.db.execute(
            select(AppSetting).order_by(AppSetting.key)
        ).scalars().all())

    def set_setting(self, key: str, value: str, actor: str) -> AppSetting:
        """Store a setting. All current keys are positive integers."""
        self._check_key(key)
        value = value.strip()
        # ASCII digits only.
        if not re.fullmatch(r"[0-9]+", value) or int(value) <= 0:
            raise LedgerValidationError(
                f"{key} must be a positive integer", {"value": value}
            )

        setting = self.db.get(AppSetting, key)
        old_value = setting.value if setting else None
        if setting:
            setting.value = value
        else:
            setting = AppSetting(key=key, value=value)
            self.db.add(setting)

        self.db.add(AuditLog(
            event_type="SETTING_CHANGED",
            actor=actor,
            details=f"{key}: {old_value} -> {value}",
        ))
        self.db.flush()
        return setting

    def get_int(self, key: str, default: int) -> int:
        setting = self.db.get(AppSetting, key)
        if setting is None:
            return default
        try:
            value = int(setting.value)
        except ValueError:
            logger.warning("setting %s has non-integer value %r, using %s",
                           key, setting.value, default)
            return default
        return value if value > 0 else default

    def min_withdrawal_tokens(self) -> int:
        return self.get_int(
            MIN_WITHDRAWAL_TOKENS, get_settings().MIN_WITHDRAWAL_TOKENS
        )

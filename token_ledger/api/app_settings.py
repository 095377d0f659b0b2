"""
Admin endpoints for runtime settings.
"""

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from token_ledger.exceptions import LedgerError
from token_ledger.models.base import get_db
from token_ledger.services.app_settings_service import AppSettingsService
from token_ledger.schemas.app_setting import AppSettingResponse, AppSettingUpdate

router = APIRouter(prefix="/admin/settings", tags=["Settings"])


@router.get("", response_model=list[AppSettingResponse])
def list_settings(db: Session = Depends(get_db)):
    return AppSettingsService(db).list_settings()


@router.get("/{key}", response_model=AppSettingResponse)
def get_setting(
    key: str,
    db: Session = Depends(get_db),
):
    try:
        return AppSettingsService(db).get_setting(key)
    except LedgerError as e:
        raise HTTPException(status_code=e.status_code, detail=e.to_detail())


@router.put("/{key}", response_model=AppSettingResponse)
def set_setting(
    key: str,
    request: AppSettingUpdate,
    db: Session = Depends(get_db),
):
    """Store a setting. Changes are written to the audit log."""
    service = AppSettingsService(db)
    try:
        setting = service.set_setting(key, request.value, request.actor)
        db.commit()
        return setting
    except LedgerError as e:
        db.rollback()
        raise HTTPException(status_code=e.status_code, detail=e.to_detail())

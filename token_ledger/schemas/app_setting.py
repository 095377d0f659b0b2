"""
Pydantic schemas for admin-editable runtime settings.
"""

from datetime import datetime

from pydantic import BaseModel, Field


class AppSettingUpdate(BaseModel):
    value: str = Field(min_length=1, max_length=255)
    actor: str = Field(min_length=1, max_length=255)


class AppSettingResponse(BaseModel):
    key: str
    value: str
    updated_at: datetime

    model_config = {"from_attributes": True}

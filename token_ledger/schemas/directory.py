"""
Pydantic schemas for the records the token engine settles against:
companies, plans, job types and user accounts.
"""

from datetime import datetime

from pydantic import BaseModel, Field

from token_ledger.models.enums import BillingStatus, UserRole


class PlanCreate(BaseModel):
    name: str = Field(min_length=1, max_length=100)
    monthly_tokens: int = Field(ge=0)
    price_cents: int | None = Field(default=None, ge=0)


class PlanResponse(BaseModel):
    id: int
    name: str
    monthly_tokens: int
    price_cents: int | None
    is_active: bool
    created_at: datetime

    model_config = {"from_attributes": True}


class JobTypeCreate(BaseModel):
    name: str = Field(min_length=1, max_length=100)
    description: str | None = None
    token_cost: int = Field(gt=0)
    designer_payout_tokens: int = Field(default=0, ge=0)


class JobTypeResponse(BaseModel):
    id: int
    name: str
    description: str | None
    token_cost: int
    designer_payout_tokens: int
    is_active: bool

    model_config = {"from_attributes": True}


class CompanyCreate(BaseModel):
    name: str = Field(min_length=1, max_length=200)
    slug: str = Field(min_length=1, max_length=100, pattern=r"^[a-z0-9-]+$")
    plan_id: int | None = None


class CompanyResponse(BaseModel):
    id: int
    name: str
    slug: str
    plan_id: int | None
    token_balance: int
    billing_status: BillingStatus | None
    created_at: datetime

    model_config = {"from_attributes": True}


class UserCreate(BaseModel):
    email: str = Field(min_length=3, max_length=255)
    name: str | None = Field(default=None, max_length=200)
    role: UserRole = UserRole.CUSTOMER


class UserResponse(BaseModel):
    id: int
    email: str
    name: str | None
    role: UserRole
    created_at: datetime

    model_config = {"from_attributes": True}


class CompanyPlanUpdate(BaseModel):
    plan_id: int

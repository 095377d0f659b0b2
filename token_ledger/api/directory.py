"""
Directory API endpoints: companies, plans, job types, users.
"""

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from token_ledger.exceptions import LedgerError
from token_ledger.models.base import get_db
from token_ledger.services.directory_service import DirectoryService
from token_ledger.schemas.directory import (
    CompanyCreate,
    CompanyPlanUpdate,
    CompanyResponse,
    JobTypeCreate,
    JobTypeResponse,
    PlanCreate,
    PlanResponse,
    UserCreate,
    UserResponse,
)

router = APIRouter(tags=["Directory"])


@router.post("/plans", response_model=PlanResponse, status_code=201)
def create_plan(
    request: PlanCreate,
    db: Session = Depends(get_db),
):
    service = DirectoryService(db)
    try:
        plan = service.create_plan(request)
        db.commit()
        return plan
    except LedgerError as e:
        db.rollback()
        raise HTTPException(status_code=e.status_code, detail=e.to_detail())


@router.post("/job-types", response_model=JobTypeResponse, status_code=201)
def create_job_type(
    request: JobTypeCreate,
    db: Session = Depends(get_db),
):
    service = DirectoryService(db)
    try:
        job_type = service.create_job_type(request)
        db.commit()
        return job_type
    except LedgerError as e:
        db.rollback()
        raise HTTPException(status_code=e.status_code, detail=e.to_detail())


@router.post("/companies", response_model=CompanyResponse, status_code=201)
def create_company(
    request: CompanyCreate,
    db: Session = Depends(get_db),
):
    """Create a company. Its balance starts at zero."""
    service = DirectoryService(db)
    try:
        company = service.create_company(request)
        db.commit()
        return company
    except LedgerError as e:
        db.rollback()
        raise HTTPException(status_code=e.status_code, detail=e.to_detail())


@router.get("/companies/{company_id}", response_model=CompanyResponse)
def get_company(
    company_id: int,
    db: Session = Depends(get_db),
):
    try:
        return DirectoryService(db).get_company(company_id)
    except LedgerError as e:
        raise HTTPException(status_code=e.status_code, detail=e.to_detail())


@router.put("/companies/{company_id}/plan", response_model=CompanyResponse)
def assign_plan(
    company_id: int,
    request: CompanyPlanUpdate,
    db: Session = Depends(get_db),
):
    service = DirectoryService(db)
    try:
        company = service.assign_plan(company_id, request.plan_id)
        db.commit()
        return company
    except LedgerError as e:
        db.rollback()
        raise HTTPException(status_code=e.status_code, detail=e.to_detail())


@router.post("/users", response_model=UserResponse, status_code=201)
def create_user(
    request: UserCreate,
    db: Session = Depends(get_db),
):
    service = DirectoryService(db)
    try:
        user = service.create_user(request)
        db.commit()
        return user
    except LedgerError as e:
        db.rollback()
        raise HTTPException(status_code=e.status_code, detail=e.to_detail())

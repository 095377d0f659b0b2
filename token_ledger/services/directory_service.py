"""
Directory service — the records settlements are made against.

Companies, plans, job types and user accounts are owned by other
parts of the product; the token engine only needs to create and
look them up. Creating a company never sets a balance: tokens only
arrive through ledger entries.
"""

from sqlalchemy import select
from sqlalchemy.orm import Session

from token_ledger.exceptions import (
    DuplicateRecord,
    LedgerValidationError,
    SubjectNotFound,
)
from token_ledger.models import Company, JobType, Plan, UserAccount
from token_ledger.schemas.directory import (
    CompanyCreate,
    JobTypeCreate,
    PlanCreate,
    UserCreate,
)


class DirectoryService:

    def __init__(self, db: Session):
        self.db = db

    def _ensure_unique(self, model, column, value, label: str) -> None:
        existing = self.db.execute(
            select(model).where(column == value)
        ).scalar_one_or_none()
        if existing:
            raise DuplicateRecord(
                f"{label} '{value}' already exists", {"value": value}
            )

    def create_plan(self, request: PlanCreate) -> Plan:
        self._ensure_unique(Plan, Plan.name, request.name, "Plan")
        plan = Plan(
            name=request.name,
            monthly_tokens=request.monthly_tokens,
            price_cents=request.price_cents,
        )
        self.db.add(plan)
        self.db.flush()
        return plan

    def create_job_type(self, request: JobTypeCreate) -> JobType:
        self._ensure_unique(JobType, JobType.name, request.name, "Job type")
        job_type = JobType(
            name=request.name,
            description=request.description,
            token_cost=request.token_cost,
            designer_payout_tokens=request.designer_payout_tokens,
        )
        self.db.add(job_type)
        self.db.flush()
        return job_type

    def create_company(self, request: CompanyCreate) -> Company:
        self._ensure_unique(Company, Company.slug, request.slug, "Company")
        if request.plan_id is not None:
            self.get_plan(request.plan_id)
        company = Company(
            name=request.name,
            slug=request.slug,
            plan_id=request.plan_id,
            token_balance=0,
        )
        self.db.add(company)
        self.db.flush()
        return company

    def create_user(self, request: UserCreate) -> UserAccount:
        email = request.email.strip().lower()
        self._ensure_unique(UserAccount, UserAccount.email, email, "User")
        user = UserAccount(email=email, name=request.name, role=request.role)
        self.db.add(user)
        self.db.flush()
        return user

    def get_plan(self, plan_id: int) -> Plan:
        plan = self.db.get(Plan, plan_id)
        if not plan:
            raise SubjectNotFound("Plan", plan_id)
        return plan

    def get_job_type(self, job_type_id: int) -> JobType:
        job_type = self.db.get(JobType, job_type_id)
        if not job_type:
            raise SubjectNotFound("JobType", job_type_id)
        return job_type

    def get_company(self, company_id: int) -> Company:
        company = self.db.get(Company, company_id)
        if not company:
            raise SubjectNotFound("Company", company_id)
        return company

    def get_user(self, user_id: int) -> UserAccount:
        user = self.db.get(UserAccount, user_id)
        if not user:
            raise SubjectNotFound("User", user_id)
        return user

    def deactivate_job_type(self, job_type_id: int) -> JobType:
        job_type = self.get_job_type(job_type_id)
        job_type.is_active = False
        self.db.flush()
        return job_type

    def deactivate_plan(self, plan_id: int) -> Plan:
        plan = self.get_plan(plan_id)
        plan.is_active = False
        self.db.flush()
        return plan

    def assign_plan(self, company_id: int, plan_id: int) -> Company:
        """Point a company at a plan. No tokens move until billing credits it."""
        company = self.get_company(company_id)
        plan = self.get_plan(plan_id)
        if not plan.is_active:
            raise LedgerValidationError(
                f"Plan {plan.id} is not active", {"plan_id": plan.id}
            )
        company.plan_id = plan.id
        self.db.flush()
        return company

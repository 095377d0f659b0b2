"""
Shared test fixtures.

Sets up an isolated test database so tests never touch
the real database. Each test gets fresh tables, and the
factory fixtures below build companies and designers with
balances that come from real ledger entries.
"""

import itertools
import os

# Must be set before token_ledger is imported: the engine is
# created at import time.
os.environ.setdefault("DATABASE_URL", "sqlite:///./test.db")

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from token_ledger.main import app
from token_ledger.models.base import Base, get_db
from token_ledger.models.enums import LedgerDirection, UserRole
from token_ledger.schemas.directory import CompanyCreate, JobTypeCreate, UserCreate
from token_ledger.schemas.settlement import (
    BalanceAdjustmentRequest,
    TicketCreateRequest,
)
from token_ledger.services.directory_service import DirectoryService
from token_ledger.services.notification_service import (
    NotificationDispatcher,
    get_dispatcher,
)
from token_ledger.services.settlement_service import SettlementService


# Use SQLite for tests, no external database needed.
# Row locks (FOR UPDATE) are a no-op here; the arithmetic and
# chain checks are what the tests exercise.
TEST_DATABASE_URL = "sqlite:///./test.db"

engine = create_engine(
    TEST_DATABASE_URL,
    connect_args={"check_same_thread": False},
)

TestSessionLocal = sessionmaker(
    bind=engine,
    autocommit=False,
    autoflush=False,
)


@pytest.fixture(autouse=True)
def setup_database():
    """
    Create all tables before each test, drop them after.

    autouse=True means every test gets this automatically.
    """
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)


@pytest.fixture
def db_session():
    """Provide a database session for direct service testing."""
    session = TestSessionLocal()
    try:
        yield session
    finally:
        session.rollback()
        session.close()


@pytest.fixture
def notifications():
    """Collects every notification the app dispatches."""
    return []


@pytest.fixture
def client(db_session, notifications):
    """
    Provide a test client with the test database.

    get_db is overridden so the app uses the test session, and
    get_dispatcher so notifications land in a list instead of
    the log.
    """
    def override_get_db():
        try:
            yield db_session
        finally:
            pass

    dispatcher = NotificationDispatcher(sink=notifications.append)

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_dispatcher] = lambda: dispatcher
    yield TestClient(app)
    app.dependency_overrides.clear()


# --- Factories ---

@pytest.fixture
def make_company(db_session):
    """
    Create a company. A non-zero balance is given through an
    ADMIN_ADJUSTMENT credit, so the ledger chain starts at 0.
    """
    counter = itertools.count(1)

    def _make(balance=0):
        n = next(counter)
        company = DirectoryService(db_session).create_company(CompanyCreate(
            name=f"Company {n}",
            slug=f"company-{n}",
        ))
        if balance:
            SettlementService(db_session).adjust_company_balance(
                BalanceAdjustmentRequest(
                    company_id=company.id,
                    direction=LedgerDirection.CREDIT,
                    amount=balance,
                    notes="Opening balance",
                    actor="tests",
                )
            )
        db_session.commit()
        return company

    return _make


@pytest.fixture
def make_job_type(db_session):
    counter = itertools.count(1)

    def _make(token_cost=10, designer_payout_tokens=4):
        job_type = DirectoryService(db_session).create_job_type(JobTypeCreate(
            name=f"Job type {next(counter)}",
            token_cost=token_cost,
            designer_payout_tokens=designer_payout_tokens,
        ))
        db_session.commit()
        return job_type

    return _make


@pytest.fixture
def make_designer(db_session, make_company, make_job_type):
    """
    Create a designer. A non-zero balance is earned the normal
    way: a one-token ticket whose completion pays that amount.
    """
    counter = itertools.count(1)

    def _make(balance=0):
        n = next(counter)
        designer = DirectoryService(db_session).create_user(UserCreate(
            email=f"designer{n}@example.com",
            name=f"Designer {n}",
            role=UserRole.DESIGNER,
        ))
        db_session.commit()
        if balance:
            company = make_company(balance=1)
            job_type = make_job_type(token_cost=1, designer_payout_tokens=balance)
            settlement = SettlementService(db_session)
            created = settlement.create_ticket(TicketCreateRequest(
                company_id=company.id,
                title=f"Seed work for designer {n}",
                job_type_id=job_type.id,
                designer_id=designer.id,
            ))
            settlement.complete_ticket(created.ticket.id)
            db_session.commit()
        return designer

    return _make

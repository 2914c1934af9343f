"""Pytest fixtures for testing"""

import pytest
from datetime import date, datetime
from decimal import Decimal
from typing import Callable, Generator
from zoneinfo import ZoneInfo
from fastapi.testclient import TestClient
from sqlalchemy.orm import sessionmaker, Session
from microbank_gateway.api.dependencies import get_clock
from microbank_gateway.api.main import create_app
from microbank_gateway.domain.accrual import InterestAccrualEngine
from microbank_gateway.infrastructure.database.models import (
    Account,
    Base,
    Employee,
    FDPlan,
    FixedDeposit,
)
from microbank_gateway.infrastructure.database.session import get_db, make_engine
from microbank_gateway.infrastructure.database.unit_of_work import SqlAlchemyUnitOfWork

COLOMBO = ZoneInfo("Asia/Colombo")

# Any day in October 2024 targets September 2024
RUN_TIME = datetime(2024, 10, 1, 3, 0, tzinfo=COLOMBO)


@pytest.fixture
def session_factory(tmp_path) -> Generator[sessionmaker, None, None]:
    """Fresh SQLite database per test"""
    engine = make_engine(f"sqlite:///{tmp_path / 'test.db'}")
    Base.metadata.create_all(bind=engine)
    try:
        yield sessionmaker(autocommit=False, autoflush=False, bind=engine)
    finally:
        Base.metadata.drop_all(bind=engine)
        engine.dispose()


@pytest.fixture
def db(session_factory: sessionmaker) -> Generator[Session, None, None]:
    """Session for seeding and assertions"""
    db = session_factory()
    try:
        yield db
    finally:
        db.close()


@pytest.fixture
def accrual_engine(session_factory: sessionmaker) -> InterestAccrualEngine:
    return InterestAccrualEngine(uow_factory=lambda: SqlAlchemyUnitOfWork(session_factory))


@pytest.fixture
def bank(db: Session) -> "BankSeeder":
    return BankSeeder(db)


class BankSeeder:
    """Inserts employees, plans, savings accounts and fixed deposits"""

    def __init__(self, db: Session):
        self.db = db
        self._counter = 0

    def _next(self, prefix: str) -> str:
        self._counter += 1
        return f"{prefix}{self._counter:03d}"

    def employee(self, role: str = "Admin", employee_id: str | None = None) -> str:
        employee_id = employee_id or self._next(role[0])
        self.db.add(Employee(employee_id=employee_id, role=role, username=f"user_{employee_id}"))
        self.db.commit()
        return employee_id

    def plan(self, rate: str = "12.00", options: str = "1 year") -> str:
        plan_id = self._next("FDP")
        self.db.add(FDPlan(fd_plan_id=plan_id, fd_options=options, interest=Decimal(rate)))
        self.db.commit()
        return plan_id

    def account(self, balance: str = "1000.00", status: str = "Active") -> str:
        account_id = self._next("ACC")
        self.db.add(
            Account(
                account_id=account_id,
                open_date=date(2024, 1, 1),
                account_status=status,
                balance=Decimal(balance),
            )
        )
        self.db.commit()
        return account_id

    def fixed_deposit(
        self,
        principal: str = "100000.00",
        rate: str = "12.00",
        options: str = "1 year",
        status: str = "Active",
        account_id: str | None = None,
    ) -> tuple[str, str]:
        """Returns (fd_id, linked savings account id)"""
        plan_id = self.plan(rate=rate, options=options)
        account_id = account_id or self.account()
        fd_id = self._next("FD")
        self.db.add(
            FixedDeposit(
                fd_id=fd_id,
                fd_balance=Decimal(principal),
                fd_status=status,
                open_date=date(2024, 1, 15),
                maturity_date=date(2025, 1, 15),
                auto_renewal_status="False",
                fd_plan_id=plan_id,
                account_id=account_id,
            )
        )
        self.db.commit()
        return fd_id, account_id


@pytest.fixture
def fixed_clock() -> Callable[[], datetime]:
    return lambda: RUN_TIME


@pytest.fixture
def client(session_factory: sessionmaker, fixed_clock) -> TestClient:
    """Create FastAPI test client with test database and a frozen clock"""
    app = create_app(session_factory=session_factory, scheduler_enabled=False)

    def override_get_db():
        db = session_factory()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_clock] = lambda: fixed_clock
    return TestClient(app)


@pytest.fixture
def admin_headers() -> dict:
    return {"X-Employee-Role": "Admin"}

"""Data access layer for accounts, ledger, fixed deposits and interest audit records"""

import uuid
from datetime import date, datetime
from decimal import Decimal
from typing import List, Optional
from sqlalchemy import func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session
from microbank_gateway.infrastructure.database.models import (
    Account,
    Employee,
    FDInterestCalculation,
    FDInterestPeriod,
    FDPlan,
    FixedDeposit,
    Transaction,
)
from microbank_gateway.domain.exceptions import AccountNotFoundError, DuplicatePeriodError
from microbank_gateway.domain.interest import month_bounds
from microbank_gateway.domain.models import AccrualPeriod, FixedDepositSnapshot


class AccountRepository:
    """Savings account balance access"""

    def __init__(self, db: Session):
        self.db = db

    def _get(self, account_id: str, for_update: bool = False) -> Account:
        query = self.db.query(Account).filter(Account.account_id == account_id)
        if for_update:
            # Same row lock ordinary deposits/withdrawals take
            query = query.with_for_update()
        account = query.first()
        if account is None:
            raise AccountNotFoundError(f"Account {account_id} not found")
        return account

    def get_balance(self, account_id: str, for_update: bool = False) -> Decimal:
        return Decimal(self._get(account_id, for_update=for_update).balance)

    def set_balance(self, account_id: str, balance: Decimal) -> None:
        account = self._get(account_id)
        account.balance = balance
        self.db.flush()

    def credit(self, account_id: str, amount: Decimal) -> Decimal:
        """Add a non-negative amount under a row lock; returns the new balance"""
        if amount < 0:
            raise ValueError("Credit amount must not be negative")
        new_balance = self.get_balance(account_id, for_update=True) + amount
        self.set_balance(account_id, new_balance)
        return new_balance


class LedgerRepository:
    """Append-only transaction ledger"""

    def __init__(self, db: Session):
        self.db = db

    def append_transaction(
        self,
        transaction_type: str,
        amount: Decimal,
        timestamp: datetime,
        description: str,
        account_id: str,
        employee_id: str,
    ) -> str:
        """Insert a ledger entry and return its id"""
        if amount <= 0:
            raise ValueError("Transaction amount must be positive")

        transaction_id = f"TXN{uuid.uuid4().hex[:12].upper()}"
        self.db.add(
            Transaction(
                transaction_id=transaction_id,
                transaction_type=transaction_type,
                amount=amount,
                time=timestamp,
                description=description,
                account_id=account_id,
                employee_id=employee_id,
            )
        )
        self.db.flush()
        return transaction_id

    def list_for_account(self, account_id: str, transaction_type: Optional[str] = None) -> List[Transaction]:
        query = self.db.query(Transaction).filter(Transaction.account_id == account_id)
        if transaction_type is not None:
            query = query.filter(Transaction.transaction_type == transaction_type)
        return query.order_by(Transaction.time.desc()).all()


class EmployeeRepository:
    """Employee directory lookups used to attribute system credits"""

    def __init__(self, db: Session):
        self.db = db

    def exists(self, employee_id: str) -> bool:
        return self.db.query(Employee.employee_id).filter(Employee.employee_id == employee_id).first() is not None

    def find_administrative_actor(self) -> Optional[str]:
        """Earliest-created Admin employee, if any"""
        row = (
            self.db.query(Employee.employee_id)
            .filter(Employee.role == "Admin")
            .order_by(Employee.created_at.asc(), Employee.employee_id.asc())
            .first()
        )
        return row[0] if row else None

    def find_any_actor(self) -> Optional[str]:
        row = self.db.query(Employee.employee_id).order_by(Employee.employee_id.asc()).first()
        return row[0] if row else None


class FixedDepositRepository:
    """Read access to fixed deposits and their plans"""

    def __init__(self, db: Session):
        self.db = db

    def list_active_fixed_deposits(self) -> List[FixedDepositSnapshot]:
        rows = (
            self.db.query(FixedDeposit, FDPlan)
            .join(FDPlan, FixedDeposit.fd_plan_id == FDPlan.fd_plan_id)
            .filter(FixedDeposit.fd_status == "Active")
            .order_by(FixedDeposit.fd_id.asc())
            .all()
        )
        return [
            FixedDepositSnapshot(
                fd_id=fd.fd_id,
                balance=Decimal(fd.fd_balance),
                annual_rate=Decimal(plan.interest),
                duration_class=plan.fd_options,
                linked_account_id=fd.account_id,
            )
            for fd, plan in rows
        ]

    def active_summary(self) -> tuple[int, Decimal]:
        """Count and total principal of active deposits"""
        count, total = (
            self.db.query(func.count(FixedDeposit.fd_id), func.coalesce(func.sum(FixedDeposit.fd_balance), 0))
            .filter(FixedDeposit.fd_status == "Active")
            .one()
        )
        return int(count), Decimal(total)


class InterestCalculationRepository:
    """Per-deposit interest audit trail; the credited rows are the per-deposit guard"""

    def __init__(self, db: Session):
        self.db = db

    def has_credited(self, fd_id: str, period: AccrualPeriod) -> bool:
        return (
            self.db.query(FDInterestCalculation.id)
            .filter(
                FDInterestCalculation.fd_id == fd_id,
                FDInterestCalculation.period_start == period.start,
                FDInterestCalculation.status == "credited",
            )
            .first()
            is not None
        )

    def record_credited(
        self,
        deposit: FixedDepositSnapshot,
        period: AccrualPeriod,
        interest: Decimal,
        days: int,
        credited_at: datetime,
    ) -> FDInterestCalculation:
        return self._record(deposit, period, interest, days, credited_at.date(), "credited", credited_at)

    def record_failed(
        self,
        deposit: FixedDepositSnapshot,
        period: AccrualPeriod,
        interest: Decimal,
        days: int,
        calculation_date: date,
    ) -> FDInterestCalculation:
        return self._record(deposit, period, interest, days, calculation_date, "failed", None)

    def _record(self, deposit, period, interest, days, calculation_date, status, credited_at):
        row = FDInterestCalculation(
            fd_id=deposit.fd_id,
            period_start=period.start,
            calculation_date=calculation_date,
            interest_amount=interest,
            days_calculated=days,
            credited_to_account_id=deposit.linked_account_id,
            status=status,
            credited_at=credited_at,
        )
        self.db.add(row)
        self.db.flush()
        return row

    def total_credited_in_month(self, day: date) -> Decimal:
        start, end = month_bounds(day)
        total = (
            self.db.query(func.coalesce(func.sum(FDInterestCalculation.interest_amount), 0))
            .filter(
                FDInterestCalculation.status == "credited",
                FDInterestCalculation.calculation_date >= start,
                FDInterestCalculation.calculation_date <= end,
            )
            .scalar()
        )
        return Decimal(total)

    def list_for_deposit(self, fd_id: str, limit: int = 24) -> List[FDInterestCalculation]:
        return (
            self.db.query(FDInterestCalculation)
            .filter(FDInterestCalculation.fd_id == fd_id)
            .order_by(FDInterestCalculation.period_start.desc(), FDInterestCalculation.created_at.desc())
            .limit(limit)
            .all()
        )


class PeriodRepository:
    """Batch-level guard: which months have been fully processed"""

    def __init__(self, db: Session):
        self.db = db

    def is_period_processed(self, month: int, year: int) -> bool:
        start, end = month_bounds(date(year, month, 1))
        return (
            self.db.query(FDInterestPeriod.id)
            .filter(
                FDInterestPeriod.is_processed.is_(True),
                FDInterestPeriod.period_start >= start,
                FDInterestPeriod.period_start <= end,
            )
            .first()
            is not None
        )

    def mark_period_processed(self, period_start: date, period_end: date, processed_at: datetime) -> FDInterestPeriod:
        """Insert the period row; never updates an existing one"""
        if self.is_period_processed(period_start.month, period_start.year):
            raise DuplicatePeriodError(period_start.year, period_start.month)

        row = FDInterestPeriod(
            period_start=period_start,
            period_end=period_end,
            is_processed=True,
            processed_at=processed_at,
        )
        try:
            with self.db.begin_nested():
                self.db.add(row)
                self.db.flush()
        except IntegrityError as e:
            raise DuplicatePeriodError(period_start.year, period_start.month) from e
        return row

    def recent_periods(self, limit: int = 6) -> List[FDInterestPeriod]:
        return (
            self.db.query(FDInterestPeriod)
            .filter(FDInterestPeriod.is_processed.is_(True))
            .order_by(FDInterestPeriod.period_start.desc())
            .limit(limit)
            .all()
        )

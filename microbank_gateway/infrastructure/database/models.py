"""SQLAlchemy ORM models for the banking tables the FD interest job touches"""

import uuid
from datetime import date
from sqlalchemy import (
    Column, String, Boolean, Numeric, DateTime, Date, Integer, ForeignKey, Text, Index, UniqueConstraint, text,
)
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import declarative_base, relationship
from sqlalchemy.sql import func

Base = declarative_base()


class Employee(Base):
    """Bank staff member (Admin, Manager or Agent)"""

    __tablename__ = "employee"

    employee_id = Column(String(20), primary_key=True)
    role = Column(Text, nullable=False, index=True)
    username = Column(Text, nullable=False, unique=True)
    first_name = Column(Text, nullable=True)
    last_name = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())


class Account(Base):
    """Savings account; balance is shared with agent deposits and withdrawals"""

    __tablename__ = "account"

    account_id = Column(String(20), primary_key=True)
    open_date = Column(Date, nullable=False, default=date.today)
    account_status = Column(Text, nullable=False, default="Active")
    balance = Column(Numeric(15, 2), nullable=False, default=0)

    transactions = relationship("Transaction", back_populates="account")


class Transaction(Base):
    """Append-only ledger entry"""

    __tablename__ = "transaction"

    transaction_id = Column(String(20), primary_key=True)
    transaction_type = Column(Text, nullable=False)  # Deposit | Withdrawal | Interest
    amount = Column(Numeric(15, 2), nullable=False)
    time = Column(DateTime(timezone=True), nullable=False)
    description = Column(Text, nullable=True)
    account_id = Column(String(20), ForeignKey("account.account_id"), nullable=False, index=True)
    employee_id = Column(String(20), ForeignKey("employee.employee_id"), nullable=False)

    account = relationship("Account", back_populates="transactions")


class FDPlan(Base):
    """Fixed deposit product: duration class and annual rate"""

    __tablename__ = "fd_plan"

    fd_plan_id = Column(String(20), primary_key=True)
    fd_options = Column(Text, nullable=False)  # "6 months" | "1 year" | "3 years"
    interest = Column(Numeric(5, 2), nullable=False)  # Annual percent


class FixedDeposit(Base):
    """Locked principal linked to the savings account that receives its interest"""

    __tablename__ = "fixed_deposit"

    fd_id = Column(String(20), primary_key=True)
    fd_balance = Column(Numeric(15, 2), nullable=False)
    fd_status = Column(Text, nullable=False, default="Active")  # Active | Closed
    open_date = Column(Date, nullable=False)
    maturity_date = Column(Date, nullable=False)
    auto_renewal_status = Column(Text, nullable=False, default="False")
    fd_plan_id = Column(String(20), ForeignKey("fd_plan.fd_plan_id"), nullable=False)
    account_id = Column(String(20), ForeignKey("account.account_id"), nullable=False, index=True)

    plan = relationship("FDPlan")
    account = relationship("Account")


class FDInterestCalculation(Base):
    """Audit row for one (fixed deposit, month) crediting attempt"""

    __tablename__ = "fd_interest_calculation"
    __table_args__ = (
        # At most one credited row per deposit per month
        Index(
            "uq_fd_interest_credited_per_period",
            "fd_id",
            "period_start",
            unique=True,
            postgresql_where=text("status = 'credited'"),
            sqlite_where=text("status = 'credited'"),
        ),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    fd_id = Column(String(20), ForeignKey("fixed_deposit.fd_id"), nullable=False, index=True)
    period_start = Column(Date, nullable=False)
    calculation_date = Column(Date, nullable=False)
    interest_amount = Column(Numeric(15, 2), nullable=False)
    days_calculated = Column(Integer, nullable=False)
    credited_to_account_id = Column(String(20), ForeignKey("account.account_id"), nullable=False)
    status = Column(Text, nullable=False)  # credited | failed
    credited_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())


class FDInterestPeriod(Base):
    """One row per fully processed calendar month; never updated"""

    __tablename__ = "fd_interest_period"
    __table_args__ = (UniqueConstraint("period_start", name="uq_fd_interest_period_start"),)

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    period_start = Column(Date, nullable=False)
    period_end = Column(Date, nullable=False)
    is_processed = Column(Boolean, nullable=False, default=True)
    processed_at = Column(DateTime(timezone=True), nullable=False)

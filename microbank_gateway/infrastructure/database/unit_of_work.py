"""Transactional boundary for one accrual run"""

from contextlib import contextmanager
from typing import Callable, Iterator
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session
from microbank_gateway.domain.exceptions import StorageUnavailableError
from microbank_gateway.infrastructure.database.repositories import (
    AccountRepository,
    EmployeeRepository,
    FixedDepositRepository,
    InterestCalculationRepository,
    LedgerRepository,
    PeriodRepository,
)


class SqlAlchemyUnitOfWork:
    """
    One database transaction with the repositories bound to it.

    Usage:
        with SqlAlchemyUnitOfWork(SessionLocal) as uow:
            uow.acquire_run_lock(namespace, key)
            ...
            with uow.savepoint():
                ...
            uow.commit()

    Leaving the block without commit() rolls back.
    """

    def __init__(self, session_factory: Callable[[], Session]):
        self.session_factory = session_factory
        self.session: Session | None = None

    def __enter__(self) -> "SqlAlchemyUnitOfWork":
        self.session = self.session_factory()
        try:
            # Fail fast if the database is unreachable
            self.session.connection()
        except SQLAlchemyError as e:
            self.session.close()
            raise StorageUnavailableError(f"Cannot open database transaction: {e}") from e

        self.accounts = AccountRepository(self.session)
        self.ledger = LedgerRepository(self.session)
        self.employees = EmployeeRepository(self.session)
        self.deposits = FixedDepositRepository(self.session)
        self.calculations = InterestCalculationRepository(self.session)
        self.periods = PeriodRepository(self.session)
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        try:
            if self.session.in_transaction():
                self.session.rollback()
        finally:
            self.session.close()

    def acquire_run_lock(self, namespace: int, key: int) -> None:
        """Transaction-scoped advisory lock; on SQLite the BEGIN IMMEDIATE from make_engine already holds the write lock"""
        if self.session.get_bind().dialect.name == "postgresql":
            self.session.execute(
                text("SELECT pg_advisory_xact_lock(:namespace, :key)"),
                {"namespace": namespace, "key": key},
            )

    @contextmanager
    def savepoint(self) -> Iterator[None]:
        """Nested transaction; rolled back if the block raises"""
        with self.session.begin_nested():
            yield

    def commit(self) -> None:
        try:
            self.session.commit()
        except SQLAlchemyError as e:
            self.session.rollback()
            raise StorageUnavailableError(f"Failed to commit accrual run: {e}") from e

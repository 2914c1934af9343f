"""Unit tests for the interest accrual engine against a SQLite database"""

import threading
import pytest
from datetime import date, datetime
from decimal import Decimal
from zoneinfo import ZoneInfo
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from microbank_gateway.domain.accrual import InterestAccrualEngine
from microbank_gateway.domain.exceptions import StorageUnavailableError, SystemActorUnavailableError
from microbank_gateway.domain.models import AccrualPeriod, AccrualStatus, DepositOutcome
from microbank_gateway.infrastructure.database.models import (
    Account,
    FDInterestCalculation,
    FDInterestPeriod,
    FixedDeposit,
    Transaction,
)
from microbank_gateway.infrastructure.database.repositories import LedgerRepository
from microbank_gateway.infrastructure.database.unit_of_work import SqlAlchemyUnitOfWork

RUN_TIME = datetime(2024, 10, 1, 3, 0, tzinfo=ZoneInfo("Asia/Colombo"))
SEPTEMBER = AccrualPeriod(start=date(2024, 9, 1), end=date(2024, 9, 30))


def balance_of(session_factory, account_id: str) -> Decimal:
    with session_factory() as s:
        return s.query(Account.balance).filter(Account.account_id == account_id).scalar()


def count_rows(session_factory, model, *criteria) -> int:
    with session_factory() as s:
        return s.query(model).filter(*criteria).count()


def test_end_to_end_single_deposit(bank, session_factory, accrual_engine):
    """One FD of 50000 at 10% earns 410.96 for the month"""
    admin = bank.employee("Admin")
    fd_id, account_id = bank.fixed_deposit(principal="50000.00", rate="10.00")

    result = accrual_engine.run(RUN_TIME)

    assert result.status == AccrualStatus.PROCESSED
    assert result.period == SEPTEMBER
    assert result.credited == 1
    assert result.total_interest == Decimal("410.96")
    assert result.period_committed is True

    assert balance_of(session_factory, account_id) == Decimal("1410.96")

    with session_factory() as s:
        txns = s.query(Transaction).filter(Transaction.account_id == account_id).all()
        assert len(txns) == 1
        assert txns[0].transaction_type == "Interest"
        assert txns[0].amount == Decimal("410.96")
        assert txns[0].employee_id == admin
        assert "Monthly FD Interest" in txns[0].description
        assert "1 year" in txns[0].description

        calcs = s.query(FDInterestCalculation).filter(FDInterestCalculation.fd_id == fd_id).all()
        assert len(calcs) == 1
        assert calcs[0].status == "credited"
        assert calcs[0].interest_amount == Decimal("410.96")
        assert calcs[0].days_calculated == 30
        assert calcs[0].period_start == date(2024, 9, 1)
        assert calcs[0].credited_at is not None

        periods = s.query(FDInterestPeriod).all()
        assert len(periods) == 1
        assert periods[0].period_start == date(2024, 9, 1)
        assert periods[0].period_end == date(2024, 9, 30)
        assert periods[0].is_processed is True


def test_fd_principal_untouched(bank, session_factory, accrual_engine):
    bank.employee("Admin")
    fd_id, _ = bank.fixed_deposit(principal="100000.00")

    accrual_engine.run(RUN_TIME)

    with session_factory() as s:
        assert s.query(FixedDeposit.fd_balance).filter(FixedDeposit.fd_id == fd_id).scalar() == Decimal("100000.00")


def test_second_run_same_month_is_already_processed(bank, session_factory, accrual_engine):
    bank.employee("Admin")
    _, account_id = bank.fixed_deposit(principal="100000.00", rate="12.00")

    first = accrual_engine.run(RUN_TIME)
    second = accrual_engine.run(datetime(2024, 10, 20, 9, 0, tzinfo=RUN_TIME.tzinfo))

    assert first.status == AccrualStatus.PROCESSED
    assert second.status == AccrualStatus.ALREADY_PROCESSED
    assert second.credited == 0
    assert "already been processed" in second.message
    assert count_rows(session_factory, FDInterestPeriod) == 1
    assert count_rows(session_factory, Transaction) == 1
    assert balance_of(session_factory, account_id) == Decimal("1986.30")


def test_next_month_run_processes_again(bank, session_factory, accrual_engine):
    bank.employee("Admin")
    _, account_id = bank.fixed_deposit(principal="100000.00", rate="12.00")

    accrual_engine.run(RUN_TIME)
    november = accrual_engine.run(datetime(2024, 11, 1, 3, 0, tzinfo=RUN_TIME.tzinfo))

    assert november.status == AccrualStatus.PROCESSED
    assert november.period.start == date(2024, 10, 1)
    assert count_rows(session_factory, FDInterestPeriod) == 2
    assert balance_of(session_factory, account_id) == Decimal("2972.60")


def test_partial_prior_run_skips_credited_deposits(bank, session_factory, accrual_engine):
    """No period row, but one deposit already credited for the month"""
    bank.employee("Admin")
    fd_done, account_done = bank.fixed_deposit(principal="100000.00")
    fd_todo, account_todo = bank.fixed_deposit(principal="50000.00", rate="10.00")

    with session_factory() as s:
        s.add(
            FDInterestCalculation(
                fd_id=fd_done,
                period_start=date(2024, 9, 1),
                calculation_date=date(2024, 10, 1),
                interest_amount=Decimal("986.30"),
                days_calculated=30,
                credited_to_account_id=account_done,
                status="credited",
                credited_at=RUN_TIME,
            )
        )
        s.commit()

    result = accrual_engine.run(RUN_TIME)

    outcomes = {d.fd_id: d.outcome for d in result.deposits}
    assert outcomes[fd_done] == DepositOutcome.SKIPPED_ALREADY_CREDITED
    assert outcomes[fd_todo] == DepositOutcome.CREDITED
    assert result.credited == 1
    assert balance_of(session_factory, account_done) == Decimal("1000.00")
    assert balance_of(session_factory, account_todo) == Decimal("1410.96")
    assert count_rows(session_factory, FDInterestPeriod) == 1


def test_failed_deposit_does_not_abort_batch(bank, session_factory, accrual_engine, monkeypatch):
    """Crediting the 2nd of 3 deposits throws; 1 and 3 are still credited"""
    bank.employee("Admin")
    fd1, acc1 = bank.fixed_deposit(principal="100000.00")
    fd2, acc2 = bank.fixed_deposit(principal="100000.00")
    fd3, acc3 = bank.fixed_deposit(principal="100000.00")

    original_append = LedgerRepository.append_transaction

    def flaky_append(self, *args, **kwargs):
        if kwargs.get("account_id") == acc2:
            raise RuntimeError("ledger write failed")
        return original_append(self, *args, **kwargs)

    monkeypatch.setattr(LedgerRepository, "append_transaction", flaky_append)

    result = accrual_engine.run(RUN_TIME)

    assert result.status == AccrualStatus.PARTIAL_FAILURE
    assert result.credited == 2
    assert result.failed == 1
    assert result.attempted == 3
    assert result.period_committed is True

    failed = [d for d in result.deposits if d.outcome == DepositOutcome.FAILED]
    assert [d.fd_id for d in failed] == [fd2]
    assert failed[0].error == f"Failed to credit interest for {fd2}: ledger write failed"

    # Deposit 2's balance credit was rolled back with its savepoint
    assert balance_of(session_factory, acc1) == Decimal("1986.30")
    assert balance_of(session_factory, acc2) == Decimal("1000.00")
    assert balance_of(session_factory, acc3) == Decimal("1986.30")

    with session_factory() as s:
        statuses = {row.fd_id: row.status for row in s.query(FDInterestCalculation).all()}
        failed_row = s.query(FDInterestCalculation).filter(FDInterestCalculation.fd_id == fd2).one()
        assert failed_row.credited_at is None
    assert statuses == {fd1: "credited", fd2: "failed", fd3: "credited"}
    assert count_rows(session_factory, FDInterestPeriod) == 1


def test_no_active_deposits_does_not_commit_period(bank, session_factory, accrual_engine):
    bank.employee("Admin")
    bank.fixed_deposit(principal="100000.00", status="Closed")

    result = accrual_engine.run(RUN_TIME)

    assert result.status == AccrualStatus.NOTHING_CREDITED
    assert result.period_committed is False
    assert count_rows(session_factory, FDInterestPeriod) == 0
    assert count_rows(session_factory, FDInterestCalculation) == 0


def test_empty_month_stays_eligible_for_new_deposits(bank, session_factory, accrual_engine):
    bank.employee("Admin")

    empty = accrual_engine.run(RUN_TIME)
    _, account_id = bank.fixed_deposit(principal="50000.00", rate="10.00")
    later = accrual_engine.run(datetime(2024, 10, 5, 12, 0, tzinfo=RUN_TIME.tzinfo))

    assert empty.status == AccrualStatus.NOTHING_CREDITED
    assert later.status == AccrualStatus.PROCESSED
    assert later.period == SEPTEMBER
    assert balance_of(session_factory, account_id) == Decimal("1410.96")


def test_zero_balance_and_negative_rate_are_skipped(bank, session_factory, accrual_engine):
    bank.employee("Admin")
    fd_zero, acc_zero = bank.fixed_deposit(principal="0.00")
    fd_negative, acc_negative = bank.fixed_deposit(principal="100000.00", rate="-1.00")

    result = accrual_engine.run(RUN_TIME)

    outcomes = {d.fd_id: d.outcome for d in result.deposits}
    assert outcomes == {
        fd_zero: DepositOutcome.SKIPPED_NO_INTEREST,
        fd_negative: DepositOutcome.SKIPPED_NO_INTEREST,
    }
    assert result.status == AccrualStatus.NOTHING_CREDITED
    assert balance_of(session_factory, acc_zero) == Decimal("1000.00")
    assert balance_of(session_factory, acc_negative) == Decimal("1000.00")
    assert count_rows(session_factory, FDInterestCalculation) == 0
    assert count_rows(session_factory, Transaction) == 0
    assert count_rows(session_factory, FDInterestPeriod) == 0


def test_deposits_sharing_an_account_both_credit(bank, session_factory, accrual_engine):
    bank.employee("Admin")
    shared = bank.account(balance="0.00")
    bank.fixed_deposit(principal="100000.00", account_id=shared)
    bank.fixed_deposit(principal="50000.00", rate="10.00", account_id=shared)

    result = accrual_engine.run(RUN_TIME)

    assert result.credited == 2
    assert balance_of(session_factory, shared) == Decimal("1397.26")


def test_actor_falls_back_to_non_admin(bank, session_factory, accrual_engine):
    agent = bank.employee("Agent")
    _, account_id = bank.fixed_deposit()

    accrual_engine.run(RUN_TIME)

    with session_factory() as s:
        txn = s.query(Transaction).filter(Transaction.account_id == account_id).one()
    assert txn.employee_id == agent


def test_configured_system_actor_is_used(bank, session_factory):
    bank.employee("Admin")
    system = bank.employee("Manager", employee_id="SYS001")
    _, account_id = bank.fixed_deposit()
    engine = InterestAccrualEngine(
        uow_factory=lambda: SqlAlchemyUnitOfWork(session_factory),
        system_actor_id=system,
    )

    engine.run(RUN_TIME)

    with session_factory() as s:
        txn = s.query(Transaction).filter(Transaction.account_id == account_id).one()
    assert txn.employee_id == "SYS001"


def test_missing_configured_actor_aborts_without_writes(bank, session_factory):
    bank.employee("Admin")
    _, account_id = bank.fixed_deposit()
    engine = InterestAccrualEngine(
        uow_factory=lambda: SqlAlchemyUnitOfWork(session_factory),
        system_actor_id="NOPE",
    )

    with pytest.raises(SystemActorUnavailableError):
        engine.run(RUN_TIME)

    assert balance_of(session_factory, account_id) == Decimal("1000.00")
    assert count_rows(session_factory, FDInterestCalculation) == 0
    assert count_rows(session_factory, FDInterestPeriod) == 0


def test_no_employees_aborts_run(bank, session_factory, accrual_engine):
    bank.fixed_deposit()

    with pytest.raises(SystemActorUnavailableError):
        accrual_engine.run(RUN_TIME)

    assert count_rows(session_factory, FDInterestPeriod) == 0


def test_storage_unavailable_propagates():
    """Database unreachable: the run aborts before touching anything"""
    unreachable = sessionmaker(bind=create_engine("sqlite:////nonexistent-dir/fd/interest.db"))
    engine = InterestAccrualEngine(uow_factory=lambda: SqlAlchemyUnitOfWork(unreachable))

    with pytest.raises(StorageUnavailableError):
        engine.run(RUN_TIME)


def test_concurrent_runs_credit_once(bank, session_factory, accrual_engine):
    """Scheduled and manual trigger racing for the same month"""
    bank.employee("Admin")
    _, account_id = bank.fixed_deposit(principal="100000.00")
    results = []

    def trigger():
        results.append(accrual_engine.run(RUN_TIME))

    threads = [threading.Thread(target=trigger) for _ in range(2)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    statuses = sorted(r.status.value for r in results)
    assert statuses == ["already_processed", "processed"]
    assert balance_of(session_factory, account_id) == Decimal("1986.30")
    assert count_rows(session_factory, Transaction) == 1

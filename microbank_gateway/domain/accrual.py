"""Interest accrual engine - monthly FD interest crediting with period and deposit idempotence"""

import logging
import threading
from datetime import datetime
from decimal import Decimal
from typing import Callable, Optional
from microbank_gateway.domain.exceptions import DepositCreditFailure, SystemActorUnavailableError
from microbank_gateway.domain.interest import INTEREST_PERIOD_DAYS, compute_interest, previous_month_period
from microbank_gateway.domain.models import (
    AccrualPeriod,
    AccrualResult,
    AccrualStatus,
    DepositOutcome,
    DepositResult,
    FixedDepositSnapshot,
)

INTEREST_TRANSACTION_TYPE = "Interest"


class InterestAccrualEngine:
    """
    Credits one month of simple interest for every active fixed deposit.

    Flow for run(now):
    1. Target period = calendar month before `now`
    2. PeriodCheck: if the month is already processed, return ALREADY_PROCESSED
    3. For each active deposit, inside its own savepoint:
       skip if already credited this period, compute interest,
       credit linked savings account, append Interest transaction,
       record credited calculation. On any error record a failed row and move on.
    4. Commit the period only if at least one deposit was credited

    Steps 2-4 share one database transaction. Runs are serialized by
    `run_lock` in-process and by the unit of work's advisory lock across processes.

    Args:
        uow_factory: Returns a unit of work context manager exposing
            accounts, ledger, employees, deposits, calculations, periods,
            plus acquire_run_lock(), savepoint(), commit()
        period_days: Days of interest per monthly run
        system_actor_id: Employee the credits are attributed to; looked up when None
        lock_namespace: First key of the cross-process advisory lock
    """

    def __init__(
        self,
        uow_factory: Callable,
        period_days: int = INTEREST_PERIOD_DAYS,
        system_actor_id: Optional[str] = None,
        lock_namespace: int = 0,
        run_lock: Optional[threading.Lock] = None,
    ):
        self.uow_factory = uow_factory
        self.period_days = period_days
        self.system_actor_id = system_actor_id
        self.lock_namespace = lock_namespace
        self.run_lock = run_lock or threading.Lock()

    def run(self, now: datetime) -> AccrualResult:
        period = previous_month_period(now)
        with self.run_lock:
            with self.uow_factory() as uow:
                uow.acquire_run_lock(self.lock_namespace, period.lock_key)

                if uow.periods.is_period_processed(period.month, period.year):
                    logging.info(
                        "FD interest period already processed",
                        extra={"period_start": period.start.isoformat(), "step": "period_check"},
                    )
                    return AccrualResult(
                        status=AccrualStatus.ALREADY_PROCESSED,
                        period=period,
                        message=f"Interest for {period.start:%B %Y} has already been processed",
                    )

                result = self._process(uow, period, now)

                if result.credited > 0:
                    uow.periods.mark_period_processed(period.start, period.end, now)
                    result.period_committed = True

                uow.commit()
                return result

    def _process(self, uow, period: AccrualPeriod, now: datetime) -> AccrualResult:
        deposits = uow.deposits.list_active_fixed_deposits()
        results = []
        actor_id = None

        for deposit in deposits:
            if uow.calculations.has_credited(deposit.fd_id, period):
                results.append(DepositResult(deposit.fd_id, DepositOutcome.SKIPPED_ALREADY_CREDITED))
                continue

            interest = compute_interest(deposit.balance, deposit.annual_rate, self.period_days)
            if interest <= 0:
                results.append(DepositResult(deposit.fd_id, DepositOutcome.SKIPPED_NO_INTEREST))
                continue

            if actor_id is None:
                actor_id = self._resolve_actor(uow)

            results.append(self._credit_deposit(uow, deposit, period, interest, actor_id, now))

        return AccrualResult(
            status=self._final_status(results),
            period=period,
            message=self._summary_message(results, period),
            deposits=results,
        )

    def _credit_deposit(
        self,
        uow,
        deposit: FixedDepositSnapshot,
        period: AccrualPeriod,
        interest: Decimal,
        actor_id: str,
        now: datetime,
    ) -> DepositResult:
        try:
            with uow.savepoint():
                uow.accounts.credit(deposit.linked_account_id, interest)
                transaction_id = uow.ledger.append_transaction(
                    transaction_type=INTEREST_TRANSACTION_TYPE,
                    amount=interest,
                    timestamp=now,
                    description=f"Monthly FD Interest - {deposit.duration_class} plan ({deposit.fd_id})",
                    account_id=deposit.linked_account_id,
                    employee_id=actor_id,
                )
                uow.calculations.record_credited(deposit, period, interest, self.period_days, now)
        except Exception as e:
            failure = DepositCreditFailure(deposit.fd_id, str(e))
            logging.error(
                str(failure),
                extra={"fd_id": deposit.fd_id, "account_id": deposit.linked_account_id, "step": "credit"},
            )
            uow.calculations.record_failed(deposit, period, interest, self.period_days, now.date())
            return DepositResult(deposit.fd_id, DepositOutcome.FAILED, interest=interest, error=str(failure))

        return DepositResult(deposit.fd_id, DepositOutcome.CREDITED, interest=interest, transaction_id=transaction_id)

    def _resolve_actor(self, uow) -> str:
        """
        Employee identity recorded on Interest transactions.

        Configured system actor first, then the earliest Admin, then any
        employee. With no employees at all the run aborts before writing.
        """
        if self.system_actor_id is not None:
            if not uow.employees.exists(self.system_actor_id):
                raise SystemActorUnavailableError(
                    f"Configured system actor {self.system_actor_id} does not exist"
                )
            return self.system_actor_id

        actor_id = uow.employees.find_administrative_actor()
        if actor_id is not None:
            return actor_id

        actor_id = uow.employees.find_any_actor()
        if actor_id is None:
            raise SystemActorUnavailableError("No employee available to attribute interest credits to")

        logging.warning(
            "No Admin employee found; attributing FD interest to fallback employee",
            extra={"employee_id": actor_id, "step": "resolve_actor"},
        )
        return actor_id

    @staticmethod
    def _final_status(results: list[DepositResult]) -> AccrualStatus:
        if any(r.outcome == DepositOutcome.FAILED for r in results):
            return AccrualStatus.PARTIAL_FAILURE
        if any(r.outcome == DepositOutcome.CREDITED for r in results):
            return AccrualStatus.PROCESSED
        return AccrualStatus.NOTHING_CREDITED

    @staticmethod
    def _summary_message(results: list[DepositResult], period: AccrualPeriod) -> str:
        credited = [r for r in results if r.outcome == DepositOutcome.CREDITED]
        failed = sum(1 for r in results if r.outcome == DepositOutcome.FAILED)
        total = sum((r.interest for r in credited), Decimal("0.00"))

        if not credited and not failed:
            return f"No interest to credit for {period.start:%B %Y}"
        message = f"Credited interest to {len(credited)} fixed deposits for {period.start:%B %Y} (total {total:.2f})"
        if failed:
            message += f"; {failed} failed"
        return message

"""/fd-interest - manual accrual trigger, summary and audit history (administrator-only)"""

import logging
from datetime import datetime
from typing import Callable
from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from microbank_gateway.api.schemas import (
    ActiveFDSummary,
    CalculationHistoryResponse,
    CalculationItem,
    PeriodSchema,
    ProcessedPeriod,
    ProcessNowResponse,
    SummaryResponse,
)
from microbank_gateway.api.dependencies import (
    get_accrual_engine,
    get_clock,
    get_interest_scheduler,
    get_request_id,
    require_admin,
)
from microbank_gateway.config import settings
from microbank_gateway.domain.accrual import InterestAccrualEngine
from microbank_gateway.domain.exceptions import StorageUnavailableError, SystemActorUnavailableError
from microbank_gateway.domain.models import AccrualStatus
from microbank_gateway.infrastructure.database.session import get_db
from microbank_gateway.infrastructure.database.repositories import (
    FixedDepositRepository,
    InterestCalculationRepository,
    PeriodRepository,
)
from microbank_gateway.infrastructure.scheduling import InterestScheduler, run_accrual

router = APIRouter(prefix="/fd-interest", dependencies=[Depends(require_admin)])


@router.post("/process-now", response_model=ProcessNowResponse)
def process_now(
    request: Request,
    engine: InterestAccrualEngine = Depends(get_accrual_engine),
    clock: Callable[[], datetime] = Depends(get_clock),
):
    """
    Run the monthly accrual for the previous month immediately.

    Returns:
        200 with credited count, total interest and period on success
        400 when the month has already been processed
        500 when the run could not complete or every deposit failed
    """
    request_id = get_request_id(request)

    try:
        result = run_accrual(engine, clock(), trigger="manual")

    except (StorageUnavailableError, SystemActorUnavailableError) as e:
        logging.error(f"FD interest run aborted: {e}", extra={"request_id": request_id})
        return JSONResponse(
            status_code=500,
            content={"message": "FD interest processing failed", "error": str(e)},
        )

    except Exception as e:
        logging.error(f"Unexpected error: {e}", extra={"request_id": request_id})
        return JSONResponse(
            status_code=500,
            content={"message": "FD interest processing failed", "error": "Internal server error"},
        )

    if result.status == AccrualStatus.ALREADY_PROCESSED:
        return JSONResponse(
            status_code=400,
            content={"message": "already processed this month", "note": result.message},
        )

    if result.status == AccrualStatus.PARTIAL_FAILURE and result.credited == 0:
        # Every attempted deposit failed; the month stays open for a retry
        return JSONResponse(
            status_code=500,
            content={"message": "FD interest processing failed", "error": result.message},
        )

    return ProcessNowResponse(
        message=result.message,
        status=result.status.value,
        processed_count=result.credited,
        failed_count=result.failed,
        skipped_count=result.skipped,
        total_interest=float(result.total_interest),
        period=PeriodSchema(start=result.period.start, end=result.period.end),
    )


@router.get("/summary", response_model=SummaryResponse)
def get_summary(
    db: Session = Depends(get_db),
    scheduler: InterestScheduler = Depends(get_interest_scheduler),
    clock: Callable[[], datetime] = Depends(get_clock),
):
    """
    Dashboard figures for FD interest.

    Returns:
        Interest credited this month, active deposit totals,
        recently processed periods and the next automatic run
    """
    now = clock()
    count, total_value = FixedDepositRepository(db).active_summary()
    monthly_interest = InterestCalculationRepository(db).total_credited_in_month(now.date())
    periods = PeriodRepository(db).recent_periods(limit=settings.recent_periods_limit)

    return SummaryResponse(
        monthly_interest=float(monthly_interest),
        active_fds=ActiveFDSummary(count=count, total_value=float(total_value)),
        recent_periods=[
            ProcessedPeriod(
                period_start=p.period_start,
                period_end=p.period_end,
                processed_at=p.processed_at,
            )
            for p in periods
        ],
        next_scheduled_run=scheduler.next_run_time(now).isoformat(),
    )


@router.get("/calculations/{fd_id}", response_model=CalculationHistoryResponse)
def get_calculations(fd_id: str, db: Session = Depends(get_db)):
    """Interest audit rows for one fixed deposit, newest period first"""
    rows = InterestCalculationRepository(db).list_for_deposit(fd_id)

    return CalculationHistoryResponse(
        fd_id=fd_id,
        calculations=[
            CalculationItem(
                id=str(row.id),
                period_start=row.period_start,
                calculation_date=row.calculation_date,
                interest_amount=float(row.interest_amount),
                days_calculated=row.days_calculated,
                credited_to_account_id=row.credited_to_account_id,
                status=row.status,
                credited_at=row.credited_at,
            )
            for row in rows
        ],
    )

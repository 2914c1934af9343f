"""Pydantic schemas for API responses"""

from pydantic import BaseModel
from datetime import date, datetime
from typing import List, Optional


class PeriodSchema(BaseModel):
    """Date range of the month an accrual run targeted"""

    start: date
    end: date


class ProcessNowResponse(BaseModel):
    """Response for POST /fd-interest/process-now"""

    message: str
    status: str
    processed_count: int
    failed_count: int
    skipped_count: int
    total_interest: float
    period: PeriodSchema


class ActiveFDSummary(BaseModel):
    count: int
    total_value: float


class ProcessedPeriod(BaseModel):
    period_start: date
    period_end: date
    processed_at: datetime


class SummaryResponse(BaseModel):
    """Response for GET /fd-interest/summary"""

    monthly_interest: float
    active_fds: ActiveFDSummary
    recent_periods: List[ProcessedPeriod]
    next_scheduled_run: str


class CalculationItem(BaseModel):
    """Single interest audit row"""

    id: str
    period_start: date
    calculation_date: date
    interest_amount: float
    days_calculated: int
    credited_to_account_id: str
    status: str
    credited_at: Optional[datetime] = None


class CalculationHistoryResponse(BaseModel):
    """Response for GET /fd-interest/calculations/{fd_id}"""

    fd_id: str
    calculations: List[CalculationItem]

"""Simple-interest calculator and period arithmetic for monthly FD accrual"""

import calendar
from datetime import date, datetime
from decimal import Decimal, ROUND_HALF_UP
from microbank_gateway.domain.models import AccrualPeriod

# Every month is treated as exactly 30 days for interest purposes
INTEREST_PERIOD_DAYS = 30
DAYS_PER_YEAR = 365
CENT = Decimal("0.01")


def compute_interest(principal: Decimal, annual_rate_percent: Decimal, period_days: int) -> Decimal:
    """
    Simple interest on a principal for a number of days.

    daily_rate = annual_rate_percent / 100 / 365
    interest   = round(principal * daily_rate * period_days, 2)

    Example:
        100000 at 12% for 30 days -> 986.30

    Zero principal gives 0.00. A negative rate yields a negative amount;
    callers treat anything <= 0 as nothing to credit.
    """
    principal = Decimal(principal)
    if principal == 0 or period_days <= 0:
        return Decimal("0.00")

    daily_rate = Decimal(annual_rate_percent) / Decimal(100) / Decimal(DAYS_PER_YEAR)
    interest = principal * daily_rate * Decimal(period_days)
    return interest.quantize(CENT, rounding=ROUND_HALF_UP)


def previous_month_period(now: datetime | date) -> AccrualPeriod:
    """First and last day of the calendar month before `now`"""
    if now.month == 1:
        year, month = now.year - 1, 12
    else:
        year, month = now.year, now.month - 1

    last_day = calendar.monthrange(year, month)[1]
    return AccrualPeriod(start=date(year, month, 1), end=date(year, month, last_day))


def month_bounds(day: date) -> tuple[date, date]:
    """First and last day of the month containing `day`"""
    last_day = calendar.monthrange(day.year, day.month)[1]
    return date(day.year, day.month, 1), date(day.year, day.month, last_day)

"""Dependency injection for FastAPI endpoints"""

from datetime import datetime
from typing import Callable
from zoneinfo import ZoneInfo
from fastapi import Header, Request
from microbank_gateway.config import settings
from microbank_gateway.domain.accrual import InterestAccrualEngine
from microbank_gateway.domain.exceptions import AuthorizationDenied
from microbank_gateway.infrastructure.scheduling import InterestScheduler

ADMIN_ROLE = "Admin"


def get_request_id(request: Request) -> str:
    """Extract request ID from request state"""
    return getattr(request.state, "request_id", "unknown")


def require_admin(x_employee_role: str | None = Header(default=None)) -> str:
    """
    Role check for administrator-only endpoints.

    Authentication happens upstream; the gateway forwards the verified
    role in X-Employee-Role.
    """
    if x_employee_role != ADMIN_ROLE:
        raise AuthorizationDenied("Admin access required")
    return x_employee_role


def get_clock() -> Callable[[], datetime]:
    """Current time in the bank's timezone"""
    tz = ZoneInfo(settings.timezone)
    return lambda: datetime.now(tz)


def get_accrual_engine(request: Request) -> InterestAccrualEngine:
    """Provide the process-wide accrual engine built at startup"""
    return request.app.state.accrual_engine


def get_interest_scheduler(request: Request) -> InterestScheduler:
    """Provide the monthly trigger registered at startup"""
    return request.app.state.interest_scheduler

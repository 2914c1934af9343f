"""FastAPI application factory"""

import logging
import threading
from contextlib import asynccontextmanager
from typing import Callable, Optional

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from prometheus_client import generate_latest, CONTENT_TYPE_LATEST
from sqlalchemy.orm import Session
from starlette.responses import Response

from microbank_gateway.api.middleware import RequestIDMiddleware, MetricsMiddleware
from microbank_gateway.api import fd_interest
from microbank_gateway.config import settings
from microbank_gateway.domain.accrual import InterestAccrualEngine
from microbank_gateway.domain.exceptions import AuthorizationDenied
from microbank_gateway.infrastructure.database.models import Base
from microbank_gateway.infrastructure.database.session import SessionLocal
from microbank_gateway.infrastructure.database.unit_of_work import SqlAlchemyUnitOfWork
from microbank_gateway.infrastructure.observability.logging import setup_logging
from microbank_gateway.infrastructure.scheduling import InterestScheduler

# Setup structured logging
setup_logging(settings.log_level)


def build_accrual_engine(session_factory: Callable[[], Session]) -> InterestAccrualEngine:
    """Engine shared by the monthly schedule and the manual trigger"""
    return InterestAccrualEngine(
        uow_factory=lambda: SqlAlchemyUnitOfWork(session_factory),
        period_days=settings.interest_period_days,
        system_actor_id=settings.system_actor_id,
        lock_namespace=settings.accrual_lock_namespace,
        run_lock=threading.Lock(),
    )


def create_app(
    session_factory: Optional[Callable[[], Session]] = None,
    scheduler_enabled: Optional[bool] = None,
) -> FastAPI:
    """Create and configure FastAPI application"""
    session_factory = session_factory or SessionLocal
    if scheduler_enabled is None:
        scheduler_enabled = settings.scheduler_enabled

    engine = build_accrual_engine(session_factory)
    interest_scheduler = InterestScheduler(engine)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if settings.auto_create_schema:
            Base.metadata.create_all(bind=session_factory.kw["bind"])
        if scheduler_enabled:
            interest_scheduler.start()
        yield
        interest_scheduler.shutdown(wait=False)

    app = FastAPI(
        title="Microbank Gateway",
        description="Fixed deposit interest accrual service",
        version="0.1.0",
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan,
    )
    app.state.accrual_engine = engine
    app.state.interest_scheduler = interest_scheduler

    # Add middleware (order matters: last added = first executed)
    app.add_middleware(MetricsMiddleware)
    app.add_middleware(RequestIDMiddleware)

    @app.exception_handler(AuthorizationDenied)
    async def authorization_denied_handler(request: Request, exc: AuthorizationDenied):
        logging.warning(f"Authorization denied: {exc}", extra={"path": request.url.path})
        return JSONResponse(status_code=403, content={"message": str(exc)})

    # Health check endpoint
    @app.get("/health")
    def health_check():
        return {"status": "ok", "service": settings.service_name}

    # Prometheus metrics endpoint
    @app.get("/metrics")
    def metrics():
        return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)

    # Register API routers
    app.include_router(fd_interest.router, tags=["fd-interest"])

    return app


app = create_app()

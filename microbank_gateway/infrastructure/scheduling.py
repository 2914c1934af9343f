"""Monthly FD interest trigger using APScheduler"""

import logging
import time
from datetime import datetime, timedelta
from typing import Callable, Optional
from zoneinfo import ZoneInfo
from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.cron import CronTrigger
from microbank_gateway.config import settings
from microbank_gateway.domain.accrual import InterestAccrualEngine
from microbank_gateway.domain.models import AccrualResult
from microbank_gateway.infrastructure.observability.logging import log_accrual_run
from microbank_gateway.infrastructure.observability.metrics import record_accrual_run, record_accrual_error

JOB_ID = "monthly_fd_interest"


def run_accrual(engine: InterestAccrualEngine, now: datetime, trigger: str) -> AccrualResult:
    """Run the engine once and record logs/metrics for the outcome; errors propagate"""
    start_time = time.time()
    try:
        result = engine.run(now)
    except Exception:
        record_accrual_error(trigger)
        raise

    duration = time.time() - start_time
    record_accrual_run(trigger, result, duration)
    log_accrual_run(trigger, result, duration * 1000)
    return result


class InterestScheduler:
    """
    Fires the accrual engine once a month (default: day 1 at 03:00).

    The engine is injected at service startup; nothing is registered at import time.
    """

    def __init__(
        self,
        engine: InterestAccrualEngine,
        timezone: str | None = None,
        day: int | None = None,
        hour: int | None = None,
        minute: int | None = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.engine = engine
        self.timezone = ZoneInfo(timezone or settings.timezone)
        self.trigger = CronTrigger(
            day=day if day is not None else settings.schedule_day,
            hour=hour if hour is not None else settings.schedule_hour,
            minute=minute if minute is not None else settings.schedule_minute,
            timezone=self.timezone,
        )
        self.clock = clock or (lambda: datetime.now(self.timezone))
        self.scheduler: Optional[BackgroundScheduler] = None

    def start(self) -> None:
        if self.scheduler is not None:
            logging.warning("FD interest scheduler already running")
            return

        self.scheduler = BackgroundScheduler(timezone=self.timezone)
        self.scheduler.add_job(
            self.run_scheduled_accrual,
            self.trigger,
            id=JOB_ID,
            name="Monthly FD interest accrual",
            replace_existing=True,
            max_instances=1,
            coalesce=True,
        )
        self.scheduler.start()
        logging.info(
            "FD interest scheduler started",
            extra={"next_run": self.next_run_time().isoformat()},
        )

    def shutdown(self, wait: bool = True) -> None:
        if self.scheduler is None:
            return
        self.scheduler.shutdown(wait=wait)
        self.scheduler = None
        logging.info("FD interest scheduler stopped")

    @property
    def running(self) -> bool:
        return self.scheduler is not None and self.scheduler.running

    def next_run_time(self, now: datetime | None = None) -> datetime:
        """Next fire time strictly after `now`; computed from the trigger when the scheduler isn't started"""
        if now is None and self.running:
            job = self.scheduler.get_job(JOB_ID)
            if job is not None and job.next_run_time is not None:
                return job.next_run_time
        return self.trigger.get_next_fire_time(None, (now or self.clock()) + timedelta(seconds=1))

    def run_scheduled_accrual(self) -> Optional[AccrualResult]:
        """Scheduler job body: logs the outcome, never raises"""
        try:
            return run_accrual(self.engine, self.clock(), trigger="scheduled")
        except Exception as e:
            logging.exception(f"Scheduled FD interest run failed: {e}", extra={"step": "scheduled_run"})
            return None

"""Structured JSON logging for production observability"""

import logging
import sys
from datetime import datetime, timezone
from typing import Any, Dict
from pythonjsonlogger import jsonlogger
from microbank_gateway.config import settings
from microbank_gateway.domain.models import AccrualResult


class CustomJsonFormatter(jsonlogger.JsonFormatter):
    """Custom JSON formatter with timestamp and service metadata"""

    def add_fields(self, log_record: Dict[str, Any], record: logging.LogRecord, message_dict: Dict[str, Any]) -> None:
        super().add_fields(log_record, record, message_dict)
        log_record["timestamp"] = datetime.now(timezone.utc).isoformat()
        log_record["level"] = record.levelname
        log_record["service"] = settings.service_name


def setup_logging(level: str = "INFO") -> None:
    """Configure structured JSON logging"""
    logger = logging.getLogger()
    logger.setLevel(level)

    # Remove existing handlers
    logger.handlers.clear()

    # JSON handler for stdout
    handler = logging.StreamHandler(sys.stdout)
    formatter = CustomJsonFormatter(
        "%(timestamp)s %(level)s %(name)s %(message)s"
    )
    handler.setFormatter(formatter)
    logger.addHandler(handler)


def log_accrual_run(trigger: str, result: AccrualResult, duration_ms: float) -> None:
    """Log structured accrual run outcome; `trigger` is scheduled or manual"""
    logging.info(
        "FD interest run completed",
        extra={
            "trigger": trigger,
            "step": "accrual_complete",
            "outcome": result.status.value,
            "period_start": result.period.start.isoformat(),
            "period_end": result.period.end.isoformat(),
            "credited_count": result.credited,
            "failed_count": result.failed,
            "skipped_count": result.skipped,
            "total_interest": str(result.total_interest),
            "period_committed": result.period_committed,
            "duration_ms": duration_ms,
        },
    )

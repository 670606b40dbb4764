"""Structured JSON logging for production observability"""

import logging
import sys
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from pythonjsonlogger import jsonlogger

SERVICE_NAME = "veritas-analyzer"


class CustomJsonFormatter(jsonlogger.JsonFormatter):
    """Custom JSON formatter with timestamp and service metadata"""

    def add_fields(self, log_record: Dict[str, Any], record: logging.LogRecord, message_dict: Dict[str, Any]) -> None:
        super().add_fields(log_record, record, message_dict)
        log_record["timestamp"] = datetime.now(timezone.utc).isoformat()
        log_record["level"] = record.levelname
        log_record["service"] = SERVICE_NAME


def setup_logging(level: str = "INFO") -> None:
    """Configure structured JSON logging"""
    logger = logging.getLogger()
    logger.setLevel(level)

    logger.handlers.clear()

    handler = logging.StreamHandler(sys.stdout)
    formatter = CustomJsonFormatter("%(timestamp)s %(level)s %(name)s %(message)s")
    handler.setFormatter(formatter)
    logger.addHandler(handler)


def log_analysis(
    statement_id: str,
    outcome: str,
    duration_ms: float,
    veritas_score: Optional[int] = None,
    grade: Optional[str] = None,
    transaction_count: int = 0,
    warning_count: int = 0,
    budget_exhausted_stage: Optional[str] = None,
) -> None:
    """Log structured analysis outcome"""
    logging.getLogger("veritas_analyzer.pipeline").info(
        "Analysis completed",
        extra={
            "statement_id": statement_id,
            "step": "analysis_complete",
            "outcome": outcome,
            "veritas_score": veritas_score,
            "grade": grade,
            "transaction_count": transaction_count,
            "warning_count": warning_count,
            "budget_exhausted_stage": budget_exhausted_stage,
            "duration_ms": duration_ms,
        },
    )

"""
structlog configuration for the API process and the worker.

Every record is one JSON line carrying level, logger name and an ISO
timestamp, plus whatever was bound through ``structlog.contextvars``
(the pipeline binds ``run_id`` and ``user_id`` for the length of a run).
"""

import logging
import sys

import structlog
from structlog.stdlib import LoggerFactory

_QUIET_LOGGERS = ("httpx", "httpcore", "openai", "uvicorn.access")


def setup_logging(log_level: str = "INFO") -> None:
    """
    Configure structlog and the stdlib root logger.

    Args:
        log_level: DEBUG, INFO, WARNING, ERROR or CRITICAL
    """
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.add_log_level,
            structlog.stdlib.add_logger_name,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        logger_factory=LoggerFactory(),
        context_class=dict,
        cache_logger_on_first_use=True,
    )

    logging.basicConfig(format="%(message)s", stream=sys.stdout, level=getattr(logging, log_level.upper()))

    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def get_logger(name: str | None = None) -> structlog.stdlib.BoundLogger:
    return structlog.get_logger(name)


def log_pipeline_event(
    meeting_id: str,
    outcome: str,
    confidence: float | None = None,
    reason: str | None = None,
    user_id: str | None = None,
) -> None:
    """
    One line per meeting decision: posted, review, duplicate, skipped or failed.

    run_id/user_id come from the bound context when the pipeline is running.
    """
    fields = {"meeting_id": meeting_id, "outcome": outcome, "event_type": "meeting_outcome"}
    if confidence is not None:
        fields["confidence"] = round(confidence, 3)
    if reason:
        fields["reason"] = reason
    if user_id:
        fields["user_id"] = user_id

    log = get_logger("timesync.pipeline")
    if outcome == "failed":
        log.warning("Meeting outcome", **fields)
    else:
        log.info("Meeting outcome", **fields)


def log_request(method: str, path: str, status_code: int, duration_ms: float, user_id: str | None = None) -> None:
    """Access log line for the HTTP middleware."""
    fields = {
        "method": method,
        "path": path,
        "status_code": status_code,
        "duration_ms": duration_ms,
        "event_type": "http_request",
    }
    if user_id:
        fields["user_id"] = user_id

    log = get_logger("timesync.http")
    if status_code >= 500:
        log.error("HTTP request", **fields)
    elif status_code >= 400:
        log.warning("HTTP request", **fields)
    else:
        log.info("HTTP request", **fields)

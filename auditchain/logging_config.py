"""
Operational logging configuration.

This is the non-audit log channel: append failures, drops, migrations,
enforcer installs and verification outcomes go here. Audit payloads never
do, beyond action names and entry ids.

Usage:
    from auditchain.logging_config import setup_logging, get_logger

    setup_logging()
    logger = get_logger(__name__, trace_id="req-12345")
    logger.info("Verifying audit chain")
"""

import logging
import sys
from typing import Optional

from pythonjsonlogger.json import JsonFormatter

from .config import Settings

LEVELS = {
    "DEBUG": logging.DEBUG,
    "INFO": logging.INFO,
    "WARNING": logging.WARNING,
    "ERROR": logging.ERROR,
    "CRITICAL": logging.CRITICAL,
}


class TraceIDFilter(logging.Filter):
    """Ensure every record has a trace_id field, even outside a LoggerAdapter."""

    def filter(self, record: logging.LogRecord) -> bool:
        if not hasattr(record, "trace_id"):
            record.trace_id = "N/A"  # type: ignore
        return True


def setup_logging(level: Optional[str] = None, fmt: Optional[str] = None) -> None:
    """
    Configure the root logger.

    Args:
        level: Log level name (default: AUDITCHAIN_LOG_LEVEL)
        fmt: "json" or "text" (default: AUDITCHAIN_LOG_FORMAT)
    """
    settings = Settings.from_env()
    log_level = LEVELS.get((level or settings.log_level).upper(), logging.INFO)
    log_format = (fmt or settings.log_format).lower()

    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    handler = logging.StreamHandler(sys.stderr)
    handler.setLevel(log_level)
    handler.addFilter(TraceIDFilter())

    if log_format == "json":
        formatter: logging.Formatter = JsonFormatter(
            "%(asctime)s %(name)s %(levelname)s %(message)s %(trace_id)s",
            rename_fields={
                "asctime": "timestamp",
                "name": "logger",
                "levelname": "level",
            },
        )
    else:
        formatter = logging.Formatter(
            "%(asctime)s - %(name)s - %(levelname)s - %(message)s [trace_id=%(trace_id)s]",
            datefmt="%Y-%m-%d %H:%M:%S",
        )

    handler.setFormatter(formatter)
    root_logger.addHandler(handler)

    logging.getLogger("sqlalchemy").setLevel(logging.WARNING)
    logging.getLogger("botocore").setLevel(logging.WARNING)


def get_logger(name: str, trace_id: Optional[str] = None) -> logging.LoggerAdapter:
    """
    Get a logger carrying a trace_id for correlation.

    Args:
        name: Logger name (typically __name__)
        trace_id: Correlation id (request id, verification run id)
    """
    return logging.LoggerAdapter(logging.getLogger(name), {"trace_id": trace_id or "N/A"})

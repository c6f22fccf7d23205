"""Structured logging configuration for marketplace-engine."""

import json
import logging
import sys
from datetime import datetime, timezone
from typing import Any, TextIO

# Third-party loggers kept at WARNING
NOISY_LOGGERS = ("confluent_kafka", "faker")

STANDARD_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"


def setup_logging(
    level: str = "INFO",
    format_type: str = "standard",
    stream: TextIO | None = None,
) -> None:
    """Configure the root logger for marketplace-engine.

    Parameters
    ----------
    level : str
        Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL). Unknown names
        fall back to INFO.
    format_type : str
        "standard" for human-readable lines or "json" for one JSON object
        per record.
    stream : TextIO | None
        Output stream (default stdout).
    """
    log_level = getattr(logging, level.upper(), logging.INFO)

    if format_type == "json":
        formatter: logging.Formatter = JsonFormatter()
    else:
        formatter = logging.Formatter(fmt=STANDARD_FORMAT, datefmt="%Y-%m-%d %H:%M:%S")

    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    handler = logging.StreamHandler(stream or sys.stdout)
    handler.setLevel(log_level)
    handler.setFormatter(formatter)
    root_logger.addHandler(handler)

    logging.getLogger("marketplace_engine").setLevel(log_level)
    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def log_extra(**fields: Any) -> dict[str, Any]:
    """Entity identifiers for ``logger.x(..., extra=log_extra(offer_id=...))``.

    JsonFormatter lifts them to top-level keys of the record.
    """
    return {"extra": fields}


class JsonFormatter(logging.Formatter):
    """JSON log formatter for structured logging."""

    def format(self, record: logging.LogRecord) -> str:
        """Format log record as JSON."""
        log_data: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        fields = getattr(record, "extra", None)
        if isinstance(fields, dict):
            log_data.update(fields)

        return json.dumps(log_data, default=str)


def get_logger(name: str) -> logging.Logger:
    """Get a logger under the ``marketplace_engine`` hierarchy.

    Names outside the package (scripts run as ``__main__``, say) are nested
    under it, so the level set by ``setup_logging`` applies to them too.

    Parameters
    ----------
    name : str
        Logger name (usually ``__name__``).
    """
    if name != "marketplace_engine" and not name.startswith("marketplace_engine."):
        name = f"marketplace_engine.{name}"
    return logging.getLogger(name)

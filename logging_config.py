"""
Logging configuration for CareNav API
Provides structured logging for production monitoring
"""

import logging
import json
import sys
from datetime import datetime, timezone
from typing import Any, Dict, Optional


# Structured fields copied from `extra=` into the JSON payload
_EXTRA_FIELDS = (
    "request_id",
    "lat",
    "lon",
    "api_name",
    "endpoint",
    "error_type",
    "response_time",
    "category",
    "cache_key",
    "place_count",
    "severity",
    "operation",
)


class JSONFormatter(logging.Formatter):
    """Custom JSON formatter for structured logging."""

    def format(self, record: logging.LogRecord) -> str:
        """Format log record as JSON."""
        log_entry = {
            "timestamp": datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
        }

        for field in _EXTRA_FIELDS:
            if hasattr(record, field):
                log_entry[field] = getattr(record, field)

        # Add exception info if present
        if record.exc_info:
            log_entry['exception'] = self.formatException(record.exc_info)

        return json.dumps(log_entry, default=str)


def setup_logging(level: str = "INFO", json_format: bool = True) -> None:
    """
    Set up logging configuration for the application.

    Args:
        level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        json_format: Whether to use JSON formatting for structured logs
    """
    numeric_level = getattr(logging, level.upper(), logging.INFO)

    if json_format:
        formatter = JSONFormatter()
    else:
        formatter = logging.Formatter(
            '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
        )

    root_logger = logging.getLogger()
    root_logger.setLevel(numeric_level)

    # Remove existing handlers
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(numeric_level)
    console_handler.setFormatter(formatter)
    root_logger.addHandler(console_handler)

    # Quiet noisy third-party loggers
    logging.getLogger("uvicorn").setLevel(logging.WARNING)
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    logging.getLogger("urllib3").setLevel(logging.WARNING)
    logging.getLogger("requests").setLevel(logging.WARNING)

    logging.getLogger("carenav").setLevel(numeric_level)


def get_logger(name: str) -> logging.Logger:
    """
    Get a logger instance with the given name.

    Args:
        name: Logger name (typically __name__)

    Returns:
        Logger instance
    """
    return logging.getLogger(f"carenav.{name}")


def _fields(request_id: Optional[str], **fields) -> Dict[str, Any]:
    """`extra=` payload; request_id only when the caller has one."""
    if request_id:
        fields["request_id"] = request_id
    return fields


def log_api_call(logger: logging.Logger, api_name: str, endpoint: str,
                 request_id: Optional[str] = None, **kwargs):
    """Outbound provider call (overpass, osrm, nominatim), at DEBUG."""
    logger.debug(f"API call to {api_name}: {endpoint}",
                 extra=_fields(request_id, api_name=api_name, endpoint=endpoint, **kwargs))


def log_error(logger: logging.Logger, error_type: str, message: str,
              request_id: Optional[str] = None, level: int = logging.WARNING, **kwargs):
    """
    Log an error that was absorbed into a degraded result.

    `error_type` is the exception class name (ProviderTimeout, DataShapeError, ...).
    Degraded results are expected under provider outages, hence WARNING.
    """
    logger.log(level, message, extra=_fields(request_id, error_type=error_type, **kwargs))


def log_performance(logger: logging.Logger, operation: str, duration: float,
                    request_id: Optional[str] = None, **kwargs):
    logger.info(f"Performance: {operation} took {duration:.2f}s",
                extra=_fields(request_id, operation=operation, response_time=round(duration, 3), **kwargs))


def log_recommendation(logger: logging.Logger, place_name: Optional[str],
                       candidate_count: int, emergency: bool,
                       request_id: Optional[str] = None, **kwargs):
    """Outcome of one recommendation; place_name is None when nothing qualified."""
    extra = _fields(
        request_id,
        place_count=candidate_count,
        severity="emergency" if emergency else "non_emergency",
        **kwargs
    )
    if place_name is None:
        logger.info(f"No recommendation from {candidate_count} candidates", extra=extra)
    else:
        logger.info(f"Recommended {place_name} from {candidate_count} candidates", extra=extra)

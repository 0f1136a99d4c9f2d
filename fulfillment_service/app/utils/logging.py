"""
Fulfillment Service Independent Logging Module
==============================================
Self-contained JSON logging setup for the Fulfillment Service.
"""

import json
import logging
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import List, Optional

# Attributes every LogRecord carries; anything else arrived through ``extra``.
_RESERVED_RECORD_FIELDS = frozenset(
    [
        "name",
        "msg",
        "args",
        "levelname",
        "levelno",
        "pathname",
        "filename",
        "module",
        "lineno",
        "funcName",
        "created",
        "msecs",
        "relativeCreated",
        "thread",
        "threadName",
        "processName",
        "process",
        "taskName",
        "getMessage",
        "exc_info",
        "exc_text",
        "stack_info",
    ]
)


class FulfillmentJSONFormatter(logging.Formatter):
    """JSON formatter for Fulfillment Service structured logging"""

    def __init__(
        self,
        service_name: str = "fulfillment_service",
        exclude_fields: Optional[List[str]] = None,
    ):
        super().__init__()
        self.service_name = service_name
        self.exclude_fields = set(exclude_fields or [])

    def format(self, record: logging.LogRecord) -> str:
        log_entry = {
            "timestamp": self.formatTime(record),
            "level": record.levelname,
            "service": self.service_name,
            "logger": record.name,
            "message": record.getMessage(),
        }

        for key, value in record.__dict__.items():
            if key in _RESERVED_RECORD_FIELDS or key in self.exclude_fields:
                continue
            log_entry[key] = value

        if record.exc_info:
            log_entry["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_entry, default=str, ensure_ascii=False)


def setup_fulfillment_logging(
    service_name: str = "fulfillment_service",
    log_level: str = "INFO",
    enable_file_logging: bool = False,
    log_dir: Optional[str] = None,
    max_file_size: int = 100 * 1024 * 1024,  # 100MB
    backup_count: int = 5,
    exclude_fields: Optional[List[str]] = None,
) -> logging.Logger:
    """
    Setup independent logging for a Fulfillment Service component

    Returns:
        Configured logger instance
    """
    logger = logging.getLogger(service_name)
    logger.setLevel(getattr(logging, log_level.upper()))

    # Clear existing handlers to avoid duplication
    logger.handlers.clear()

    json_formatter = FulfillmentJSONFormatter(exclude_fields=exclude_fields)

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(getattr(logging, log_level.upper()))
    console_handler.setFormatter(json_formatter)
    logger.addHandler(console_handler)

    if enable_file_logging:
        if log_dir is None:
            log_dir_path = Path(__file__).parent.parent / "logs"
        else:
            log_dir_path = Path(log_dir)

        log_dir_path.mkdir(exist_ok=True)

        file_handler = RotatingFileHandler(
            log_dir_path / f"{service_name}.log",
            maxBytes=max_file_size,
            backupCount=backup_count,
        )
        file_handler.setLevel(getattr(logging, log_level.upper()))
        file_handler.setFormatter(json_formatter)
        logger.addHandler(file_handler)

        # Errors also go to their own file
        error_handler = RotatingFileHandler(
            log_dir_path / f"{service_name}_errors.log",
            maxBytes=max_file_size,
            backupCount=backup_count,
        )
        error_handler.setLevel(logging.ERROR)
        error_handler.setFormatter(json_formatter)
        logger.addHandler(error_handler)

    logger.debug(
        "Fulfillment Service logging configured",
        extra={
            "log_level": log_level,
            "file_logging": enable_file_logging,
            "handlers": len(logger.handlers),
        },
    )

    return logger

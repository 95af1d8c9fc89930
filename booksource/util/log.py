"""
Structured logging for booksource.

structlog events are handed to the standard library root logger and
rendered by its handlers, so the console and the optional rotating log
file receive the same records. Libraries that log through ``logging``
directly (aiohttp, SQLAlchemy) are rendered the same way.
"""
import logging
import logging.handlers
import pathlib
import uuid
from typing import Any

import structlog

# Chatty at INFO; kept at WARNING unless the root level is higher.
NOISY_LOGGERS = ("aiohttp.access", "sqlalchemy.engine")

_SHARED_PROCESSORS: list[Any] = [
    structlog.contextvars.merge_contextvars,
    structlog.stdlib.add_log_level,
    structlog.stdlib.add_logger_name,
    structlog.processors.TimeStamper(fmt="iso", utc=True),
]


def _formatter(log_format: str) -> structlog.stdlib.ProcessorFormatter:
    if log_format.lower() == "json":
        render: list[Any] = [structlog.processors.format_exc_info, structlog.processors.JSONRenderer()]
    else:
        render = [structlog.dev.ConsoleRenderer()]
    return structlog.stdlib.ProcessorFormatter(
        foreign_pre_chain=_SHARED_PROCESSORS,
        processors=[structlog.stdlib.ProcessorFormatter.remove_processors_meta, *render],
    )


def setup_logging(
    log_level: str = "INFO",
    log_format: str = "text",
    log_file: str | None = None,
    config_dir: str = "/config",
) -> None:
    """
    Configure structured logging with optional JSON output and file rotation.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR)
        log_format: Log format ("text" or "json")
        log_file: Optional path to log file (relative to config_dir/logs)
        config_dir: Base configuration directory
    """
    level = getattr(logging, log_level.upper(), logging.INFO)

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            *_SHARED_PROCESSORS,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.StackInfoRenderer(),
            structlog.dev.set_exc_info,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=False,
    )

    formatter = _formatter(log_format)
    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    root_logger.handlers = []

    console_handler = logging.StreamHandler()
    console_handler.setFormatter(formatter)
    root_logger.addHandler(console_handler)

    if log_file:
        log_path = pathlib.Path(config_dir) / "logs"
        log_path.mkdir(parents=True, exist_ok=True)

        file_handler = logging.handlers.RotatingFileHandler(
            filename=log_path / log_file,
            maxBytes=100 * 1024 * 1024,  # 100MB
            backupCount=5,
        )
        file_handler.setFormatter(formatter)
        root_logger.addHandler(file_handler)

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(max(level, logging.WARNING))


def get_logger(**initial_values: Any) -> structlog.stdlib.BoundLogger:
    """Get a structured logger instance, optionally pre-bound with context."""
    return structlog.stdlib.get_logger(**initial_values)


logger = get_logger()


def request_logger(request_id: str | None = None, **fields: Any) -> structlog.stdlib.BoundLogger:
    """Logger bound to a single inbound request or queue message."""
    return logger.bind(request_id=request_id or uuid.uuid4().hex[:12], **fields)

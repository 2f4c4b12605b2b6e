"""Structured logging for the wrapper and the ngrok records it forwards."""

import logging
import sys
from collections.abc import MutableMapping
from typing import Any

import structlog
from structlog.typing import Processor

from .utils import sanitize_log_data

# Libraries that log every API round trip at DEBUG
NOISY_LOGGERS = ("urllib3",)


def mask_secrets(
    _logger: Any, _method_name: str, event_dict: MutableMapping[str, Any]
) -> MutableMapping[str, Any]:
    """structlog processor that masks auth tokens and similar fields."""
    return sanitize_log_data(dict(event_dict))


def build_processors(json_format: bool = False) -> list[Processor]:
    """Processor chain used by :func:`setup_logging`, renderer last."""
    processors: list[Processor] = [
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        mask_secrets,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
    ]
    if json_format:
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.dev.ConsoleRenderer())
    return processors


def setup_logging(
    level: str = "INFO",
    json_format: bool = False,
    log_file: str | None = None,
    quiet_libraries: bool = True,
) -> None:
    """Configure structured logging for applications using the wrapper.

    Records from the ngrok process are forwarded at DEBUG under the
    ``ngrok_wrapper.process.supervisor`` logger, so ``level="DEBUG"`` shows them.

    Args:
        level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        json_format: If True, output JSON formatted logs
        log_file: Optional file path to write logs to
        quiet_libraries: Keep urllib3 at WARNING even when ``level`` is lower
    """
    log_level = getattr(logging, level.upper())

    root_logger = logging.getLogger()
    root_logger.handlers = []
    root_logger.setLevel(log_level)

    handlers: list[logging.Handler] = [logging.StreamHandler(sys.stdout)]
    handlers[0].setFormatter(logging.Formatter("%(message)s"))
    if log_file:
        file_handler = logging.FileHandler(log_file)
        file_handler.setFormatter(
            logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")
        )
        handlers.append(file_handler)

    for handler in handlers:
        handler.setLevel(log_level)
        root_logger.addHandler(handler)

    if quiet_libraries:
        for name in NOISY_LOGGERS:
            logging.getLogger(name).setLevel(max(log_level, logging.WARNING))

    structlog.configure(
        processors=build_processors(json_format),
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    """Get a configured logger instance.

    Args:
        name: Logger name (usually __name__)

    Returns:
        Configured structlog logger
    """
    return structlog.get_logger(name)  # type: ignore[no-any-return]

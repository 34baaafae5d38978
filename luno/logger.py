"""
Structured logging setup.

All modules log through structlog bound loggers:

    from luno.logger import get_logger
    logger = get_logger(__name__)
    logger.info("budget_created", user_id=user.id)
"""
import logging
from typing import Any, Optional

import structlog

from luno.config import get_settings

_configured = False


def configure_logging(debug: Optional[bool] = None) -> None:
    """Configure structlog once per process."""
    global _configured
    if _configured:
        return

    if debug is None:
        debug = get_settings().DEBUG

    logging.basicConfig(
        format="%(message)s",
        level=logging.DEBUG if debug else logging.INFO,
    )

    renderer = (
        structlog.dev.ConsoleRenderer()
        if debug
        else structlog.processors.JSONRenderer()
    )

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            renderer,
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )
    _configured = True


def get_logger(name: Optional[str] = None) -> Any:
    configure_logging()
    return structlog.get_logger(name)


# === API request logging ===

_api_logger = None


def _api() -> Any:
    global _api_logger
    if _api_logger is None:
        _api_logger = get_logger("luno.api")
    return _api_logger


def log_api_request(method: str, path: str, user_id: Optional[int] = None) -> None:
    """Log an API request without payload data."""
    _api().debug("api_request", method=method, path=path, user_id=user_id)


def log_api_error(method: str, path: str, error: BaseException, user_id: Optional[int] = None) -> None:
    """Log an API failure with the error message only."""
    _api().error(
        "api_error",
        method=method,
        path=path,
        user_id=user_id,
        error=str(error) or error.__class__.__name__,
    )

"""
Structured logging setup for GitHub Stars Notify.
"""

import logging

import structlog


def setup_logging(level: str = "INFO", log_format: str = "text") -> None:
    """
    Configure structured logging.

    Safe to call again at runtime; loggers pick up the new level and
    renderer on their next call.

    Args:
        level: Log level name (DEBUG, INFO, WARNING, ERROR)
        log_format: ``json`` or ``text``
    """
    logging.basicConfig(level=getattr(logging, level), format="%(message)s")
    apply_log_level(level)

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            (
                structlog.processors.JSONRenderer()
                if log_format == "json"
                else structlog.dev.ConsoleRenderer()
            ),
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=False,
    )


def apply_log_level(level: str) -> None:
    """Change the root log level without touching handlers."""
    logging.getLogger().setLevel(getattr(logging, level))

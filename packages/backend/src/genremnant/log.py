"""structlog setup.

Learn: modules just call structlog.get_logger() and log dotted event
names with keyword context (logger.info("post.approved", post_id=...)).
This module only decides how those entries are rendered: a colored
console in development, one JSON object per line when json_logs is set.
Request IDs arrive through contextvars (see middleware/request_id.py).
"""

import logging

import structlog


def configure_logging(debug: bool = False, json_logs: bool = False) -> None:
    """Configure structlog processors and the minimum log level."""
    level = logging.DEBUG if debug else logging.INFO

    renderer = (
        structlog.processors.JSONRenderer()
        if json_logs
        else structlog.dev.ConsoleRenderer()
    )

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            renderer,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(level),
        cache_logger_on_first_use=True,
    )

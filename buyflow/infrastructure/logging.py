"""Logging setup.

buyflow modules log through structlog. Host applications that already
configure structlog can skip this; everyone else calls
``configure_logging()`` once at startup.
"""

import logging
import sys

import structlog

from buyflow.infrastructure.config import Settings, settings as default_settings


def configure_logging(config: Settings | None = None) -> None:
    """Configure stdlib logging and the structlog processor chain.

    Args:
        config: Settings to read the level and renderer from.
    """
    config = config or default_settings

    logging.basicConfig(
        level=getattr(logging, config.log_level.upper(), logging.INFO),
        format="%(message)s",
        stream=sys.stderr,
    )

    renderer = (
        structlog.processors.JSONRenderer()
        if config.json_logs
        else structlog.dev.ConsoleRenderer()
    )
    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.format_exc_info,
            renderer,
        ],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

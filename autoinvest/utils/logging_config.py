"""Logging configuration.

Development runs render readable console lines; staging and production
render one JSON object per line for both stdout and the log file.
"""
import logging
import sys
from pathlib import Path
from typing import Optional

import structlog

from autoinvest.core.config import LoggingConfig, app_config

# Processors shared by structlog loggers and foreign stdlib records
_SHARED_PROCESSORS = [
    structlog.stdlib.add_logger_name,
    structlog.stdlib.add_log_level,
    structlog.processors.TimeStamper(fmt="iso", utc=True),
    structlog.processors.StackInfoRenderer(),
]


def _renderer(environment: str):
    if environment == "development":
        return structlog.dev.ConsoleRenderer(colors=False)
    return structlog.processors.JSONRenderer()


def setup_logging(config: Optional[LoggingConfig] = None, environment: Optional[str] = None):
    """Configure structured logging for the engine and its libraries."""
    config = config or app_config.logging
    environment = environment or app_config.system.environment
    level = getattr(logging, config.log_level.upper())

    log_path = Path(config.log_file)
    log_path.parent.mkdir(parents=True, exist_ok=True)

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            *_SHARED_PROCESSORS,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    formatter = structlog.stdlib.ProcessorFormatter(
        foreign_pre_chain=_SHARED_PROCESSORS,
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            _renderer(environment),
        ],
    )

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setFormatter(formatter)

    file_handler = logging.FileHandler(log_path)
    file_handler.setFormatter(formatter)

    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    for handler in (console_handler, file_handler):
        handler.setLevel(level)
        root_logger.addHandler(handler)

    # SQL echo and exchange chatter stay quiet unless debugging
    if level > logging.DEBUG:
        logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
        logging.getLogger("ccxt").setLevel(logging.WARNING)

    return root_logger

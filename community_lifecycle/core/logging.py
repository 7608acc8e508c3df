import logging
import sys

import structlog
from structlog.types import Processor

from community_lifecycle.core.config import Settings

_CONSOLE_ENVS = frozenset({"dev", "local"})
_QUIET_LOGGERS = ("sqlalchemy.engine", "asyncpg")


def _renderer(app_env: str) -> Processor:
    if app_env.strip().lower() in _CONSOLE_ENVS and sys.stdout.isatty():
        return structlog.dev.ConsoleRenderer()
    return structlog.processors.JSONRenderer(sort_keys=True)


def configure_logging(log_level: str = "INFO", *, app_env: str = "dev") -> None:
    level = getattr(logging, log_level.upper(), logging.INFO)
    logging.basicConfig(format="%(message)s", stream=sys.stdout, level=level)
    # SQL echo is controlled by DB_ECHO on the engine, not by LOG_LEVEL.
    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(max(level, logging.WARNING))

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            structlog.processors.format_exc_info,
            _renderer(app_env),
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )
    structlog.contextvars.bind_contextvars(app_env=app_env)


def configure_logging_from_settings(settings: Settings) -> None:
    configure_logging(settings.log_level, app_env=settings.app_env)

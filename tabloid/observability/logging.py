"""
structlog setup for the sync engine.

stdout is reserved for the event stream printed by `tabloid run` and
`tabloid poll-once`, so every log line goes to stderr. Production
environments get one JSON object per line; development gets the
colored console renderer.
"""

import logging
import sys

import structlog
from structlog.types import Processor

from tabloid.config.settings import get_settings

# Libraries that log every request or connection at INFO
_QUIET_LOGGERS = ("httpx", "httpcore", "asyncpg", "asyncio")


def setup_logging(level: str | None = None, json_logs: bool | None = None) -> None:
    """
    Configure structlog and the stdlib root logger.

    Args:
        level: Log level name (default: LOG_LEVEL setting)
        json_logs: Force JSON output on or off (default: on in production)

    Modules that use the stdlib logger (repositories, clients) and those
    that use structlog (scheduler, network monitor) end up on the same
    stderr handler.
    """
    settings = get_settings()
    level = (level or settings.log_level).upper()
    if json_logs is None:
        json_logs = settings.is_production

    processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.StackInfoRenderer(),
    ]
    if json_logs:
        processors += [
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ]
    else:
        processors.append(structlog.dev.ConsoleRenderer(colors=sys.stderr.isatty()))

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    logging.basicConfig(
        format="%(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
        level=getattr(logging, level, logging.INFO),
    )

    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

"""Structured logging for the lifecycle service.

Every line emitted while a workflow step, an API call or a sweep is working
on a deployment carries ``deployment_id`` and ``operation``. They are bound
once through structlog context variables (see ``deployment_context``) instead
of being repeated at each call site, so storage and task-state failures deep
in the stack still say which deployment they belong to.
"""

import logging
import sys
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, List

import structlog

from deploy_lifecycle.core.config import Settings

# Third-party loggers that only matter when something is wrong
QUIET_LOGGERS = ("aiosqlite", "sqlalchemy.engine", "sqlalchemy.pool", "httpx", "apscheduler")


def _handlers(settings: Settings) -> List[logging.Handler]:
    handlers: List[logging.Handler] = [logging.StreamHandler(sys.stdout)]
    if settings.log_file:
        path = Path(settings.log_file)
        path.parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(path))
    return handlers


def _renderer(settings: Settings):
    if settings.log_format == "json":
        return structlog.processors.JSONRenderer()
    return structlog.dev.ConsoleRenderer(colors=False, exception_formatter=structlog.dev.plain_traceback)


def configure_logging(settings: Settings) -> None:
    """Route structlog through stdlib logging with the configured renderer."""
    level = logging.getLevelName(settings.log_level.upper())
    if not isinstance(level, int):
        level = logging.INFO

    logging.basicConfig(level=level, format="%(message)s", handlers=_handlers(settings))
    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            _renderer(settings),
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    return structlog.get_logger(name)


@contextmanager
def deployment_context(deployment_id: str, operation: str) -> Iterator[None]:
    """Bind the deployment and operation to every log line inside the block.

    Nested blocks override the outer values and restore them on exit.
    """
    with structlog.contextvars.bound_contextvars(deployment_id=deployment_id, operation=operation):
        yield

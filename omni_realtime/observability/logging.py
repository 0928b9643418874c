"""
Logging configuration for the realtime session service.

Every module logs through the standard library (``logging.getLogger``).
Records are rendered by structlog's ProcessorFormatter, so stdlib and
structlog loggers share one output format and both carry the context
bound with ``session_context`` (e.g. ``session_id``).
"""

import logging
import sys
from contextlib import contextmanager
from typing import Any, Iterator, TextIO

import structlog

from ..config import settings

# Libraries that log every frame or request at INFO
NOISY_LOGGERS = {
    "websockets": logging.WARNING,
    "uvicorn.access": logging.WARNING,
    "httpx": logging.WARNING,
}


def _shared_processors() -> list[Any]:
    return [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
    ]


def configure_logging(level: str | None = None, stream: TextIO | None = None) -> logging.Handler:
    """
    Route structlog and stdlib logging through one structlog-rendered handler.

    Console output at DEBUG, JSON lines otherwise. Calling again replaces the
    handler installed by the previous call.

    Args:
        level: Log level name (defaults to the configured level)
        stream: Output stream (defaults to stdout)

    Returns:
        The installed root handler
    """
    level = (level or settings.log_level).upper()
    is_dev = level == "DEBUG"

    if is_dev:
        # Console renderer formats tracebacks itself
        render_chain: list[Any] = [structlog.dev.ConsoleRenderer(colors=True)]
    else:
        render_chain = [
            structlog.processors.dict_tracebacks,
            structlog.processors.JSONRenderer(),
        ]

    structlog.configure(
        processors=_shared_processors() + [
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    formatter = structlog.stdlib.ProcessorFormatter(
        foreign_pre_chain=_shared_processors(),
        processors=[structlog.stdlib.ProcessorFormatter.remove_processors_meta] + render_chain,
    )

    handler = logging.StreamHandler(stream or sys.stdout)
    handler.setFormatter(formatter)
    handler.set_name("omni_realtime")

    root = logging.getLogger()
    for existing in list(root.handlers):
        if existing.get_name() == "omni_realtime":
            root.removeHandler(existing)
    root.addHandler(handler)
    root.setLevel(getattr(logging, level))

    for name, noisy_level in NOISY_LOGGERS.items():
        logging.getLogger(name).setLevel(noisy_level)

    structlog.get_logger(__name__).info(
        "Logging configured",
        level=level,
        format="console" if is_dev else "json",
        model=settings.model,
    )
    return handler


@contextmanager
def session_context(session_id: str, **fields: Any) -> Iterator[None]:
    """Attach ``session_id`` (and any extra fields) to every log line in scope."""
    with structlog.contextvars.bound_contextvars(session_id=session_id, **fields):
        yield

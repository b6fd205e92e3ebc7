# src/protofixture/core/logging.py
"""Structured logging for protofixture.

Factories and clone engines emit structlog events (``prototype_prepared``,
``prototype_snapshot_reused``, ``instance_cloned``, ...). Nothing is
configured on import: a test suite that already owns logging keeps its
setup.

configure_logging() routes those events and stdlib records from
SQLAlchemy through one ProcessorFormatter, so a run's captured output
has a single format.
"""

import logging
import sys
from typing import Any, Literal

import structlog
from structlog.stdlib import ProcessorFormatter

StreamName = Literal["stdout", "stderr"]

# Statements are logged on sqlalchemy.engine, checkouts on sqlalchemy.pool
_SQLALCHEMY_LOGGERS: tuple[str, ...] = (
    "sqlalchemy.engine",
    "sqlalchemy.pool",
    "sqlalchemy.orm",
)


class StandardStreamHandler(logging.StreamHandler):  # type: ignore[type-arg]
    """StreamHandler bound to sys.stdout or sys.stderr by name.

    The stream is looked up on every emit. pytest's capture and typer's
    CliRunner swap the standard streams, and a handler holding the object
    it was created with would write to a closed stream afterwards.
    """

    def __init__(self, stream_name: StreamName = "stdout") -> None:
        logging.Handler.__init__(self)
        self.stream_name = stream_name

    @property
    def stream(self) -> Any:  # type: ignore[override]
        return getattr(sys, self.stream_name)


def _shared_processors() -> list[Any]:
    """Processors run for structlog events and foreign stdlib records alike."""
    return [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso"),
        # Concurrent first callers wait on one build; name the thread that ran it
        structlog.processors.CallsiteParameterAdder([structlog.processors.CallsiteParameter.THREAD_NAME]),
    ]


def _renderers(json_output: bool) -> list[Any]:
    if json_output:
        return [structlog.processors.format_exc_info, structlog.processors.JSONRenderer()]
    return [structlog.dev.ConsoleRenderer(colors=False)]


def _resolve_level(level: str | int) -> int:
    if isinstance(level, int):
        return level
    levels = logging.getLevelNamesMapping()
    try:
        return levels[level.upper()]
    except KeyError:
        raise ValueError(f"Unknown log level {level!r}; expected one of {sorted(levels)}") from None


def configure_logging(
    *,
    json_output: bool = False,
    level: str | int = "INFO",
    stream: StreamName = "stdout",
    sql_echo: bool = False,
) -> None:
    """Configure structlog and stdlib logging for protofixture events.

    Args:
        json_output: Render JSON lines instead of console key=value output.
        level: Root log level, name or number.
        stream: Standard stream to write to. The CLI uses stderr so that
            command output on stdout stays parseable.
        sql_echo: Let SQLAlchemy statement logging through at INFO. When
            off, SQLAlchemy loggers are held at WARNING or the root level,
            whichever is stricter.

    Raises:
        ValueError: If level is not a known level name.
    """
    log_level = _resolve_level(level)
    shared_processors = _shared_processors()

    structlog.configure(
        processors=[*shared_processors, ProcessorFormatter.wrap_for_formatter],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        # Tests reconfigure logging; cached loggers would keep the old chain
        cache_logger_on_first_use=False,
    )

    handler = StandardStreamHandler(stream)
    handler.setFormatter(
        ProcessorFormatter(
            processors=[ProcessorFormatter.remove_processors_meta, *_renderers(json_output)],
            foreign_pre_chain=shared_processors,
        )
    )

    root = logging.getLogger()
    root.handlers = []
    root.addHandler(handler)
    root.setLevel(log_level)

    sql_level = logging.INFO if sql_echo else max(log_level, logging.WARNING)
    for logger_name in _SQLALCHEMY_LOGGERS:
        logging.getLogger(logger_name).setLevel(sql_level)


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    """Bound structlog logger for a protofixture module."""
    logger: structlog.stdlib.BoundLogger = structlog.get_logger(name)
    return logger

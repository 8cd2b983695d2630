from __future__ import annotations

import logging
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Literal, cast

import structlog
from loguru import logger as loguru_logger
from structlog.exceptions import DropEvent
from structlog.stdlib import BoundLogger
from structlog.typing import EventDict, WrappedLogger

from intune_assignments.config.settings import log_dir


LOG_FORMAT = "{time:YYYY-MM-DD HH:mm:ss.SSS} | {level: <8} | {name} | {message} | {extra}"
DEFAULT_LOG_FILENAME = "intune-assignments.log"

LogLevel = Literal["DEBUG", "INFO", "WARNING", "ERROR"]


@dataclass(slots=True)
class LoggingOptions:
    """Where log records go.

    The console sink honours ``level`` (``debug`` forces DEBUG); the rotating
    file sink always records DEBUG so a failed pass can be diagnosed later.
    """

    level: LogLevel = "INFO"
    debug: bool = False
    console: bool = True
    log_path: Path | None = None
    rotation: str = "10 MB"
    retention: str = "14 days"


_state: dict[str, Path | None] = {"log_path": None}


def configure_logging(options: LoggingOptions | None = None) -> Path:
    """Route structlog events into loguru sinks and return the log file path."""

    opts = options or LoggingOptions()
    console_level: LogLevel = "DEBUG" if opts.debug else opts.level
    log_path = opts.log_path or log_dir() / DEFAULT_LOG_FILENAME

    loguru_logger.remove()
    if opts.console:
        loguru_logger.add(
            sys.stderr,
            level=console_level,
            colorize=True,
            backtrace=opts.debug,
            diagnose=opts.debug,
            format=LOG_FORMAT,
        )
    loguru_logger.add(
        log_path,
        level="DEBUG",
        rotation=opts.rotation,
        retention=opts.retention,
        enqueue=True,
        encoding="utf-8",
        format=LOG_FORMAT,
    )

    # Level filtering happens per loguru sink.
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            structlog.processors.format_exc_info,
            _forward_to_loguru,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(logging.DEBUG),
        cache_logger_on_first_use=False,
    )

    _state["log_path"] = log_path
    return log_path


def _forward_to_loguru(
    _logger: WrappedLogger,
    _method: str,
    event_dict: EventDict,
) -> EventDict:
    level = str(event_dict.pop("level", "info")).upper()
    message = str(event_dict.pop("event", ""))
    exception = event_dict.pop("exception", None)
    if exception:
        message = f"{message}\n{exception}"
    name = event_dict.pop("logger", None)
    bound = loguru_logger.bind(**event_dict)
    if name:
        bound = bound.patch(lambda record: record.update(name=str(name)))
    bound.opt(depth=4).log(level, message)
    raise DropEvent


def get_logger(name: str | None = None, **initial_values: object) -> BoundLogger:
    """Return a structlog logger whose events carry ``name`` as the loguru record name."""

    if _state["log_path"] is None:
        configure_logging()
    # structlog reserves the ``logger`` keyword, so the name is bound afterwards.
    log = structlog.get_logger(**initial_values)
    if name is not None:
        log = log.bind(logger=name)
    return cast(BoundLogger, log)


def log_file_path() -> Path:
    path = _state["log_path"]
    return path if path is not None else configure_logging()


__all__ = [
    "LoggingOptions",
    "configure_logging",
    "get_logger",
    "log_file_path",
]

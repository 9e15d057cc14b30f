"""Small core utilities used across the project."""

import logging
import uuid
from collections.abc import Callable, Sequence
from typing import Any

# Set up a module-level logger
logger = logging.getLogger(__name__)

LogSink = Callable[[Sequence[str], dict[str, Any]], None]

_TAG_LEVELS = {
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "warn": logging.WARNING,
    "warning": logging.WARNING,
    "error": logging.ERROR,
}


def generate_task_id() -> str:
    """Return a unique id for tasks queued without a name."""
    return str(uuid.uuid4())


def tags_level(tags: Sequence[str], default: int = logging.DEBUG) -> int:
    """Return the most severe logging level named in ``tags``."""
    levels = [_TAG_LEVELS[tag] for tag in tags if tag in _TAG_LEVELS]
    return max(levels) if levels else default


def logging_sink(target: logging.Logger | None = None) -> LogSink:
    """Build a ``log(tags, data)`` sink that writes to a standard logger."""
    log = target or logger

    def _sink(tags: Sequence[str], data: dict[str, Any]) -> None:
        log.log(tags_level(tags), "[%s] %s", ", ".join(tags), data)

    return _sink


def as_exception(error: Any) -> BaseException:
    """Return ``error`` when it is an exception, else wrap its text in a RuntimeError."""
    if isinstance(error, BaseException):
        return error
    return RuntimeError(str(error))

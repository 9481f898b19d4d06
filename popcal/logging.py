"""Logging for popcal.

Every search reports its progress (new optima, restarts, termination reason)
through a ``popcal.*`` logger obtained from :func:`get_logger`. Each of these
loggers writes to one console handler, owned by this module, and to the file
handlers opened with :func:`log_to_file`, so a calibration run can be followed
on stderr and kept in a log file at the same time. Nothing propagates to the
root logger; the host application decides what popcal prints.
"""

from __future__ import annotations

import logging
import sys
from pathlib import Path
from typing import Optional, TextIO

_NAMESPACE = "popcal"

_FORMAT = "[%(levelname)s] %(name)s: %(message)s"
_FILE_FORMAT = "%(asctime)s " + _FORMAT

# console settings shared by every popcal logger
_console_level = logging.WARNING
_console_format = _FORMAT
_console_stream: Optional[TextIO] = None

_loggers: dict[str, logging.Logger] = {}
_file_handlers: list[logging.Handler] = []


class _ConsoleHandler(logging.StreamHandler):
    """The stream handler this module installs on each popcal logger."""


def _level_number(level: int | str) -> int:
    if isinstance(level, str):
        number = logging.getLevelName(level.upper())
        return number if isinstance(number, int) else logging.WARNING
    return int(level)


def _lowest_level() -> int:
    return min([_console_level] + [handler.level for handler in _file_handlers])


def _console_handler() -> logging.Handler:
    handler = _ConsoleHandler(_console_stream if _console_stream is not None else sys.stderr)
    handler.setLevel(_console_level)
    handler.setFormatter(logging.Formatter(_console_format))
    return handler


def _install(logger: logging.Logger) -> None:
    for handler in logger.handlers[:]:
        if isinstance(handler, _ConsoleHandler):
            logger.removeHandler(handler)
    logger.addHandler(_console_handler())
    for handler in _file_handlers:
        if handler not in logger.handlers:
            logger.addHandler(handler)
    logger.setLevel(_lowest_level())
    logger.propagate = False


def get_logger(name: Optional[str] = None) -> logging.Logger:
    """Return the popcal logger for ``name``.

    Names outside the package namespace are prefixed with ``popcal.``, and
    ``None`` gives the package logger. Loggers are cached, so calling this at
    import time in every module is cheap.

    Example:
        >>> from popcal.logging import get_logger
        >>> logger = get_logger(__name__)
        >>> logger.info("Starting Hooke and Jeeves")
    """
    if name is None:
        name = _NAMESPACE
    if name != _NAMESPACE and not name.startswith(_NAMESPACE + "."):
        name = f"{_NAMESPACE}.{name}"

    logger = _loggers.get(name)
    if logger is None:
        logger = logging.getLogger(name)
        if not logger.handlers:
            _install(logger)
        _loggers[name] = logger
    return logger


def set_log_level(level: int | str) -> None:
    """Set the console level of every popcal logger.

    Args:
        level: A ``logging`` level or its name (``'DEBUG'``, ``'INFO'``, ...).
            File logs keep the level they were opened with.
    """
    global _console_level
    _console_level = _level_number(level)

    for logger in _loggers.values():
        logger.setLevel(_lowest_level())
        for handler in logger.handlers:
            if isinstance(handler, _ConsoleHandler):
                handler.setLevel(_console_level)


def configure_logging(
    level: int | str = logging.WARNING,
    format_string: Optional[str] = None,
    stream: Optional[TextIO] = None,
) -> None:
    """Send the console output of popcal to ``stream`` (stderr by default).

    Usually called once by the application driving a calibration. The
    console handler of every cached logger is replaced; file logs opened
    with :func:`log_to_file` stay attached.

    Example:
        >>> import logging
        >>> from popcal.logging import configure_logging
        >>> configure_logging(level=logging.INFO)
    """
    global _console_level, _console_format, _console_stream
    _console_level = _level_number(level)
    _console_format = format_string or _FORMAT
    _console_stream = stream

    for logger in _loggers.values():
        _install(logger)


def log_to_file(path: str | Path, level: int | str = logging.INFO) -> logging.Handler:
    """Also write the messages of popcal loggers to ``path``.

    The file is opened in append mode so consecutive calibration runs share
    one log, and loggers created later write to it too. Returns the handler;
    pass it to :func:`remove_handler` to stop.
    """
    handler = logging.FileHandler(path, mode="a", encoding="utf-8")
    handler.setLevel(_level_number(level))
    handler.setFormatter(logging.Formatter(_FILE_FORMAT))
    _file_handlers.append(handler)
    for logger in _loggers.values():
        logger.addHandler(handler)
        logger.setLevel(_lowest_level())
    return handler


def remove_handler(handler: logging.Handler) -> None:
    """Detach a handler from :func:`log_to_file` and close it."""
    if handler in _file_handlers:
        _file_handlers.remove(handler)
    for logger in _loggers.values():
        logger.removeHandler(handler)
        logger.setLevel(_lowest_level())
    handler.close()


__all__ = ["configure_logging", "get_logger", "log_to_file", "remove_handler", "set_log_level"]

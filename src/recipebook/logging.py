"""Logging infrastructure for recipebook.

Components never print directly; they receive a Logger by injection so that
tests can swap in a stub.
"""

from __future__ import annotations

import enum
from abc import ABC, abstractmethod


class LogLevel(enum.Enum):
    """Log verbosity levels for recipebook diagnostic messages.

    Lower numeric values represent higher severity / less verbosity.
    """
    FATAL = 0  # Only unrecoverable errors (malformed recipe files)
    ERROR = 1  # Fatal errors plus recipe execution failures
    WARN = 2   # Errors plus ignored command failures, configuration issues
    INFO = 3   # Warnings plus echoed commands and progress (default)
    DEBUG = 4  # Info plus variable values, resolved paths, shell details
    TRACE = 5  # Debug plus dispatcher state transitions


class Logger(ABC):
    """Abstract logger interface."""

    @abstractmethod
    def log(self, level: LogLevel = LogLevel.INFO, *args, **kwargs) -> None:
        """Log a message at the given level."""
        ...

    @abstractmethod
    def push_level(self, level: LogLevel) -> None:
        """Temporarily switch to a new log level."""
        ...

    @abstractmethod
    def pop_level(self) -> LogLevel:
        """Return to the previous log level."""
        ...

    def fatal(self, *args, **kwargs) -> None:
        self.log(LogLevel.FATAL, *args, **kwargs)

    def error(self, *args, **kwargs) -> None:
        self.log(LogLevel.ERROR, *args, **kwargs)

    def warn(self, *args, **kwargs) -> None:
        self.log(LogLevel.WARN, *args, **kwargs)

    def info(self, *args, **kwargs) -> None:
        self.log(LogLevel.INFO, *args, **kwargs)

    def debug(self, *args, **kwargs) -> None:
        self.log(LogLevel.DEBUG, *args, **kwargs)

    def trace(self, *args, **kwargs) -> None:
        self.log(LogLevel.TRACE, *args, **kwargs)


def parse_log_level(value: str) -> LogLevel:
    """Convert a level name such as ``"debug"`` into a LogLevel.

    Raises:
        ValueError: If the name is not a known level
    """
    try:
        return LogLevel[value.strip().upper()]
    except KeyError:
        valid = ", ".join(level.name.lower() for level in LogLevel)
        raise ValueError(f"Invalid log level '{value}'. Valid levels: {valid}")

"""Severity levels for server-emitted ``Log`` messages.

The server may interleave ``Log`` messages with the sequencing messages of
an exchange.  They never advance the exchange; the client hands them to
its ``on_log`` callback, or to the ``stdio_rpc.rpc`` logger at the mapped
level when no callback is installed.

KEY CLASSES
-----------
Level : Enum with EXCEPTION, ERROR, WARN, INFO, DEBUG, TRACE

"""

from __future__ import annotations

import logging
from enum import Enum

__all__ = [
    "Level",
]


class Level(Enum):
    """Severity of a ``Log`` message, ordered from most to least severe.

    Attributes:
        EXCEPTION: Unrecoverable error that terminated processing.
        ERROR: Significant error that may affect results.
        WARN: Potential issue that should be reviewed.
        INFO: General informational message.
        DEBUG: Detailed information useful for debugging.
        TRACE: Fine-grained tracing information.

    """

    EXCEPTION = "EXCEPTION"
    ERROR = "ERROR"
    WARN = "WARN"
    INFO = "INFO"
    DEBUG = "DEBUG"
    TRACE = "TRACE"

    @property
    def logging_level(self) -> int:
        """Equivalent stdlib ``logging`` level (TRACE maps below DEBUG)."""
        return _LOGGING_LEVELS[self]


_LOGGING_LEVELS: dict[Level, int] = {
    Level.EXCEPTION: logging.CRITICAL,
    Level.ERROR: logging.ERROR,
    Level.WARN: logging.WARNING,
    Level.INFO: logging.INFO,
    Level.DEBUG: logging.DEBUG,
    Level.TRACE: 5,
}

# © Copyright 2025-2026, Query.Farm LLC - https://query.farm
# SPDX-License-Identifier: Apache-2.0

"""Single-line JSON log records for machine consumption.

:class:`StdioRpcJsonFormatter` is what ``stdio-rpc --log-format json``
installs on its stderr handler.  The server's access records
(``stdio_rpc.access``) attach the exchange's expression, queried symbols
and result via ``extra``; every such field becomes a top-level key.

This module is **not** auto-imported by ``stdio_rpc``; import it explicitly::

    from stdio_rpc.logging_utils import StdioRpcJsonFormatter
"""

from __future__ import annotations

import json
import logging

__all__ = ["StdioRpcJsonFormatter"]

# Attribute names every LogRecord carries; anything else came from ``extra``.
_DEFAULT_RECORD_ATTRS: frozenset[str] = frozenset(logging.LogRecord("", 0, "", 0, "", (), None).__dict__.keys()) | {
    "message",
    "asctime",
}

_RESERVED_KEYS: frozenset[str] = frozenset({"timestamp", "level", "logger", "message", "exception", "stack_info"})


class StdioRpcJsonFormatter(logging.Formatter):
    """Format records as one JSON object per line.

    ``timestamp``, ``level``, ``logger`` and ``message`` are always present
    and win over ``extra`` fields of the same name.  Tracebacks go under
    ``exception``.  Values that ``json`` cannot encode are rendered with
    ``str``.
    """

    def format(self, record: logging.LogRecord) -> str:
        """Format a log record as a single-line JSON string."""
        record.message = record.getMessage()
        obj: dict[str, object] = {
            "timestamp": self.formatTime(record),
            "level": record.levelname,
            "logger": record.name,
            "message": record.message,
        }
        obj.update(
            (k, v)
            for k, v in record.__dict__.items()
            if k not in _DEFAULT_RECORD_ATTRS and k not in _RESERVED_KEYS
        )
        if record.exc_info and record.exc_info[1]:
            obj["exception"] = self.formatException(record.exc_info)
        if record.stack_info:
            obj["stack_info"] = self.formatStack(record.stack_info)
        return json.dumps(obj, default=str, ensure_ascii=False)

"""Append-only text log of requests received by the server.

The server's stdout carries the wire protocol, so it records what it
receives in a plain file instead.  Each write is flushed immediately so
the file stays readable while the server is blocked on a pipe read.
"""

from __future__ import annotations

import os
from pathlib import Path
from types import TracebackType
from typing import TextIO

__all__ = ["DEFAULT_REQUEST_LOG", "RequestLog"]

DEFAULT_REQUEST_LOG = "server.log"


class RequestLog:
    """Line-oriented append-only sink, created on first open if missing."""

    __slots__ = ("_file", "_path")

    def __init__(self, path: str | os.PathLike[str] = DEFAULT_REQUEST_LOG) -> None:
        """Open *path* for appending."""
        self._path = Path(path)
        self._file: TextIO | None = self._path.open("a", encoding="utf-8")

    @property
    def path(self) -> Path:
        """Location of the log file."""
        return self._path

    def _write(self, line: str) -> None:
        if self._file is None:
            raise ValueError(f"RequestLog {self._path} is closed")
        self._file.write(line + "\n")
        self._file.flush()

    def record_request(self, expression: str) -> None:
        """Record the text of a received ``Request``."""
        self._write(f"server received request: {expression}")

    def record_handling(self) -> None:
        """Record that the server started handling the current request."""
        self._write("server handle request")

    def close(self) -> None:
        """Close the underlying file (idempotent)."""
        if self._file is not None:
            self._file.close()
            self._file = None

    def __enter__(self) -> RequestLog:
        """Return self."""
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        """Close the file."""
        self.close()

"""Transports: the two byte streams an exchange runs over.

A transport is a *reader* (frames from the peer) and a *writer* (frames to
the peer).  Three sources are provided:

* :func:`make_pipe_pair`, two ``os.pipe()`` channels for an in-process
  server thread;
* :class:`SubprocessTransport`, the parent's view of a spawned server;
* :func:`stdio_transport`, the child's view of its own stdin/stdout.

Readers are buffered because the codecs rely on ``read(n)`` returning
short only at EOF; writers are unbuffered so each frame reaches the peer
as soon as it is written.
"""

from __future__ import annotations

import contextlib
import logging
import os
import subprocess
import sys
import threading
from enum import Enum
from io import IOBase
from typing import BinaryIO, Protocol, cast, runtime_checkable

from stdio_rpc.rpc._debug import wire_transport_logger

_logger = logging.getLogger("stdio_rpc.rpc")


# ---------------------------------------------------------------------------
# Transport protocol
# ---------------------------------------------------------------------------


@runtime_checkable
class Transport(Protocol):
    """A pair of independent byte streams, one per direction."""

    @property
    def reader(self) -> IOBase:
        """Readable binary stream (messages from the peer)."""
        ...

    @property
    def writer(self) -> IOBase:
        """Writable binary stream (messages to the peer)."""
        ...

    def close(self) -> None:
        """Close the transport."""
        ...


# ---------------------------------------------------------------------------
# Pipes
# ---------------------------------------------------------------------------


class PipeTransport:
    """Transport over two already-open binary file objects."""

    __slots__ = ("_reader", "_writer")

    def __init__(self, reader: IOBase, writer: IOBase) -> None:
        """Wrap *reader* and *writer*; the transport owns both."""
        self._reader = reader
        self._writer = writer

    def __repr__(self) -> str:
        """Return a string representation suitable for debugging."""
        return f"PipeTransport(closed={self.closed})"

    @property
    def reader(self) -> IOBase:
        """Readable binary stream."""
        return self._reader

    @property
    def writer(self) -> IOBase:
        """Writable binary stream."""
        return self._writer

    @property
    def closed(self) -> bool:
        """True once both streams are closed."""
        return self._reader.closed and self._writer.closed

    def close(self) -> None:
        """Close both streams; safe to call repeatedly."""
        self._reader.close()
        self._writer.close()


def _open_pipe() -> tuple[IOBase, IOBase]:
    """One ``os.pipe()`` channel as (buffered reader, unbuffered writer)."""
    read_fd, write_fd = os.pipe()
    if wire_transport_logger.isEnabledFor(logging.DEBUG):
        wire_transport_logger.debug("pipe opened: read_fd=%d, write_fd=%d", read_fd, write_fd)
    return os.fdopen(read_fd, "rb"), os.fdopen(write_fd, "wb", buffering=0)


def make_pipe_pair() -> tuple[PipeTransport, PipeTransport]:
    """Create a connected (client, server) transport pair.

    Bytes the client writes are read by the server and vice versa.  Closing
    the client transport makes the server's next read hit EOF.
    """
    to_server_r, to_server_w = _open_pipe()
    to_client_r, to_client_w = _open_pipe()
    if wire_transport_logger.isEnabledFor(logging.DEBUG):
        wire_transport_logger.debug(
            "make_pipe_pair: c2s=(%d,%d), s2c=(%d,%d)",
            to_server_r.fileno(),
            to_server_w.fileno(),
            to_client_r.fileno(),
            to_client_w.fileno(),
        )
    return PipeTransport(to_client_r, to_server_w), PipeTransport(to_server_r, to_client_w)


# ---------------------------------------------------------------------------
# Child process (parent side)
# ---------------------------------------------------------------------------


class StderrMode(Enum):
    """What the parent does with a spawned server's stderr.

    Members:
        INHERIT: The child writes straight to the parent's stderr.
        PIPE: A daemon thread reads the child's stderr and logs each line.
        DEVNULL: The child's stderr is discarded.
    """

    INHERIT = "inherit"
    PIPE = "pipe"
    DEVNULL = "devnull"


_POPEN_STDERR: dict[StderrMode, int | None] = {
    StderrMode.INHERIT: None,
    StderrMode.PIPE: subprocess.PIPE,
    StderrMode.DEVNULL: subprocess.DEVNULL,
}


def _forward_stderr(stream: BinaryIO, logger: logging.Logger, pid: int) -> None:
    """Log each non-blank line of *stream* at INFO until EOF."""
    try:
        for raw in stream:
            text = raw.decode("utf-8", errors="replace").rstrip()
            if text:
                logger.info("%s", text, extra={"child_pid": pid})
    except (OSError, ValueError):
        # stream closed underneath us during shutdown
        pass
    finally:
        with contextlib.suppress(OSError, ValueError):
            stream.close()


class SubprocessTransport:
    """Transport to a server started as a child process.

    The child's stdin is the writer and its stdout the reader.  Closing
    the transport closes the child's stdin, which the server sees as a
    hang-up; the child is then given *close_timeout* seconds to exit
    before it is killed.
    """

    __slots__ = ("_close_timeout", "_closed", "_proc", "_reader", "_stderr_thread", "_writer")

    def __init__(
        self,
        cmd: list[str],
        *,
        stderr: StderrMode = StderrMode.INHERIT,
        stderr_logger: logging.Logger | None = None,
        close_timeout: float = 10.0,
    ) -> None:
        """Spawn *cmd*.

        Args:
            cmd: Command line of the server.
            stderr: How to handle the child's stderr stream.
            stderr_logger: Logger for ``StderrMode.PIPE`` output.
                Defaults to ``logging.getLogger("stdio_rpc.subprocess.stderr")``.
            close_timeout: Seconds :meth:`close` waits before killing the child.

        Raises:
            FileNotFoundError: If the executable does not exist.

        """
        self._proc = subprocess.Popen(
            cmd,
            stdin=subprocess.PIPE,
            stdout=subprocess.PIPE,
            stderr=_POPEN_STDERR[stderr],
            bufsize=0,
        )
        stdin = cast(IOBase, self._proc.stdin)
        stdout = cast(IOBase, self._proc.stdout)
        # Popen's stdout is raw with bufsize=0; a buffered view avoids short reads.
        self._reader: IOBase = os.fdopen(stdout.fileno(), "rb", closefd=False)
        self._writer: IOBase = stdin
        self._close_timeout = close_timeout
        self._closed = False
        self._stderr_thread: threading.Thread | None = None
        if wire_transport_logger.isEnabledFor(logging.DEBUG):
            wire_transport_logger.debug(
                "SubprocessTransport spawned: pid=%d, cmd=%s, stderr=%s",
                self._proc.pid,
                cmd,
                stderr.value,
            )

        if stderr is StderrMode.PIPE:
            self._stderr_thread = threading.Thread(
                target=_forward_stderr,
                args=(
                    self._proc.stderr,
                    stderr_logger or logging.getLogger("stdio_rpc.subprocess.stderr"),
                    self._proc.pid,
                ),
                name=f"stderr-{self._proc.pid}",
                daemon=True,
            )
            self._stderr_thread.start()

    def __repr__(self) -> str:
        """Return a string representation suitable for debugging."""
        return f"SubprocessTransport(pid={self._proc.pid}, returncode={self._proc.returncode})"

    @property
    def proc(self) -> subprocess.Popen[bytes]:
        """The underlying Popen process."""
        return self._proc

    @property
    def pid(self) -> int:
        """Process id of the child."""
        return self._proc.pid

    @property
    def returncode(self) -> int | None:
        """Exit status of the child, ``None`` while it is running."""
        return self._proc.poll()

    @property
    def reader(self) -> IOBase:
        """Readable binary stream (child's stdout, buffered)."""
        return self._reader

    @property
    def writer(self) -> IOBase:
        """Writable binary stream (child's stdin, unbuffered)."""
        return self._writer

    def close(self) -> None:
        """Hang up on the child and reap it; later calls do nothing."""
        if self._closed:
            return
        self._closed = True
        with contextlib.suppress(BrokenPipeError):
            self._writer.close()
        try:
            self._proc.wait(timeout=self._close_timeout)
        except subprocess.TimeoutExpired:
            _logger.warning("Server pid=%d did not exit after hang-up; killing it", self._proc.pid)
            self._proc.kill()
            self._proc.wait()
        if self._stderr_thread is not None:
            self._stderr_thread.join(timeout=5)
        self._reader.close()
        cast(IOBase, self._proc.stdout).close()
        if wire_transport_logger.isEnabledFor(logging.DEBUG):
            wire_transport_logger.debug(
                "SubprocessTransport closed: pid=%d, exit_code=%s",
                self._proc.pid,
                self._proc.returncode,
            )


# ---------------------------------------------------------------------------
# Child process (server side)
# ---------------------------------------------------------------------------


def stdio_transport() -> PipeTransport:
    """This process's stdin/stdout as a transport.

    The descriptors are reopened with ``closefd=False`` so closing the
    transport leaves ``sys.stdin`` and ``sys.stdout`` intact.  A warning
    goes to stderr when either stream is a terminal, since a person typing
    cannot produce length-prefixed frames.
    """
    if sys.stdin.isatty() or sys.stdout.isatty():
        sys.stderr.write(
            "WARNING: stdio-rpc serve speaks length-prefixed binary frames on "
            "stdin/stdout and is not meant to be used from a terminal.\n"
            "Start it through a client instead (`stdio-rpc repl`, `stdio-rpc eval` "
            "or stdio_rpc.connect()).\n"
        )
    reader = os.fdopen(sys.stdin.fileno(), "rb", closefd=False)
    writer = os.fdopen(sys.stdout.fileno(), "wb", buffering=0, closefd=False)
    if wire_transport_logger.isEnabledFor(logging.DEBUG):
        wire_transport_logger.debug("stdio_transport: stdin_fd=%d, stdout_fd=%d", reader.fileno(), writer.fileno())
    return PipeTransport(reader, writer)

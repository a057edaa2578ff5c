"""Expression client: opens exchanges and answers the server's queries."""

from __future__ import annotations

import contextlib
import logging
from collections.abc import Callable, Iterator
from types import TracebackType

from stdio_rpc.rpc._debug import wire_transport_logger
from stdio_rpc.rpc._envelope import Envelope
from stdio_rpc.rpc._exchange import CLOSED, IDLE, OPEN, ExchangeOutcome, ExchangeState, _StateTracker
from stdio_rpc.rpc._messages import BadSeq, ClientMessage, Log, Query, Reply, Request, Response, ServerMessage
from stdio_rpc.rpc._transport import StderrMode, SubprocessTransport, Transport
from stdio_rpc.symbols import DEFAULT_SYMBOLS, SymbolResolver

_logger = logging.getLogger("stdio_rpc.rpc")

MessageObserver = Callable[[Envelope, bool], None]
"""Called with ``(message, outgoing)`` for every message sent or received."""


class ExpressionClient:
    """Client side of the exchange protocol over a transport.

    The client is a passive responder: after sending ``Request`` it only
    reacts to what the server sends, answering each ``Query`` from its
    symbol resolver until a ``Response`` or ``BadSeq`` arrives::

        with ExpressionClient(transport) as client:
            outcome = client.evaluate("a+b")
            outcome.result  # 3 with the default symbol table

    """

    __slots__ = ("_on_bad_seq", "_on_log", "_on_message", "_resolver", "_tracker", "_transport")

    def __init__(
        self,
        transport: Transport,
        resolver: SymbolResolver = DEFAULT_SYMBOLS,
        *,
        on_log: Callable[[Log], None] | None = None,
        on_message: MessageObserver | None = None,
        on_bad_seq: Callable[[], None] | None = None,
    ) -> None:
        """Initialize with a transport and the source of symbol values.

        Args:
            transport: Connected transport to the server.
            resolver: Supplies the value answered for each ``Query``.
            on_log: Receives ``Log`` messages; when ``None`` they are
                forwarded to the ``stdio_rpc.rpc`` logger.
            on_message: Observer for every sent and received message.
            on_bad_seq: Called when the server reports a sequencing error.

        """
        self._transport = transport
        self._resolver = resolver
        self._on_log = on_log
        self._on_message = on_message
        self._on_bad_seq = on_bad_seq
        self._tracker = _StateTracker("client")

    @property
    def transport(self) -> Transport:
        """The underlying transport."""
        return self._transport

    @property
    def state(self) -> ExchangeState:
        """Current exchange state as seen by the client."""
        return self._tracker.state

    def send(self, message: ClientMessage) -> None:
        """Send one message without any sequencing checks."""
        message.send(self._transport.writer)
        if self._on_message is not None:
            self._on_message(message, True)

    def receive(self) -> ServerMessage:
        """Block for one message from the server."""
        message = ServerMessage.receive(self._transport.reader)
        if self._on_message is not None:
            self._on_message(message, False)
        return message

    def evaluate(self, expression: str) -> ExchangeOutcome:
        """Run one exchange for *expression*.

        Returns:
            The outcome; ``result`` is ``None`` when the server answered
            ``BadSeq``.

        Raises:
            StreamClosedError: If the server hung up mid-exchange.
            FramingError: If a frame from the server is truncated or invalid.
            OSError: If writing to the server fails.

        """
        outcome = ExchangeOutcome(expression=expression)
        try:
            self.send(Request(expression))
            self._tracker.move(OPEN)
            while True:
                message = self.receive()
                if isinstance(message, Query):
                    self._tracker.move(ExchangeState.awaiting_reply(message.symbol))
                    value = self._resolver.resolve(message.symbol)
                    self.send(Reply(value))
                    outcome.queried.append(message.symbol)
                    outcome.values[message.symbol] = value
                    self._tracker.move(OPEN)
                elif isinstance(message, Response):
                    outcome.result = message.value
                    self._tracker.move(CLOSED)
                    break
                elif isinstance(message, Log):
                    self._handle_log(message)
                elif isinstance(message, BadSeq):
                    _logger.warning("Server reported a sequencing error during %r; exchange aborted", expression)
                    outcome.bad_seq = True
                    if self._on_bad_seq is not None:
                        self._on_bad_seq()
                    break
                else:
                    raise TypeError(f"Unhandled ServerMessage variant {type(message).__name__}")
        finally:
            self._tracker.move(IDLE)
        return outcome

    def _handle_log(self, message: Log) -> None:
        if self._on_log is not None:
            self._on_log(message)
        else:
            _logger.log(message.level.logging_level, "server: %s", message.message)

    def close(self) -> None:
        """Close the transport."""
        self._transport.close()

    def __enter__(self) -> ExpressionClient:
        """Return self."""
        if wire_transport_logger.isEnabledFor(logging.DEBUG):
            wire_transport_logger.debug("ExpressionClient open: transport=%s", type(self._transport).__name__)
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        """Close the transport."""
        if wire_transport_logger.isEnabledFor(logging.DEBUG):
            wire_transport_logger.debug("ExpressionClient close: transport=%s", type(self._transport).__name__)
        self.close()


@contextlib.contextmanager
def connect(
    cmd: list[str],
    resolver: SymbolResolver = DEFAULT_SYMBOLS,
    *,
    on_log: Callable[[Log], None] | None = None,
    on_message: MessageObserver | None = None,
    on_bad_seq: Callable[[], None] | None = None,
    stderr: StderrMode = StderrMode.INHERIT,
    stderr_logger: logging.Logger | None = None,
) -> Iterator[ExpressionClient]:
    """Spawn an expression server and yield a client connected to it.

    Args:
        cmd: Command that starts the server on its stdin/stdout.
        resolver: Supplies the value answered for each ``Query``.
        on_log: Receives ``Log`` messages from the server.
        on_message: Observer for every sent and received message.
        on_bad_seq: Called when the server reports a sequencing error.
        stderr: How to handle the child's stderr stream.
        stderr_logger: Logger for ``StderrMode.PIPE`` output.

    Yields:
        A connected :class:`ExpressionClient`.

    """
    transport = SubprocessTransport(cmd, stderr=stderr, stderr_logger=stderr_logger)
    try:
        with ExpressionClient(
            transport, resolver, on_log=on_log, on_message=on_message, on_bad_seq=on_bad_seq
        ) as client:
            yield client
    finally:
        transport.close()

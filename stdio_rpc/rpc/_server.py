"""Expression server: the authoritative driver of each exchange."""

from __future__ import annotations

import contextlib
import logging
import threading
import uuid
from collections.abc import Callable, Iterator

from stdio_rpc.expression import evaluate_int, extract_symbols, substitute
from stdio_rpc.log import Level
from stdio_rpc.request_log import RequestLog
from stdio_rpc.rpc._client import ExpressionClient, MessageObserver
from stdio_rpc.rpc._codec import FramingError
from stdio_rpc.rpc._debug import fmt_message, wire_exchange_logger, wire_transport_logger
from stdio_rpc.rpc._exchange import CLOSED, IDLE, OPEN, ExchangeOutcome, ExchangeState, _StateTracker
from stdio_rpc.rpc._messages import BadSeq, ClientMessage, Log, Query, Reply, Request, Response, ServerMessage
from stdio_rpc.rpc._transport import Transport, make_pipe_pair, stdio_transport
from stdio_rpc.symbols import DEFAULT_SYMBOLS, SymbolResolver

_logger = logging.getLogger("stdio_rpc.rpc")
_access_logger = logging.getLogger("stdio_rpc.access")

Evaluator = Callable[[str], int]
"""Evaluates substituted, purely numeric text; raises ``ValueError`` or ``ArithmeticError`` on failure."""


class ExpressionServer:
    """Answers ``Request`` messages, querying the client for each symbol.

    One server handles one pipe pair, one exchange at a time.  Sequencing
    violations are answered with ``BadSeq`` and abort only the current
    exchange; framing and I/O errors propagate out of :meth:`serve_one`.
    """

    __slots__ = ("_default_result", "_emit_logs", "_evaluator", "_request_log", "_server_id", "_tracker")

    def __init__(
        self,
        *,
        evaluator: Evaluator = evaluate_int,
        request_log: RequestLog | None = None,
        default_result: int = 0,
        emit_logs: bool = False,
        server_id: str | None = None,
    ) -> None:
        """Initialize the server.

        Args:
            evaluator: Integer evaluator applied after substitution.
            request_log: Optional sink recording every received request.
            default_result: Result sent when evaluation fails.
            emit_logs: When ``True``, send informational ``Log`` messages
                (symbol counts, evaluation fallbacks) during exchanges.
            server_id: Optional identifier for log correlation;
                auto-generated if ``None``.

        """
        self._evaluator = evaluator
        self._request_log = request_log
        self._default_result = default_result
        self._emit_logs = emit_logs
        self._server_id = server_id if server_id is not None else uuid.uuid4().hex[:12]
        self._tracker = _StateTracker(f"server[{self._server_id}]")
        _logger.info(
            "ExpressionServer created (server_id=%s)",
            self._server_id,
            extra={"server_id": self._server_id},
        )

    @property
    def server_id(self) -> str:
        """Identifier used in log records."""
        return self._server_id

    @property
    def state(self) -> ExchangeState:
        """Current exchange state."""
        return self._tracker.state

    def serve(self, transport: Transport) -> None:
        """Serve exchanges in a loop until the client hangs up or the stream breaks."""
        while True:
            try:
                self.serve_one(transport)
            except EOFError:
                break
            except (FramingError, OSError):
                _logger.warning(
                    "serve loop ending due to I/O error",
                    exc_info=True,
                    extra={"server_id": self._server_id},
                )
                break

    def serve_one(self, transport: Transport) -> ExchangeOutcome:
        """Handle one exchange: read its first message and drive it to the end.

        Returns:
            The outcome of the exchange.  When the first message is not a
            ``Request`` the outcome has ``bad_seq`` set and no expression.

        Raises:
            StreamClosedError: If the client hung up (clean EOF).
            FramingError: If a frame is truncated or invalid.
            OSError: If writing to the client fails.

        """
        try:
            message = ClientMessage.receive(transport.reader)
            if isinstance(message, Request):
                outcome = self._handle_request(transport, message.expression)
            elif isinstance(message, Reply):
                if wire_exchange_logger.isEnabledFor(logging.DEBUG):
                    wire_exchange_logger.debug("Unexpected %s while %s", fmt_message(message), self.state)
                self._send(transport, BadSeq())
                outcome = ExchangeOutcome(expression=None, bad_seq=True)
            else:
                raise TypeError(f"Unhandled ClientMessage variant {type(message).__name__}")
        except BaseException:
            self._tracker.move(IDLE)
            raise
        self._emit_access_log(outcome)
        return outcome

    def _handle_request(self, transport: Transport, expression: str) -> ExchangeOutcome:
        self._tracker.move(OPEN)
        if self._request_log is not None:
            self._request_log.record_request(expression)
            self._request_log.record_handling()

        outcome = ExchangeOutcome(expression=expression)
        symbols = extract_symbols(expression)
        if self._emit_logs and symbols:
            self._send(transport, Log(f"resolving {len(symbols)} symbol(s)", Level.DEBUG))

        for symbol in symbols:
            self._tracker.move(ExchangeState.awaiting_reply(symbol))
            self._send(transport, Query(symbol))
            outcome.queried.append(symbol)
            answer = ClientMessage.receive(transport.reader)
            if isinstance(answer, Reply):
                outcome.values[symbol] = answer.value
                self._tracker.move(OPEN)
            elif isinstance(answer, Request):
                if wire_exchange_logger.isEnabledFor(logging.DEBUG):
                    wire_exchange_logger.debug("Unexpected %s while %s", fmt_message(answer), self.state)
                self._send(transport, BadSeq())
                outcome.bad_seq = True
                self._tracker.move(IDLE)
                return outcome
            else:
                raise TypeError(f"Unhandled ClientMessage variant {type(answer).__name__}")

        result = self._evaluate(transport, substitute(expression, outcome.values))
        self._send(transport, Response(result))
        outcome.result = result
        self._tracker.move(CLOSED)
        self._tracker.move(IDLE)
        return outcome

    def _evaluate(self, transport: Transport, text: str) -> int:
        try:
            return self._evaluator(text)
        except (ValueError, ArithmeticError) as exc:
            _logger.debug(
                "Evaluation of %r failed (%s), responding %d",
                text,
                exc,
                self._default_result,
                extra={"server_id": self._server_id},
            )
            if self._emit_logs:
                self._send(transport, Log(f"evaluation failed: {exc}", Level.WARN))
            return self._default_result

    def _send(self, transport: Transport, message: ServerMessage) -> None:
        message.send(transport.writer)

    def _emit_access_log(self, outcome: ExchangeOutcome) -> None:
        if not _access_logger.isEnabledFor(logging.INFO):
            return
        _access_logger.info(
            "exchange %s",
            "aborted" if outcome.aborted else "ok",
            extra={
                "server_id": self._server_id,
                "expression": outcome.expression,
                "queried": "".join(outcome.queried),
                "result": outcome.result,
                "bad_seq": outcome.bad_seq,
            },
        )


# ---------------------------------------------------------------------------
# Entry points
# ---------------------------------------------------------------------------


def serve_stdio(server: ExpressionServer) -> None:
    """Serve exchanges over this process's stdin/stdout until the parent hangs up."""
    transport = stdio_transport()
    if wire_transport_logger.isEnabledFor(logging.DEBUG):
        wire_transport_logger.debug("serve_stdio: server_id=%s", server.server_id)
    try:
        server.serve(transport)
    finally:
        transport.close()


def run_server(server: ExpressionServer | None = None) -> None:
    """Entry point for the child process.

    Builds a default :class:`ExpressionServer` when none is given and
    serves it with :func:`serve_stdio`.
    """
    if server is None:
        server = ExpressionServer()
    serve_stdio(server)


@contextlib.contextmanager
def serve_pipe(
    server: ExpressionServer | None = None,
    resolver: SymbolResolver = DEFAULT_SYMBOLS,
    *,
    on_log: Callable[[Log], None] | None = None,
    on_message: MessageObserver | None = None,
    on_bad_seq: Callable[[], None] | None = None,
) -> Iterator[ExpressionClient]:
    """Start an in-process pipe server and yield a connected client.

    Useful for tests and demos: no subprocess is needed.  A background
    thread runs ``server.serve()`` on the server side of a pipe pair.
    """
    if server is None:
        server = ExpressionServer()
    client_transport, server_transport = make_pipe_pair()
    thread = threading.Thread(target=server.serve, args=(server_transport,), daemon=True)
    thread.start()
    try:
        with ExpressionClient(
            client_transport, resolver, on_log=on_log, on_message=on_message, on_bad_seq=on_bad_seq
        ) as client:
            yield client
    finally:
        thread.join(timeout=5)
        server_transport.close()

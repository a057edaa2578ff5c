# © Copyright 2025-2026, Query.Farm LLC - https://query.farm
# SPDX-License-Identifier: Apache-2.0

"""Interactive expression exchange over a pair of byte streams.

A client sends an expression; the server asks the client, one symbol at a
time, for the values it cannot interpret, then answers with the result.

Messages
--------
- **ClientMessage**: ``Request(expression)``, ``Reply(value)``
- **ServerMessage**: ``Query(symbol)``, ``Response(value)``, ``Log(message, level)``,
  ``BadSeq()``

Each family is bound to one codec when its class is defined.  Both stock
families use :class:`LengthPrefixedCodec`; :class:`LineDelimitedCodec` is
available for other families.

Wire Protocol
-------------
Every message is one frame::

    [8 bytes: big-endian unsigned length N] [N bytes: Arrow IPC stream]

The Arrow IPC stream holds one record batch built from the variant's
fields (an empty batch for ``BadSeq``).  The batch's custom metadata
carries ``stdio_rpc.variant`` and ``stdio_rpc.protocol_version``.

**Exchange**::

    Client→Server: Request(expr)
    Server→Client: Query(s₁)      Client→Server: Reply(v₁)
    ...
    Server→Client: Query(sₙ)      Client→Server: Reply(vₙ)
    Server→Client: Response(result)

Each distinct symbol is queried once, in order of first occurrence.  A
message that is not valid in the current state is answered with
``BadSeq`` and the exchange is abandoned; the next ``Request`` starts a
fresh one.  ``Log`` messages may appear anywhere in the server stream and
do not affect sequencing.

"""

from __future__ import annotations

from stdio_rpc.rpc._client import ExpressionClient, MessageObserver, connect
from stdio_rpc.rpc._codec import (
    DEFAULT_MAX_FRAME_BYTES,
    Codec,
    FramingError,
    LengthPrefixedCodec,
    LineDelimitedCodec,
    StreamClosedError,
)
from stdio_rpc.rpc._envelope import Envelope, receive_msg, send_msg
from stdio_rpc.rpc._exchange import CLOSED, IDLE, OPEN, ExchangeOutcome, ExchangeState, Phase
from stdio_rpc.rpc._messages import (
    INT64_MAX,
    INT64_MIN,
    BadSeq,
    ClientMessage,
    Log,
    Query,
    Reply,
    Request,
    Response,
    ServerMessage,
)
from stdio_rpc.rpc._server import Evaluator, ExpressionServer, run_server, serve_pipe, serve_stdio
from stdio_rpc.rpc._transport import (
    PipeTransport,
    StderrMode,
    SubprocessTransport,
    Transport,
    make_pipe_pair,
    stdio_transport,
)

__all__ = [
    "CLOSED",
    "DEFAULT_MAX_FRAME_BYTES",
    "IDLE",
    "INT64_MAX",
    "INT64_MIN",
    "OPEN",
    "BadSeq",
    "ClientMessage",
    "Codec",
    "Envelope",
    "Evaluator",
    "ExchangeOutcome",
    "ExchangeState",
    "ExpressionClient",
    "ExpressionServer",
    "FramingError",
    "LengthPrefixedCodec",
    "LineDelimitedCodec",
    "Log",
    "MessageObserver",
    "Phase",
    "PipeTransport",
    "Query",
    "Reply",
    "Request",
    "Response",
    "ServerMessage",
    "StderrMode",
    "StreamClosedError",
    "SubprocessTransport",
    "Transport",
    "connect",
    "make_pipe_pair",
    "receive_msg",
    "run_server",
    "send_msg",
    "serve_pipe",
    "serve_stdio",
    "stdio_transport",
]

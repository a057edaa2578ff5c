# © Copyright 2025-2026, Query.Farm LLC - https://query.farm
# SPDX-License-Identifier: Apache-2.0

"""Interactive expression RPC between a parent process and a child over stdio."""

import logging

from stdio_rpc.expression import EvaluationError, evaluate_int, evaluate_or_default, extract_symbols, substitute
from stdio_rpc.log import Level
from stdio_rpc.metadata import PROTOCOL_VERSION
from stdio_rpc.request_log import DEFAULT_REQUEST_LOG, RequestLog
from stdio_rpc.rpc import (
    BadSeq,
    ClientMessage,
    Codec,
    Envelope,
    ExchangeOutcome,
    ExchangeState,
    ExpressionClient,
    ExpressionServer,
    FramingError,
    LengthPrefixedCodec,
    LineDelimitedCodec,
    Log,
    Phase,
    PipeTransport,
    Query,
    Reply,
    Request,
    Response,
    ServerMessage,
    StderrMode,
    StreamClosedError,
    SubprocessTransport,
    Transport,
    connect,
    make_pipe_pair,
    receive_msg,
    run_server,
    send_msg,
    serve_pipe,
    serve_stdio,
)
from stdio_rpc.symbols import DEFAULT_SYMBOLS, SymbolResolver, SymbolTable
from stdio_rpc.utils import ArrowSerializableDataclass, IPCError

# Attach NullHandler so library users don't get "No handler found" warnings.
logging.getLogger("stdio_rpc").addHandler(logging.NullHandler())

__all__ = [
    "DEFAULT_REQUEST_LOG",
    "DEFAULT_SYMBOLS",
    "PROTOCOL_VERSION",
    "ArrowSerializableDataclass",
    "BadSeq",
    "ClientMessage",
    "Codec",
    "Envelope",
    "EvaluationError",
    "ExchangeOutcome",
    "ExchangeState",
    "ExpressionClient",
    "ExpressionServer",
    "FramingError",
    "IPCError",
    "LengthPrefixedCodec",
    "Level",
    "LineDelimitedCodec",
    "Log",
    "Phase",
    "PipeTransport",
    "Query",
    "Reply",
    "Request",
    "RequestLog",
    "Response",
    "ServerMessage",
    "StderrMode",
    "StreamClosedError",
    "SubprocessTransport",
    "SymbolResolver",
    "SymbolTable",
    "Transport",
    "connect",
    "evaluate_int",
    "evaluate_or_default",
    "extract_symbols",
    "make_pipe_pair",
    "receive_msg",
    "run_server",
    "send_msg",
    "serve_pipe",
    "serve_stdio",
    "substitute",
]

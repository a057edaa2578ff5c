# © Copyright 2025-2026, Query.Farm LLC - https://query.farm
# SPDX-License-Identifier: Apache-2.0

"""Command-line interface for stdio-rpc.

Provides ``serve`` (the child side, speaking frames on stdin/stdout),
``repl`` and ``eval`` (the parent side, spawning a server) and
``loggers`` (the logger registry).

Usage::

    stdio-rpc repl
    stdio-rpc eval "a+b*c"
    stdio-rpc --debug eval "▶/▼" --cmd "python -m stdio_rpc serve --emit-logs"

"""

from __future__ import annotations

import json
import logging
import shlex
import sys
from dataclasses import dataclass
from enum import StrEnum
from pathlib import Path
from typing import Annotated

import typer

from stdio_rpc.render import render_header, render_message, render_symbol_pool
from stdio_rpc.request_log import DEFAULT_REQUEST_LOG, RequestLog
from stdio_rpc.rpc import (
    Envelope,
    ExpressionServer,
    FramingError,
    Log,
    StderrMode,
    connect,
    run_server,
)
from stdio_rpc.symbols import DEFAULT_SYMBOLS

# ---------------------------------------------------------------------------
# Option enums
# ---------------------------------------------------------------------------


class LogFormat(StrEnum):
    """Formatter for the stderr log handler."""

    text = "text"
    json = "json"


class LogLevel(StrEnum):
    """Threshold for the stderr log handler."""

    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"


class OutputFormat(StrEnum):
    """Output format for listing commands."""

    table = "table"
    json = "json"


# ---------------------------------------------------------------------------
# Known loggers registry
# ---------------------------------------------------------------------------

_KNOWN_LOGGERS: tuple[tuple[str, str, str], ...] = (
    ("stdio_rpc", "Root logger for all stdio-rpc output", "Enable to see all framework logging"),
    ("stdio_rpc.access", "One structured record per completed exchange", "Monitor expressions, results and aborts"),
    ("stdio_rpc.rpc", "Server and client lifecycle", "Debug serve loop exits and server Log forwarding"),
    ("stdio_rpc.symbols", "Client symbol resolution", "See symbols answered with the default value"),
    ("stdio_rpc.subprocess.stderr", "Child process stderr capture", "See server stderr output"),
    ("stdio_rpc.wire.frame", "Frame encoding and decoding", "Debug truncated, oversized or stray frames"),
    ("stdio_rpc.wire.exchange", "Exchange state transitions", "Debug BadSeq and out-of-order messages"),
    ("stdio_rpc.wire.transport", "Transport lifecycle (pipe, subprocess)", "Debug connection hangs or fd issues"),
)

_KNOWN_LOGGER_NAMES: frozenset[str] = frozenset(name for name, _, _ in _KNOWN_LOGGERS)

# ---------------------------------------------------------------------------
# CLI config
# ---------------------------------------------------------------------------


@dataclass
class _CliConfig:
    """Holds resolved CLI options."""

    verbose: bool = False


app = typer.Typer(
    name="stdio-rpc",
    help="Evaluate expressions against a server that asks for each symbol's value.",
    add_completion=False,
    no_args_is_help=True,
)


def _configure_logging(
    level: LogLevel | None,
    targets: list[str] | None,
    log_format: LogFormat,
) -> None:
    """Attach a stderr handler to the target loggers at the requested level."""
    if level is None:
        return
    handler = logging.StreamHandler(sys.stderr)
    if log_format == LogFormat.json:
        from stdio_rpc.logging_utils import StdioRpcJsonFormatter

        handler.setFormatter(StdioRpcJsonFormatter())
    else:
        handler.setFormatter(logging.Formatter("%(name)-26s %(levelname)-5s %(message)s"))

    numeric_level = logging.getLevelNamesMapping()[level.value]
    for name in targets or ["stdio_rpc"]:
        if name not in _KNOWN_LOGGER_NAMES:
            typer.echo(f"Warning: unknown logger '{name}'", err=True)
        logger = logging.getLogger(name)
        logger.setLevel(numeric_level)
        logger.addHandler(handler)


# ---------------------------------------------------------------------------
# Global callback
# ---------------------------------------------------------------------------


@app.callback()
def _main(
    ctx: typer.Context,
    verbose: Annotated[bool, typer.Option("--verbose", "-v", help="Show server Log messages on stderr")] = False,
    debug: Annotated[bool, typer.Option("--debug", help="Shorthand for --log-level DEBUG")] = False,
    log_level: Annotated[LogLevel | None, typer.Option("--log-level", help="Enable logging at this level")] = None,
    log_logger: Annotated[
        list[str] | None, typer.Option("--log-logger", help="Logger to configure (repeatable; default stdio_rpc)")
    ] = None,
    log_format: Annotated[LogFormat, typer.Option("--log-format", help="Log record format")] = LogFormat.text,
) -> None:
    """Configure logging and output options."""
    if debug:
        log_level = LogLevel.DEBUG
    _configure_logging(log_level, log_logger, log_format)
    ctx.obj = _CliConfig(verbose=verbose)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _log_to_stderr(msg: Log) -> None:
    """Write a server log message to stderr."""
    sys.stderr.write(f"[{msg.level.value}] {msg.message}\n")
    sys.stderr.flush()


def _ignore_log(msg: Log) -> None:
    """Drop a server log message; the transcript already shows it."""


def _echo_message(message: Envelope, outgoing: bool) -> None:
    typer.echo(render_message(message, outgoing))


def _server_cmd(cmd: str | None, config: _CliConfig) -> list[str]:
    """Resolve the server command: ``--cmd`` if given, else this interpreter's ``serve``."""
    if cmd:
        return shlex.split(cmd)
    argv = [sys.executable, "-m", "stdio_rpc", "serve"]
    if config.verbose:
        argv.append("--emit-logs")
    return argv


def _format_table(rows: list[dict[str, str]]) -> str:
    """Format rows as a column-aligned text table."""
    if not rows:
        return "(empty)"
    columns = list(rows[0].keys())
    widths = {col: max(len(col), *(len(row[col]) for row in rows)) for col in columns}
    lines = [
        "  ".join(col.ljust(widths[col]) for col in columns),
        "  ".join("-" * widths[col] for col in columns),
    ]
    lines.extend("  ".join(row[col].ljust(widths[col]) for col in columns) for row in rows)
    return "\n".join(lines)


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------


@app.command()
def serve(
    request_log: Annotated[
        Path,
        typer.Option("--request-log", envvar="STDIO_RPC_REQUEST_LOG", help="File that records received requests"),
    ] = Path(DEFAULT_REQUEST_LOG),
    no_request_log: Annotated[bool, typer.Option("--no-request-log", help="Do not record requests")] = False,
    emit_logs: Annotated[bool, typer.Option("--emit-logs", help="Send Log messages during exchanges")] = False,
) -> None:
    """Serve exchanges on stdin/stdout; launched as a child by ``repl`` and ``eval``."""
    sink = None if no_request_log else RequestLog(request_log)
    try:
        run_server(ExpressionServer(request_log=sink, emit_logs=emit_logs))
    finally:
        if sink is not None:
            sink.close()


@app.command()
def repl(
    ctx: typer.Context,
    cmd: Annotated[str | None, typer.Option("--cmd", "-c", help="Server command (default: stdio-rpc serve)")] = None,
) -> None:
    """Read expressions from stdin and show each exchange as a transcript."""
    config: _CliConfig = ctx.obj
    typer.echo(render_symbol_pool(DEFAULT_SYMBOLS))
    typer.echo("")
    try:
        with connect(
            _server_cmd(cmd, config),
            DEFAULT_SYMBOLS,
            on_log=_log_to_stderr if config.verbose else _ignore_log,
            on_message=_echo_message,
            on_bad_seq=lambda: typer.echo("Bad sequence", err=True),
            stderr=StderrMode.INHERIT,
        ) as client:
            while True:
                typer.echo("Enter an expression: ")
                line = sys.stdin.readline()
                if not line:
                    break
                typer.echo("")
                typer.echo(render_header())
                client.evaluate(line.strip())
                typer.echo("")
    except (FramingError, OSError) as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(1) from None


@app.command("eval")
def eval_(
    ctx: typer.Context,
    expression: Annotated[str, typer.Argument(help="Expression to evaluate, e.g. 'a+b*c'")],
    cmd: Annotated[str | None, typer.Option("--cmd", "-c", help="Server command (default: stdio-rpc serve)")] = None,
    transcript: Annotated[bool, typer.Option("--transcript", "-t", help="Print the exchange transcript")] = False,
) -> None:
    """Evaluate one expression and print the result."""
    config: _CliConfig = ctx.obj
    try:
        with connect(
            _server_cmd(cmd, config),
            DEFAULT_SYMBOLS,
            on_log=_log_to_stderr if config.verbose else None,
            on_message=_echo_message if transcript else None,
        ) as client:
            outcome = client.evaluate(expression)
    except (FramingError, OSError) as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(1) from None
    if outcome.bad_seq:
        typer.echo("Error: server reported a sequencing error", err=True)
        raise typer.Exit(2)
    typer.echo(str(outcome.result))


@app.command()
def loggers(
    fmt: Annotated[OutputFormat, typer.Option("--format", "-f", help="Output format")] = OutputFormat.table,
) -> None:
    """List the loggers stdio-rpc writes to."""
    rows = [{"name": n, "description": d, "scenario": s} for n, d, s in _KNOWN_LOGGERS]
    if fmt == OutputFormat.json:
        typer.echo(json.dumps(rows, indent=2))
    else:
        typer.echo(_format_table(rows))


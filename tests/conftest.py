"""Shared test fixtures for stdio-rpc tests."""

from __future__ import annotations

import sys
import threading
from collections.abc import Callable, Iterator
from dataclasses import dataclass, field
from pathlib import Path

import pytest

from stdio_rpc.rpc import (
    ExchangeOutcome,
    ExpressionClient,
    ExpressionServer,
    PipeTransport,
    make_pipe_pair,
    serve_pipe,
)

_SERVE_FIXTURE = str(Path(__file__).parent / "serve_fixture_pipe.py")


def _worker_cmd(*args: str) -> list[str]:
    """Return the command to launch the test server subprocess."""
    return [sys.executable, _SERVE_FIXTURE, *args]


@dataclass
class ServerHarness:
    """A server thread on one end of a pipe pair, recording every outcome."""

    client: PipeTransport
    server: ExpressionServer
    outcomes: list[ExchangeOutcome] = field(default_factory=list)
    errors: list[BaseException] = field(default_factory=list)
    done: threading.Event = field(default_factory=threading.Event)


@pytest.fixture
def pipe_client() -> Iterator[ExpressionClient]:
    """Client connected to an in-process server with default options."""
    with serve_pipe() as client:
        yield client


@pytest.fixture
def make_harness() -> Iterator[Callable[..., ServerHarness]]:
    """Return a factory that starts a recording server thread.

    The factory accepts :class:`ExpressionServer` keyword arguments.  Tests
    drive the client side directly through ``harness.client`` so they can
    send out-of-sequence messages.
    """
    started: list[tuple[ServerHarness, threading.Thread, PipeTransport]] = []

    def factory(**server_kwargs: object) -> ServerHarness:
        client_transport, server_transport = make_pipe_pair()
        harness = ServerHarness(client=client_transport, server=ExpressionServer(**server_kwargs))  # type: ignore[arg-type]

        def run() -> None:
            try:
                while True:
                    harness.outcomes.append(harness.server.serve_one(server_transport))
            except EOFError:
                pass
            except BaseException as exc:
                harness.errors.append(exc)
            finally:
                harness.done.set()

        thread = threading.Thread(target=run, daemon=True)
        thread.start()
        started.append((harness, thread, server_transport))
        return harness

    yield factory

    for harness, thread, server_transport in started:
        harness.client.close()
        thread.join(timeout=5)
        server_transport.close()


@pytest.fixture
def worker_cmd() -> Callable[..., list[str]]:
    """Return a function building the test server's command line."""
    return _worker_cmd

"""Debug logging infrastructure for wire protocol diagnostics.

Provides logger instances under the ``stdio_rpc.wire.*`` hierarchy and
formatting helpers for frames and messages.  Enabling
``logging.getLogger("stdio_rpc.wire").setLevel(logging.DEBUG)`` (or
``stdio-rpc --debug``) gives full visibility into what flows over the
pipes.

All formatting helpers return ``str`` and never log directly.
They are designed to be called inside ``isEnabledFor`` guards so
there is zero overhead when debug logging is disabled.
"""

from __future__ import annotations

import logging
from dataclasses import fields

import pyarrow as pa

# ---------------------------------------------------------------------------
# Logger hierarchy: stdio_rpc.wire.*
# ---------------------------------------------------------------------------

wire_frame_logger = logging.getLogger("stdio_rpc.wire.frame")
"""Frame encoding / decoding (both codecs)."""

wire_exchange_logger = logging.getLogger("stdio_rpc.wire.exchange")
"""Exchange state transitions."""

wire_transport_logger = logging.getLogger("stdio_rpc.wire.transport")
"""Transport lifecycle (pipe, subprocess)."""

# ---------------------------------------------------------------------------
# Formatting helpers
# ---------------------------------------------------------------------------

_MAX_VALUE_LEN = 80
"""Maximum repr length for individual values in fmt_metadata / fmt_message."""


def _truncate(text: str) -> str:
    if len(text) > _MAX_VALUE_LEN:
        return text[:_MAX_VALUE_LEN] + "..."
    return text


def fmt_metadata(metadata: pa.KeyValueMetadata | None) -> str:
    """Format Arrow custom metadata compactly.

    Returns:
        ``"{stdio_rpc.variant='Query', stdio_rpc.protocol_version='1'}"``
        or ``"None"`` when metadata is absent.

    """
    if metadata is None:
        return "None"
    parts: list[str] = []
    for k, v in metadata.items():
        key = k.decode("utf-8", errors="replace") if isinstance(k, bytes) else k
        val = v.decode("utf-8", errors="replace") if isinstance(v, bytes) else v
        parts.append(f"{key}={_truncate(val)!r}")
    return "{" + ", ".join(parts) + "}"


def fmt_message(message: object) -> str:
    """Format a protocol message compactly.

    Returns:
        ``"Request(expression='a+b')"``, ``"BadSeq()"``; long field values
        are truncated.

    """
    parts = [f"{f.name}={_truncate(repr(getattr(message, f.name)))}" for f in fields(message)]  # type: ignore[arg-type]
    return f"{type(message).__name__}({', '.join(parts)})"


def fmt_frame(length: int, payload: bytes) -> str:
    """Format a frame summary.

    Returns:
        ``"Frame(length=312, head=ffffffff...)"``

    """
    return f"Frame(length={length}, head={payload[:8].hex()}{'...' if len(payload) > 8 else ''})"

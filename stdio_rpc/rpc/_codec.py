"""Frame codecs: how one message is delimited inside a shared byte stream.

Two interchangeable strategies are provided.  A message family picks one
when its class is defined (see :class:`~stdio_rpc.rpc.Envelope`); callers
only ever see ``send`` / ``receive``.

**LengthPrefixedCodec** (binary)::

    [8 bytes: big-endian unsigned length N] [N bytes: Arrow IPC stream]

The Arrow IPC stream holds the schema, one record batch built from the
variant's fields, and the end-of-stream marker.  The batch's custom
metadata carries ``stdio_rpc.variant`` and ``stdio_rpc.protocol_version``.

**LineDelimitedCodec** (text)::

    {"<Variant>": {<fields>}}\\n

Lines that do not start with ``{`` are stray output from a co-resident
component sharing the stream; they are logged and skipped.
"""

from __future__ import annotations

import json
import logging
import struct
from io import IOBase
from typing import TYPE_CHECKING, Any, Protocol, TypeVar, runtime_checkable

import pyarrow as pa

from stdio_rpc.metadata import PROTOCOL_VERSION, PROTOCOL_VERSION_KEY, VARIANT_KEY, decode_metadata
from stdio_rpc.rpc._debug import fmt_frame, fmt_message, fmt_metadata, wire_frame_logger
from stdio_rpc.utils import IPCError, deserialize_record_batch

if TYPE_CHECKING:
    from stdio_rpc.rpc._envelope import Envelope

M = TypeVar("M", bound="Envelope")

_LENGTH = struct.Struct(">Q")
LENGTH_PREFIX_BYTES = _LENGTH.size

DEFAULT_MAX_FRAME_BYTES = 64 * 1024 * 1024
"""Largest payload accepted by :class:`LengthPrefixedCodec` unless overridden."""


# ---------------------------------------------------------------------------
# Errors
# ---------------------------------------------------------------------------


class FramingError(IPCError):
    """A frame could not be read or decoded into a valid message.

    Raised for truncated length prefixes or payloads, oversized frames,
    payloads that are not valid for the target family, and malformed
    text lines.  Fatal to the current read.
    """


class StreamClosedError(FramingError, EOFError):
    """The stream ended cleanly at a frame boundary (the peer hung up)."""


# ---------------------------------------------------------------------------
# Codec protocol
# ---------------------------------------------------------------------------


@runtime_checkable
class Codec(Protocol):
    """Encodes messages onto a binary sink and decodes them from a source."""

    def send(self, message: Envelope, writer: IOBase) -> None:
        """Write one framed message and flush."""
        ...

    def receive(self, family: type[M], reader: IOBase) -> M:
        """Read exactly one framed message of *family*."""
        ...


# ---------------------------------------------------------------------------
# Low-level IO
# ---------------------------------------------------------------------------


def _write_all(writer: IOBase, data: bytes) -> None:
    """Write *data* fully; unbuffered pipe writers may accept partial writes."""
    view = memoryview(data)
    while view:
        written = writer.write(view)
        if written is None:
            raise BlockingIOError("writer would block")
        view = view[written:]
    writer.flush()


def _read_exact(reader: IOBase, n: int, *, what: str, at_boundary: bool = False) -> bytes:
    """Read exactly *n* bytes, looping over short pipe reads.

    Raises:
        StreamClosedError: If *at_boundary* and the stream is already at EOF.
        FramingError: If the stream ends after fewer than *n* bytes.

    """
    chunks: list[bytes] = []
    remaining = n
    while remaining:
        chunk = reader.read(remaining)
        if not chunk:
            got = n - remaining
            if at_boundary and got == 0:
                raise StreamClosedError("stream closed")
            raise FramingError(f"stream closed mid-frame: expected {n} {what} bytes, got {got}")
        chunks.append(chunk)
        remaining -= len(chunk)
    return b"".join(chunks)


# ---------------------------------------------------------------------------
# Length-prefixed binary codec
# ---------------------------------------------------------------------------


class LengthPrefixedCodec:
    """8-byte big-endian length prefix followed by an Arrow IPC payload."""

    __slots__ = ("_max_frame_bytes",)

    def __init__(self, *, max_frame_bytes: int = DEFAULT_MAX_FRAME_BYTES) -> None:
        """Initialize with the largest payload size accepted on receive."""
        if max_frame_bytes <= 0:
            raise ValueError(f"max_frame_bytes must be positive, got {max_frame_bytes}")
        self._max_frame_bytes = max_frame_bytes

    def __repr__(self) -> str:
        """Return a string representation suitable for debugging."""
        return f"LengthPrefixedCodec(max_frame_bytes={self._max_frame_bytes})"

    @property
    def max_frame_bytes(self) -> int:
        """Largest payload accepted on receive."""
        return self._max_frame_bytes

    def encode(self, message: Envelope) -> bytes:
        """Encode *message* as a complete frame (prefix + payload)."""
        custom_metadata = pa.KeyValueMetadata(
            {VARIANT_KEY: type(message).__name__.encode(), PROTOCOL_VERSION_KEY: PROTOCOL_VERSION}
        )
        payload = message.serialize_to_bytes(custom_metadata)
        if wire_frame_logger.isEnabledFor(logging.DEBUG):
            wire_frame_logger.debug(
                "Encode %s: %s, metadata=%s",
                fmt_message(message),
                fmt_frame(len(payload), payload),
                fmt_metadata(custom_metadata),
            )
        return _LENGTH.pack(len(payload)) + payload

    def decode_payload(self, family: type[M], payload: bytes) -> M:
        """Decode one frame payload (without its length prefix) into a *family* variant.

        Raises:
            FramingError: If the payload is not a valid message of *family*.

        """
        try:
            batch, custom_metadata = deserialize_record_batch(payload)
        except (pa.ArrowException, IPCError, ValueError) as exc:
            raise FramingError(f"Invalid {family.__name__} payload: {exc}") from exc

        md = decode_metadata(custom_metadata)
        version = md.get(PROTOCOL_VERSION_KEY.decode())
        if version != PROTOCOL_VERSION.decode():
            raise FramingError(
                f"Unsupported protocol version {version!r} in {family.__name__} frame, "
                f"expected {PROTOCOL_VERSION.decode()!r}"
            )
        name = md.get(VARIANT_KEY.decode())
        if name is None:
            raise FramingError(f"{family.__name__} frame carries no variant tag")
        try:
            variant = family.variant(name)
        except KeyError:
            raise FramingError(f"Unknown {family.__name__} variant {name!r}") from None

        try:
            message = variant.deserialize_from_batch(batch)
        except (pa.ArrowException, ValueError, TypeError) as exc:
            raise FramingError(f"Invalid {name} payload: {exc}") from exc

        if wire_frame_logger.isEnabledFor(logging.DEBUG):
            wire_frame_logger.debug(
                "Decode %s: %s, metadata=%s",
                fmt_message(message),
                fmt_frame(len(payload), payload),
                fmt_metadata(custom_metadata),
            )
        return message

    def send(self, message: Envelope, writer: IOBase) -> None:
        """Write one framed message and flush."""
        _write_all(writer, self.encode(message))

    def receive(self, family: type[M], reader: IOBase) -> M:
        """Read exactly one framed message of *family*.

        Raises:
            StreamClosedError: If the stream is at EOF before the frame starts.
            FramingError: On truncation, an oversized length, or an invalid payload.

        """
        header = _read_exact(reader, LENGTH_PREFIX_BYTES, what="length-prefix", at_boundary=True)
        (length,) = _LENGTH.unpack(header)
        if length > self._max_frame_bytes:
            raise FramingError(f"Frame of {length} bytes exceeds the {self._max_frame_bytes} byte limit")
        payload = _read_exact(reader, length, what="payload")
        return self.decode_payload(family, payload)


# ---------------------------------------------------------------------------
# Newline-delimited text codec
# ---------------------------------------------------------------------------


class LineDelimitedCodec:
    """One compact JSON object per line, externally tagged by variant name."""

    __slots__ = ()

    MARKER = "{"
    """Every well-formed line starts with this character."""

    def __repr__(self) -> str:
        """Return a string representation suitable for debugging."""
        return "LineDelimitedCodec()"

    def encode(self, message: Envelope) -> bytes:
        """Encode *message* as one JSON line including the trailing newline."""
        line = json.dumps(
            {type(message).__name__: message._to_row_dict()},
            ensure_ascii=False,
            separators=(",", ":"),
        )
        if wire_frame_logger.isEnabledFor(logging.DEBUG):
            wire_frame_logger.debug("Encode %s: line=%s", fmt_message(message), line[:80])
        return line.encode("utf-8") + b"\n"

    def decode_line(self, family: type[M], line: str) -> M:
        """Decode one line (without its newline) into a *family* variant.

        Raises:
            FramingError: If the line is not valid JSON of the expected shape.

        """
        try:
            obj: Any = json.loads(line)
        except ValueError as exc:
            raise FramingError(f"Invalid {family.__name__} line: {exc}") from exc
        if not isinstance(obj, dict) or len(obj) != 1:
            raise FramingError(f"Expected a single-key object for {family.__name__}, got {line[:80]!r}")
        ((name, fields),) = obj.items()
        if not isinstance(fields, dict):
            raise FramingError(f"Fields of {name!r} must be an object, got {type(fields).__name__}")
        try:
            variant = family.variant(name)
        except KeyError:
            raise FramingError(f"Unknown {family.__name__} variant {name!r}") from None
        try:
            return variant.from_row_dict(fields)
        except (ValueError, TypeError) as exc:
            raise FramingError(f"Invalid {name} fields: {exc}") from exc

    def send(self, message: Envelope, writer: IOBase) -> None:
        """Write one message line and flush."""
        _write_all(writer, self.encode(message))

    def receive(self, family: type[M], reader: IOBase) -> M:
        """Read lines until one decodes into a message of *family*.

        Raises:
            StreamClosedError: If the stream is at EOF.
            FramingError: On an empty line or a line that fails to parse.

        """
        while True:
            raw = reader.readline()
            if not raw:
                raise StreamClosedError("stream closed")
            try:
                line = raw.decode("utf-8")
            except UnicodeDecodeError as exc:
                raise FramingError(f"Line is not valid UTF-8: {exc}") from exc
            line = line.removesuffix("\n").removesuffix("\r")
            if not line:
                raise FramingError("empty line")
            if not line.startswith(self.MARKER):
                wire_frame_logger.warning("Discarding stray output on %s stream: %r", family.__name__, line[:200])
                continue
            return self.decode_line(family, line)

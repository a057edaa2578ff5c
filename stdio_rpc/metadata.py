"""Shared helpers for ``pa.KeyValueMetadata`` used on the wire.

Centralises the well-known metadata keys carried on every message batch
(the variant tag and the wire-protocol version constant
``PROTOCOL_VERSION``) together with encoding and decoding, so the codec
and the debug logging helpers share a single implementation.
"""

from __future__ import annotations

import pyarrow as pa

__all__ = [
    "PROTOCOL_VERSION",
    "PROTOCOL_VERSION_KEY",
    "VARIANT_KEY",
    "decode_metadata",
    "encode_metadata",
]

# ---------------------------------------------------------------------------
# Well-known metadata keys (bytes, matching what appears on the wire)
# ---------------------------------------------------------------------------

VARIANT_KEY = b"stdio_rpc.variant"
PROTOCOL_VERSION_KEY = b"stdio_rpc.protocol_version"
PROTOCOL_VERSION = b"1"

# ---------------------------------------------------------------------------
# Encode / decode
# ---------------------------------------------------------------------------


def encode_metadata(metadata: dict[str, str]) -> pa.KeyValueMetadata:
    """Encode a plain ``dict[str, str]`` to ``pa.KeyValueMetadata`` with bytes keys/values."""
    return pa.KeyValueMetadata({k.encode(): v.encode() for k, v in metadata.items()})


def decode_metadata(metadata: pa.KeyValueMetadata | None) -> dict[str, str]:
    """Decode ``pa.KeyValueMetadata`` into a plain ``dict[str, str]``.

    Undecodable bytes are replaced rather than raising, so the result is
    always safe to log.  ``None`` decodes to an empty dict.
    """
    if metadata is None:
        return {}
    decoded: dict[str, str] = {}
    for k, v in metadata.items():
        key = k.decode("utf-8", errors="replace") if isinstance(k, bytes) else k
        val = v.decode("utf-8", errors="replace") if isinstance(v, bytes) else v
        decoded[key] = val
    return decoded

"""Arrow IPC helpers and single-row dataclass serialization.

Every binary protocol message is a frozen dataclass whose fields become
the columns of a one-row Arrow ``RecordBatch``.  The batch is written as
a complete Arrow IPC stream: schema, batch, end-of-stream marker.

KEY FUNCTIONS
-------------
serialize_record_batch(destination, batch, metadata) : Write one IPC stream
serialize_record_batch_bytes(batch, metadata) : Same, returning bytes
deserialize_record_batch(data) : Read the single batch back with its metadata

KEY CLASSES
-----------
ArrowSerializableDataclass : Mixin deriving ARROW_SCHEMA from field annotations.
IPCError : Exception raised on IPC communication errors.

Column types follow the annotation: ``str``, ``int`` (int64), ``float``,
``bool``, ``bytes``, ``NewType`` wrappers of those, ``X | None``
(nullable), and ``Enum`` subclasses carried by member name in a
dictionary-encoded string column.
"""

import functools
import os
import sys
from dataclasses import MISSING, dataclass, fields
from enum import Enum
from io import BytesIO, IOBase
from types import UnionType
from typing import Any, ClassVar, Self, Union, get_args, get_origin, get_type_hints

import pyarrow as pa
import structlog
from pyarrow import ipc

from stdio_rpc.metadata import decode_metadata

__all__ = [
    "ArrowSerializableDataclass",
    "IPCError",
    "deserialize_record_batch",
    "serialize_record_batch",
    "serialize_record_batch_bytes",
]


class IPCError(Exception):
    """Error during IPC message reading or writing."""


# ---------------------------------------------------------------------------
# IPC tracing (STDIO_RPC_IPC_DEBUG=1)
# ---------------------------------------------------------------------------

_IPC_DEBUG = os.environ.get("STDIO_RPC_IPC_DEBUG", "").lower() in ("1", "true", "yes")


@functools.cache
def _ipc_log() -> structlog.stdlib.BoundLogger:
    """Structlog logger for IPC tracing; stdout is the wire, so it prints to stderr."""
    structlog.configure(
        processors=[
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.dev.ConsoleRenderer(),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(0),
        logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
    )
    return structlog.get_logger().bind(component="ipc")


def _trace(event: str, batch: pa.RecordBatch, custom_metadata: pa.KeyValueMetadata | None, **extra: Any) -> None:
    _ipc_log().debug(
        event,
        num_rows=batch.num_rows,
        schema={f.name: str(f.type) for f in batch.schema},
        metadata=decode_metadata(custom_metadata),
        **extra,
    )


# ---------------------------------------------------------------------------
# Single-batch IPC streams
# ---------------------------------------------------------------------------


def serialize_record_batch(
    destination: IOBase,
    batch: pa.RecordBatch,
    custom_metadata: pa.KeyValueMetadata | None = None,
) -> None:
    """Write *batch* to *destination* as a complete Arrow IPC stream."""
    with ipc.new_stream(destination, batch.schema) as writer:
        writer.write_batch(batch, custom_metadata=custom_metadata)
    if _IPC_DEBUG:
        _trace("ipc_write", batch, custom_metadata)


def serialize_record_batch_bytes(
    batch: pa.RecordBatch,
    custom_metadata: pa.KeyValueMetadata | None = None,
) -> bytes:
    """Return the IPC stream bytes for *batch*, end-of-stream marker included."""
    sink = BytesIO()
    serialize_record_batch(sink, batch, custom_metadata)
    return sink.getvalue()


def deserialize_record_batch(data: bytes) -> tuple[pa.RecordBatch, pa.KeyValueMetadata | None]:
    """Read the one batch held by the IPC stream *data*.

    Returns:
        The batch and its custom metadata (``None`` when none was attached).

    Raises:
        IPCError: If the stream holds zero batches or more than one.
        pa.ArrowInvalid: If *data* is not an Arrow IPC stream at all.

    """
    found: list[tuple[pa.RecordBatch, pa.KeyValueMetadata | None]] = []
    with ipc.open_stream(pa.BufferReader(data)) as reader:
        # a second batch is enough to reject the stream
        while len(found) < 2:
            try:
                found.append(reader.read_next_batch_with_custom_metadata())
            except StopIteration:
                break
    if not found:
        raise IPCError("No RecordBatch found in provided data")
    if len(found) > 1:
        raise IPCError("Expected a single RecordBatch, but found multiple batches")
    batch, custom_metadata = found[0]
    if _IPC_DEBUG:
        _trace("ipc_read", batch, custom_metadata, nbytes=len(data))
    return batch, custom_metadata


# ---------------------------------------------------------------------------
# Dataclass <-> one-row batch
# ---------------------------------------------------------------------------

_ENUM_ARROW_TYPE = pa.dictionary(pa.int8(), pa.string())

_SCALAR_ARROW_TYPES: dict[type, pa.DataType] = {
    str: pa.string(),
    int: pa.int64(),
    float: pa.float64(),
    bool: pa.bool_(),
    bytes: pa.binary(),
}


@dataclass(frozen=True, slots=True)
class _Column:
    """How one dataclass field maps onto a batch column."""

    name: str
    arrow_type: pa.DataType
    nullable: bool
    required: bool
    enum: type[Enum] | None

    def to_wire(self, value: Any) -> Any:
        return value.name if isinstance(value, Enum) else value

    def from_wire(self, value: Any) -> Any:
        if value is None or self.enum is None:
            return value
        try:
            return self.enum[value]
        except KeyError:
            raise ValueError(f"{value!r} is not a valid {self.enum.__name__} name") from None


def _strip_optional(annotation: Any) -> tuple[Any, bool]:
    """``X | None`` -> ``(X, True)``; anything else comes back unchanged."""
    if get_origin(annotation) in (UnionType, Union):
        members = [a for a in get_args(annotation) if a is not type(None)]
        if len(members) == 1 and len(get_args(annotation)) == 2:
            return members[0], True
    return annotation, False


def _column_for(cls: type, name: str, annotation: Any, required: bool) -> _Column:
    base, nullable = _strip_optional(annotation)
    while hasattr(base, "__supertype__"):
        base = base.__supertype__
    if isinstance(base, type) and issubclass(base, Enum):
        return _Column(name, _ENUM_ARROW_TYPE, nullable, required, base)
    if base in _SCALAR_ARROW_TYPES:
        return _Column(name, _SCALAR_ARROW_TYPES[base], nullable, required, None)
    raise TypeError(f"Cannot generate Arrow schema for {cls.__name__}.{name}: unsupported annotation {annotation}")


@functools.cache
def _columns(cls: type) -> tuple[_Column, ...]:
    """Column plan for a dataclass, computed once per class."""
    try:
        hints = get_type_hints(cls)
    except NameError:
        hints = {}
    return tuple(
        _column_for(
            cls,
            f.name,
            hints.get(f.name, f.type),
            f.default is MISSING and f.default_factory is MISSING,
        )
        for f in fields(cls)
    )


@functools.cache
def _schema(cls: type) -> pa.Schema:
    return pa.schema([pa.field(c.name, c.arrow_type, nullable=c.nullable) for c in _columns(cls)])


class _SchemaAttribute:
    """Class attribute resolving to the schema of the owning dataclass.

    ``@dataclass`` runs after the class body, so the fields are only known
    on first access.
    """

    def __get__(self, instance: object | None, owner: type) -> pa.Schema:
        return _schema(owner)


class ArrowSerializableDataclass:
    """Mixin for frozen dataclasses carried as one-row Arrow batches.

    A dataclass without fields is carried as a batch with no columns and
    no rows.

    Attributes:
        ARROW_SCHEMA: Schema derived from the field annotations.

    """

    ARROW_SCHEMA: ClassVar[pa.Schema] = _SchemaAttribute()  # type: ignore[assignment]

    def _to_row_dict(self) -> dict[str, Any]:
        """Field values as they go on the wire (enums by member name)."""
        return {c.name: c.to_wire(getattr(self, c.name)) for c in _columns(type(self))}

    def _to_batch(self) -> pa.RecordBatch:
        schema = self.ARROW_SCHEMA
        rows = [self._to_row_dict()] if len(schema) else []
        return pa.RecordBatch.from_pylist(rows, schema=schema)

    def serialize(self, dest: IOBase, custom_metadata: pa.KeyValueMetadata | None = None) -> None:
        """Write this instance to *dest* as an Arrow IPC stream."""
        serialize_record_batch(dest, self._to_batch(), custom_metadata)

    def serialize_to_bytes(self, custom_metadata: pa.KeyValueMetadata | None = None) -> bytes:
        """Return this instance as Arrow IPC stream bytes."""
        return serialize_record_batch_bytes(self._to_batch(), custom_metadata)

    @classmethod
    def deserialize_from_batch(cls, batch: pa.RecordBatch) -> Self:
        """Rebuild an instance from *batch*.

        Raises:
            ValueError: On a wrong row count, a missing required column, or
                a column whose Arrow type differs from the schema.

        """
        columns = _columns(cls)
        name = cls.__name__
        if not columns:
            if batch.num_columns or batch.num_rows > 1:
                raise ValueError(f"Expected an empty RecordBatch for {name}, got {batch.num_columns} columns")
            return cls()

        present = set(batch.schema.names)
        for column in columns:
            if column.name in present and not batch.schema.field(column.name).type.equals(column.arrow_type):
                raise ValueError(
                    f"Field {name}.{column.name} has Arrow type {batch.schema.field(column.name).type}, "
                    f"expected {column.arrow_type}"
                )
        missing = [c.name for c in columns if c.required and c.name not in present]
        if batch.num_rows == 0:
            raise ValueError(f"Cannot deserialize {name} from empty RecordBatch")
        if batch.num_rows > 1:
            raise ValueError(f"Expected single-row RecordBatch for {name} deserialization, got {batch.num_rows} rows")
        if missing:
            raise ValueError(f"Missing fields in {name} RecordBatch: {missing}. Found: {sorted(present)}")
        return cls.from_row_dict(batch.to_pylist()[0])

    @classmethod
    def from_row_dict(cls, row: dict[str, Any]) -> Self:
        """Inverse of ``_to_row_dict``; unknown keys are ignored.

        Raises:
            ValueError: If a required field is absent or an enum name is unknown.

        """
        kwargs: dict[str, Any] = {}
        for column in _columns(cls):
            if column.name in row:
                kwargs[column.name] = column.from_wire(row[column.name])
            elif column.required:
                raise ValueError(f"Missing field {column.name!r} for {cls.__name__}")
        return cls(**kwargs)

    @classmethod
    def deserialize_from_bytes(cls, data: bytes) -> Self:
        """Rebuild an instance from Arrow IPC stream bytes."""
        batch, _ = deserialize_record_batch(data)
        return cls.deserialize_from_batch(batch)

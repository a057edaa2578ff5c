"""Message envelope contract: families, variants, and their codec binding.

A *family* is a closed set of message variants that travel in one
direction.  The family class is bound to exactly one codec when its class
statement runs; variants subclass the family and are registered by class
name::

    class ClientMessage(Envelope, codec=LengthPrefixedCodec()):
        '''Messages sent by the client.'''

    @dataclass(frozen=True)
    class Request(ClientMessage):
        expression: str

    Request("1+2").send(writer)
    msg = ClientMessage.receive(reader)

The binding cannot be changed afterwards and is never negotiated on the
wire.
"""

from __future__ import annotations

from collections.abc import Mapping
from io import IOBase
from types import MappingProxyType
from typing import Any, ClassVar, Self, TypeVar

from stdio_rpc.rpc._codec import Codec, FramingError
from stdio_rpc.utils import ArrowSerializableDataclass

__all__ = [
    "Envelope",
    "receive_msg",
    "send_msg",
]

M = TypeVar("M", bound="Envelope")


class Envelope(ArrowSerializableDataclass):
    """Base class of every exchangeable message.

    Direct subclasses passing ``codec=...`` become families; subclasses of
    a family are its variants.
    """

    _codec: ClassVar[Codec]
    _family: ClassVar[type[Envelope]]
    _variants: ClassVar[dict[str, type[Envelope]]]

    def __init_subclass__(cls, *, codec: Codec | None = None, **kwargs: Any) -> None:
        """Register *cls* as a family (when *codec* is given) or as a variant."""
        super().__init_subclass__(**kwargs)
        family = next((base for base in cls.__mro__[1:] if "_variants" in base.__dict__), None)

        if codec is not None:
            if family is not None:
                raise TypeError(
                    f"{cls.__name__} is a variant of {family.__name__}, whose codec is already {family._codec!r}"
                )
            if not isinstance(codec, Codec):
                raise TypeError(f"codec for {cls.__name__} must implement send/receive, got {type(codec).__name__}")
            cls._codec = codec
            cls._family = cls
            cls._variants = {}
            return

        if family is None:
            raise TypeError(f"{cls.__name__} must pass codec=... or subclass a message family")
        if cls.__name__ in family._variants:
            raise TypeError(f"{family.__name__} already has a variant named {cls.__name__!r}")
        family._variants[cls.__name__] = cls
        cls._family = family

    # -- family introspection ------------------------------------------------

    @classmethod
    def family(cls) -> type[Envelope]:
        """The family this class belongs to (itself for a family class)."""
        return cls._family

    @classmethod
    def codec(cls) -> Codec:
        """The codec bound to this class's family."""
        return cls._codec

    @classmethod
    def variants(cls) -> Mapping[str, type[Envelope]]:
        """Read-only view of the family's variants, keyed by name."""
        return MappingProxyType(cls._family._variants)

    @classmethod
    def variant(cls, name: str) -> type[Envelope]:
        """Look up a variant of this family by name.

        Raises:
            KeyError: If the family has no such variant.

        """
        return cls._family._variants[name]

    # -- IO -------------------------------------------------------------------

    def send(self, writer: IOBase) -> None:
        """Encode this message onto *writer* with the family's codec and flush."""
        self._codec.send(self, writer)

    @classmethod
    def receive(cls, reader: IOBase) -> Self:
        """Decode one message of this family from *reader*.

        When called on a variant rather than a family, the decoded message
        must be of that variant.

        Raises:
            StreamClosedError: If the stream is at EOF at a frame boundary.
            FramingError: If the frame is truncated or not a valid message.

        """
        message = cls._codec.receive(cls._family, reader)
        if not isinstance(message, cls):
            raise FramingError(f"Expected {cls.__name__}, got {type(message).__name__}")
        return message


def send_msg(message: Envelope, writer: IOBase) -> None:
    """Send *message* on *writer* using its family's codec."""
    message.send(writer)


def receive_msg(family: type[M], reader: IOBase) -> M:
    """Receive one message of *family* from *reader*."""
    return family.receive(reader)

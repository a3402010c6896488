"""Per-options registry of custom type codecs."""

from __future__ import annotations

import base64
from collections.abc import Callable, Iterator
from dataclasses import dataclass
from datetime import time, timedelta
from typing import Any

from typegraph.schema import qualified_name


@dataclass(frozen=True)
class Codec[T]:
    """Encode/decode pair for one type.

    Either side may be None, in which case that direction uses the default
    object handling.

    Attributes:
        name: Type tag name written to and matched from ``@type``
        encode: Function converting T → JSON-compatible builtins
        decode: Function converting JSON-compatible builtins → T

    """

    name: str
    encode: Callable[[T], Any] | None = None
    decode: Callable[[Any], T] | None = None


class CodecRegistry:
    """Registry of type codecs with MRO lookup.

    Lookup walks the MRO of the runtime type, so a codec registered for a
    base class applies to subclasses unless a subclass (or an intermediate
    class) is disabled.

    Usage:
        registry = CodecRegistry()
        registry.register(
            Money,
            encode=lambda m: f"{m.amount} {m.currency}",
            decode=Money.parse,
        )
        registry.disable(SpecialMoney)  # use field-by-field handling instead
        registry.seal()

    """

    def __init__(self, *, builtins: bool = True) -> None:
        self._codecs: dict[type, Codec[Any]] = {}
        self._names: dict[str, type] = {}
        self._disabled: set[type] = set()
        self._sealed = False
        if builtins:
            _register_builtins(self)

    @property
    def sealed(self) -> bool:
        return self._sealed

    def seal(self) -> None:
        """Make the registry read-only; there is no way back."""
        self._sealed = True

    def _check_open(self) -> None:
        if self._sealed:
            msg = "Codec registry is sealed; register codecs before building options"
            raise RuntimeError(msg)

    def register[T](
        self,
        typ: type[T],
        encode: Callable[[T], Any] | None = None,
        decode: Callable[[Any], T] | None = None,
        *,
        name: str | None = None,
    ) -> None:
        """Register encode/decode functions for a type.

        Args:
            typ: The type to register
            encode: Function to convert T → JSON-compatible builtins
            decode: Function to convert JSON-compatible builtins → T
            name: Tag name; defaults to the qualified class name

        Raises:
            ValueError: If a different type is already registered under the
                same name. This keeps tag-based decoding unambiguous.
            RuntimeError: If the registry is sealed

        """
        self._check_open()
        type_name = name if name is not None else qualified_name(typ)
        existing_type = self._names.get(type_name)
        if existing_type is not None and existing_type is not typ:
            msg = (
                f"Cannot register {typ!r}: a different type with name "
                f"'{type_name}' is already registered ({existing_type!r}). "
                f"Type names must be unique for tag-based deserialization."
            )
            raise ValueError(msg)

        previous = self._codecs.get(typ)
        if previous is not None:
            del self._names[previous.name]
        self._codecs[typ] = Codec(type_name, encode, decode)
        self._names[type_name] = typ
        self._disabled.discard(typ)

    def disable(self, typ: type) -> None:
        """Stop codec lookup at ``typ`` so it and its subclasses use defaults."""
        self._check_open()
        self._disabled.add(typ)

    def unregister(self, typ: type) -> bool:
        """Remove a type's codec.

        Returns:
            True if the type was registered and removed, False otherwise.

        """
        self._check_open()
        codec = self._codecs.pop(typ, None)
        if codec is None:
            return False
        del self._names[codec.name]
        return True

    def lookup(self, typ: type) -> Codec[Any] | None:
        """Nearest codec along the MRO, or None."""
        for klass in typ.__mro__:
            if klass in self._disabled:
                return None
            codec = self._codecs.get(klass)
            if codec is not None:
                return codec
        return None

    def get_by_name(self, type_name: str) -> tuple[type, Codec[Any]] | None:
        """Get type and codec by tag name."""
        typ = self._names.get(type_name)
        if typ is None:
            return None
        return typ, self._codecs[typ]

    def __contains__(self, typ: object) -> bool:
        return typ in self._codecs

    def __iter__(self) -> Iterator[type]:
        return iter(self._codecs)

    def copy(self) -> CodecRegistry:
        """Unsealed copy with the same registrations."""
        clone = CodecRegistry(builtins=False)
        clone._codecs = dict(self._codecs)
        clone._names = dict(self._names)
        clone._disabled = set(self._disabled)
        return clone


def _register_builtins(registry: CodecRegistry) -> None:
    """Pre-register codecs for builtin types without a conversion kind."""
    registry.register(
        bytes,
        encode=lambda b: base64.b64encode(b).decode("ascii"),
        decode=base64.b64decode,
    )

    registry.register(
        bytearray,
        encode=lambda b: base64.b64encode(b).decode("ascii"),
        decode=lambda s: bytearray(base64.b64decode(s)),
    )

    registry.register(
        time,
        encode=lambda t: t.isoformat(),
        decode=time.fromisoformat,
        name="time",
    )

    registry.register(
        timedelta,
        encode=lambda td: td.total_seconds(),
        decode=lambda s: timedelta(seconds=s),
        name="timedelta",
    )

    registry.register(
        complex,
        encode=lambda c: [c.real, c.imag],
        decode=lambda parts: complex(*parts),
        name="complex",
    )

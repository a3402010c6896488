"""Write and read configuration.

Options objects are frozen. Constructing one seals its codec registry and
converter, so everything a call reads is immutable for the call's lifetime
and options can be shared between threads.
"""

from __future__ import annotations

from collections.abc import Callable, Collection, Mapping
from dataclasses import dataclass, field
from enum import StrEnum
from functools import cached_property
from types import MappingProxyType
from typing import Any

from typegraph.codecs import CodecRegistry
from typegraph.convert import Converter
from typegraph.kinds import Kind
from typegraph.schema import ReflectionSchemaProvider, SchemaProvider, locate_type, qualified_name

type MissingFieldHandler = Callable[[Any, str, Any], None]

_CONTAINER_NAMES: dict[str, type] = {
    "list": list,
    "tuple": tuple,
    "set": set,
    "frozenset": frozenset,
    "dict": dict,
}
_SCALAR_NAMES = {kind.value: kind for kind in Kind if kind is not Kind.MAP}


class TypeInfo(StrEnum):
    """When the writer emits ``@type``."""

    MINIMAL = "minimal"
    ALWAYS = "always"
    NEVER = "never"


class EnumFormat(StrEnum):
    """How enum members are written."""

    NAME = "name"
    OBJECT = "object"


class TypeNames:
    """Translates between classes and ``@type`` names.

    Lookup order: user aliases, built-in container and scalar kind names,
    codec names, then ``module.QualName``.

    Example:
        names = TypeNames({"Point": Point}, CodecRegistry())
        names.name_of(Point)       # "Point"
        names.resolve("Point")     # Point
        names.resolve("instant")   # Kind.DATE

    """

    def __init__(
        self,
        aliases: Mapping[str, type],
        codecs: CodecRegistry,
        *,
        import_modules: bool = False,
    ) -> None:
        self._aliases = dict(aliases)
        self._alias_names = {typ: name for name, typ in aliases.items()}
        self._codecs = codecs
        self._import_modules = import_modules

    def name_of(self, cls: type) -> str:
        """Tag name for a class."""
        if (alias := self._alias_names.get(cls)) is not None:
            return alias
        if cls in self._codecs:
            codec = self._codecs.lookup(cls)
            if codec is not None:
                return codec.name
        return qualified_name(cls)

    def resolve(self, name: str) -> type | Kind | None:
        """Class or scalar kind for a tag name, or None if it is unknown."""
        if (alias := self._aliases.get(name)) is not None:
            return alias
        if (container := _CONTAINER_NAMES.get(name)) is not None:
            return container
        if (kind := _SCALAR_NAMES.get(name)) is not None:
            return kind
        if name == Kind.MAP:
            return dict
        if (found := self._codecs.get_by_name(name)) is not None:
            return found[0]
        return locate_type(name, import_modules=self._import_modules)


def _freeze_fields(
    mapping: Mapping[type, Collection[str]],
) -> Mapping[type, frozenset[str]]:
    return MappingProxyType({cls: frozenset(names) for cls, names in mapping.items()})


@dataclass(frozen=True)
class WriteOptions:
    """Configuration for writing object graphs.

    Attributes:
        type_info: When to emit ``@type`` tags
        enum_format: Write enums as their name or as objects
        enum_private_fields: With ``EnumFormat.OBJECT``, include ``_`` attributes
        skip_null_fields: Omit object fields whose value is None
        pretty: Indent JSON text output
        short_meta_keys: Use ``@t``/``@i``/``@r``/``@k``/``@e``
        include_fields: Per-type allow lists of field names (inherited)
        exclude_fields: Per-type deny lists of field names (inherited)
        codecs: Custom codecs; sealed on construction
        aliases: Short ``@type`` names for classes
        non_referenceable: Extra types that are always written inline
        converter: Converts non-JSON scalars to text; sealed on construction
        schemas: Field layout provider

    """

    type_info: TypeInfo = TypeInfo.MINIMAL
    enum_format: EnumFormat = EnumFormat.NAME
    enum_private_fields: bool = False
    skip_null_fields: bool = False
    pretty: bool = False
    short_meta_keys: bool = False
    include_fields: Mapping[type, Collection[str]] = field(default_factory=dict)
    exclude_fields: Mapping[type, Collection[str]] = field(default_factory=dict)
    codecs: CodecRegistry = field(default_factory=CodecRegistry)
    aliases: Mapping[str, type] = field(default_factory=dict)
    non_referenceable: frozenset[type] = frozenset()
    converter: Converter = field(default_factory=Converter)
    schemas: SchemaProvider = field(default_factory=ReflectionSchemaProvider)

    def __post_init__(self) -> None:
        self.codecs.seal()
        self.converter.seal()
        object.__setattr__(self, "aliases", MappingProxyType(dict(self.aliases)))
        object.__setattr__(self, "include_fields", _freeze_fields(self.include_fields))
        object.__setattr__(self, "exclude_fields", _freeze_fields(self.exclude_fields))
        object.__setattr__(self, "non_referenceable", frozenset(self.non_referenceable))

    @cached_property
    def type_names(self) -> TypeNames:
        return TypeNames(self.aliases, self.codecs)

    def field_filter(self, cls: type) -> tuple[frozenset[str] | None, frozenset[str]]:
        """Nearest include list and the union of exclude lists along the MRO."""
        include = None
        exclude: frozenset[str] = frozenset()
        for klass in cls.__mro__:
            if include is None and klass in self.include_fields:
                include = self.include_fields[klass]  # type: ignore[assignment]
            if klass in self.exclude_fields:
                exclude |= self.exclude_fields[klass]
        return include, exclude


@dataclass(frozen=True)
class ReadOptions:
    """Configuration for reading object graphs.

    Attributes:
        lenient: Substitute zero values for unconvertible scalars
        codecs: Custom codecs; sealed on construction
        aliases: Short ``@type`` names for classes
        import_modules: Import modules named in ``@type`` when not yet loaded
        intern_limit: Strings up to this length share one instance per value
        missing_field_handler: Called as ``handler(instance, name, value)``
            for fields the target class does not declare
        converter: Scalar conversion engine; sealed on construction
        schemas: Field layout provider

    """

    lenient: bool = False
    codecs: CodecRegistry = field(default_factory=CodecRegistry)
    aliases: Mapping[str, type] = field(default_factory=dict)
    import_modules: bool = False
    intern_limit: int = 32
    missing_field_handler: MissingFieldHandler | None = None
    converter: Converter | None = None
    schemas: SchemaProvider = field(default_factory=ReflectionSchemaProvider)

    def __post_init__(self) -> None:
        if self.converter is None:
            object.__setattr__(
                self,
                "converter",
                Converter(import_modules=self.import_modules),
            )
        self.codecs.seal()
        self.converter.seal()  # type: ignore[union-attr]
        object.__setattr__(self, "aliases", MappingProxyType(dict(self.aliases)))

    @cached_property
    def type_names(self) -> TypeNames:
        return TypeNames(self.aliases, self.codecs, import_modules=self.import_modules)

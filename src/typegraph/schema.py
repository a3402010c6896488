"""Schema extraction and type reflection utilities."""

from __future__ import annotations

import builtins
import dataclasses
import importlib
import inspect
import sys
import types
from collections.abc import Mapping, MutableMapping, MutableSequence, Sequence
from collections.abc import MutableSet, Set as AbstractSet
from dataclasses import dataclass
from enum import Enum
from functools import cached_property
from typing import (
    Annotated,
    Any,
    ClassVar,
    Literal,
    NewType,
    Protocol,
    TypeAliasType,
    TypeVar,
    Union,
    get_args,
    get_origin,
    get_type_hints,
)

from typegraph.kinds import Kind, kind_for_hint
from typegraph.types import (
    ANY,
    AbstractSetType,
    DictType,
    EnumType,
    FrozenSetType,
    ListType,
    MappingType,
    NoneType,
    ObjectType,
    ScalarType,
    SequenceType,
    SetType,
    TupleType,
    TypeDef,
    UnionType,
)

_SEQUENCE_ORIGINS = (Sequence, MutableSequence)
_MAPPING_ORIGINS = (Mapping, MutableMapping)
_SET_ORIGINS = (AbstractSet, MutableSet)


# =============================================================================
# Type names
# =============================================================================


def qualified_name(cls: type) -> str:
    """Return ``module.QualName`` for a class, or the bare name for builtins."""
    if cls.__module__ == "builtins":
        return cls.__qualname__
    return f"{cls.__module__}.{cls.__qualname__}"


def locate_type(name: str, *, import_modules: bool = False) -> type | None:
    """Find a class by its qualified name.

    The longest module prefix that is already imported wins; with
    ``import_modules`` the module is imported when it is not loaded yet.
    Classes defined inside functions (``<locals>`` in their qualname) cannot
    be located.
    """
    if "." not in name:
        found = getattr(builtins, name, None)
        return found if isinstance(found, type) else None

    parts = name.split(".")
    for split in range(len(parts) - 1, 0, -1):
        module_name = ".".join(parts[:split])
        module = sys.modules.get(module_name)
        if module is None and import_modules:
            try:
                module = importlib.import_module(module_name)
            except ImportError:
                continue
        if module is None:
            continue
        obj: Any = module
        for attr in parts[split:]:
            obj = getattr(obj, attr, None)
            if obj is None:
                break
        if isinstance(obj, type):
            return obj
    return None


# =============================================================================
# Annotation → TypeDef
# =============================================================================


def extract_type(py_type: Any) -> TypeDef:
    """Convert a Python type annotation to a TypeDef.

    Annotations the reader cannot act on (TypeVars, callables, ``Any``)
    become ``ANY`` rather than raising.
    """
    origin = get_origin(py_type)
    args = get_args(py_type)

    if py_type is Any or py_type is object or isinstance(py_type, TypeVar):
        return ANY

    # Expand PEP 695 type aliases
    if isinstance(py_type, TypeAliasType):
        return extract_type(py_type.__value__)
    if isinstance(origin, TypeAliasType):
        return extract_type(origin.__value__)

    if origin is Annotated:
        return extract_type(args[0])

    if py_type is None or py_type is type(None):
        return NoneType()

    # Bare containers carry no element information
    if py_type in (list, tuple, set, frozenset, dict):
        return _bare_container(py_type)

    if (kind := kind_for_hint(py_type)) is not None:
        return ScalarType(kind)

    if isinstance(py_type, NewType):
        return extract_type(py_type.__supertype__)

    if origin is list:
        return ListType(element=extract_type(args[0]) if args else ANY)

    if origin is dict:
        if len(args) != 2:
            return DictType(key=ANY, value=ANY)
        return DictType(key=extract_type(args[0]), value=extract_type(args[1]))

    if origin is set:
        return SetType(element=extract_type(args[0]) if args else ANY)

    if origin is frozenset:
        return FrozenSetType(element=extract_type(args[0]) if args else ANY)

    if origin is tuple:
        if len(args) == 2 and args[1] is Ellipsis:
            return TupleType(elements=(extract_type(args[0]),), variadic=True)
        if args == ((),):
            return TupleType(elements=())
        return TupleType(elements=tuple(extract_type(arg) for arg in args))

    # Generic container types from collections.abc
    if origin in _SEQUENCE_ORIGINS:
        return SequenceType(element=extract_type(args[0]) if args else ANY)

    if origin in _MAPPING_ORIGINS:
        if len(args) != 2:
            return MappingType(key=ANY, value=ANY)
        return MappingType(key=extract_type(args[0]), value=extract_type(args[1]))

    if origin in _SET_ORIGINS:
        return AbstractSetType(element=extract_type(args[0]) if args else ANY)

    if origin is type:
        return ScalarType(Kind.TYPE_REFERENCE)

    if origin is Literal:
        value_types = {type(val) for val in args}
        if len(value_types) == 1:
            return extract_type(value_types.pop())
        return ANY

    if isinstance(py_type, types.UnionType) or origin is Union:
        return UnionType(tuple(extract_type(a) for a in args))

    if isinstance(py_type, type):
        if issubclass(py_type, Enum):
            return EnumType(py_type)
        return ObjectType(py_type)

    # Parameterized user generics: Box[int] → Box
    if isinstance(origin, type) and not inspect.isabstract(origin):
        return extract_type(origin)

    return ANY


def _bare_container(py_type: type) -> TypeDef:
    if py_type is list:
        return ListType(element=ANY)
    if py_type is tuple:
        return TupleType(elements=(ANY,), variadic=True)
    if py_type is set:
        return SetType(element=ANY)
    if py_type is frozenset:
        return FrozenSetType(element=ANY)
    return DictType(key=ANY, value=ANY)


# =============================================================================
# Class schemas
# =============================================================================


@dataclass(frozen=True)
class FieldSchema:
    """Schema for a class field.

    Attributes:
        name: Attribute name
        type: Static type used for tag inference

    """

    name: str
    type: TypeDef


@dataclass(frozen=True)
class ParameterSchema:
    """Schema for a constructor parameter."""

    name: str
    type: TypeDef
    required: bool = True
    keyword: bool = True


@dataclass(frozen=True)
class TypeSchema:
    """Complete schema for a class."""

    cls: type
    fields: tuple[FieldSchema, ...]
    parameters: tuple[ParameterSchema, ...] = ()
    frozen: bool = False

    @cached_property
    def field_map(self) -> dict[str, FieldSchema]:
        return {f.name: f for f in self.fields}

    def field(self, name: str) -> FieldSchema | None:
        """Look up a field by attribute name."""
        return self.field_map.get(name)


class SchemaProvider(Protocol):
    """Supplies the field layout and constructor of a class."""

    def schema_for(self, cls: type) -> TypeSchema: ...


def _is_class_var(hint: Any) -> bool:
    return hint is ClassVar or get_origin(hint) is ClassVar


def _slot_names(cls: type) -> list[str]:
    names: list[str] = []
    for klass in reversed(cls.__mro__):
        slots = klass.__dict__.get("__slots__", ())
        if isinstance(slots, str):
            slots = (slots,)
        for name in slots:
            if name in ("__dict__", "__weakref__") or name in names:
                continue
            names.append(name)
    return names


class ReflectionSchemaProvider:
    """Derives schemas from dataclass fields, ``__slots__`` and annotations.

    Schemas are computed once per class and cached on the provider.
    """

    def __init__(self) -> None:
        self._cache: dict[type, TypeSchema] = {}

    def schema_for(self, cls: type) -> TypeSchema:
        schema = self._cache.get(cls)
        if schema is None:
            schema = self._build(cls)
            self._cache[cls] = schema
        return schema

    def _build(self, cls: type) -> TypeSchema:
        try:
            hints = get_type_hints(cls)
        except (NameError, TypeError, AttributeError):
            hints = dict(getattr(cls, "__annotations__", {}))

        names: list[str]
        if dataclasses.is_dataclass(cls):
            names = [f.name for f in dataclasses.fields(cls)]
            frozen = cls.__dataclass_params__.frozen  # type: ignore[attr-defined]
        else:
            names = [name for name, hint in hints.items() if not _is_class_var(hint)]
            names.extend(name for name in _slot_names(cls) if name not in names)
            frozen = False

        field_schemas = tuple(
            FieldSchema(
                name=name,
                type=extract_type(hints.get(name, Any)),
            )
            for name in names
        )
        return TypeSchema(
            cls=cls,
            fields=field_schemas,
            parameters=self._parameters(cls, hints),
            frozen=frozen,
        )

    @staticmethod
    def _parameters(cls: type, hints: dict[str, Any]) -> tuple[ParameterSchema, ...]:
        try:
            signature = inspect.signature(cls)
        except (TypeError, ValueError):
            return ()

        params = []
        for param in signature.parameters.values():
            if param.kind in (param.VAR_POSITIONAL, param.VAR_KEYWORD):
                continue
            hint = param.annotation
            if hint is param.empty or isinstance(hint, str):
                hint = hints.get(param.name, Any)
            params.append(
                ParameterSchema(
                    name=param.name,
                    type=extract_type(hint),
                    required=param.default is param.empty,
                    keyword=param.kind is not param.POSITIONAL_ONLY,
                ),
            )
        return tuple(params)


class RegisteredSchemaProvider:
    """Manually registered schemas in front of a fallback provider.

    Example:
        provider = RegisteredSchemaProvider()
        provider.register(Point, TypeSchema(Point, (FieldSchema("x", ANY),)))

    """

    def __init__(self, fallback: SchemaProvider | None = None) -> None:
        self._schemas: dict[type, TypeSchema] = {}
        self._fallback = fallback if fallback is not None else ReflectionSchemaProvider()

    def register(self, cls: type, schema: TypeSchema) -> None:
        self._schemas[cls] = schema

    def schema_for(self, cls: type) -> TypeSchema:
        schema = self._schemas.get(cls)
        if schema is not None:
            return schema
        return self._fallback.schema_for(cls)

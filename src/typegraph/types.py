"""Static type representation used for tag inference and coercion.

A ``TypeDef`` describes what the reader can know about a value without a
type tag: the declared type of the field, element or root it sits in. The
writer compares the runtime type of each value against this description to
decide whether a ``@type`` tag is needed.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import ClassVar, dataclass_transform

from typegraph.kinds import Kind


@dataclass(frozen=True)
@dataclass_transform(frozen_default=True)
class TypeDef:
    """Base for type definitions."""

    tag: ClassVar[str]
    registry: ClassVar[dict[str, type[TypeDef]]] = {}

    def __init_subclass__(cls, tag: str | None = None) -> None:
        """Register typedef subclass with automatic tag derivation."""
        dataclass(frozen=True)(cls)
        cls.tag = tag if tag is not None else cls.__name__

        if (existing := TypeDef.registry.get(cls.tag)) and existing is not cls:
            msg = (
                f"Tag '{cls.tag}' already registered to {existing}. "
                "Choose a different tag."
            )
            raise ValueError(msg)

        TypeDef.registry[cls.tag] = cls


class AnyType(TypeDef, tag="any"):
    """No static information; the reader falls back to structural defaults."""


class NoneType(TypeDef, tag="none"):
    """None/null type."""


class ScalarType(TypeDef, tag="scalar"):
    """A value of one conversion kind: Byte → ScalarType(kind=Kind.BYTE)."""

    kind: Kind


class EnumType(TypeDef, tag="enum"):
    """Members of an Enum class."""

    cls: type[Enum]


class ObjectType(TypeDef, tag="object"):
    """Instances of a user class, built field by field."""

    cls: type


class ListType(TypeDef, tag="list"):
    """List type: list[int] → ListType(element=ScalarType(BIG_INTEGER))."""

    element: TypeDef


class DictType(TypeDef, tag="dict"):
    """Dict type: dict[str, int] → DictType(key=..., value=...)."""

    key: TypeDef
    value: TypeDef


class SetType(TypeDef, tag="set"):
    """Set type: set[int] → SetType(element=...)."""

    element: TypeDef


class FrozenSetType(TypeDef, tag="frozenset"):
    """Immutable set type: frozenset[int] → FrozenSetType(element=...)."""

    element: TypeDef


class TupleType(TypeDef, tag="tuple"):
    """Tuple type.

    tuple[int, str] → TupleType(elements=(...)); tuple[int, ...] sets
    ``variadic`` and carries the single repeated element type.
    """

    elements: tuple[TypeDef, ...]
    variadic: bool = False


# Generic container types - the reader picks the concrete container
class SequenceType(TypeDef, tag="sequence"):
    """Generic sequence type: Sequence[int], materialized as a list."""

    element: TypeDef


class MappingType(TypeDef, tag="mapping"):
    """Generic mapping type: Mapping[str, int], materialized as a dict."""

    key: TypeDef
    value: TypeDef


class AbstractSetType(TypeDef, tag="abstract_set"):
    """Generic set type: collections.abc.Set[int], materialized as a set."""

    element: TypeDef


class UnionType(TypeDef, tag="union"):
    """Union type: int | str → UnionType(options=(...))."""

    options: tuple[TypeDef, ...]


ANY = AnyType()

_ELEMENT_TYPES = (ListType, SetType, FrozenSetType, SequenceType, AbstractSetType)


def narrow(typedef: TypeDef) -> TypeDef:
    """Reduce a union to the single type the reader can act on.

    ``X | None`` narrows to ``X``; unions of several concrete options carry
    no usable static information and narrow to ``ANY``.
    """
    if not isinstance(typedef, UnionType):
        return typedef
    options = [opt for opt in typedef.options if not isinstance(opt, NoneType)]
    if len(options) == 1:
        return narrow(options[0])
    return ANY


def element_type(typedef: TypeDef, index: int = 0) -> TypeDef:
    """Static type of the element at ``index`` of an array-shaped type."""
    typedef = narrow(typedef)
    if isinstance(typedef, _ELEMENT_TYPES):
        return typedef.element
    if isinstance(typedef, TupleType):
        if typedef.variadic:
            return typedef.elements[0]
        if index < len(typedef.elements):
            return typedef.elements[index]
    return ANY


def key_value_types(typedef: TypeDef) -> tuple[TypeDef, TypeDef]:
    """Static key and value types of a map-shaped type."""
    typedef = narrow(typedef)
    if isinstance(typedef, DictType | MappingType):
        return typedef.key, typedef.value
    return ANY, ANY


def default_container(typedef: TypeDef) -> type | None:
    """Concrete container the reader builds for an untagged array or map."""
    typedef = narrow(typedef)
    match typedef:
        case ListType() | SequenceType():
            return list
        case SetType() | AbstractSetType():
            return set
        case FrozenSetType():
            return frozenset
        case TupleType():
            return tuple
        case DictType() | MappingType():
            return dict
        case ObjectType(cls=cls):
            return cls
        case _:
            return None

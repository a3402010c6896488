"""Tests for typegraph.schema and typegraph.types modules."""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any, ClassVar, Literal, NamedTuple, TypeVar

import pytest

from typegraph.kinds import Byte, Kind
from typegraph.schema import (
    FieldSchema,
    ReflectionSchemaProvider,
    RegisteredSchemaProvider,
    TypeSchema,
    extract_type,
    locate_type,
    qualified_name,
)
from typegraph.types import (
    ANY,
    AnyType,
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
    default_container,
    element_type,
    key_value_types,
    narrow,
)

type IntList = list[int]
type StrKeyDict[V] = dict[str, V]

T = TypeVar("T")


class Color(Enum):
    RED = 1
    GREEN = 2


@dataclass
class Point:
    x: int
    y: int = 0
    label: ClassVar[str] = "point"


@dataclass(frozen=True)
class Frozen:
    name: str


class Slotted:
    __slots__ = ("a", "b")

    def __init__(self, a: int, b: str) -> None:
        self.a = a
        self.b = b


class Annotated:
    count: int
    tags: list[str]

    def __init__(self, count: int, /, tags: list[str] | None = None) -> None:
        self.count = count
        self.tags = tags or []


class Pair(NamedTuple):
    left: int
    right: int


@dataclass
class WithDefaults:
    items: list[int] = field(default_factory=list)


class Outer:
    class Inner:
        pass


# =============================================================================
# extract_type
# =============================================================================

SIMPLE_TYPE_CASES = [
    (int, ScalarType(Kind.BIG_INTEGER)),
    (bool, ScalarType(Kind.BOOLEAN)),
    (str, ScalarType(Kind.STRING)),
    (float, ScalarType(Kind.DOUBLE)),
    (Decimal, ScalarType(Kind.BIG_DECIMAL)),
    (date, ScalarType(Kind.LOCAL_DATE)),
    (datetime, ScalarType(Kind.LOCAL_DATE_TIME)),
    (Byte, ScalarType(Kind.BYTE)),
    (type, ScalarType(Kind.TYPE_REFERENCE)),
    (type[int], ScalarType(Kind.TYPE_REFERENCE)),
    (type(None), NoneType()),
    (None, NoneType()),
    (Any, ANY),
    (object, ANY),
    (T, ANY),
    (Color, EnumType(Color)),
    (Point, ObjectType(Point)),
]

CONTAINER_TYPE_CASES = [
    (list[int], ListType(ScalarType(Kind.BIG_INTEGER))),
    (list, ListType(ANY)),
    (dict, DictType(ANY, ANY)),
    (dict[str, float], DictType(ScalarType(Kind.STRING), ScalarType(Kind.DOUBLE))),
    (set[str], SetType(ScalarType(Kind.STRING))),
    (frozenset[int], FrozenSetType(ScalarType(Kind.BIG_INTEGER))),
    (tuple[int, str], TupleType((ScalarType(Kind.BIG_INTEGER), ScalarType(Kind.STRING)))),
    (tuple[int, ...], TupleType((ScalarType(Kind.BIG_INTEGER),), variadic=True)),
    (Sequence[int], SequenceType(ScalarType(Kind.BIG_INTEGER))),
    (Mapping[str, int], MappingType(ScalarType(Kind.STRING), ScalarType(Kind.BIG_INTEGER))),
    (IntList, ListType(ScalarType(Kind.BIG_INTEGER))),
    (StrKeyDict[int], DictType(ScalarType(Kind.STRING), ANY)),
]


class TestExtractType:
    """Test extract_type() over annotations."""

    @pytest.mark.parametrize(("hint", "expected"), SIMPLE_TYPE_CASES)
    def test_simple(self, hint: Any, expected: TypeDef) -> None:
        """Test scalar, enum and object annotations."""
        assert extract_type(hint) == expected

    @pytest.mark.parametrize(("hint", "expected"), CONTAINER_TYPE_CASES)
    def test_containers(self, hint: Any, expected: TypeDef) -> None:
        """Test container annotations."""
        assert extract_type(hint) == expected

    def test_union(self) -> None:
        """Test union annotations."""
        result = extract_type(int | None)
        assert result == UnionType((ScalarType(Kind.BIG_INTEGER), NoneType()))

    def test_literal_uses_value_type(self) -> None:
        """Test that homogeneous literals become their value type."""
        assert extract_type(Literal["a", "b"]) == ScalarType(Kind.STRING)
        assert extract_type(Literal["a", 1]) == ANY

    def test_unknown_annotation_is_any(self) -> None:
        """Test that callables and other unsupported hints become ANY."""
        from collections.abc import Callable

        assert isinstance(extract_type(Callable[[int], int]), AnyType)


class TestTypeHelpers:
    """Test helpers in typegraph.types."""

    def test_narrow_optional(self) -> None:
        """Test that X | None narrows to X."""
        assert narrow(extract_type(list[int] | None)) == ListType(ScalarType(Kind.BIG_INTEGER))

    def test_narrow_multi_union_is_any(self) -> None:
        """Test that unions of several types narrow to ANY."""
        assert narrow(extract_type(int | str)) == ANY

    def test_element_type(self) -> None:
        """Test element lookup for lists and tuples."""
        pair = extract_type(tuple[int, str])
        assert element_type(pair, 1) == ScalarType(Kind.STRING)
        assert element_type(pair, 5) == ANY
        assert element_type(extract_type(tuple[int, ...]), 9) == ScalarType(Kind.BIG_INTEGER)
        assert element_type(ANY) == ANY

    def test_key_value_types(self) -> None:
        """Test key and value lookup for maps."""
        key, value = key_value_types(extract_type(dict[int, str]))
        assert key == ScalarType(Kind.BIG_INTEGER)
        assert value == ScalarType(Kind.STRING)
        assert key_value_types(ANY) == (ANY, ANY)

    def test_default_container(self) -> None:
        """Test the concrete container chosen for abstract annotations."""
        assert default_container(extract_type(Sequence[int])) is list
        assert default_container(extract_type(Mapping[str, int])) is dict
        assert default_container(extract_type(frozenset[int])) is frozenset
        assert default_container(extract_type(Point)) is Point
        assert default_container(ANY) is None

    def test_duplicate_tag_rejected(self) -> None:
        """Test that two typedef classes cannot share a tag."""
        with pytest.raises(ValueError, match="already registered"):

            class Clash(TypeDef, tag="list"):
                pass


# =============================================================================
# Names
# =============================================================================


class TestNames:
    """Test qualified_name() and locate_type()."""

    def test_qualified_name(self) -> None:
        """Test qualified names for builtins, library and nested classes."""
        assert qualified_name(int) == "int"
        assert qualified_name(Decimal) == "decimal.Decimal"
        assert qualified_name(Outer.Inner) == f"{__name__}.Outer.Inner"

    def test_locate_round_trip(self) -> None:
        """Test that located classes match their qualified names."""
        for cls in (int, Decimal, Point, Outer.Inner):
            assert locate_type(qualified_name(cls)) is cls

    def test_locate_unknown(self) -> None:
        """Test that unknown names return None."""
        assert locate_type("nothing.here.Missing") is None
        assert locate_type("NoSuchBuiltin") is None
        assert locate_type("len") is None

    def test_locate_missing_module_with_imports(self) -> None:
        """Test that modules which cannot be imported are skipped."""
        assert locate_type("this_module_does_not_exist.Thing", import_modules=True) is None


# =============================================================================
# Schema providers
# =============================================================================


class TestReflectionSchemaProvider:
    """Test schemas derived by reflection."""

    def test_dataclass_fields(self) -> None:
        """Test that dataclass fields are listed and ClassVars skipped."""
        schema = ReflectionSchemaProvider().schema_for(Point)
        assert [f.name for f in schema.fields] == ["x", "y"]
        assert schema.field("x") == FieldSchema("x", ScalarType(Kind.BIG_INTEGER))
        assert schema.field("label") is None
        assert not schema.frozen

    def test_dataclass_parameters(self) -> None:
        """Test constructor parameters and their defaults."""
        schema = ReflectionSchemaProvider().schema_for(Point)
        params = {p.name: p for p in schema.parameters}
        assert params["x"].required
        assert not params["y"].required

    def test_frozen_dataclass(self) -> None:
        """Test that frozen dataclasses are flagged."""
        assert ReflectionSchemaProvider().schema_for(Frozen).frozen

    def test_slotted_class(self) -> None:
        """Test that __slots__ provide field names."""
        schema = ReflectionSchemaProvider().schema_for(Slotted)
        assert [f.name for f in schema.fields] == ["a", "b"]
        assert schema.field("a").type == ANY  # type: ignore[union-attr]

    def test_annotated_class(self) -> None:
        """Test that class annotations provide typed fields."""
        schema = ReflectionSchemaProvider().schema_for(Annotated)
        assert schema.field("tags").type == ListType(ScalarType(Kind.STRING))  # type: ignore[union-attr]
        count = next(p for p in schema.parameters if p.name == "count")
        assert not count.keyword

    def test_schema_cached(self) -> None:
        """Test that schemas are computed once per class."""
        provider = ReflectionSchemaProvider()
        assert provider.schema_for(Point) is provider.schema_for(Point)


class TestRegisteredSchemaProvider:
    """Test manual schema registration."""

    def test_registered_schema_wins(self) -> None:
        """Test that registered schemas shadow reflection."""
        provider = RegisteredSchemaProvider()
        custom = TypeSchema(Point, (FieldSchema("x", ANY),))
        provider.register(Point, custom)
        assert provider.schema_for(Point) is custom

    def test_fallback_to_reflection(self) -> None:
        """Test that unregistered classes use the fallback provider."""
        schema = RegisteredSchemaProvider().schema_for(Frozen)
        assert [f.name for f in schema.fields] == ["name"]

    def test_namedtuple_parameters(self) -> None:
        """Test that named tuples expose positional parameters."""
        schema = ReflectionSchemaProvider().schema_for(Pair)
        assert [p.name for p in schema.parameters] == ["left", "right"]

    def test_default_factory_parameter(self) -> None:
        """Test that default factories make parameters optional."""
        schema = ReflectionSchemaProvider().schema_for(WithDefaults)
        assert not schema.parameters[0].required

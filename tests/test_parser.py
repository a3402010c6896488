"""Tests for building node trees from JSON builtins."""

from __future__ import annotations

from typing import Any

import pytest

from typegraph.errors import DocumentError, UnresolvedReferenceError
from typegraph.nodes import GraphNode, NodeKind, child_path
from typegraph.options import ReadOptions
from typegraph.parser import TreeBuilder


def build(data: Any) -> GraphNode:
    return TreeBuilder().build(data).root


class TestStructure:
    """Test the shape of built trees."""

    def test_scalars(self) -> None:
        """Test scalar leaves."""
        node = build(5)
        assert node.kind is NodeKind.SCALAR
        assert node.value == 5
        assert build(None).value is None

    def test_object_fields_in_order(self) -> None:
        """Test that object fields keep document order and paths."""
        node = build({"b": 1, "a": [True]})
        assert list(node.fields) == ["b", "a"]
        assert node.fields["a"].kind is NodeKind.ARRAY
        assert node.fields["a"].items[0].path == "$.a[0]"

    def test_meta_keys_extracted(self) -> None:
        """Test that @type and @id become attributes, not fields."""
        node = build({"@type": "pkg.Point", "@id": 3, "x": 1})
        assert node.type_name == "pkg.Point"
        assert node.id == 3
        assert list(node.fields) == ["x"]

    def test_short_meta_keys(self) -> None:
        """Test the short spellings."""
        tree = TreeBuilder().build({"@t": "list", "@i": 1, "@e": [{"@r": 1}]})
        assert tree.root.kind is NodeKind.ARRAY
        assert tree.root.type_name == "list"
        assert tree.root.items[0].ref == 1

    def test_typed_array(self) -> None:
        """Test arrays written with @items."""
        node = build({"@type": "tuple", "@items": [1, 2]})
        assert node.kind is NodeKind.ARRAY
        assert [item.value for item in node.items] == [1, 2]

    def test_composite_map(self) -> None:
        """Test maps written with @keys and @items."""
        node = build({"@keys": [1, 2], "@items": ["a", "b"]})
        assert node.kind is NodeKind.OBJECT
        assert node.is_composite_map
        assert [key.value for key in node.keys or ()] == [1, 2]
        assert node.items[1].path == '$["@items"][1]'

    def test_string_ids_accepted(self) -> None:
        """Test that numeric strings are accepted as ids."""
        assert build({"@id": "12", "x": 1}).id == 12

    def test_envelope(self) -> None:
        """Test detection of value wrappers."""
        node = build({"@type": "instant", "value": "2024-01-01T00:00:00Z"})
        payload = node.envelope()
        assert payload is not None
        assert payload.value == "2024-01-01T00:00:00Z"
        assert build({"value": 1}).envelope() is None
        assert build({"@type": "x", "value": 1, "other": 2}).envelope() is None

    def test_walk_is_preorder(self) -> None:
        """Test that walk visits parents before children in document order."""
        node = build({"a": [1, 2], "b": 3})
        assert [n.path for n in node.walk()] == ["$", "$.a", "$.a[0]", "$.a[1]", "$.b"]


class TestReferences:
    """Test @id and @ref bookkeeping."""

    def test_back_reference(self) -> None:
        """Test a reference to an earlier id."""
        tree = TreeBuilder().build([{"@id": 1, "v": 0}, {"@ref": 1}])
        assert tree.node_for(1) is tree.root.items[0]
        assert tree.references == [tree.root.items[1]]

    def test_forward_reference(self) -> None:
        """Test a reference to a later id."""
        tree = TreeBuilder().build([{"@ref": 2}, {"@id": 2, "v": 0}])
        assert tree.root.items[0].is_reference
        assert tree.node_for(2) is tree.root.items[1]

    def test_self_reference(self) -> None:
        """Test a node referring to itself."""
        tree = TreeBuilder().build({"@id": 1, "me": {"@ref": 1}})
        assert tree.root.fields["me"].ref == 1

    def test_dangling_reference(self) -> None:
        """Test that unknown ids raise with the defined ids listed."""
        with pytest.raises(UnresolvedReferenceError) as exc_info:
            TreeBuilder().build([{"@id": 1}, {"@ref": 9}])
        error = exc_info.value
        assert error.ref_id == 9
        assert error.available == (1,)
        assert error.path == "$[1]"


class TestDocumentErrors:
    """Test rejection of inconsistent meta keys."""

    @pytest.mark.parametrize(
        ("data", "fragment"),
        [
            ({"@ref": 1, "x": 2}, "@ref cannot be combined"),
            ({"@ref": 1, "@type": "x"}, "@ref cannot be combined"),
            ({"@type": "a", "@t": "b"}, "more than once"),
            ({"@type": 5}, "@type must be a string"),
            ({"@id": "one"}, "must be integers"),
            ({"@id": True}, "must be integers"),
            ({"@id": 0}, "must be positive"),
            ({"@items": [1], "x": 2}, "cannot be combined with fields"),
            ({"@items": 5}, "@items must be an array"),
            ({"@keys": 5, "@items": []}, "@keys must be an array"),
            ({"@keys": [1], "@items": []}, "@keys has 1 entries"),
        ],
    )
    def test_invalid_meta(self, data: dict[str, Any], fragment: str) -> None:
        """Test each kind of inconsistent document."""
        with pytest.raises(DocumentError, match=fragment):
            build(data)

    def test_duplicate_id(self) -> None:
        """Test that an id defined twice is rejected."""
        with pytest.raises(DocumentError, match="Duplicate @id 1") as exc_info:
            build([{"@id": 1}, {"@id": 1}])
        assert exc_info.value.path == "$[1]"

    def test_unsupported_value(self) -> None:
        """Test that non-JSON values are rejected."""
        with pytest.raises(DocumentError, match="Unsupported JSON value"):
            build({"x": object()})


class TestCanonicalStrings:
    """Test that equal short strings share one instance."""

    def test_equal_strings_shared(self) -> None:
        """Test canonicalization of scalar strings."""
        first = "".join(["ab", "c"])
        second = "".join(["a", "bc"])
        node = build([first, second])
        assert node.items[0].value is node.items[1].value

    def test_limit_zero_disables(self) -> None:
        """Test that an intern limit of zero keeps strings distinct."""
        first = "".join(["ab", "c"])
        second = "".join(["a", "bc"])
        tree = TreeBuilder(ReadOptions(intern_limit=0)).build([first, second])
        assert tree.root.items[0].value is not tree.root.items[1].value


class TestPaths:
    """Test document path formatting."""

    @pytest.mark.parametrize(
        ("key", "expected"),
        [("name", "$.name"), (3, "$[3]"), ("with space", '$["with space"]')],
    )
    def test_child_path(self, key: str | int, expected: str) -> None:
        """Test field, index and quoted keys."""
        assert child_path("$", key) == expected

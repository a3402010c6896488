"""Tests for typegraph.identity module."""

from __future__ import annotations

import pytest

from typegraph.identity import MISSING, IdentityRegistry, Tracked


class TestWritePath:
    """Test tracking and tracing of objects being written."""

    def test_track_assigns_sequential_ids(self) -> None:
        """Test that ids are assigned in first-seen order."""
        registry = IdentityRegistry()
        first, second = [], []
        assert registry.track(first) == Tracked(new=True, id=1)
        assert registry.track(second) == Tracked(new=True, id=2)
        assert registry.track(first) == Tracked(new=False, id=1)
        assert registry.id_of(second) == 2
        assert registry.id_of([]) is None

    def test_equal_objects_are_distinct(self) -> None:
        """Test that identity, not equality, decides sharing."""
        registry = IdentityRegistry()
        assert registry.track([1]).id != registry.track([1]).id

    def test_trace_counts_shared(self) -> None:
        """Test that objects reached twice are reported as shared."""
        shared = ["s"]
        alone = ["a"]
        root = [shared, shared, alone]
        registry = IdentityRegistry()
        registry.trace(root, lambda v: v if isinstance(v, list) else (), lambda v: isinstance(v, list))
        assert registry.is_shared(shared)
        assert not registry.is_shared(alone)
        assert not registry.is_shared(root)

    def test_trace_handles_cycles(self) -> None:
        """Test that a self-referencing list terminates and is shared."""
        root: list[object] = []
        root.append(root)
        registry = IdentityRegistry()
        registry.trace(root, lambda v: v if isinstance(v, list) else (), lambda v: isinstance(v, list))
        assert registry.is_shared(root)

    def test_trace_handles_long_chains(self) -> None:
        """Test that deep nesting does not hit the recursion limit."""
        root: list[object] = []
        current = root
        for _ in range(50_000):
            nxt: list[object] = []
            current.append(nxt)
            current = nxt
        registry = IdentityRegistry()
        registry.trace(root, lambda v: v, lambda v: True)
        assert not registry.is_shared(current)


class TestReadPath:
    """Test binding ids to materialized instances."""

    def test_register_and_resolve(self) -> None:
        """Test lookup of registered instances."""
        registry = IdentityRegistry()
        obj = object()
        registry.register(7, obj)
        assert registry.resolve(7) is obj
        assert 7 in registry
        assert registry.resolve(8) is MISSING
        assert registry.ids() == (7,)

    def test_duplicate_register_rejected(self) -> None:
        """Test that an id cannot be bound twice."""
        registry = IdentityRegistry()
        registry.register(1, "a")
        with pytest.raises(ValueError, match="already registered"):
            registry.register(1, "b")


class TestCanonicalStrings:
    """Test string canonicalization."""

    def test_short_strings_share_instance(self) -> None:
        """Test that equal short strings become one object."""
        registry = IdentityRegistry(intern_limit=32)
        first = "".join(["ab", "cd"])
        second = "".join(["a", "bcd"])
        assert first is not second
        assert registry.canonical(first) is registry.canonical(second)

    def test_long_strings_untouched(self) -> None:
        """Test that strings over the limit are returned as is."""
        registry = IdentityRegistry(intern_limit=2)
        text = "".join(["lon", "ger"])
        assert registry.canonical(text) is text

    def test_non_strings_untouched(self) -> None:
        """Test that other values pass through."""
        registry = IdentityRegistry(intern_limit=32)
        value = 12345678
        assert registry.canonical(value) is value

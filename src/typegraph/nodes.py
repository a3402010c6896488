"""Untyped node tree produced by the parser and consumed by the resolver."""

from __future__ import annotations

import json
from collections.abc import Iterator
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any

from typegraph.identity import MISSING, IdentityRegistry

VALUE_KEY = "value"
NAME_KEY = "name"


@dataclass(frozen=True)
class MetaKeys:
    """Spelling of the reserved keys in one document."""

    type: str
    id: str
    ref: str
    keys: str
    items: str


LONG_META_KEYS = MetaKeys("@type", "@id", "@ref", "@keys", "@items")
SHORT_META_KEYS = MetaKeys("@t", "@i", "@r", "@k", "@e")

# Either spelling → attribute name on MetaKeys
META_ALIASES: dict[str, str] = {
    getattr(keys, attr): attr
    for keys in (LONG_META_KEYS, SHORT_META_KEYS)
    for attr in ("type", "id", "ref", "keys", "items")
}


class NodeKind(StrEnum):
    OBJECT = "object"
    ARRAY = "array"
    SCALAR = "scalar"


@dataclass(eq=False)
class GraphNode:
    """One unit of parsed structure before type resolution.

    A node is either a pure reference (``ref`` set, nothing else) or a
    content node. Object nodes with ``keys`` set are composite-keyed maps
    whose values are in ``items``.

    Attributes:
        kind: Object, array or scalar
        path: Document path, e.g. ``$.owner[2]``
        type_name: Declared ``@type``, if any
        id: Declared ``@id``, if any
        ref: Target of ``@ref``, if this is a reference node
        items: Array elements, or values of a composite-keyed map
        keys: Keys of a composite-keyed map
        fields: Object entries in document order
        value: Scalar value
        instance: Resolved instance, filled in during resolution

    """

    kind: NodeKind
    path: str = "$"
    type_name: str | None = None
    id: int | None = None
    ref: int | None = None
    items: list[GraphNode] = field(default_factory=list)
    keys: list[GraphNode] | None = None
    fields: dict[str, GraphNode] = field(default_factory=dict)
    value: Any = None
    instance: Any = field(default=MISSING, repr=False)

    @property
    def is_reference(self) -> bool:
        return self.ref is not None

    @property
    def is_composite_map(self) -> bool:
        return self.keys is not None

    def envelope(self) -> GraphNode | None:
        """Payload of a ``{"@type"|"@id": ..., "value": ...}`` wrapper, if this is one."""
        if self.kind is not NodeKind.OBJECT or self.keys is not None:
            return None
        if self.type_name is None and self.id is None:
            return None
        if len(self.fields) != 1 or VALUE_KEY not in self.fields:
            return None
        return self.fields[VALUE_KEY]

    def children(self) -> Iterator[GraphNode]:
        """Direct child nodes in document order."""
        if self.keys is not None:
            yield from self.keys
        yield from self.items
        yield from self.fields.values()

    def walk(self) -> Iterator[GraphNode]:
        """All nodes of the subtree, pre-order."""
        pending = [self]
        while pending:
            node = pending.pop()
            yield node
            pending.extend(reversed(list(node.children())))


@dataclass
class PendingReference:
    """A ``@ref`` seen before the node carrying its ``@id``."""

    path: str
    ref_id: int


@dataclass
class NodeTree:
    """Result of building a document.

    Attributes:
        root: Root node
        nodes: Registry binding each ``@id`` to its node
        references: Every reference node, in document order

    """

    root: GraphNode
    nodes: IdentityRegistry
    references: list[GraphNode] = field(default_factory=list)

    def node_for(self, ref_id: int) -> GraphNode | None:
        node = self.nodes.resolve(ref_id)
        return None if node is MISSING else node


class UnresolvedObject(dict[str, Any]):
    """Object whose ``@type`` could not be located or constructed.

    Keeps the declared type name so the object can be written back with
    the same tag.
    """

    def __init__(self, type_name: str, *args: Any, **kwargs: Any) -> None:
        super().__init__(*args, **kwargs)
        self.type_name = type_name

    def __repr__(self) -> str:
        return f"UnresolvedObject({self.type_name!r}, {dict.__repr__(self)})"


class UnresolvedArray(list[Any]):
    """Array whose ``@type`` could not be located."""

    def __init__(self, type_name: str, *args: Any) -> None:
        super().__init__(*args)
        self.type_name = type_name

    def __repr__(self) -> str:
        return f"UnresolvedArray({self.type_name!r}, {list.__repr__(self)})"


def child_path(path: str, key: str | int) -> str:
    """Extend a document path by a field name or an index."""
    if isinstance(key, int):
        return f"{path}[{key}]"
    if key.isidentifier():
        return f"{path}.{key}"
    return f"{path}[{json.dumps(key)}]"

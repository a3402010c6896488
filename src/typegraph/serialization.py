"""Conversion between object graphs and JSON-compatible builtins."""

from __future__ import annotations

from typing import Any

from typegraph.nodes import GraphNode
from typegraph.options import ReadOptions, WriteOptions
from typegraph.parser import TreeBuilder
from typegraph.resolver import Resolver
from typegraph.writer import GraphWriter


def to_builtins(
    obj: Any,
    options: WriteOptions | None = None,
    *,
    root_type: Any = None,
) -> Any:
    """Convert an object graph to JSON-compatible Python builtins.

    Args:
        obj: Root of the graph to serialize
        options: Write configuration (defaults to ``WriteOptions()``)
        root_type: Static type the reader will be given for the root; values
            matching it are written without a root ``@type``

    Returns:
        JSON-compatible Python value (dict, list, str, int, float, bool, None)

    """
    return GraphWriter(options).write(obj, root_type)


def from_builtins(
    data: Any,
    options: ReadOptions | None = None,
    *,
    root_type: Any = None,
) -> Any:
    """Rebuild an object graph from JSON-compatible builtins.

    Args:
        data: Output of ``json.loads`` (or :func:`to_builtins`)
        options: Read configuration (defaults to ``ReadOptions()``)
        root_type: Static type of the root value, if known

    Returns:
        The materialized object graph

    Raises:
        DocumentError: If meta keys are inconsistent
        UnresolvedReferenceError: If a ``@ref`` has no matching ``@id``
        ConversionError: If a value cannot be coerced and options are strict

    """
    tree = TreeBuilder(options).build(data)
    return Resolver(options).resolve(tree, root_type)


def tree_from_builtins(data: Any, options: ReadOptions | None = None) -> GraphNode:
    """Parse builtins into a node tree without materializing any types.

    The returned tree can be passed back to :func:`to_builtins`, which
    writes it out unchanged.
    """
    return TreeBuilder(options).build(data).root

"""JSON format adapter."""

from __future__ import annotations

import json
from typing import TYPE_CHECKING, Any

from typegraph.errors import GraphSyntaxError
from typegraph.serialization import from_builtins, to_builtins, tree_from_builtins

if TYPE_CHECKING:
    from typegraph.nodes import GraphNode
    from typegraph.options import ReadOptions, WriteOptions


def to_json(
    obj: Any,
    options: WriteOptions | None = None,
    *,
    root_type: Any = None,
) -> str:
    """Serialize an object graph to a JSON string.

    Args:
        obj: Root of the graph to serialize
        options: Write configuration; ``options.pretty`` indents the output
        root_type: Static type the reader will be given for the root

    Returns:
        JSON string representation

    """
    builtins = to_builtins(obj, options, root_type=root_type)
    indent = 2 if options is not None and options.pretty else None
    return json.dumps(builtins, indent=indent)


def _loads(text: str | bytes) -> Any:
    try:
        return json.loads(text)
    except json.JSONDecodeError as exc:
        raise GraphSyntaxError(
            exc.msg,
            line=exc.lineno,
            column=exc.colno,
            offset=exc.pos,
        ) from exc


def from_json(
    text: str | bytes,
    options: ReadOptions | None = None,
    *,
    root_type: Any = None,
) -> Any:
    """Deserialize a JSON string to an object graph.

    Args:
        text: JSON text
        options: Read configuration
        root_type: Static type of the root value, if known

    Returns:
        The materialized object graph

    Raises:
        GraphSyntaxError: If the text is not valid JSON

    """
    return from_builtins(_loads(text), options, root_type=root_type)


def tree_from_json(text: str | bytes, options: ReadOptions | None = None) -> GraphNode:
    """Parse JSON text into a node tree without materializing any types."""
    return tree_from_builtins(_loads(text), options)

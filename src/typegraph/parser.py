"""Builds a node tree from decoded JSON builtins.

The builder runs one forward pass in document order. Meta keys become node
attributes, ``@id`` nodes are registered as soon as they are built, and
``@ref`` nodes pointing forward are recorded as pending until the scan is
complete.
"""

from __future__ import annotations

import logging
from typing import Any

from typegraph.errors import DocumentError, UnresolvedReferenceError
from typegraph.identity import IdentityRegistry
from typegraph.nodes import (
    META_ALIASES,
    GraphNode,
    NodeKind,
    NodeTree,
    PendingReference,
    child_path,
)
from typegraph.options import ReadOptions

logger = logging.getLogger(__name__)

_SCALARS = (str, int, float, bool)


class TreeBuilder:
    """Turns the output of ``json.loads`` into a :class:`NodeTree`.

    Example:
        tree = TreeBuilder().build({"@id": 1, "next": {"@ref": 1}})
        tree.root.fields["next"].ref  # 1

    """

    def __init__(self, options: ReadOptions | None = None) -> None:
        self.options = options if options is not None else ReadOptions()

    def build(self, data: Any) -> NodeTree:
        """Build the tree and check that every reference has a target.

        Raises:
            DocumentError: If meta keys are inconsistent
            UnresolvedReferenceError: If a ``@ref`` id is never defined

        """
        self._nodes = IdentityRegistry(intern_limit=self.options.intern_limit)
        self._references: list[GraphNode] = []
        self._pending: list[PendingReference] = []

        root = self._build(data, "$")

        for pending in self._pending:
            if pending.ref_id not in self._nodes:
                raise UnresolvedReferenceError(
                    pending.ref_id,
                    self._nodes.ids(),
                    path=pending.path,
                )
        logger.debug(
            "Built node tree: %d ids, %d references (%d forward)",
            len(self._nodes.ids()),
            len(self._references),
            len(self._pending),
        )
        return NodeTree(root=root, nodes=self._nodes, references=self._references)

    def _build(self, data: Any, path: str) -> GraphNode:
        if isinstance(data, dict):
            return self._build_object(data, path)
        if isinstance(data, list):
            items = [self._build(item, child_path(path, i)) for i, item in enumerate(data)]
            return GraphNode(NodeKind.ARRAY, path, items=items)
        if data is None or isinstance(data, _SCALARS):
            return GraphNode(NodeKind.SCALAR, path, value=self._nodes.canonical(data))
        msg = f"Unsupported JSON value of type {type(data).__name__}"
        raise DocumentError(msg, path=path)

    def _build_object(self, data: dict[str, Any], path: str) -> GraphNode:
        meta: dict[str, Any] = {}
        content: dict[str, Any] = {}
        for key, value in data.items():
            attr = META_ALIASES.get(key)
            if attr is None:
                content[key] = value
                continue
            if attr in meta:
                msg = f"Meta key '{key}' appears more than once"
                raise DocumentError(msg, path=path)
            meta[attr] = value

        if "ref" in meta:
            return self._build_reference(meta, content, path)

        type_name = meta.get("type")
        if type_name is not None and not isinstance(type_name, str):
            msg = f"@type must be a string, got {type_name!r}"
            raise DocumentError(msg, path=path)
        node_id = self._parse_id(meta["id"], path) if "id" in meta else None

        if "keys" in meta or "items" in meta:
            node = self._build_collection(meta, content, path)
        else:
            node = GraphNode(NodeKind.OBJECT, path)
        node.type_name = type_name
        node.id = node_id

        # Register before children so the node exists for any later back reference
        if node_id is not None:
            try:
                self._nodes.register(node_id, node)
            except ValueError as exc:
                msg = f"Duplicate @id {node_id}"
                raise DocumentError(msg, path=path) from exc

        if node.kind is NodeKind.ARRAY:
            node.items = [
                self._build(item, child_path(path, i)) for i, item in enumerate(meta["items"])
            ]
        elif node.keys is not None:
            keys_path = child_path(path, "@keys")
            items_path = child_path(path, "@items")
            node.keys = [
                self._build(key, child_path(keys_path, i)) for i, key in enumerate(meta["keys"])
            ]
            node.items = [
                self._build(item, child_path(items_path, i))
                for i, item in enumerate(meta["items"])
            ]
        else:
            for key, value in content.items():
                node.fields[self._nodes.canonical(key)] = self._build(
                    value,
                    child_path(path, key),
                )
        return node

    def _build_reference(
        self,
        meta: dict[str, Any],
        content: dict[str, Any],
        path: str,
    ) -> GraphNode:
        if content or len(meta) > 1:
            extra = sorted({*content, *(k for k in meta if k != "ref")})
            msg = f"@ref cannot be combined with other keys: {extra}"
            raise DocumentError(msg, path=path)
        ref_id = self._parse_id(meta["ref"], path)
        node = GraphNode(NodeKind.OBJECT, path, ref=ref_id)
        self._references.append(node)
        if ref_id not in self._nodes:
            self._pending.append(PendingReference(path, ref_id))
        return node

    @staticmethod
    def _build_collection(
        meta: dict[str, Any],
        content: dict[str, Any],
        path: str,
    ) -> GraphNode:
        if content:
            msg = f"@items cannot be combined with fields: {sorted(content)}"
            raise DocumentError(msg, path=path)
        items = meta.get("items")
        if not isinstance(items, list):
            msg = "@items must be an array"
            raise DocumentError(msg, path=path)
        if "keys" not in meta:
            return GraphNode(NodeKind.ARRAY, path)
        keys = meta["keys"]
        if not isinstance(keys, list):
            msg = "@keys must be an array"
            raise DocumentError(msg, path=path)
        if len(keys) != len(items):
            msg = f"@keys has {len(keys)} entries but @items has {len(items)}"
            raise DocumentError(msg, path=path)
        return GraphNode(NodeKind.OBJECT, path, keys=[])

    @staticmethod
    def _parse_id(raw: Any, path: str) -> int:
        if isinstance(raw, str) and raw.strip().isdigit():
            raw = int(raw)
        if isinstance(raw, bool) or not isinstance(raw, int):
            msg = f"Identity ids must be integers, got {raw!r}"
            raise DocumentError(msg, path=path)
        if raw <= 0:
            msg = f"Identity ids must be positive, got {raw}"
            raise DocumentError(msg, path=path)
        return raw

"""Walks an object graph and encodes it as JSON builtins.

The walk is depth first and pre-order. A trace pass runs first so that
``@id`` is emitted only on objects that more than one edge reaches; every
later visit of such an object is written as ``{"@ref": id}``.
"""

from __future__ import annotations

import logging
from collections.abc import Iterator
from datetime import date, time, timedelta
from decimal import Decimal
from enum import Enum
from typing import Any
from uuid import UUID

from typegraph.codecs import Codec
from typegraph.errors import CustomCodecError
from typegraph.identity import IdentityRegistry
from typegraph.kinds import ATOMIC_KINDS, Kind, kind_of, python_type
from typegraph.nodes import (
    LONG_META_KEYS,
    NAME_KEY,
    SHORT_META_KEYS,
    VALUE_KEY,
    GraphNode,
    NodeKind,
    UnresolvedArray,
    UnresolvedObject,
    child_path,
)
from typegraph.options import EnumFormat, TypeInfo, WriteOptions
from typegraph.schema import FieldSchema, extract_type
from typegraph.types import (
    ANY,
    AnyType,
    EnumType,
    ObjectType,
    ScalarType,
    TypeDef,
    default_container,
    element_type,
    key_value_types,
    narrow,
)

logger = logging.getLogger(__name__)

# Types the reader produces from bare JSON values
_JSON_NATIVE = (str, bool, int, float)
_JSON_CONTAINERS = (list, dict)
_INLINE_TYPES = (
    type(None),
    bool,
    int,
    float,
    complex,
    str,
    bytes,
    Decimal,
    UUID,
    date,
    time,
    timedelta,
    Enum,
    type,
)
_ARRAY_TYPES = (list, tuple, set, frozenset)
_ENUM_MACHINERY = frozenset({"_name_", "_value_", "_sort_order_"})


class GraphWriter:
    """Encodes object graphs into JSON-compatible builtins.

    Example:
        shared = Point(1, 2)
        GraphWriter().write([shared, shared])
        # [{"@type": "app.Point", "@id": 1, "x": 1, "y": 2}, {"@ref": 1}]

    """

    def __init__(self, options: WriteOptions | None = None) -> None:
        self.options = options if options is not None else WriteOptions()
        self._meta = SHORT_META_KEYS if self.options.short_meta_keys else LONG_META_KEYS
        self._inline = _INLINE_TYPES + tuple(self.options.non_referenceable)

    def write(self, root: Any, root_type: Any = None) -> Any:
        """Encode a graph.

        Args:
            root: Root of the object graph
            root_type: Static type the reader will be given for the root

        Returns:
            JSON-compatible builtins (dict, list, str, int, float, bool, None)

        Raises:
            CustomCodecError: If a registered encoder raises

        """
        self._registry = IdentityRegistry()
        self._registry.trace(root, self._children, self._is_referenceable)
        static = extract_type(root_type) if root_type is not None else ANY
        result = self._write(root, static, "$")
        logger.debug("Wrote graph rooted at %s", type(root).__name__)
        return result

    # -------------------------------------------------------------------------
    # Classification
    # -------------------------------------------------------------------------

    def _is_referenceable(self, value: Any) -> bool:
        return not isinstance(value, self._inline) and not isinstance(value, GraphNode)

    def _codec(self, value: Any) -> Codec[Any] | None:
        codec = self.options.codecs.lookup(type(value))
        if codec is None or codec.encode is None:
            return None
        return codec

    def _children(self, value: Any) -> Iterator[Any]:
        """Direct children of a value, in the order :meth:`_write` visits them."""
        if value is None or isinstance(value, GraphNode) or self._codec(value):
            return
        if isinstance(value, Enum):
            if self.options.enum_format is EnumFormat.OBJECT:
                yield from self._enum_fields(value).values()
            return
        if isinstance(value, _ARRAY_TYPES):
            yield from value
        elif isinstance(value, dict):
            yield from value.keys()
            yield from value.values()
        elif kind_of(value) in (None, Kind.MAP):
            for _, field_value, _ in self._object_fields(value):
                yield field_value

    # -------------------------------------------------------------------------
    # Tagging
    # -------------------------------------------------------------------------

    def _inferred_type(self, static: TypeDef, value: Any) -> type | None:
        """Type the reader builds for an untagged value in this static context."""
        static = narrow(static)
        match static:
            case ScalarType(kind=kind):
                if kind is Kind.TYPE_REFERENCE:
                    return type(value) if isinstance(value, type) else type
                # An aware datetime read as a local one would lose its zone
                if kind is Kind.LOCAL_DATE_TIME and kind_of(value) is Kind.ZONED_DATE_TIME:
                    return None
                return python_type(kind)
            case EnumType(cls=cls) | ObjectType(cls=cls):
                return cls
            case AnyType():
                if type(value) in _JSON_NATIVE or type(value) in _JSON_CONTAINERS:
                    return type(value)
                return None
            case _:
                return default_container(static)

    def _needs_tag(self, value: Any, static: TypeDef) -> bool:
        policy = self.options.type_info
        if policy is TypeInfo.NEVER:
            return False
        if isinstance(value, UnresolvedObject | UnresolvedArray):
            return True
        if policy is TypeInfo.ALWAYS:
            return type(value) not in _JSON_NATIVE
        return type(value) is not self._inferred_type(static, value)

    def _tag_name(self, value: Any) -> str:
        if isinstance(value, UnresolvedObject | UnresolvedArray):
            return value.type_name
        if self._codec(value) is not None:
            return self.options.type_names.name_of(type(value))
        kind = kind_of(value)
        if kind is not None and kind is not Kind.MAP:
            return kind.value
        return self.options.type_names.name_of(type(value))

    def _header(self, type_name: str | None, ident: int | None) -> dict[str, Any]:
        header: dict[str, Any] = {}
        if type_name is not None:
            header[self._meta.type] = type_name
        if ident is not None:
            header[self._meta.id] = ident
        return header

    # -------------------------------------------------------------------------
    # Encoding
    # -------------------------------------------------------------------------

    def _write(self, value: Any, static: TypeDef, path: str) -> Any:
        if value is None:
            return None
        if isinstance(value, GraphNode):
            return self._write_node(value)

        ident = None
        if self._is_referenceable(value):
            known = self._registry.id_of(value)
            if known is not None:
                return {self._meta.ref: known}
            if self._registry.is_shared(value):
                ident = self._registry.track(value).id

        tag = self._tag_name(value) if self._needs_tag(value, static) else None

        if (codec := self._codec(value)) is not None:
            return self._write_codec(value, codec, tag, ident, path)
        if isinstance(value, Enum):
            return self._write_enum(value, tag, ident, path)
        if isinstance(value, _ARRAY_TYPES):
            return self._write_array(value, static, tag, ident, path)
        if isinstance(value, dict):
            return self._write_map(value, static, tag, ident, path)
        if (kind := kind_of(value)) is not None and kind is not Kind.MAP:
            return self._write_scalar(value, kind, tag, ident)
        return self._write_object(value, tag, ident, path)

    def _write_scalar(
        self,
        value: Any,
        kind: Kind,
        tag: str | None,
        ident: int | None,
    ) -> Any:
        if type(value) in _JSON_NATIVE:
            bare = value
        elif kind in ATOMIC_KINDS:
            bare = value.get()
        elif kind is Kind.TYPE_REFERENCE:
            bare = self.options.type_names.name_of(value)
        else:
            bare = self.options.converter.convert(value, kind, Kind.STRING)
        if tag is None and ident is None:
            return bare
        return {**self._header(tag, ident), VALUE_KEY: bare}

    def _write_codec(
        self,
        value: Any,
        codec: Codec[Any],
        tag: str | None,
        ident: int | None,
        path: str,
    ) -> Any:
        try:
            payload = codec.encode(value)  # type: ignore[misc]
        except Exception as exc:
            raise CustomCodecError(type(value), "encode", exc, path=path) from exc
        if tag is None and ident is None:
            return payload
        return {**self._header(tag, ident), VALUE_KEY: payload}

    def _enum_fields(self, member: Enum) -> dict[str, Any]:
        private = self.options.enum_private_fields
        return {
            name: attr
            for name, attr in vars(member).items()
            if not name.startswith("__")
            and name not in _ENUM_MACHINERY
            and (private or not name.startswith("_"))
        }

    def _write_enum(
        self,
        member: Enum,
        tag: str | None,
        ident: int | None,
        path: str,
    ) -> Any:
        if self.options.enum_format is EnumFormat.NAME:
            if tag is None and ident is None:
                return member.name
            return {**self._header(tag, ident), NAME_KEY: member.name}

        result = {**self._header(tag, ident), NAME_KEY: member.name}
        for name, attr in self._enum_fields(member).items():
            if attr is None and self.options.skip_null_fields:
                continue
            result[name] = self._write(attr, ANY, child_path(path, name))
        return result

    def _write_array(
        self,
        value: Any,
        static: TypeDef,
        tag: str | None,
        ident: int | None,
        path: str,
    ) -> Any:
        items = [
            self._write(item, element_type(static, i), child_path(path, i))
            for i, item in enumerate(value)
        ]
        if tag is None and ident is None:
            return items
        return {**self._header(tag, ident), self._meta.items: items}

    def _write_map(
        self,
        value: dict[Any, Any],
        static: TypeDef,
        tag: str | None,
        ident: int | None,
        path: str,
    ) -> dict[str, Any]:
        key_type, value_type = key_value_types(static)
        result = self._header(tag, ident)
        if all(type(key) is str and not key.startswith("@") for key in value):
            for key, item in value.items():
                result[key] = self._write(item, value_type, child_path(path, key))
            return result

        keys_path = child_path(path, "@keys")
        items_path = child_path(path, "@items")
        keys = []
        items = []
        for i, (key, item) in enumerate(value.items()):
            keys.append(self._write(key, key_type, child_path(keys_path, i)))
            items.append(self._write(item, value_type, child_path(items_path, i)))
        result[self._meta.keys] = keys
        result[self._meta.items] = items
        return result

    def _object_fields(self, value: Any) -> Iterator[tuple[str, Any, FieldSchema | None]]:
        """Fields written for an object: declared ones first, then instance extras."""
        cls = type(value)
        schema = self.options.schemas.schema_for(cls)
        include, exclude = self.options.field_filter(cls)
        names = [f.name for f in schema.fields]
        instance_vars = getattr(value, "__dict__", None)
        if instance_vars is not None:
            names.extend(name for name in instance_vars if name not in schema.field_map)

        for name in names:
            if name in exclude or (include is not None and name not in include):
                continue
            try:
                field_value = getattr(value, name)
            except AttributeError:  # unset slot
                continue
            if field_value is None and self.options.skip_null_fields:
                continue
            yield name, field_value, schema.field(name)

    def _write_object(
        self,
        value: Any,
        tag: str | None,
        ident: int | None,
        path: str,
    ) -> dict[str, Any]:
        result = self._header(tag, ident)
        for name, field_value, field in self._object_fields(value):
            static = field.type if field is not None else ANY
            result[name] = self._write(field_value, static, child_path(path, name))
        return result

    # -------------------------------------------------------------------------
    # Generic-mode trees
    # -------------------------------------------------------------------------

    def _write_node(self, node: GraphNode) -> Any:
        """Write a parsed node tree back verbatim."""
        if node.ref is not None:
            return {self._meta.ref: node.ref}
        if node.kind is NodeKind.SCALAR:
            return node.value
        if node.kind is NodeKind.ARRAY:
            items = [self._write_node(item) for item in node.items]
            if node.type_name is None and node.id is None:
                return items
            return {**self._header(node.type_name, node.id), self._meta.items: items}

        result = self._header(node.type_name, node.id)
        if node.keys is not None:
            result[self._meta.keys] = [self._write_node(key) for key in node.keys]
            result[self._meta.items] = [self._write_node(item) for item in node.items]
            return result
        for name, child in node.fields.items():
            result[name] = self._write_node(child)
        return result
